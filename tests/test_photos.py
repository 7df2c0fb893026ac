"""Photo pipeline tests."""

import io
import re
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from conftest import make_image
from logistik_sync.connectivity import ConnectivityMonitor
from logistik_sync.exceptions import (
    NetworkTransportError,
    PhotoCompressionError,
    PhotoUploadError,
)
from logistik_sync.photos import (
    PhotoPipeline,
    PhotoRefKind,
    classify_photo_ref,
    compress,
    decode_data_url,
    encode_data_url,
    generate_photo_filename,
    resolve_photo_refs,
)


def _open(blob: bytes) -> Image.Image:
    return Image.open(io.BytesIO(blob))


@pytest.fixture()
def uploader() -> AsyncMock:
    uploader = AsyncMock()
    uploader.upload_photo.return_value = "https://cdn.test/photo-1.jpg"
    return uploader


@pytest.fixture()
def pipeline(uploader, monitor, config) -> PhotoPipeline:
    return PhotoPipeline(uploader, monitor, config)


class TestClassifyPhotoRef:
    def test_data_url_is_pending(self) -> None:
        ref = "data:image/jpeg;base64,AAAA"
        assert classify_photo_ref(ref) is PhotoRefKind.PENDING

    def test_https_url_is_remote(self) -> None:
        ref = "https://cdn.test/a.jpg"
        assert classify_photo_ref(ref) is PhotoRefKind.REMOTE

    def test_anything_else_is_placeholder(self) -> None:
        ref = "photo_captured"
        assert classify_photo_ref(ref) is PhotoRefKind.PLACEHOLDER


def test_data_url_carries_the_bytes() -> None:
    ref = encode_data_url(b"\xff\xd8jpeg")
    assert ref.startswith("data:image/jpeg;base64,")
    assert decode_data_url(ref) == b"\xff\xd8jpeg"


@pytest.mark.parametrize(
    "ref",
    ["https://cdn.test/a.jpg", "data:image/jpeg,raw", "data:;base64,@@@"],
)
def test_decode_rejects_non_base64_refs(ref) -> None:
    with pytest.raises(ValueError):
        decode_data_url(ref)


def test_generated_filename_shape() -> None:
    name = generate_photo_filename()
    assert re.fullmatch(r"ocorrencia_[0-9T+\-]+_[0-9a-f]{6}\.jpg", name)


class TestCompress:
    def test_large_image_is_scaled_down_keeping_aspect(self) -> None:
        blob = compress(make_image(3000, 2000))

        image = _open(blob)
        assert image.format == "JPEG"
        assert image.width == 1280
        assert abs(image.height - 853) <= 1

    def test_portrait_image_is_bounded_by_height(self) -> None:
        image = _open(compress(make_image(1000, 4000)))
        assert image.height == 1280
        assert image.width == 320

    def test_small_image_is_not_upscaled(self) -> None:
        image = _open(compress(make_image(200, 100)))
        assert image.size == (200, 100)

    def test_output_is_deterministic(self) -> None:
        raw = make_image(1600, 1200)
        assert compress(raw, 0.7) == compress(raw, 0.7)

    def test_png_with_alpha_becomes_rgb_jpeg(self) -> None:
        raw = make_image(50, 50, (10, 20, 30, 128), fmt="PNG", mode="RGBA")
        image = _open(compress(raw))
        assert image.format == "JPEG"
        assert image.mode == "RGB"

    def test_custom_bounds(self) -> None:
        image = _open(compress(make_image(800, 800), max_width=400))
        assert image.size == (400, 400)

    def test_corrupt_bytes_raise(self) -> None:
        with pytest.raises(PhotoCompressionError):
            compress(b"definitely not an image")


class TestResolvePhotoRefs:
    async def test_uploads_pending_and_keeps_remote(self, uploader) -> None:
        pending = encode_data_url(b"blob")

        resolved = await resolve_photo_refs(
            ["https://cdn.test/old.jpg", pending], uploader
        )

        assert resolved == [
            "https://cdn.test/old.jpg",
            "https://cdn.test/photo-1.jpg",
        ]
        blob, filename = uploader.upload_photo.await_args.args
        assert blob == b"blob"
        assert filename.startswith("ocorrencia_")

    async def test_placeholders_are_dropped(self, uploader) -> None:
        resolved = await resolve_photo_refs(["photo_captured"], uploader)

        assert resolved == []
        uploader.upload_photo.assert_not_awaited()

    async def test_upload_errors_propagate(self, uploader) -> None:
        uploader.upload_photo.side_effect = NetworkTransportError("down")

        with pytest.raises(PhotoUploadError) as exc_info:
            await resolve_photo_refs([encode_data_url(b"blob")], uploader)

        assert isinstance(exc_info.value.__cause__, NetworkTransportError)

    async def test_failed_upload_keeps_urls_already_obtained(
        self, uploader
    ) -> None:
        first = encode_data_url(b"first")
        second = encode_data_url(b"second")
        third = encode_data_url(b"third")
        uploader.upload_photo.side_effect = [
            "https://cdn.test/photo-1.jpg",
            NetworkTransportError("down"),
        ]

        with pytest.raises(PhotoUploadError) as exc_info:
            await resolve_photo_refs(
                ["https://cdn.test/old.jpg", first, second, third],
                uploader,
            )

        assert exc_info.value.refs == [
            "https://cdn.test/old.jpg",
            "https://cdn.test/photo-1.jpg",
            second,
            third,
        ]
        assert uploader.upload_photo.await_count == 2


class TestPhotoPipeline:
    async def test_offline_capture_keeps_blob_locally(
        self, uploader, config
    ) -> None:
        pipeline = PhotoPipeline(
            uploader, ConnectivityMonitor(initial_online=False), config
        )

        result = await pipeline.capture(make_image())

        assert result.attached is True
        assert result.pending is True
        assert result.ref.startswith("data:image/jpeg;base64,")
        uploader.upload_photo.assert_not_awaited()

    async def test_online_capture_returns_remote_url(
        self, pipeline, uploader
    ) -> None:
        result = await pipeline.capture(make_image())

        assert result.attached is True
        assert result.pending is False
        assert result.ref == "https://cdn.test/photo-1.jpg"
        uploader.upload_photo.assert_awaited_once()

    async def test_failed_upload_falls_back_to_blob(
        self, pipeline, uploader
    ) -> None:
        uploader.upload_photo.side_effect = NetworkTransportError("timeout")

        result = await pipeline.capture(make_image())

        assert result.attached is True
        assert result.pending is True
        assert decode_data_url(result.ref) == pipeline.compress(make_image())

    async def test_corrupt_image_is_not_attached(
        self, pipeline, uploader
    ) -> None:
        result = await pipeline.capture(b"garbage")

        assert result.attached is False
        assert result.ref is None
        assert "Cannot process image" in result.error
        uploader.upload_photo.assert_not_awaited()

    async def test_resolve_uses_uploader(self, pipeline) -> None:
        resolved = await pipeline.resolve([encode_data_url(b"x")])
        assert resolved == ["https://cdn.test/photo-1.jpg"]
