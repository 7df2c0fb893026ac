"""Photo capture pipeline: compression and online/offline hand-off."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import secrets
from enum import StrEnum
from typing import TYPE_CHECKING

from PIL import Image, ImageOps, UnidentifiedImageError

from logistik_sync.exceptions import (
    PhotoCompressionError,
    PhotoUploadError,
    SyncTransportError,
)
from logistik_sync.schemas import PhotoCaptureResult, utcnow

if TYPE_CHECKING:
    from logistik_sync.config import LogistikSyncConfig
    from logistik_sync.connectivity import ConnectivityMonitor
    from logistik_sync.protocols import PhotoUploader

logger = logging.getLogger(__name__)

JPEG_MIME = "image/jpeg"


class PhotoRefKind(StrEnum):
    PENDING = "pending"
    PLACEHOLDER = "placeholder"
    REMOTE = "remote"


def classify_photo_ref(ref: str) -> PhotoRefKind:
    """Tell embedded blobs, remote URLs and placeholder tokens apart."""
    if ref.startswith("data:"):
        return PhotoRefKind.PENDING
    if ref.startswith(("https://", "http://")):
        return PhotoRefKind.REMOTE
    return PhotoRefKind.PLACEHOLDER


def encode_data_url(blob: bytes, mime: str = JPEG_MIME) -> str:
    encoded = base64.b64encode(blob).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def decode_data_url(ref: str) -> bytes:
    header, sep, payload = ref.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValueError("not a base64 data URL")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc


def generate_photo_filename() -> str:
    timestamp = utcnow().isoformat().replace(":", "-").replace(".", "-")
    return f"ocorrencia_{timestamp}_{secrets.token_hex(3)}.jpg"


def _jpeg_quality(quality: float) -> int:
    # Accept both 0-1 fractions and 1-100 percentages.
    value = quality * 100 if quality <= 1 else quality
    return max(1, min(95, int(round(value))))


def compress(
    raw: bytes,
    quality: float = 0.7,
    max_width: int = 1280,
    max_height: int = 1280,
) -> bytes:
    """Re-encode an image as JPEG within the given bounds.

    The image is only scaled down, preserving its aspect ratio. Output is
    deterministic for identical input and parameters.
    """
    try:
        with Image.open(io.BytesIO(raw)) as source:
            image = ImageOps.exif_transpose(source)
            if image.mode != "RGB":
                image = image.convert("RGB")
            if image.width > max_width or image.height > max_height:
                image.thumbnail(
                    (max_width, max_height), Image.Resampling.LANCZOS
                )
            buffer = io.BytesIO()
            image.save(
                buffer,
                format="JPEG",
                quality=_jpeg_quality(quality),
                optimize=True,
            )
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise PhotoCompressionError(f"Cannot process image: {exc}") from exc
    except Image.DecompressionBombError as exc:
        raise PhotoCompressionError(f"Image too large: {exc}") from exc
    return buffer.getvalue()


async def resolve_photo_refs(
    refs: list[str], uploader: PhotoUploader
) -> list[str]:
    """Upload pending blobs and return only remote URLs.

    Placeholder tokens carry no image data and are dropped. A failed
    upload raises PhotoUploadError whose ``refs`` keep the URLs obtained
    so far, so a retry only uploads what is still pending.
    """
    resolved: list[str] = []
    for index, ref in enumerate(refs):
        kind = classify_photo_ref(ref)
        if kind is PhotoRefKind.REMOTE:
            resolved.append(ref)
        elif kind is PhotoRefKind.PENDING:
            blob = decode_data_url(ref)
            try:
                url = await uploader.upload_photo(
                    blob, generate_photo_filename()
                )
            except SyncTransportError as exc:
                raise PhotoUploadError(
                    str(exc), refs=resolved + refs[index:]
                ) from exc
            logger.info("Pending photo %d uploaded: %s", index, url)
            resolved.append(url)
        else:
            logger.warning("Dropping unresolvable photo reference %r", ref)
    return resolved


class PhotoPipeline:
    """Turns captured images into references attachable to an occurrence."""

    def __init__(
        self,
        uploader: PhotoUploader,
        monitor: ConnectivityMonitor,
        config: LogistikSyncConfig,
    ) -> None:
        self.uploader = uploader
        self.monitor = monitor
        self.config = config

    def compress(self, raw: bytes) -> bytes:
        return compress(
            raw,
            quality=self.config.photo_quality,
            max_width=self.config.photo_max_width,
            max_height=self.config.photo_max_height,
        )

    async def upload_if_online(
        self, blob: bytes, filename: str | None = None
    ) -> str:
        """Return a remote URL when possible, else a pending data URL.

        Never raises: capture must not depend on the network.
        """
        if not self.monitor.is_online:
            return encode_data_url(blob)
        try:
            return await self.uploader.upload_photo(
                blob, filename or generate_photo_filename()
            )
        except Exception as exc:
            logger.warning(
                "Photo upload failed, keeping it for later sync: %s", exc
            )
            return encode_data_url(blob)

    async def capture(
        self, raw: bytes, filename: str | None = None
    ) -> PhotoCaptureResult:
        try:
            blob = self.compress(raw)
        except PhotoCompressionError as exc:
            logger.warning("Photo not attached: %s", exc)
            return PhotoCaptureResult(attached=False, error=str(exc))

        ref = await self.upload_if_online(blob, filename)
        return PhotoCaptureResult(
            attached=True,
            ref=ref,
            pending=classify_photo_ref(ref) is PhotoRefKind.PENDING,
        )

    async def resolve(self, refs: list[str]) -> list[str]:
        return await resolve_photo_refs(refs, self.uploader)
