"""Photo capture endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, UploadFile

from logistik_sync.dependencies import get_photo_pipeline
from logistik_sync.photos import PhotoPipeline
from logistik_sync.schemas import PhotoCaptureResult

router = APIRouter()


@router.post("/photos", response_model=PhotoCaptureResult)
async def capture_photo(
    file: UploadFile,
    photos: PhotoPipeline | None = Depends(get_photo_pipeline),
) -> PhotoCaptureResult:
    """Compress an image and return a reference for the occurrence form.

    Offline or failed uploads still attach: the reference is then a
    pending data URL resolved at sync time.
    """
    if photos is None:
        raise HTTPException(
            status_code=500,
            detail="Photo pipeline not configured",
        )
    raw = await file.read()
    result = await photos.capture(raw)
    if not result.attached:
        raise HTTPException(status_code=422, detail=result.error)
    return result
