"""
Image upload endpoints.

POST /api/upload — multipart ``file`` → stored image URL
GET  /api/upload — allowed types and size limit
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app.config import settings
from app.dependencies import get_storage
from app.errors import UploadError
from app.schemas import UploadResult
from app.services.storage import StorageService, validate_image

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/upload", response_model=UploadResult)
def upload_image(
    file: UploadFile = File(...),
    storage: StorageService = Depends(get_storage),
):
    data = file.file.read()
    content_type = file.content_type or "application/octet-stream"
    try:
        validate_image(data, content_type)
    except UploadError as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    result = storage.upload(data, content_type)
    logger.info("Uploaded %s (%d bytes) → %s", file.filename, result.size, result.url)
    return result


@router.get("/upload")
def upload_info():
    return {
        "allowed_types": settings.ALLOWED_IMAGE_TYPES,
        "max_size_bytes": settings.UPLOAD_MAX_BYTES,
        "backend": settings.STORAGE_BACKEND,
    }
