"""
Image storage.

Backends, selected via ``settings.STORAGE_BACKEND``:

1. **filesystem** (default): writes under ``settings.UPLOAD_DIR``; files are
   served by the app at ``/uploads``.
2. **minio**: S3-compatible object storage; the object URL is returned.
3. **none**: storage disabled; every upload fails with ``UploadError`` and
   the submission flow falls back to the placeholder image.

Every upload passes the same gate first: allowed image types only, and no
larger than ``settings.UPLOAD_MAX_BYTES``.
"""
from __future__ import annotations

import logging
import secrets
import time
from io import BytesIO
from pathlib import Path
from typing import Any, Optional

from minio import Minio

from app.config import settings
from app.errors import UploadError
from app.schemas import UploadResult

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def validate_image(
    data: bytes,
    content_type: str,
    max_bytes: Optional[int] = None,
    allowed_types: Optional[list[str]] = None,
) -> None:
    """Raise ``UploadError`` when the file may not be stored."""
    allowed = allowed_types or settings.ALLOWED_IMAGE_TYPES
    limit = max_bytes or settings.UPLOAD_MAX_BYTES
    if content_type not in allowed:
        raise UploadError("Invalid file type. Only JPEG, PNG, and WebP images are allowed.")
    if not data:
        raise UploadError("File is empty.")
    if len(data) > limit:
        raise UploadError(f"File size too large. Maximum size is {limit // (1024 * 1024)}MB.")


def generate_filename(content_type: str) -> str:
    """``receipt_<ms timestamp>_<random>.<ext>``"""
    ext = _EXTENSIONS.get(content_type, "bin")
    return f"receipt_{int(time.time() * 1000)}_{secrets.token_hex(6)}.{ext}"


class StorageService:
    """Unified image storage (filesystem, MinIO, or disabled)."""

    def __init__(
        self,
        backend: Optional[str] = None,
        upload_dir: Optional[str] = None,
        public_base_url: Optional[str] = None,
        minio_client: Any = None,
    ) -> None:
        self.backend = (backend or settings.STORAGE_BACKEND or "none").lower()
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.bucket = settings.MINIO_BUCKET_NAME
        self._minio = minio_client

    # ── backends ─────────────────────────────────────────────────────────
    def _save_to_disk(self, data: bytes, filename: str) -> str:
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            (self.upload_dir / filename).write_bytes(data)
        except OSError as exc:
            raise UploadError(f"Could not write image to disk: {exc}") from exc
        logger.info("Image saved to %s (%d bytes)", self.upload_dir / filename, len(data))
        return f"{self.public_base_url}/uploads/{filename}"

    def _get_minio(self) -> Minio:
        if self._minio is None:
            if not settings.MINIO_ACCESS_KEY or not settings.MINIO_SECRET_KEY:
                raise UploadError("MinIO credentials are not configured")
            try:
                self._minio = Minio(
                    settings.MINIO_ENDPOINT,
                    access_key=settings.MINIO_ACCESS_KEY,
                    secret_key=settings.MINIO_SECRET_KEY,
                    secure=settings.MINIO_USE_SSL,
                )
            except Exception as exc:
                raise UploadError(f"MinIO client could not be created: {exc}") from exc
        return self._minio

    def _save_to_minio(self, data: bytes, filename: str, content_type: str) -> str:
        client = self._get_minio()
        object_name = f"receipts/{filename}"
        try:
            if not client.bucket_exists(self.bucket):
                client.make_bucket(self.bucket)
            client.put_object(
                self.bucket,
                object_name,
                BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except Exception as exc:
            raise UploadError(f"MinIO upload failed: {exc}") from exc
        logger.info("Image stored in MinIO: %s/%s (%d bytes)", self.bucket, object_name, len(data))
        scheme = "https" if settings.MINIO_USE_SSL else "http"
        return f"{scheme}://{settings.MINIO_ENDPOINT}/{self.bucket}/{object_name}"

    # ── public API ───────────────────────────────────────────────────────
    def upload(self, data: bytes, content_type: str) -> UploadResult:
        validate_image(data, content_type)
        filename = generate_filename(content_type)

        if self.backend == "filesystem":
            url = self._save_to_disk(data, filename)
        elif self.backend == "minio":
            url = self._save_to_minio(data, filename, content_type)
        else:
            raise UploadError("Image storage is not configured")

        return UploadResult(url=url, filename=filename, size=len(data), content_type=content_type)
