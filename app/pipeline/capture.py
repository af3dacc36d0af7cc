"""
Image capture source.

Turns whatever the caller holds (raw bytes, a base64 string or ``data:``
URL from a browser camera, a file on disk, or a multipart upload) into a
``RawImage`` with a media type.
"""
from __future__ import annotations

import base64
import binascii
import pathlib
import re
from typing import Optional

from fastapi import UploadFile

from app.errors import CaptureError
from app.schemas import RawImage

_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]

_DATA_URL = re.compile(r"^data:(?P<media>[\w.+-]+/[\w.+-]+)?(?:;[\w=.-]+)*;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# Browsers and older clients still send the non-standard alias
_MEDIA_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}


def sniff_media_type(data: bytes) -> Optional[str]:
    """Guess the image media type from its leading magic bytes."""
    for signature, media_type in _SIGNATURES:
        if data.startswith(signature):
            return media_type
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def normalize_media_type(media_type: str) -> str:
    media_type = media_type.split(";", 1)[0].strip().lower()
    return _MEDIA_ALIASES.get(media_type, media_type)


def from_bytes(
    data: bytes, media_type: Optional[str] = None, filename: Optional[str] = None
) -> RawImage:
    """Wrap encoded image bytes. The sniffed type wins over a declared one."""
    if not data:
        raise CaptureError("Image data is empty")
    resolved = sniff_media_type(data) or media_type or "application/octet-stream"
    return RawImage(data=data, media_type=normalize_media_type(resolved), filename=filename)


def from_base64(payload: str, media_type: Optional[str] = None) -> RawImage:
    """Decode a base64 payload, accepting a ``data:<type>;base64,`` prefix."""
    if not payload or not payload.strip():
        raise CaptureError("Image data is required")
    payload = payload.strip()
    match = _DATA_URL.match(payload)
    if match:
        media_type = media_type or match.group("media")
        payload = payload[match.end():]
    try:
        data = base64.b64decode(_WHITESPACE.sub("", payload), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CaptureError("Image data is not valid base64") from exc
    return from_bytes(data, media_type)


def from_path(path: str | pathlib.Path) -> RawImage:
    path = pathlib.Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise CaptureError(f"Could not read image file: {path}") from exc
    return from_bytes(data, filename=path.name)


def from_upload(upload: UploadFile) -> RawImage:
    """Read a multipart upload into memory."""
    upload.file.seek(0)
    data = upload.file.read()
    return from_bytes(data, upload.content_type, upload.filename)
