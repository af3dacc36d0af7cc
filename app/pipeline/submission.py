"""
Persistence submission flow.

validate draft → upload image (placeholder on failure) → build payload →
create record → update cache.

Validation errors are raised before any collaborator is called. Upload
failures degrade to the placeholder image URL. Record-store failures
propagate with the store's message and leave the cache untouched.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional, Protocol

from app.config import settings
from app.errors import UploadError
from app.pipeline.cache import ReceiptCache
from app.pipeline.validation import ensure_valid, parse_amount_text, parse_date_text
from app.schemas import (
    DraftForm,
    ExtractionResult,
    RawImage,
    Receipt,
    ReceiptCreate,
    ReceiptFilter,
    ReceiptPage,
    ReceiptUpdate,
    UploadResult,
)

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    def create(self, payload: ReceiptCreate) -> Receipt: ...

    def get(self, receipt_id: str) -> Receipt: ...

    def update(self, receipt_id: str, fields: ReceiptUpdate) -> Receipt: ...

    def delete(self, receipt_id: str) -> Receipt: ...

    def list(
        self,
        filters: Optional[ReceiptFilter] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> ReceiptPage: ...


class ImageStorage(Protocol):
    def upload(self, data: bytes, content_type: str) -> UploadResult: ...


def build_payload(
    draft: DraftForm,
    image_url: str,
    extraction: Optional[ExtractionResult] = None,
) -> ReceiptCreate:
    """Record payload for a validated draft."""
    payload = ReceiptCreate(
        image_url=image_url,
        store_name=draft.store_name.strip(),
        amount=float(parse_amount_text(draft.amount)),
        date=parse_date_text(draft.date),
    )
    if extraction is not None and extraction.succeeded:
        payload = payload.model_copy(update={
            "confidence": extraction.confidence,
            "extracted_text": extraction.extracted_text,
            "processing_status": "completed",
        })
    return payload


class SubmissionFlow:
    def __init__(
        self,
        store: RecordStore,
        storage: Optional[ImageStorage],
        cache: Optional[ReceiptCache] = None,
        placeholder_url: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> None:
        self.store = store
        self.storage = storage
        self.cache = cache
        self.placeholder_url = placeholder_url or settings.PLACEHOLDER_IMAGE_URL
        self.today = today

    def resolve_image_url(self, image: Optional[RawImage]) -> str:
        """Upload ``image``; any upload failure falls back to the placeholder."""
        if image is None:
            return self.placeholder_url
        if self.storage is None:
            logger.warning("No image storage attached, using placeholder image")
            return self.placeholder_url
        try:
            uploaded = self.storage.upload(image.data, image.media_type)
        except UploadError as exc:
            logger.warning("Image upload failed (%s), using placeholder image", exc.message)
            return self.placeholder_url
        logger.info("Image uploaded: %s", uploaded.url)
        return uploaded.url

    def submit(
        self,
        draft: DraftForm,
        image: Optional[RawImage] = None,
        extraction: Optional[ExtractionResult] = None,
    ) -> Receipt:
        ensure_valid(draft, self.today)

        image_url = self.resolve_image_url(image)
        payload = build_payload(draft, image_url, extraction)

        receipt = self.store.create(payload)
        logger.info("Stored receipt %s (%s, %.2f)", receipt.id, receipt.store_name, receipt.amount)

        if self.cache is not None:
            self.cache.add(receipt)
        return receipt
