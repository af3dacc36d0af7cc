"""
Capture session — the single owner of one receipt cache and one draft.

Wires capture → extraction → reconciliation → submission, and keeps the
cache in step with list / update / delete calls against the record store.
"""
from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Optional, Protocol

from app.errors import DraftValidationError, SubmissionInProgressError
from app.pipeline.cache import ReceiptCache
from app.pipeline.reconcile import DraftState
from app.pipeline.submission import ImageStorage, RecordStore, SubmissionFlow
from app.schemas import (
    ExtractionResult,
    RawImage,
    Receipt,
    ReceiptFilter,
    ReceiptPage,
    ReceiptUpdate,
)

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    def extract(self, image: RawImage) -> ExtractionResult: ...


class CaptureSession:
    def __init__(
        self,
        extractor: Extractor,
        store: RecordStore,
        storage: Optional[ImageStorage],
        cache: Optional[ReceiptCache] = None,
        placeholder_url: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> None:
        self.extractor = extractor
        self.store = store
        self.cache = cache if cache is not None else ReceiptCache()
        self.today = today
        self.flow = SubmissionFlow(
            store, storage, self.cache, placeholder_url=placeholder_url, today=today
        )
        self.image: Optional[RawImage] = None
        self.extraction: Optional[ExtractionResult] = None
        self.draft = DraftState.new(today)
        self._submit_lock = threading.Lock()

    @property
    def submitting(self) -> bool:
        return self._submit_lock.locked()

    # ── capture ──────────────────────────────────────────────────────────
    def capture(self, image: RawImage) -> ExtractionResult:
        """Extract from ``image`` and start a pre-filled draft.

        A failed extraction leaves a blank draft for manual entry; the image
        is kept either way.
        """
        self.image = image
        self.extraction = self.extractor.extract(image)
        if not self.extraction.succeeded:
            logger.warning("Extraction failed, manual entry: %s", self.extraction.error_message)
        self.draft = DraftState.new(self.today)
        self.draft.apply_extraction(self.extraction)
        return self.extraction

    def manual_entry(self) -> DraftState:
        self.image = None
        self.extraction = None
        self.draft = DraftState.new(self.today)
        return self.draft

    # ── submit ───────────────────────────────────────────────────────────
    def submit(self) -> Receipt:
        if not self._submit_lock.acquire(blocking=False):
            raise SubmissionInProgressError("A submission is already in progress")
        try:
            try:
                receipt = self.flow.submit(self.draft.form, self.image, self.extraction)
            except DraftValidationError as exc:
                self.draft.touched.update(exc.errors)
                self.draft.errors = dict(exc.errors)
                raise
            self.manual_entry()
            return receipt
        finally:
            self._submit_lock.release()

    # ── list / update / delete ───────────────────────────────────────────
    def refresh(
        self,
        filters: Optional[ReceiptFilter] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> ReceiptPage:
        result = self.store.list(filters, sort_by, sort_order, page, limit)
        self.cache.set(result.items)
        return result

    def update(self, receipt_id: str, fields: ReceiptUpdate) -> Receipt:
        receipt = self.store.update(receipt_id, fields)
        self.cache.update(receipt_id, receipt)
        return receipt

    def delete(self, receipt_id: str) -> Receipt:
        receipt = self.store.delete(receipt_id)
        self.cache.remove(receipt_id)
        return receipt
