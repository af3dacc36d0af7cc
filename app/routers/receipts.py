"""
Receipt API endpoints.

GET    /api/receipts           — list with filter / sort / pagination
GET    /api/receipts/summary   — count, total and average amount
POST   /api/receipts           — create from a ready payload
POST   /api/receipts/capture   — draft + optional image → submission flow
GET    /api/receipts/{id}      — get one receipt
PUT    /api/receipts/{id}      — partial update
DELETE /api/receipts/{id}      — delete
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import ValidationError

from app.config import settings
from app.dependencies import get_storage, get_store
from app.errors import CaptureError
from app.pipeline import capture
from app.pipeline.submission import SubmissionFlow
from app.schemas import (
    DeleteResponse,
    DraftForm,
    ExtractionResult,
    Receipt,
    ReceiptCreate,
    ReceiptFilter,
    ReceiptPage,
    ReceiptSummary,
    ReceiptUpdate,
    SortField,
    SortOrder,
)
from app.services.storage import StorageService
from app.services.store import SqlReceiptStore

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/receipts ────────────────────────────────────────────────────
@router.get("/receipts", response_model=ReceiptPage)
def list_receipts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = "date",
    sort_order: SortOrder = "desc",
    store_name: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    store: SqlReceiptStore = Depends(get_store),
):
    filters = ReceiptFilter(
        store_name=store_name,
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=start_date,
        end_date=end_date,
    )
    return store.list(filters, sort_by, sort_order, page, limit)


# ── GET /api/receipts/summary ────────────────────────────────────────────
@router.get("/receipts/summary", response_model=ReceiptSummary)
def receipt_summary(store: SqlReceiptStore = Depends(get_store)):
    return store.summary()


# ── POST /api/receipts ───────────────────────────────────────────────────
@router.post("/receipts", response_model=Receipt, status_code=201)
def create_receipt(req: ReceiptCreate, store: SqlReceiptStore = Depends(get_store)):
    return store.create(req)


# ── POST /api/receipts/capture ───────────────────────────────────────────
@router.post("/receipts/capture", response_model=Receipt, status_code=201)
def capture_receipt(
    store_name: str = Form(""),
    amount: str = Form(""),
    date: str = Form(""),
    extraction: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    store: SqlReceiptStore = Depends(get_store),
    storage: StorageService = Depends(get_storage),
):
    draft = DraftForm(store_name=store_name, amount=amount, date=date)

    extraction_result = None
    if extraction:
        try:
            extraction_result = ExtractionResult.model_validate_json(extraction)
        except ValidationError:
            raise HTTPException(status_code=400, detail="extraction must be an ExtractionResult JSON object")

    raw_image = None
    if image is not None and image.filename:
        try:
            raw_image = capture.from_upload(image)
        except CaptureError as exc:
            # An unreadable image degrades to the placeholder
            logger.warning("Capture image ignored: %s", exc.message)

    logger.info(
        "Capture submit: image=%s  extraction=%s",
        raw_image.media_type if raw_image else None,
        extraction_result.succeeded if extraction_result else None,
    )

    flow = SubmissionFlow(store, storage, placeholder_url=settings.PLACEHOLDER_IMAGE_URL)
    return flow.submit(draft, raw_image, extraction_result)


# ── GET /api/receipts/{receipt_id} ───────────────────────────────────────
@router.get("/receipts/{receipt_id}", response_model=Receipt)
def get_receipt(receipt_id: str, store: SqlReceiptStore = Depends(get_store)):
    logger.info("Fetching receipt: %s", receipt_id)
    return store.get(receipt_id)


# ── PUT /api/receipts/{receipt_id} ───────────────────────────────────────
@router.put("/receipts/{receipt_id}", response_model=Receipt)
def update_receipt(
    receipt_id: str,
    req: ReceiptUpdate,
    store: SqlReceiptStore = Depends(get_store),
):
    return store.update(receipt_id, req)


# ── DELETE /api/receipts/{receipt_id} ────────────────────────────────────
@router.delete("/receipts/{receipt_id}", response_model=DeleteResponse)
def delete_receipt(receipt_id: str, store: SqlReceiptStore = Depends(get_store)):
    receipt = store.delete(receipt_id)
    return DeleteResponse(message="Receipt deleted successfully", receipt=receipt)
