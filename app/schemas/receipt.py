"""
Receipt record schemas — persisted entity, store payloads and list envelopes.
"""
from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Confidence = Literal["high", "medium", "low"]
ProcessingStatus = Literal["pending", "processing", "completed", "failed"]
SortField = Literal["date", "amount", "store_name", "created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]


# ---------------------------------------------------------------------------
# Persisted receipt
# ---------------------------------------------------------------------------

class Receipt(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    image_url: str
    image_base64: Optional[str] = None
    store_name: str
    amount: float = Field(..., ge=0)
    date: dt.date
    created_at: dt.datetime
    updated_at: dt.datetime
    confidence: Optional[Confidence] = None
    extracted_text: Optional[str] = None
    processing_status: Optional[ProcessingStatus] = None


# ---------------------------------------------------------------------------
# Store payloads
# ---------------------------------------------------------------------------

class ReceiptCreate(BaseModel):
    """Create payload. Required-ness is checked by the store so the
    rejection message matches what API clients have always received."""
    image_url: Optional[str] = None
    image_base64: Optional[str] = None
    store_name: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[dt.date] = None
    confidence: Optional[Confidence] = None
    extracted_text: Optional[str] = None
    processing_status: Optional[ProcessingStatus] = None


class ReceiptUpdate(BaseModel):
    """Partial update. Only fields present in the request are applied."""
    image_url: Optional[str] = None
    image_base64: Optional[str] = None
    store_name: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[dt.date] = None
    confidence: Optional[Confidence] = None
    extracted_text: Optional[str] = None
    processing_status: Optional[ProcessingStatus] = None


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class ReceiptFilter(BaseModel):
    store_name: Optional[str] = Field(None, description="Case-insensitive substring")
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class ReceiptPage(BaseModel):
    items: list[Receipt] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
    pages: int = 0


class ReceiptSummary(BaseModel):
    count: int = 0
    total_amount: float = 0.0
    average_amount: float = 0.0


class DeleteResponse(BaseModel):
    message: str
    receipt: Receipt
