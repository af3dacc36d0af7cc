"""
SQLAlchemy-backed receipt store.

The store is the sole owner of canonical receipts: it assigns ids and
timestamps, enforces record-level rules, and raises ``RecordValidationError``
/ ``NotFoundError`` / ``PersistenceError`` with messages that the HTTP layer
returns unchanged.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import NotFoundError, PersistenceError, RecordValidationError
from app.models.receipt import ReceiptModel
from app.schemas import (
    Receipt,
    ReceiptCreate,
    ReceiptFilter,
    ReceiptPage,
    ReceiptSummary,
    ReceiptUpdate,
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "date": ReceiptModel.date,
    "amount": ReceiptModel.amount,
    "store_name": ReceiptModel.store_name,
    "created_at": ReceiptModel.created_at,
    "updated_at": ReceiptModel.updated_at,
}
REQUIRED_FIELDS = ("image_url", "store_name", "amount", "date")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _check_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Validate and normalise provided fields in place of a schema check."""
    if "amount" in fields:
        amount = fields["amount"]
        if amount is None or not math.isfinite(amount) or amount < 0:
            raise RecordValidationError("Amount must be a non-negative number")
    if "store_name" in fields:
        name = (fields["store_name"] or "").strip()
        if not name:
            raise RecordValidationError("Store name must not be empty")
        fields["store_name"] = name
    if "date" in fields and fields["date"] is None:
        raise RecordValidationError("Invalid date format")
    if "image_url" in fields and not fields["image_url"]:
        raise RecordValidationError("Image URL must not be empty")
    return fields


class SqlReceiptStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_row(self, receipt_id: str) -> ReceiptModel:
        row = self.db.query(ReceiptModel).filter(ReceiptModel.id == receipt_id).first()
        if not row:
            logger.warning("Receipt not found: %s", receipt_id)
            raise NotFoundError("Receipt not found")
        return row

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Database error while trying to %s receipt", action)
            raise PersistenceError(f"Failed to {action} receipt") from exc

    # ── create ───────────────────────────────────────────────────────────
    def create(self, payload: ReceiptCreate) -> Receipt:
        data = payload.model_dump()
        missing = [name for name in REQUIRED_FIELDS if data.get(name) in (None, "")]
        if missing:
            raise RecordValidationError(
                "Missing required fields: " + ", ".join(REQUIRED_FIELDS)
            )
        _check_fields(data)

        now = datetime.now(timezone.utc)
        row = ReceiptModel(
            id=str(uuid.uuid4()),
            image_url=data["image_url"],
            image_base64=data["image_base64"],
            store_name=data["store_name"],
            amount=data["amount"],
            date=data["date"],
            confidence=data["confidence"] or "medium",
            extracted_text=data["extracted_text"],
            processing_status=data["processing_status"] or "completed",
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        self._commit("create")
        self.db.refresh(row)
        logger.info("Created receipt %s", row.id)
        return Receipt.model_validate(row)

    # ── read ─────────────────────────────────────────────────────────────
    def get(self, receipt_id: str) -> Receipt:
        return Receipt.model_validate(self._get_row(receipt_id))

    def list(
        self,
        filters: Optional[ReceiptFilter] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> ReceiptPage:
        if sort_by not in SORT_COLUMNS:
            raise RecordValidationError(f"Cannot sort by '{sort_by}'")
        if page < 1 or limit < 1:
            raise RecordValidationError("page and limit must be positive")
        filters = filters or ReceiptFilter()

        query = self.db.query(ReceiptModel)
        if filters.store_name:
            pattern = f"%{_escape_like(filters.store_name)}%"
            query = query.filter(ReceiptModel.store_name.ilike(pattern, escape="\\"))
        if filters.min_amount is not None:
            query = query.filter(ReceiptModel.amount >= filters.min_amount)
        if filters.max_amount is not None:
            query = query.filter(ReceiptModel.amount <= filters.max_amount)
        if filters.start_date is not None:
            query = query.filter(ReceiptModel.date >= filters.start_date)
        if filters.end_date is not None:
            query = query.filter(ReceiptModel.date <= filters.end_date)

        total = query.count()
        column = SORT_COLUMNS[sort_by]
        order = column.desc() if sort_order == "desc" else column.asc()
        rows = (
            query.order_by(order, ReceiptModel.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        logger.info("Listed %d of %d receipts (page %d)", len(rows), total, page)
        return ReceiptPage(
            items=[Receipt.model_validate(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit),
        )

    def summary(self) -> ReceiptSummary:
        count, total = self.db.query(
            func.count(ReceiptModel.id),
            func.coalesce(func.sum(ReceiptModel.amount), 0.0),
        ).one()
        total = float(total)
        return ReceiptSummary(
            count=count,
            total_amount=total,
            average_amount=total / count if count else 0.0,
        )

    # ── update / delete ──────────────────────────────────────────────────
    def update(self, receipt_id: str, fields: ReceiptUpdate) -> Receipt:
        data = fields.model_dump(exclude_unset=True)
        if not data:
            raise RecordValidationError("No valid fields provided for update")
        _check_fields(data)

        row = self._get_row(receipt_id)
        for name, value in data.items():
            setattr(row, name, value)
        row.updated_at = datetime.now(timezone.utc)
        self._commit("update")
        self.db.refresh(row)
        logger.info("Updated receipt %s (%s)", receipt_id, ", ".join(sorted(data)))
        return Receipt.model_validate(row)

    def delete(self, receipt_id: str) -> Receipt:
        row = self._get_row(receipt_id)
        receipt = Receipt.model_validate(row)
        self.db.delete(row)
        self._commit("delete")
        logger.info("Deleted receipt %s", receipt_id)
        return receipt
