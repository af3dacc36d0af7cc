"""
Draft form validation — local, synchronous, field-scoped.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Optional

from app.errors import DraftValidationError
from app.schemas import DraftForm

DRAFT_FIELDS = ("store_name", "amount", "date")
MIN_STORE_NAME_LENGTH = 2
MAX_AMOUNT = Decimal("999999.99")


def one_year_before(today: dt.date) -> dt.date:
    """Same calendar day one year earlier (Feb 29 → Feb 28)."""
    try:
        return today.replace(year=today.year - 1)
    except ValueError:
        return today.replace(year=today.year - 1, day=28)


def parse_amount_text(value: str) -> Optional[Decimal]:
    """Decimal for a finite amount string, else ``None``."""
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_date_text(value: str) -> Optional[dt.date]:
    try:
        return dt.date.fromisoformat(value.strip())
    except ValueError:
        return None


def validate_store_name(value: str) -> Optional[str]:
    name = value.strip()
    if not name:
        return "Store name is required"
    if len(name) < MIN_STORE_NAME_LENGTH:
        return "Store name must be at least 2 characters"
    return None


def validate_amount(value: str) -> Optional[str]:
    if not value.strip():
        return "Amount is required"
    amount = parse_amount_text(value)
    if amount is None:
        return "Amount must be a valid number"
    if amount <= 0:
        return "Amount must be greater than 0"
    if amount > MAX_AMOUNT:
        return "Amount cannot exceed $999,999.99"
    return None


def validate_date(value: str, today: Optional[dt.date] = None) -> Optional[str]:
    if not value.strip():
        return "Date is required"
    selected = parse_date_text(value)
    if selected is None:
        return "Date must be a valid date"
    today = today or dt.date.today()
    if selected > today:
        return "Date cannot be in the future"
    if selected < one_year_before(today):
        return "Date cannot be more than a year ago"
    return None


def validate_field(draft: DraftForm, field: str, today: Optional[dt.date] = None) -> Optional[str]:
    """Validate one field (the blur check)."""
    if field == "store_name":
        return validate_store_name(draft.store_name)
    if field == "amount":
        return validate_amount(draft.amount)
    if field == "date":
        return validate_date(draft.date, today)
    raise KeyError(f"Unknown draft field: {field}")


def validate_draft(draft: DraftForm, today: Optional[dt.date] = None) -> dict[str, str]:
    """Validate every field; returns ``{field: message}`` for the failures."""
    errors: dict[str, str] = {}
    for field in DRAFT_FIELDS:
        message = validate_field(draft, field, today)
        if message:
            errors[field] = message
    return errors


def ensure_valid(draft: DraftForm, today: Optional[dt.date] = None) -> None:
    errors = validate_draft(draft, today)
    if errors:
        raise DraftValidationError(errors)
