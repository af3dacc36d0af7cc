"""
Extraction reconciliation — merges AI-extracted values into an editable
draft while keeping per-field provenance and the user's own edits.
"""
from __future__ import annotations

import datetime as dt
from typing import Optional

from app.pipeline.validation import DRAFT_FIELDS, validate_draft, validate_field
from app.schemas import Confidence, DraftForm, ExtractionResult


def format_amount(amount: float) -> str:
    """Form text for an extracted amount: ``12.5`` → ``"12.5"``, ``30.0`` → ``"30"``."""
    amount = float(amount)
    if amount.is_integer():
        return str(int(amount))
    return str(amount)


def _overlay(result: ExtractionResult) -> dict[str, str]:
    overlay: dict[str, str] = {}
    if result.store_name.strip():
        overlay["store_name"] = result.store_name
    if result.amount:
        overlay["amount"] = format_amount(result.amount)
    return overlay


def reconcile(defaults: DraftForm, result: Optional[ExtractionResult]) -> DraftForm:
    """Overlay a successful extraction onto ``defaults``.

    Absent or failed results return ``defaults`` unchanged. Only non-blank
    store names and non-zero amounts are applied; the date is never taken
    from AI output.
    """
    if result is None or not result.succeeded:
        return defaults
    overlay = _overlay(result)
    if not overlay:
        return defaults
    return defaults.model_copy(update=overlay)


def field_confidence(result: Optional[ExtractionResult]) -> dict[str, Confidence]:
    """Confidence tag for each field ``reconcile`` would fill from ``result``."""
    if result is None or not result.succeeded:
        return {}
    return {field: result.confidence for field in _overlay(result)}


class DraftState:
    """Editable form state for one receipt.

    Tracks which fields came from the AI (with their confidence tag), which
    the user has edited, which have been touched, and the current errors.
    """

    def __init__(self, form: DraftForm, today: Optional[dt.date] = None) -> None:
        self.form = form
        self.today = today
        self.errors: dict[str, str] = {}
        self.touched: set[str] = set()
        self.user_edited: set[str] = set()
        self.confidence: dict[str, Confidence] = {}

    @classmethod
    def new(cls, today: Optional[dt.date] = None) -> "DraftState":
        return cls(DraftForm.default(today), today)

    def apply_extraction(self, result: Optional[ExtractionResult]) -> None:
        """Pre-fill from ``result`` without overwriting user edits."""
        merged = reconcile(self.form, result)
        tags = field_confidence(result)
        updates = {
            field: getattr(merged, field)
            for field in tags
            if field not in self.user_edited
        }
        if updates:
            self.form = self.form.model_copy(update=updates)
        for field in updates:
            self.confidence[field] = tags[field]

    def set_field(self, field: str, value: str) -> None:
        if field not in DRAFT_FIELDS:
            raise KeyError(f"Unknown draft field: {field}")
        self.form = self.form.model_copy(update={field: value})
        self.user_edited.add(field)
        self.confidence.pop(field, None)
        self.errors.pop(field, None)

    def blur(self, field: str) -> Optional[str]:
        self.touched.add(field)
        message = validate_field(self.form, field, self.today)
        if message:
            self.errors[field] = message
        else:
            self.errors.pop(field, None)
        return message

    def validate(self) -> dict[str, str]:
        self.touched.update(DRAFT_FIELDS)
        self.errors = validate_draft(self.form, self.today)
        return dict(self.errors)

    def visible_error(self, field: str) -> Optional[str]:
        return self.errors.get(field) if field in self.touched else None

    def confidence_for(self, field: str) -> Optional[Confidence]:
        return self.confidence.get(field)

    @property
    def is_valid(self) -> bool:
        return not validate_draft(self.form, self.today)
