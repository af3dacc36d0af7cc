"""
Receipt capture pipeline.

capture → extract (AI) → reconcile into a draft → validate → submit.
"""
from app.pipeline.cache import ReceiptCache
from app.pipeline.extractor import ReceiptExtractor
from app.pipeline.reconcile import DraftState, reconcile
from app.pipeline.session import CaptureSession
from app.pipeline.submission import SubmissionFlow

__all__ = [
    "CaptureSession",
    "DraftState",
    "ReceiptCache",
    "ReceiptExtractor",
    "SubmissionFlow",
    "reconcile",
]
