"""
Capture-pipeline schemas: the raw image, the AI extraction result, the
editable draft form and the image-upload result.
"""
from __future__ import annotations

import base64
import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.receipt import Confidence


class RawImage(BaseModel):
    """An encoded still image. Never mutated after capture."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    media_type: str = "image/jpeg"
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class ExtractionResult(BaseModel):
    """Outcome of one extraction attempt.

    Build with :meth:`success` or :meth:`failure`. When ``succeeded`` is
    false the field values carry no meaning and must not be used to pre-fill
    a draft.
    """
    model_config = ConfigDict(frozen=True)

    store_name: str = ""
    amount: float = 0.0
    confidence: Confidence = "low"
    extracted_text: str = ""
    succeeded: bool = False
    error_message: Optional[str] = None

    @classmethod
    def success(
        cls,
        store_name: str,
        amount: float,
        confidence: Confidence,
        extracted_text: str,
    ) -> "ExtractionResult":
        return cls(
            store_name=store_name,
            amount=amount,
            confidence=confidence,
            extracted_text=extracted_text,
            succeeded=True,
        )

    @classmethod
    def failure(cls, message: str) -> "ExtractionResult":
        return cls(succeeded=False, error_message=message)


class DraftForm(BaseModel):
    """In-progress, unpersisted form data for one receipt."""
    store_name: str = ""
    amount: str = ""
    date: str = ""

    @classmethod
    def default(cls, today: Optional[dt.date] = None) -> "DraftForm":
        return cls(date=(today or dt.date.today()).isoformat())


class UploadResult(BaseModel):
    url: str
    filename: str
    size: int
    content_type: str


class AnalyzeRequest(BaseModel):
    image_base64: str = Field(..., description="Base64 payload or data: URL")
    media_type: Optional[str] = None
