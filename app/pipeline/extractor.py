"""
AI extraction client — sends a receipt image to the Anthropic vision model
and parses the store name / amount it reads back.

One attempt per call and no SDK-level retries. Every failure (transport,
timeout, error status, missing text block, unparsable JSON) comes back as
``ExtractionResult.failure(...)``; nothing is raised to the caller.
"""
from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Optional

import anthropic

from app.config import settings
from app.schemas import ExtractionResult, RawImage

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
CONFIDENCE_LEVELS = ("high", "medium", "low")
UNKNOWN_STORE = "Unknown Store"

EXTRACTION_PROMPT = """Analyze this receipt image and extract the following information in JSON format:

{
  "storeName": "Name of the business/store (main business name only)",
  "amount": "Total amount as a number (final total after tax, like 12.45)",
  "confidence": "Your confidence level: high, medium, or low",
  "extractedText": "All text you can clearly read from the receipt"
}

Rules:
- Extract only the final total amount (after tax)
- Store name should be the main business name, not taglines
- Amount should be a number without currency symbols
- If the receipt is unclear, set confidence to 'low'
- Return only valid JSON format"""

_FENCE_OPEN = re.compile(r"^```[\w-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```$")
_DECIMAL_COMMA = re.compile(r"^\d+,\d{1,2}$")
_AMOUNT_NOISE = re.compile(r"[^\d.\-]")


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_amount(value: Any) -> float:
    """Best-effort number from the model's ``amount``. Unusable → 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if _DECIMAL_COMMA.match(value):
            value = value.replace(",", ".")
        value = _AMOUNT_NOISE.sub("", value)
    elif not isinstance(value, (int, float)):
        return 0.0
    try:
        amount = float(value)
    except (ValueError, OverflowError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def parse_response_text(text: str) -> ExtractionResult:
    """Parse the model's text reply.

    Raises ``ValueError`` (including ``json.JSONDecodeError``) when the reply
    is not a JSON object. Missing keys are backfilled, not fatal.
    """
    data = json.loads(strip_code_fence(text))
    if not isinstance(data, dict):
        raise ValueError("AI response is not a JSON object")

    store_name = data.get("storeName")
    store_name = store_name.strip() if isinstance(store_name, str) else ""
    confidence = data.get("confidence")
    if isinstance(confidence, str):
        confidence = confidence.strip().lower()
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "low"
    extracted_text = data.get("extractedText")
    if not isinstance(extracted_text, str):
        extracted_text = ""

    return ExtractionResult.success(
        store_name=store_name or UNKNOWN_STORE,
        amount=parse_amount(data.get("amount")),
        confidence=confidence,
        extracted_text=extracted_text,
    )


def _first_text_block(message: Any) -> Optional[str]:
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return getattr(block, "text", None)
    return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ReceiptExtractor:
    """Vision-model extraction for a single receipt image.

    ``client`` may be any object exposing ``messages.create(...)`` like
    ``anthropic.Anthropic``; it is built lazily from settings when omitted.
    """

    def __init__(
        self,
        client: Any = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = client
        self.api_key = settings.ANTHROPIC_API_KEY if api_key is None else api_key
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.EXTRACTION_MAX_TOKENS
        self.timeout = timeout or settings.EXTRACTION_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _build_messages(self, image: RawImage) -> list[dict]:
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.media_type,
                            "data": image.base64(),
                        },
                    },
                    {"type": "text", "text": EXTRACTION_PROMPT},
                ],
            }
        ]

    def extract(self, image: RawImage) -> ExtractionResult:
        if image.media_type not in SUPPORTED_MEDIA_TYPES:
            logger.warning("Extraction skipped: unsupported media type %s", image.media_type)
            return ExtractionResult.failure(f"Unsupported image type: {image.media_type}")
        if not self.configured:
            logger.warning("Extraction skipped: ANTHROPIC_API_KEY is not set")
            return ExtractionResult.failure("AI extraction is not configured")

        logger.info("Extraction start: model=%s  bytes=%d", self.model, image.size)
        try:
            message = self._get_client().messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=self._build_messages(image),
            )
        except anthropic.APITimeoutError:
            logger.warning("Extraction failed: AI service timed out")
            return ExtractionResult.failure("AI service timed out")
        except anthropic.APIConnectionError as exc:
            logger.warning("Extraction failed: connection error: %s", exc)
            return ExtractionResult.failure("Could not reach AI service")
        except anthropic.APIStatusError as exc:
            logger.warning("Extraction failed: status %s: %s", exc.status_code, exc)
            return ExtractionResult.failure(f"AI service returned status {exc.status_code}")
        except anthropic.AnthropicError as exc:
            logger.warning("Extraction failed: %s", exc)
            return ExtractionResult.failure("Failed to analyze receipt with AI")

        text = _first_text_block(message)
        if text is None:
            logger.warning("Extraction failed: no text content in response")
            return ExtractionResult.failure("No text content found in response")

        try:
            result = parse_response_text(text)
        except (ValueError, RecursionError) as exc:
            logger.warning("Extraction failed: unparsable response: %s", exc)
            return ExtractionResult.failure("Could not parse AI response as JSON")

        logger.info(
            "Extraction done: store=%s  amount=%.2f  confidence=%s",
            result.store_name, result.amount, result.confidence,
        )
        return result
