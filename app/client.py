"""
HTTP client for the receipt API.

``ReceiptApiClient`` speaks the same record-store, image-storage and
extraction contracts as the in-process services, so a ``CaptureSession`` can
run against a remote server:

    client = ReceiptApiClient.from_url("http://localhost:8000")
    session = CaptureSession(client, client, client)

Server error messages are re-raised verbatim: 404 → ``NotFoundError``,
400 → ``RecordValidationError`` (or ``DraftValidationError`` when the body
carries field errors), anything else → ``PersistenceError``.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from app.errors import (
    DraftValidationError,
    NotFoundError,
    PersistenceError,
    RecordValidationError,
    UploadError,
)
from app.schemas import (
    ExtractionResult,
    RawImage,
    Receipt,
    ReceiptCreate,
    ReceiptFilter,
    ReceiptPage,
    ReceiptSummary,
    ReceiptUpdate,
    UploadResult,
)

logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> tuple[str, Optional[dict]]:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}", None
    if not isinstance(body, dict):
        return str(body), None
    detail = body.get("detail", body.get("error"))
    if detail is None:
        detail = f"HTTP {response.status_code}"
    elif not isinstance(detail, str):
        detail = str(detail)
    errors = body.get("errors")
    return detail, errors if isinstance(errors, dict) else None


def _error_from_response(response: httpx.Response) -> PersistenceError | DraftValidationError:
    message, errors = _detail(response)
    if response.status_code == 404:
        return NotFoundError(message)
    if response.status_code == 400 and errors:
        return DraftValidationError(errors)
    if response.status_code in (400, 422):
        return RecordValidationError(message)
    return PersistenceError(message)


class ReceiptApiClient:
    def __init__(self, http: httpx.Client) -> None:
        self.http = http

    @classmethod
    def from_url(cls, base_url: str, timeout: float = 30.0) -> "ReceiptApiClient":
        return cls(httpx.Client(base_url=base_url, timeout=timeout))

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise PersistenceError(f"Could not reach receipt service: {exc}") from exc
        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    # ── record store ─────────────────────────────────────────────────────
    def create(self, payload: ReceiptCreate) -> Receipt:
        response = self._request(
            "POST", "/api/receipts", json=payload.model_dump(mode="json", exclude_none=True)
        )
        return Receipt.model_validate(response.json())

    def get(self, receipt_id: str) -> Receipt:
        return Receipt.model_validate(self._request("GET", f"/api/receipts/{receipt_id}").json())

    def update(self, receipt_id: str, fields: ReceiptUpdate) -> Receipt:
        response = self._request(
            "PUT",
            f"/api/receipts/{receipt_id}",
            json=fields.model_dump(mode="json", exclude_unset=True),
        )
        return Receipt.model_validate(response.json())

    def delete(self, receipt_id: str) -> Receipt:
        response = self._request("DELETE", f"/api/receipts/{receipt_id}")
        return Receipt.model_validate(response.json()["receipt"])

    def list(
        self,
        filters: Optional[ReceiptFilter] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> ReceiptPage:
        params: dict[str, Any] = {
            "sort_by": sort_by,
            "sort_order": sort_order,
            "page": page,
            "limit": limit,
        }
        if filters is not None:
            params.update(filters.model_dump(mode="json", exclude_none=True))
        return ReceiptPage.model_validate(self._request("GET", "/api/receipts", params=params).json())

    def summary(self) -> ReceiptSummary:
        return ReceiptSummary.model_validate(self._request("GET", "/api/receipts/summary").json())

    # ── image storage ────────────────────────────────────────────────────
    def upload(self, data: bytes, content_type: str) -> UploadResult:
        try:
            response = self.http.post(
                "/api/upload", files={"file": ("receipt", data, content_type)}
            )
        except httpx.HTTPError as exc:
            raise UploadError(f"Could not reach upload service: {exc}") from exc
        if response.status_code >= 400:
            raise UploadError(_detail(response)[0])
        return UploadResult.model_validate(response.json())

    # ── extraction ───────────────────────────────────────────────────────
    def extract(self, image: RawImage) -> ExtractionResult:
        try:
            response = self.http.post(
                "/api/analyze-receipt",
                json={"image_base64": image.base64(), "media_type": image.media_type},
            )
        except httpx.HTTPError as exc:
            logger.warning("Extraction request failed: %s", exc)
            return ExtractionResult.failure("Could not reach AI service")
        if response.status_code >= 400:
            return ExtractionResult.failure(_detail(response)[0])
        try:
            return ExtractionResult.model_validate(response.json())
        except ValueError as exc:
            # json.JSONDecodeError and pydantic.ValidationError both land here
            logger.warning("Extraction response unreadable: %s", exc)
            return ExtractionResult.failure("Unexpected response from AI service")
