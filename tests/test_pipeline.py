"""
Unit tests for the capture pipeline — capture, extractor, validation,
reconciliation, draft state and the receipt cache.
"""
import base64
import datetime as dt

import anthropic
import httpx
import pytest

from app.errors import CaptureError, DraftValidationError
from app.pipeline import capture
from app.pipeline.cache import ReceiptCache
from app.pipeline.extractor import (
    ReceiptExtractor,
    parse_amount,
    parse_response_text,
    strip_code_fence,
)
from app.pipeline.reconcile import DraftState, field_confidence, format_amount, reconcile
from app.pipeline.validation import ensure_valid, one_year_before, validate_draft
from app.schemas import DraftForm, ExtractionResult, RawImage, Receipt

from tests.conftest import COFFEE_JSON, JPEG_BYTES, PNG_BYTES

TODAY = dt.date(2024, 3, 1)
_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _jpeg():
    return RawImage(data=JPEG_BYTES, media_type="image/jpeg")


def _receipt(receipt_id, amount, store_name="Shop"):
    now = dt.datetime(2024, 3, 1, 12, 0)
    return Receipt(
        id=receipt_id,
        image_url="https://img/x.jpg",
        store_name=store_name,
        amount=amount,
        date=dt.date(2024, 2, 1),
        created_at=now,
        updated_at=now,
    )


# =====================================================================
# Capture
# =====================================================================
class TestCapture:
    def test_sniffs_jpeg(self):
        image = capture.from_bytes(JPEG_BYTES)
        assert image.media_type == "image/jpeg"

    def test_sniffed_type_beats_declared(self):
        image = capture.from_bytes(PNG_BYTES, "image/jpeg")
        assert image.media_type == "image/png"

    def test_webp_signature(self):
        data = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 16
        assert capture.sniff_media_type(data) == "image/webp"

    def test_declared_alias_normalised(self):
        image = capture.from_bytes(b"not-really-an-image", "image/jpg")
        assert image.media_type == "image/jpeg"

    def test_empty_bytes_rejected(self):
        with pytest.raises(CaptureError):
            capture.from_bytes(b"")

    def test_data_url(self):
        payload = "data:image/jpeg;base64," + base64.b64encode(JPEG_BYTES).decode()
        image = capture.from_base64(payload)
        assert image.data == JPEG_BYTES
        assert image.media_type == "image/jpeg"

    def test_bare_base64(self):
        image = capture.from_base64(base64.b64encode(PNG_BYTES).decode())
        assert image.media_type == "image/png"

    def test_invalid_base64(self):
        with pytest.raises(CaptureError):
            capture.from_base64("@@not base64@@")

    def test_missing_payload(self):
        with pytest.raises(CaptureError):
            capture.from_base64("   ")

    def test_from_path(self, tmp_path):
        path = tmp_path / "receipt.jpg"
        path.write_bytes(JPEG_BYTES)
        image = capture.from_path(path)
        assert image.filename == "receipt.jpg"
        assert image.size == len(JPEG_BYTES)

    def test_raw_image_is_immutable(self):
        image = _jpeg()
        with pytest.raises(Exception):
            image.data = b"other"


# =====================================================================
# Extractor — response parsing
# =====================================================================
class TestResponseParsing:
    def test_fenced_json_block(self):
        text = (
            '```json\n{"storeName":"Coffee Shop","amount":12.5,'
            '"confidence":"high","extractedText":"..."}\n```'
        )
        result = parse_response_text(text)
        assert result.succeeded
        assert result.store_name == "Coffee Shop"
        assert result.amount == 12.5
        assert result.confidence == "high"
        assert result.extracted_text == "..."

    def test_fenced_equals_unfenced(self):
        fenced = parse_response_text(f"```json\n{COFFEE_JSON}\n```")
        bare_fence = parse_response_text(f"```\n{COFFEE_JSON}\n```")
        plain = parse_response_text(COFFEE_JSON)
        assert fenced == plain == bare_fence

    def test_strip_code_fence_leaves_plain_text(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_missing_keys_backfilled(self):
        result = parse_response_text('{"amount": 3}')
        assert result.succeeded
        assert result.store_name == "Unknown Store"
        assert result.amount == 3.0
        assert result.confidence == "low"
        assert result.extracted_text == ""

    def test_unknown_confidence_becomes_low(self):
        result = parse_response_text('{"storeName": "A", "amount": 1, "confidence": "certain"}')
        assert result.confidence == "low"

    def test_confidence_case_insensitive(self):
        result = parse_response_text('{"storeName": "A", "amount": 1, "confidence": "High"}')
        assert result.confidence == "high"

    def test_malformed_json_raises(self):
        with pytest.raises(ValueError):
            parse_response_text("Sorry, I can't read this receipt.")

    def test_non_object_raises(self):
        with pytest.raises(ValueError):
            parse_response_text("[1, 2, 3]")

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (12.45, 12.45),
            ("12.45", 12.45),
            ("$1,234.56", 1234.56),
            ("12,50", 12.5),
            ("n/a", 0.0),
            (-4, 0.0),
            (float("inf"), 0.0),
            (None, 0.0),
            (True, 0.0),
            (10 ** 400, 0.0),
        ],
    )
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == pytest.approx(expected)

    def test_amount_too_large_for_float(self):
        result = parse_response_text('{"storeName": "Shop", "amount": 1' + "0" * 400 + "}")
        assert result.succeeded
        assert result.amount == 0.0


# =====================================================================
# Extractor — client behaviour
# =====================================================================
class TestExtractor:
    def test_success(self, extractor, fake_anthropic):
        result = extractor.extract(_jpeg())
        assert result.succeeded
        assert result.store_name == "Coffee Shop"
        assert result.amount == 12.5
        assert len(fake_anthropic.messages.calls) == 1

    def test_request_carries_image_and_prompt(self, extractor, fake_anthropic):
        extractor.extract(_jpeg())
        call = fake_anthropic.messages.calls[0]
        content = call["messages"][0]["content"]
        image_block, text_block = content
        assert image_block["source"]["media_type"] == "image/jpeg"
        assert base64.b64decode(image_block["source"]["data"]) == JPEG_BYTES
        assert "storeName" in text_block["text"]
        assert "final total amount (after tax)" in text_block["text"]

    def test_fenced_reply(self, extractor, fake_anthropic):
        fake_anthropic.respond_with(f"```json\n{COFFEE_JSON}\n```")
        result = extractor.extract(_jpeg())
        assert result.succeeded
        assert result.store_name == "Coffee Shop"

    def test_malformed_reply_is_failure_not_fabrication(self, extractor, fake_anthropic):
        fake_anthropic.respond_with("I think this says Coffee Shop, $12.50")
        result = extractor.extract(_jpeg())
        assert not result.succeeded
        assert result.error_message
        assert result.store_name == ""
        assert result.amount == 0

    def test_oversized_amount_does_not_escape(self, extractor, fake_anthropic):
        fake_anthropic.respond_with('{"storeName": "Shop", "amount": 1' + "0" * 400 + "}")
        result = extractor.extract(_jpeg())
        assert result.succeeded
        assert result.store_name == "Shop"
        assert result.amount == 0.0

    def test_deeply_nested_reply_is_failure(self, extractor, fake_anthropic):
        fake_anthropic.respond_with("[" * 100000 + "]" * 100000)
        result = extractor.extract(_jpeg())
        assert not result.succeeded
        assert result.error_message == "Could not parse AI response as JSON"

    def test_missing_text_block(self, extractor, fake_anthropic):
        fake_anthropic.respond_with_blocks([])
        result = extractor.extract(_jpeg())
        assert not result.succeeded
        assert result.error_message == "No text content found in response"

    def test_connection_error(self, extractor, fake_anthropic):
        fake_anthropic.fail_with(anthropic.APIConnectionError(request=_REQUEST))
        result = extractor.extract(_jpeg())
        assert not result.succeeded
        assert result.error_message == "Could not reach AI service"

    def test_timeout(self, extractor, fake_anthropic):
        fake_anthropic.fail_with(anthropic.APITimeoutError(request=_REQUEST))
        result = extractor.extract(_jpeg())
        assert result.error_message == "AI service timed out"

    def test_error_status(self, extractor, fake_anthropic):
        response = httpx.Response(500, request=_REQUEST)
        fake_anthropic.fail_with(anthropic.InternalServerError("boom", response=response, body=None))
        result = extractor.extract(_jpeg())
        assert not result.succeeded
        assert "500" in result.error_message

    def test_single_attempt(self, extractor, fake_anthropic):
        fake_anthropic.fail_with(anthropic.APIConnectionError(request=_REQUEST))
        extractor.extract(_jpeg())
        assert len(fake_anthropic.messages.calls) == 1

    def test_unsupported_media_type(self, extractor, fake_anthropic):
        result = extractor.extract(RawImage(data=b"%PDF-1.7", media_type="application/pdf"))
        assert not result.succeeded
        assert fake_anthropic.messages.calls == []

    def test_not_configured(self):
        result = ReceiptExtractor(api_key="").extract(_jpeg())
        assert not result.succeeded
        assert result.error_message == "AI extraction is not configured"


# =====================================================================
# Draft validation
# =====================================================================
class TestValidation:
    def _draft(self, **kw):
        base = {"store_name": "Ab", "amount": "12.50", "date": "2024-01-15"}
        base.update(kw)
        return DraftForm(**base)

    def test_valid(self):
        assert validate_draft(self._draft(), TODAY) == {}

    @pytest.mark.parametrize(
        "field, value, message",
        [
            ("store_name", "   ", "Store name is required"),
            ("store_name", " A ", "Store name must be at least 2 characters"),
            ("amount", "", "Amount is required"),
            ("amount", "abc", "Amount must be a valid number"),
            ("amount", "nan", "Amount must be a valid number"),
            ("amount", "0", "Amount must be greater than 0"),
            ("amount", "-1", "Amount must be greater than 0"),
            ("amount", "1000000", "Amount cannot exceed $999,999.99"),
            ("date", "", "Date is required"),
            ("date", "2024-02-30", "Date must be a valid date"),
            ("date", "2024-03-02", "Date cannot be in the future"),
            ("date", "2023-02-28", "Date cannot be more than a year ago"),
        ],
    )
    def test_field_errors(self, field, value, message):
        errors = validate_draft(self._draft(**{field: value}), TODAY)
        assert errors == {field: message}

    @pytest.mark.parametrize("amount", ["0.01", "999999.99"])
    def test_amount_bounds_inclusive(self, amount):
        assert validate_draft(self._draft(amount=amount), TODAY) == {}

    @pytest.mark.parametrize("date", ["2024-03-01", "2023-03-01"])
    def test_date_bounds_inclusive(self, date):
        assert validate_draft(self._draft(date=date), TODAY) == {}

    def test_leap_day_one_year_back(self):
        assert one_year_before(dt.date(2024, 2, 29)) == dt.date(2023, 2, 28)

    def test_ensure_valid_raises_all_fields(self):
        with pytest.raises(DraftValidationError) as err:
            ensure_valid(DraftForm(), TODAY)
        assert set(err.value.errors) == {"store_name", "amount", "date"}


# =====================================================================
# Reconciliation
# =====================================================================
class TestReconcile:
    defaults = DraftForm(store_name="", amount="", date="2024-03-01")

    def test_success_overlays_name_and_amount(self):
        result = ExtractionResult.success("Coffee Shop", 12.5, "high", "...")
        draft = reconcile(self.defaults, result)
        assert draft == DraftForm(store_name="Coffee Shop", amount="12.5", date="2024-03-01")

    def test_date_never_overlaid(self):
        defaults = DraftForm(store_name="", amount="", date="2024-02-10")
        draft = reconcile(defaults, ExtractionResult.success("X Mart", 3, "low", "2024-01-01"))
        assert draft.date == "2024-02-10"

    def test_failed_result_returns_defaults(self):
        defaults = DraftForm(store_name="Mine", amount="9", date="2024-02-10")
        assert reconcile(defaults, ExtractionResult.failure("boom")) == defaults

    def test_absent_result_returns_defaults(self):
        assert reconcile(self.defaults, None) == self.defaults

    def test_zero_amount_keeps_default(self):
        defaults = DraftForm(store_name="", amount="5.00", date="2024-02-10")
        draft = reconcile(defaults, ExtractionResult.success("Deli", 0, "low", ""))
        assert draft.amount == "5.00"
        assert draft.store_name == "Deli"

    @pytest.mark.parametrize(
        "result",
        [
            ExtractionResult.success("Coffee Shop", 12.5, "high", "..."),
            ExtractionResult.success("Deli", 0, "low", ""),
            ExtractionResult.failure("nope"),
            None,
        ],
    )
    def test_idempotent(self, result):
        once = reconcile(self.defaults, result)
        assert reconcile(once, result) == once

    def test_field_confidence(self):
        result = ExtractionResult.success("Deli", 0, "medium", "")
        assert field_confidence(result) == {"store_name": "medium"}
        assert field_confidence(ExtractionResult.failure("x")) == {}

    @pytest.mark.parametrize("amount, text", [(12.5, "12.5"), (30.0, "30"), (12.45, "12.45")])
    def test_format_amount(self, amount, text):
        assert format_amount(amount) == text


# =====================================================================
# Draft state
# =====================================================================
class TestDraftState:
    def test_defaults_to_today(self):
        state = DraftState.new(TODAY)
        assert state.form == DraftForm(store_name="", amount="", date="2024-03-01")

    def test_prefill_tags_confidence_per_field(self):
        state = DraftState.new(TODAY)
        state.apply_extraction(ExtractionResult.success("Coffee Shop", 12.5, "high", ""))
        assert state.form.store_name == "Coffee Shop"
        assert state.confidence_for("store_name") == "high"
        assert state.confidence_for("amount") == "high"
        assert state.confidence_for("date") is None

    def test_user_edit_survives_later_extraction(self):
        state = DraftState.new(TODAY)
        state.set_field("store_name", "Corner Cafe")
        state.apply_extraction(ExtractionResult.success("Coffee Shop", 12.5, "medium", ""))
        assert state.form.store_name == "Corner Cafe"
        assert state.form.amount == "12.5"
        assert state.confidence_for("store_name") is None

    def test_user_override_drops_badge(self):
        state = DraftState.new(TODAY)
        state.apply_extraction(ExtractionResult.success("Coffee Shop", 12.5, "high", ""))
        state.set_field("amount", "13.00")
        assert state.confidence_for("amount") is None
        assert state.confidence_for("store_name") == "high"

    def test_blur_validates_one_field(self):
        state = DraftState.new(TODAY)
        assert state.blur("store_name") == "Store name is required"
        assert state.visible_error("store_name") == "Store name is required"
        assert state.visible_error("amount") is None

    def test_error_hidden_until_touched(self):
        state = DraftState.new(TODAY)
        state.errors["amount"] = "Amount is required"
        assert state.visible_error("amount") is None

    def test_typing_clears_error(self):
        state = DraftState.new(TODAY)
        state.blur("store_name")
        state.set_field("store_name", "Shop")
        assert state.visible_error("store_name") is None

    def test_validate_touches_everything(self):
        state = DraftState.new(TODAY)
        errors = state.validate()
        assert set(errors) == {"store_name", "amount"}
        assert state.touched == {"store_name", "amount", "date"}

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            DraftState.new(TODAY).set_field("total", "1")


# =====================================================================
# Receipt cache
# =====================================================================
class TestReceiptCache:
    def test_add_and_summary(self):
        cache = ReceiptCache()
        cache.add(_receipt("a", 10))
        cache.add(_receipt("b", 20))
        summary = cache.summary()
        assert summary.count == 2
        assert summary.total_amount == 30
        assert summary.average_amount == 15

    def test_empty_average(self):
        assert ReceiptCache().average_amount() == 0

    def test_set_replaces(self):
        cache = ReceiptCache([_receipt("a", 1)])
        cache.set([_receipt("b", 2), _receipt("c", 3)])
        assert [r.id for r in cache] == ["b", "c"]

    def test_update_patch_and_replace(self):
        cache = ReceiptCache([_receipt("a", 1)])
        assert cache.update("a", {"store_name": "Patched"})
        assert cache.get("a").store_name == "Patched"
        assert cache.update("a", _receipt("a", 99, "Replaced"))
        assert cache.get("a").amount == 99
        assert not cache.update("missing", {"amount": 1})

    def test_remove(self):
        cache = ReceiptCache([_receipt("a", 1), _receipt("b", 2)])
        assert cache.remove("a")
        assert not cache.remove("a")
        assert len(cache) == 1

    def test_receipts_is_a_copy(self):
        cache = ReceiptCache([_receipt("a", 1)])
        cache.receipts.clear()
        assert len(cache) == 1
