"""Tests for the error code registry and formatter."""

import re

import pytest

from src.errors import (
    ERROR_REGISTRY,
    DataPortraitError,
    ErrorCategory,
    error_envelope,
    format_error,
    get_error,
    get_errors_by_category,
)

_CATEGORY_PREFIX = {
    ErrorCategory.DATA: "E-1",
    ErrorCategory.VALIDATION: "E-2",
    ErrorCategory.CONNECTOR: "E-3",
    ErrorCategory.SYSTEM: "E-4",
}


class TestRegistry:

    @pytest.mark.parametrize("code", sorted(ERROR_REGISTRY))
    def test_code_format_matches_category(self, code):
        error = ERROR_REGISTRY[code]
        assert re.fullmatch(r"E-\d{4}", error.code)
        assert error.code == code
        assert code.startswith(_CATEGORY_PREFIX[error.category])
        assert error.remediation

    def test_get_error(self):
        assert get_error("E-3001").title
        assert get_error("E-9999") is None

    def test_by_category(self):
        codes = {e.code for e in get_errors_by_category(ErrorCategory.CONNECTOR)}
        assert {"E-3001", "E-3002", "E-3003", "E-3004", "E-3005", "E-3006"} <= codes

    def test_connector_transport_errors_are_retryable(self):
        assert get_error("E-3001").is_retryable
        assert get_error("E-3002").is_retryable
        assert not get_error("E-3004").is_retryable


class TestDataPortraitError:

    def test_from_code_formats_message(self):
        error = DataPortraitError.from_code("E-3003", brand="Amazon", seconds=600)

        assert error.message == "Sign-in to Amazon did not complete within 600 seconds."
        assert error.http_status == 504
        assert error.details == {"brand": "Amazon", "seconds": 600}
        assert str(error) == f"E-3003: {error.message}"

    def test_missing_placeholder_keeps_template(self):
        error = DataPortraitError.from_code("E-3003", brand="Amazon")
        assert "{seconds}" in error.message

    def test_extra_goes_to_details_only(self):
        error = DataPortraitError.from_code(
            "E-2001", brand_id="nope", extra={"known": ["amazon"]},
        )
        assert error.message == "Brand 'nope' is not supported."
        assert error.details == {"brand_id": "nope", "known": ["amazon"]}

    def test_unknown_code(self):
        error = DataPortraitError.from_code("E-9999")
        assert error.message == "Unknown error: E-9999"
        assert error.http_status == 500

    def test_is_raisable(self):
        with pytest.raises(DataPortraitError) as exc_info:
            raise DataPortraitError.from_code("E-3001", details="refused")
        assert exc_info.value.code == "E-3001"


class TestFormatting:

    def test_format_error_with_remediation(self):
        error = DataPortraitError.from_code("E-2001", brand_id="nope")
        text = format_error(error)

        assert text.splitlines()[0] == "E-2001: Brand 'nope' is not supported."
        assert text.splitlines()[1].startswith("  Action: ")

    def test_format_error_without_remediation(self):
        error = DataPortraitError.from_code("E-2001", brand_id="nope")
        assert "\n" not in format_error(error, include_remediation=False)

    def test_envelope(self):
        error = DataPortraitError.from_code("E-3001", details="refused")
        assert error_envelope(error) == {
            "error": {"code": "E-3001", "message": error.message, "retryable": True},
        }
