"""Tests for the CarbonLedger exception hierarchy.

Covers error codes, context payloads, serialisation and the row-error
classification used by batch operations.
"""

import json
from datetime import datetime

import pytest

from carbonledger.exceptions import (
    CarbonLedgerException,
    FactorNotFoundError,
    IncompleteReportError,
    IntegrityError,
    ROW_ERROR_TYPES,
    SignatureAuthorizationError,
    StandardNotFoundError,
    ValidationError,
    format_exception_chain,
    is_row_error,
)


# ==============================================================================
# Base Exception Tests
# ==============================================================================

class TestCarbonLedgerException:
    """Tests for the base exception."""

    def test_create_basic_exception(self):
        """Message, generated code, empty context and a timestamp."""
        exc = CarbonLedgerException("Something went wrong")

        assert exc.message == "Something went wrong"
        assert exc.error_code == "CL_CARBON_LEDGER_EXCEPTION"
        assert exc.context == {}
        assert isinstance(exc.timestamp, datetime)

    def test_explicit_error_code_wins(self):
        exc = CarbonLedgerException("boom", error_code="CL_TEST_001")
        assert exc.error_code == "CL_TEST_001"

    def test_str_includes_code_and_message(self):
        exc = CarbonLedgerException("boom", error_code="CL_TEST_001")
        assert str(exc) == "[CL_TEST_001] - boom"

    def test_to_json_round_trips_fields(self):
        exc = CarbonLedgerException("boom", context={"key": "value"})

        parsed = json.loads(exc.to_json())

        assert parsed["error_type"] == "CarbonLedgerException"
        assert parsed["message"] == "boom"
        assert parsed["context"] == {"key": "value"}
        assert "timestamp" in parsed


# ==============================================================================
# Calculation Exception Tests
# ==============================================================================

class TestValidationError:
    """ValidationError carries the offending fields."""

    def test_invalid_fields_are_copied_into_context(self):
        exc = ValidationError("bad row", invalid_fields={"quantity": "got -5"})

        assert exc.error_code == "CL_VALIDATION_ERROR"
        assert exc.invalid_fields == {"quantity": "got -5"}
        assert exc.context["invalid_fields"] == {"quantity": "got -5"}

    def test_without_fields_context_stays_empty(self):
        exc = ValidationError("bad row")
        assert exc.invalid_fields == {}
        assert exc.context == {}


class TestFactorNotFoundError:
    """The message names category, key and year."""

    def test_message_and_attributes(self):
        exc = FactorNotFoundError("grid", "Atlantis", 2025)

        assert exc.category == "grid"
        assert exc.key == "Atlantis"
        assert exc.year == 2025
        assert "category=grid" in exc.message
        assert "key=Atlantis" in exc.message
        assert "year=2025" in exc.message
        assert exc.error_code == "CL_FACTOR_NOT_FOUND_ERROR"


# ==============================================================================
# Reporting Exception Tests
# ==============================================================================

class TestReportingExceptions:
    """Standard, report and signature errors."""

    def test_standard_not_found(self):
        exc = StandardNotFoundError("us_sec")
        assert exc.standard_id == "us_sec"
        assert "us_sec" in exc.message

    def test_incomplete_report_lists_fields(self):
        exc = IncompleteReportError("rpt_1", ["tax_id", "employee_data"])
        assert exc.missing_fields == ["tax_id", "employee_data"]
        assert "2 required field(s)" in exc.message

    def test_signature_authorization_names_roles(self):
        exc = SignatureAuthorizationError("k_esg", "editor", ["owner", "director", "auditor"])
        assert exc.role == "editor"
        assert "owner, director, auditor" in exc.message
        assert exc.context["authorized_roles"] == ["owner", "director", "auditor"]

    def test_integrity_error_keeps_hashes(self):
        exc = IntegrityError("rpt_1", "sig_1", "a" * 64, "b" * 64)
        assert exc.expected_hash == "a" * 64
        assert exc.actual_hash == "b" * 64
        assert exc.error_code == "CL_INTEGRITY_ERROR"


# ==============================================================================
# Utility Tests
# ==============================================================================

class TestExceptionUtilities:
    """Row-error classification and chain formatting."""

    @pytest.mark.parametrize(
        "exc",
        [ValidationError("x"), FactorNotFoundError("fuel", "diesel_l", 2024)],
    )
    def test_row_errors(self, exc):
        assert is_row_error(exc)
        assert isinstance(exc, ROW_ERROR_TYPES)

    @pytest.mark.parametrize(
        "exc",
        [
            StandardNotFoundError("x"),
            IntegrityError("r", "s", "a", "b"),
            SignatureAuthorizationError("eu_cbam", "viewer", ["owner"]),
            ValueError("x"),
        ],
    )
    def test_fatal_errors_are_not_row_errors(self, exc):
        assert not is_row_error(exc)

    def test_format_exception_chain_follows_cause(self):
        try:
            try:
                raise KeyError("missing")
            except KeyError as inner:
                raise ValidationError("outer") from inner
        except ValidationError as exc:
            text = format_exception_chain(exc)

        assert "[CL_VALIDATION_ERROR] - outer" in text
        assert "KeyError" in text
