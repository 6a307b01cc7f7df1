"""CarbonLedger Exception Hierarchy.

Exceptions raised by the calculation and reporting engine. Each carries a
machine-readable error code and a context dictionary so that callers can
surface the cause to an operator without parsing the message.

Exception Hierarchy:
    CarbonLedgerException (base)
    ├── ValidationError               (per-row, collected in batches)
    ├── FactorNotFoundError           (per-row, collected in batches)
    ├── StandardNotFoundError         (fatal to the single call)
    ├── IncompleteReportError         (soft, raised only on request)
    ├── SignatureAuthorizationError   (fatal to the sign attempt)
    └── IntegrityError                (hash mismatch on verification)

Propagation policy:
    Row-level errors (ValidationError, FactorNotFoundError) are caught by
    batch operations and accumulated next to partial successes. Everything
    else propagates to the immediate caller. Nothing is retried by the
    engine itself.

Example:
    >>> from carbonledger.exceptions import FactorNotFoundError
    >>> raise FactorNotFoundError("grid", "KR", 2024)
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence


# ==============================================================================
# Base Exception
# ==============================================================================

class CarbonLedgerException(Exception):
    """Base exception for all CarbonLedger errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "CL_FACTOR_NOT_FOUND_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred (UTC)
    """

    ERROR_PREFIX = "CL"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate an error code from the class name.

        Returns:
            Error code like "CL_INTEGRITY_ERROR"
        """
        error_type = re.sub(r"(?<!^)(?=[A-Z])", "_", self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Calculation Exceptions
# ==============================================================================

class ValidationError(CarbonLedgerException):
    """Malformed or missing input.

    Raised for activity rows that cannot be calculated (non-positive
    quantity, missing unit, scope3 without category) and for writes that
    violate an invariant (an override energy mix that does not sum to 100).

    Example:
        >>> raise ValidationError(
        ...     message="quantity must be a positive finite number",
        ...     invalid_fields={"quantity": "got -5"},
        ... )
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        invalid_fields: Optional[Dict[str, str]] = None,
    ):
        """Initialize validation error.

        Args:
            message: Error message
            context: Error context
            invalid_fields: Dictionary of field_name -> reason
        """
        self.invalid_fields: Dict[str, str] = dict(invalid_fields or {})
        if invalid_fields:
            context = context or {}
            context["invalid_fields"] = self.invalid_fields
        super().__init__(message, context=context)


class FactorNotFoundError(CarbonLedgerException):
    """No emission factor could be resolved after the full fallback chain.

    The message names category, key and year so that an operator can fix
    the gap, typically by adding a project override.
    """

    def __init__(
        self,
        category: str,
        key: str,
        year: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.category = category
        self.key = key
        self.year = year
        context = dict(context or {})
        context.update({"category": category, "key": key, "year": year})
        super().__init__(
            f"No emission factor found for category={category}, "
            f"key={key}, year={year}",
            context=context,
        )


# ==============================================================================
# Reporting Exceptions
# ==============================================================================

class StandardNotFoundError(CarbonLedgerException):
    """Unknown reporting standard id."""

    def __init__(self, standard_id: str):
        self.standard_id = standard_id
        super().__init__(
            f"Standard {standard_id} not found",
            context={"standard_id": standard_id},
        )


class IncompleteReportError(CarbonLedgerException):
    """Report assembled with required fields left unresolved.

    Assembly never raises this on its own; the missing fields travel on
    the report. Callers that want to stop on an incomplete report call
    ``Report.raise_if_incomplete()``.
    """

    def __init__(self, report_id: str, missing_fields: Sequence[str]):
        self.report_id = report_id
        self.missing_fields: List[str] = list(missing_fields)
        super().__init__(
            f"Report {report_id} is missing {len(self.missing_fields)} "
            f"required field(s): {', '.join(self.missing_fields)}",
            context={"report_id": report_id, "missing_fields": self.missing_fields},
        )


class SignatureAuthorizationError(CarbonLedgerException):
    """Signer role is not allowed to sign reports for the standard."""

    def __init__(
        self,
        standard_id: str,
        role: str,
        authorized_roles: Sequence[str],
    ):
        self.standard_id = standard_id
        self.role = role
        self.authorized_roles = list(authorized_roles)
        super().__init__(
            f"Standard {standard_id} requires signing by: "
            f"{', '.join(self.authorized_roles)} (got role '{role}')",
            context={
                "standard_id": standard_id,
                "role": role,
                "authorized_roles": self.authorized_roles,
            },
        )


class IntegrityError(CarbonLedgerException):
    """Stored report payload no longer matches a signature's content hash."""

    def __init__(
        self,
        report_id: str,
        signature_id: str,
        expected_hash: str,
        actual_hash: str,
    ):
        self.report_id = report_id
        self.signature_id = signature_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Report {report_id} has been modified since signature "
            f"{signature_id} was applied",
            context={
                "report_id": report_id,
                "signature_id": signature_id,
                "expected_hash": expected_hash,
                "actual_hash": actual_hash,
            },
        )


# ==============================================================================
# Exception Utilities
# ==============================================================================

#: Errors that batch operations collect per row instead of propagating.
ROW_ERROR_TYPES = (ValidationError, FactorNotFoundError)


def is_row_error(exc: Exception) -> bool:
    """Check whether an exception is collected per row in batch operations.

    Args:
        exc: Exception to check

    Returns:
        True for ValidationError and FactorNotFoundError
    """
    return isinstance(exc, ROW_ERROR_TYPES)


def format_exception_chain(exc: BaseException) -> str:
    """Format exception chain for logging/display.

    Args:
        exc: Exception to format

    Returns:
        Formatted string with full exception chain
    """
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, CarbonLedgerException):
            lines.append(str(current))
            lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = current.__cause__

    return "\n".join(lines)


__all__ = [
    "CarbonLedgerException",
    "ValidationError",
    "FactorNotFoundError",
    "StandardNotFoundError",
    "IncompleteReportError",
    "SignatureAuthorizationError",
    "IntegrityError",
    "ROW_ERROR_TYPES",
    "is_row_error",
    "format_exception_chain",
]
