"""
Typed errors for the royalty calculation engine.

Every failure the engine can produce is one of the classes below. Each class
has a static ``code`` (machine-readable, safe to return from the API) and
carries its context as attributes in ``details`` so callers never have to
parse a message string.

    EngineError
    +-- ContractNotFound          CONTRACT_NOT_FOUND
    +-- InvalidSalesData          INVALID_SALES_DATA
    +-- TierConfigurationError    TIER_CONFIGURATION_ERROR
    +-- ArithmeticOverflow        ARITHMETIC_OVERFLOW
    +-- OwnershipSplitError       OWNERSHIP_SPLIT_ERROR

All of them are deterministic: identical inputs produce the identical error.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all royalty engine failures."""

    code: str = "ENGINE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly representation (code, message, details)."""
        return {
            "code": self.code,
            "message": self.message,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }

    def to_failure(self):
        """Convert to the EngineFailure value returned by the calculation runner."""
        from royalty_engine.models.calculation import EngineFailure

        return EngineFailure(**self.to_dict())


def _jsonable(value: Any) -> Any:
    """Decimals and enums become strings; everything else passes through."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class ContractNotFound(EngineError):
    """Contract terms are missing or carry no royalty schedules."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: Optional[str] = None, reason: str = "no contract terms supplied"):
        self.contract_id = contract_id
        label = contract_id or "<unknown>"
        super().__init__(
            f"Contract {label} not found: {reason}",
            {"contract_id": contract_id, "reason": reason},
        )


class InvalidSalesData(EngineError):
    """
    Sales input cannot be reconciled (e.g. returns exceed gross sales).

    Surfaced as "data reconciliation required"; the engine never clamps.
    """

    code: str = "INVALID_SALES_DATA"

    def __init__(self, message: str, format: Optional[str] = None, **details: Any):
        self.format = format
        super().__init__(
            f"Data reconciliation required: {message}",
            {"format": format, **details},
        )


class TierConfigurationError(EngineError):
    """
    A tier schedule has a gap, an overlap, or cannot absorb every unit.

    Not a ``ValueError``: raised from a pydantic validator it passes through
    model construction unchanged instead of becoming a ValidationError.
    """

    code: str = "TIER_CONFIGURATION_ERROR"

    def __init__(self, message: str, format: Optional[str] = None, **details: Any):
        self.format = format
        super().__init__(message, {"format": format, **details})


class ArithmeticOverflow(EngineError):
    """A value fell outside the supported fixed-point range."""

    code: str = "ARITHMETIC_OVERFLOW"

    def __init__(self, message: str, value: Any = None):
        self.value = value
        super().__init__(message, {"value": value})


class OwnershipSplitError(EngineError):
    """Co-author ownership percentages are invalid (must total exactly 100)."""

    code: str = "OWNERSHIP_SPLIT_ERROR"

    def __init__(self, message: str, total_percentage: Any = None):
        self.total_percentage = total_percentage
        super().__init__(message, {"total_percentage": total_percentage})
