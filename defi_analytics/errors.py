"""
Error Types — validation vs. numeric degeneracy
================================================

Two failure kinds cover the whole engine:

  - ValidationError   → bad input, rejected before any computation
  - CalculationError  → valid-looking input whose result is not finite

Both subclass ValueError so callers that already guard numeric code with
``except ValueError`` keep working.
"""

import math
from decimal import Decimal
from numbers import Real
from typing import Any


class AnalyticsError(ValueError):
    """Base class for every error raised by the analytics engines."""


class ValidationError(AnalyticsError):
    """Malformed, missing, out-of-range or zero-denominator input."""

    def __init__(self, message: str, field: str = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class CalculationError(AnalyticsError):
    """A computation produced NaN / Infinity or overflowed."""

    def __init__(self, message: str, operation: str = None, inputs: dict = None):
        super().__init__(message)
        self.operation = operation
        self.inputs = inputs or {}


# ── Validation helpers ───────────────────────────────────────────────────


def require_finite_number(name: str, value: Any) -> Any:
    """Reject non-numbers, booleans, NaN and infinities."""
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise ValidationError(f"{name} must be a number, got {value!r}", name, value)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value!r}", name, value)
    return value


def require_positive(name: str, value: Any) -> Any:
    require_finite_number(name, value)
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}", name, value)
    return value


def require_non_negative(name: str, value: Any) -> Any:
    require_finite_number(name, value)
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}", name, value)
    return value


def require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(
            f"{name} must be a positive integer, got {value!r}", name, value
        )
    return value


def require_fraction(name: str, value: Any) -> Any:
    """Value must lie in the closed interval [0, 1]."""
    require_finite_number(name, value)
    if not (0 <= value <= 1):
        raise ValidationError(f"{name} must be within [0, 1], got {value}", name, value)
    return value


def ensure_finite(operation: str, value: Any, **inputs) -> Any:
    """Raise CalculationError when a float or Decimal result is NaN / infinite."""
    try:
        finite = value.is_finite() if hasattr(value, "is_finite") else math.isfinite(value)
    except TypeError as exc:
        raise CalculationError(
            f"{operation}: non-numeric result {value!r}", operation, inputs
        ) from exc
    if not finite:
        raise CalculationError(
            f"{operation}: result is not finite ({value})", operation, inputs
        )
    return value
