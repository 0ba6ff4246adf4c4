"""
Currency Arithmetic — Decimal helpers
=====================================

Currency amounts (principal, pool values, fees, allocations, VaR) are
``decimal.Decimal`` so that chained multiplications do not accumulate
binary floating-point drift. Dimensionless ratios stay ``float``.

Floats are converted through ``str`` so ``0.1`` becomes ``Decimal("0.1")``
rather than its exact binary expansion.
"""

import decimal
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Union

from defi_analytics.errors import CalculationError, ValidationError

Number = Union[int, float, Decimal]

# Significant digits kept while computing; outputs are quantized afterwards
WORKING_DIGITS = 50


def to_decimal(value: Number, name: str = "value") -> Decimal:
    """Convert an int / float / Decimal to Decimal without binary artefacts."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {value!r}", name, value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        raise ValidationError(f"{name} must be a number, got {value!r}", name, value)
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite, got {value!r}", name, value)
    return result


def quantize(amount: Decimal, places: int) -> Decimal:
    """Round half-even to ``places`` decimal places."""
    with money_context("quantize", amount=amount):
        return amount.quantize(Decimal(1).scaleb(-places))


@contextmanager
def money_context(operation: str, **inputs) -> Iterator[decimal.Context]:
    """
    Local decimal context with a wide working precision.

    Overflow / invalid operations are trapped by the decimal module and
    surfaced as CalculationError.
    """
    try:
        with decimal.localcontext() as ctx:
            ctx.prec = WORKING_DIGITS
            ctx.rounding = decimal.ROUND_HALF_EVEN
            yield ctx
    except (decimal.Overflow, decimal.InvalidOperation, decimal.DivisionByZero) as exc:
        raise CalculationError(
            f"{operation}: decimal arithmetic failed ({exc.__class__.__name__})",
            operation,
            inputs,
        ) from exc
