"""
Project Configuration — version, engine settings, named constants
==================================================================

Single place for the knobs every engine reads: compounding default,
currency precision, risk-free rate, VaR confidence and the thresholds used
for drawdown / liquidity classification.

An ``AnalyticsConfig`` is created once and handed to each engine; it is
frozen, so no engine can change it after construction.
"""

import re
from dataclasses import dataclass, fields
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from defi_analytics.errors import ValidationError

# Version — single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("defi-analytics")
except PackageNotFoundError:
    # Dev / CI: package not installed — read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "DeFi Analytics"


# ── Named Constants ──────────────────────────────────────────────────────

DAYS_PER_YEAR = 365

# One-sided normal quantiles used for parametric VaR
Z_SCORES = MappingProxyType({0.90: 1.282, 0.95: 1.645, 0.99: 2.326})

# Yearly, quarterly, monthly, weekly, daily — evaluated in this order
COMPOUNDING_CANDIDATES = (1, 4, 12, 52, 365)

DEFAULT_VOLATILITY = 0.3  # annualized, when a position does not carry one
DEFAULT_CORRELATION = 0.3  # unknown asset pairs

MIN_ALLOCATION_USD = 1000
REMAINING_CAPITAL_FRACTION = 0.3  # max share of the remaining capital per step

# Decimal places a currency amount may be quantized to
MAX_PRECISION = 28

# camelCase aliases accepted by AnalyticsConfig.from_mapping
_CONFIG_ALIASES = MappingProxyType(
    {
        "defaultCompoundFrequency": "default_compound_frequency",
        "riskFreeRate": "risk_free_rate",
        "confidenceLevel": "confidence_level",
        "maxDrawdownThreshold": "max_drawdown_threshold",
        "liquidityThreshold": "liquidity_threshold",
    }
)


@dataclass(frozen=True)
class AnalyticsConfig:
    """Immutable engine configuration."""

    default_compound_frequency: int = 365
    precision: int = 18  # decimal places for currency outputs
    risk_free_rate: float = 2.0  # percent
    confidence_level: float = 0.95
    max_drawdown_threshold: float = 0.2  # fraction
    liquidity_threshold: float = 100_000  # currency units

    def __post_init__(self):
        freq = self.default_compound_frequency
        if isinstance(freq, bool) or not isinstance(freq, int) or freq <= 0:
            raise ValidationError(
                "defaultCompoundFrequency must be a positive integer",
                "default_compound_frequency",
                freq,
            )
        prec = self.precision
        if isinstance(prec, bool) or not isinstance(prec, int) or not (
            0 <= prec <= MAX_PRECISION
        ):
            raise ValidationError(
                f"precision must be an integer between 0 and {MAX_PRECISION}",
                "precision",
                prec,
            )
        if self.confidence_level not in Z_SCORES:
            raise ValidationError(
                "confidenceLevel must be one of 0.90, 0.95, 0.99",
                "confidence_level",
                self.confidence_level,
            )
        if not (0 < self.max_drawdown_threshold <= 1):
            raise ValidationError(
                "maxDrawdownThreshold must be in (0, 1]",
                "max_drawdown_threshold",
                self.max_drawdown_threshold,
            )
        if self.liquidity_threshold <= 0:
            raise ValidationError(
                "liquidityThreshold must be positive",
                "liquidity_threshold",
                self.liquidity_threshold,
            )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "AnalyticsConfig":
        """Build a config from a dict using either camelCase or snake_case keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in mapping.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name not in known:
                raise ValidationError(f"Unknown configuration option: {key}", key, value)
            kwargs[name] = value
        return cls(**kwargs)


# Global default instance
DEFAULT_CONFIG = AnalyticsConfig()
