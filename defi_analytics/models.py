"""
Value Objects — inputs to the analytics engines
================================================

Every object here is a frozen dataclass built per call and thrown away after
the computation that uses it. Field validation happens in ``__post_init__``
so an engine never sees a malformed Strategy / Position / PoolState.

  - Strategy          → optimizer candidate (apy %, risk 0..1, liquidity 0..100)
  - Position          → one asset holding; value = amount × price
  - Portfolio         → ordered positions; weights sum to 1
  - Scenario          → named fractional price shift for a two-token pool
  - PoolState         → two-token constant-product pool snapshot
  - AllocationResult  → one optimizer allocation
  - CorrelationTable  → symmetric pair → ρ lookup with a 0.3 default
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from defi_analytics.central_config import DEFAULT_CORRELATION, DEFAULT_VOLATILITY
from defi_analytics.errors import (
    ValidationError,
    require_finite_number,
    require_fraction,
    require_non_negative,
    require_positive,
)
from defi_analytics.money import to_decimal


def _pick(mapping: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins — lets callers use camelCase or snake_case."""
    for key in keys:
        if key in mapping:
            return mapping[key]
    return default


# ── Optimizer input ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Strategy:
    """A yield strategy candidate for the allocator."""

    name: str
    apy: float  # percent, e.g. 12.0 = 12 %
    risk: float  # 0 (riskless) … 1 (maximal)
    liquidity: float = 0.0  # 0 … 100

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValidationError("Strategy name must be a non-empty string", "name", self.name)
        require_non_negative("apy", self.apy)
        require_fraction("risk", self.risk)
        require_finite_number("liquidity", self.liquidity)
        if not (0 <= self.liquidity <= 100):
            raise ValidationError(
                f"liquidity must be within [0, 100], got {self.liquidity}",
                "liquidity",
                self.liquidity,
            )
        # Scores and risk sums are float arithmetic
        for label in ("apy", "risk", "liquidity"):
            object.__setattr__(self, label, float(getattr(self, label)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Strategy":
        if "name" not in data or "apy" not in data or "risk" not in data:
            raise ValidationError("Strategy requires name, apy and risk", "strategy", data)
        return cls(
            name=data["name"],
            apy=data["apy"],
            risk=data["risk"],
            liquidity=data.get("liquidity", 0.0),
        )


# ── Portfolio ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    """
    A single asset holding.

    ``volatility`` is annualized (0.3 = 30 %). ``None`` means the caller did
    not supply one and DEFAULT_VOLATILITY applies; 0.0 is a genuine zero.
    """

    asset: str
    amount: float
    price: float
    volatility: Optional[float] = None
    daily_volume: Optional[float] = None
    market_cap: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.asset, str) or not self.asset:
            raise ValidationError("Position asset must be a non-empty string", "asset", self.asset)
        require_non_negative("amount", self.amount)
        require_positive("price", self.price)
        if self.volatility is not None:
            require_non_negative("volatility", self.volatility)
        if self.daily_volume is not None:
            require_non_negative("daily_volume", self.daily_volume)
        if self.market_cap is not None:
            require_non_negative("market_cap", self.market_cap)

    @property
    def value(self) -> Decimal:
        return to_decimal(self.amount, "amount") * to_decimal(self.price, "price")

    @property
    def effective_volatility(self) -> float:
        return DEFAULT_VOLATILITY if self.volatility is None else float(self.volatility)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Position":
        return cls(
            asset=_pick(data, "asset", "symbol"),
            amount=_pick(data, "amount"),
            price=_pick(data, "price"),
            volatility=_pick(data, "volatility"),
            daily_volume=_pick(data, "daily_volume", "dailyVolume"),
            market_cap=_pick(data, "market_cap", "marketCap"),
        )


@dataclass(frozen=True)
class Portfolio:
    """Ordered, read-only sequence of positions."""

    positions: Tuple[Position, ...] = ()

    def __post_init__(self):
        # Accept any iterable but store an immutable tuple
        object.__setattr__(self, "positions", tuple(self.positions))
        for pos in self.positions:
            if not isinstance(pos, Position):
                raise ValidationError("Portfolio entries must be Position objects", "positions", pos)

    @classmethod
    def of(cls, positions: Iterable[Any]) -> "Portfolio":
        """Build from Position objects or plain mappings."""
        return cls(
            tuple(
                p if isinstance(p, Position) else Position.from_mapping(p)
                for p in positions
            )
        )

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self):
        return iter(self.positions)

    @property
    def total_value(self) -> Decimal:
        return sum((p.value for p in self.positions), Decimal(0))

    def weights(self) -> Tuple[float, ...]:
        """value_i / total_value — requires a non-empty, non-zero portfolio."""
        if not self.positions:
            raise ValidationError("Portfolio has no positions", "portfolio", self)
        total = self.total_value
        if total <= 0:
            raise ValidationError("Portfolio total value must be positive", "portfolio", total)
        return tuple(float(p.value / total) for p in self.positions)


# ── Pool simulation ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Scenario:
    """Fractional price shift: +0.25 = +25 %, −0.5 = −50 %."""

    name: str
    token0_price_delta: float
    token1_price_delta: float

    def __post_init__(self):
        for label in ("token0_price_delta", "token1_price_delta"):
            delta = require_finite_number(label, getattr(self, label))
            if delta <= -1:
                raise ValidationError(
                    f"{label} must be greater than -1 (price cannot reach zero), got {delta}",
                    label,
                    delta,
                )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Scenario":
        return cls(
            name=_pick(data, "name", default="Scenario"),
            token0_price_delta=_pick(
                data, "token0_price_delta", "token0PriceDelta", "token0Change"
            ),
            token1_price_delta=_pick(
                data, "token1_price_delta", "token1PriceDelta", "token1Change"
            ),
        )


@dataclass(frozen=True)
class PoolState:
    """
    Two-token constant-product pool snapshot.

    Invariant under re-simulation: k = token0_amount × token1_amount.
    """

    token0_amount: float
    token1_amount: float
    token0_price: float
    token1_price: float

    def __post_init__(self):
        require_positive("token0_amount", self.token0_amount)
        require_positive("token1_amount", self.token1_amount)
        require_positive("token0_price", self.token0_price)
        require_positive("token1_price", self.token1_price)

    @property
    def k(self) -> float:
        return float(self.token0_amount) * float(self.token1_amount)

    @property
    def price_ratio(self) -> float:
        return float(self.token0_price) / float(self.token1_price)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PoolState":
        return cls(
            token0_amount=_pick(data, "token0_amount", "token0Amount"),
            token1_amount=_pick(data, "token1_amount", "token1Amount"),
            token0_price=_pick(data, "token0_price", "token0Price"),
            token1_price=_pick(data, "token1_price", "token1Price"),
        )


# ── Optimizer output ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class AllocationResult:
    strategy_name: str
    amount: Decimal
    percentage: float  # of total capital
    expected_return: Decimal  # amount × apy / 100
    risk: float
    apy: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "strategy_name": self.strategy_name,
            "amount": self.amount,
            "percentage": self.percentage,
            "expected_return": self.expected_return,
            "risk": self.risk,
            "apy": self.apy,
        }


# ── Correlations ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CorrelationTable:
    """
    Symmetric partial mapping (asset_a, asset_b) → ρ ∈ [−1, 1].

    Lookups are order-independent. Unknown pairs return ``default``;
    an asset paired with itself is perfectly correlated.
    """

    pairs: Mapping[Tuple[str, str], float] = field(default_factory=dict)
    default: float = DEFAULT_CORRELATION

    def __post_init__(self):
        normalized: Dict[frozenset, float] = {}
        for key, rho in dict(self.pairs).items():
            a, b = self._split_key(key)
            self._check_rho((a, b), rho)
            normalized[frozenset((a, b))] = float(rho)
        self._check_rho("default", self.default)
        object.__setattr__(self, "_lookup", MappingProxyType(normalized))
        object.__setattr__(self, "pairs", MappingProxyType(dict(self.pairs)))

    @staticmethod
    def _split_key(key: Any) -> Tuple[str, str]:
        # "ETH-BTC" style keys are accepted as well as tuples
        if isinstance(key, str):
            parts = key.split("-")
            if len(parts) == 2 and all(parts):
                return parts[0], parts[1]
        elif isinstance(key, tuple) and len(key) == 2:
            return key[0], key[1]
        raise ValidationError(f"Invalid correlation key: {key!r}", "correlations", key)

    @staticmethod
    def _check_rho(key: Any, rho: Any) -> None:
        require_finite_number(f"correlation {key}", rho)
        if not (-1 <= rho <= 1):
            raise ValidationError(
                f"correlation {key} must be within [-1, 1], got {rho}", "correlations", rho
            )

    def get(self, asset_a: str, asset_b: str) -> float:
        if asset_a == asset_b:
            return 1.0
        return self._lookup.get(frozenset((asset_a, asset_b)), float(self.default))

    def __len__(self) -> int:
        return len(self._lookup)
