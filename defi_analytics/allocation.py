"""
Allocation Optimizer — greedy capital allocation under risk / yield limits
==========================================================================

ALGORITHM:
──────────
1. Filter     apy ≥ min_yield  and  risk ≤ max_risk
2. Score      score = (apy / risk) · (1 + liquidity / 100)     risk = 0 → +∞
3. Sort       descending by score (stable: equal scores keep input order)
4. Allocate   cap = min(remaining, total · max_per_strategy, remaining · 0.3)
              cap < $1000 → skip the strategy
5. Metrics    weighted_apy   = Σ expected_return / total_allocated · 100
              portfolio_risk = Σ (amount / total) · risk

The 30 %-of-remaining cap makes later strategies receive geometrically
smaller slices, so capital is never fully deployed; ``remaining_cash`` is
the undeployed balance.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from defi_analytics.central_config import (
    DEFAULT_CONFIG,
    MIN_ALLOCATION_USD,
    REMAINING_CAPITAL_FRACTION,
    AnalyticsConfig,
)
from defi_analytics.errors import (
    ValidationError,
    require_finite_number,
    require_fraction,
    require_positive,
)
from defi_analytics.models import AllocationResult, Strategy
from defi_analytics.money import money_context, quantize, to_decimal

logger = logging.getLogger(__name__)

STATUS_ALLOCATED = "allocated"
STATUS_NO_ELIGIBLE = "no_eligible_strategies"
STATUS_BELOW_MINIMUM = "below_minimum_allocation"


@dataclass(frozen=True)
class AllocationConstraints:
    max_risk: float = 0.3
    min_yield: float = 5.0  # percent APY
    max_allocation_per_strategy: float = 0.4  # fraction of total capital
    total_capital: float = 100_000

    def __post_init__(self):
        require_fraction("max_risk", self.max_risk)
        require_finite_number("min_yield", self.min_yield)
        require_finite_number("max_allocation_per_strategy", self.max_allocation_per_strategy)
        if not (0 < self.max_allocation_per_strategy <= 1):
            raise ValidationError(
                "max_allocation_per_strategy must be in (0, 1]",
                "max_allocation_per_strategy",
                self.max_allocation_per_strategy,
            )
        require_positive("total_capital", self.total_capital)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AllocationConstraints":
        aliases = {
            "maxRisk": "max_risk",
            "minYield": "min_yield",
            "maxAllocationPerStrategy": "max_allocation_per_strategy",
            "totalCapital": "total_capital",
        }
        kwargs = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise ValidationError(f"Unknown allocation constraint: {key}", key, value)
            kwargs[name] = value
        return cls(**kwargs)


def _score(strategy: Strategy) -> float:
    if strategy.risk == 0:
        return math.inf
    return (strategy.apy / strategy.risk) * (1 + strategy.liquidity / 100)


def _risk_profile(portfolio_risk: float) -> str:
    if portfolio_risk < 0.15:
        return "Conservative"
    if portfolio_risk < 0.25:
        return "Moderate"
    return "Aggressive"


class AllocationOptimizer:
    """Greedy allocator; deterministic for a given input order."""

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def optimize(
        self,
        strategies: Iterable[Strategy],
        constraints: Optional[AllocationConstraints] = None,
    ) -> Dict[str, Any]:
        if strategies is None:
            raise ValidationError("strategies is required", "strategies", strategies)
        strategies = list(strategies)
        for s in strategies:
            if not isinstance(s, Strategy):
                raise ValidationError("strategies must contain Strategy objects", "strategies", s)
        constraints = constraints or AllocationConstraints()
        places = self.config.precision

        total = to_decimal(constraints.total_capital, "total_capital")
        eligible = [
            s
            for s in strategies
            if s.apy >= constraints.min_yield and s.risk <= constraints.max_risk
        ]
        if not eligible:
            logger.warning(
                "No strategy passes min_yield=%s / max_risk=%s (%d candidates)",
                constraints.min_yield,
                constraints.max_risk,
                len(strategies),
            )
            return self._result(STATUS_NO_ELIGIBLE, [], total, total, 0.0, places)

        ranked = sorted(eligible, key=_score, reverse=True)

        allocations: List[AllocationResult] = []
        remaining = total
        portfolio_risk = 0.0
        with money_context("optimize_allocation", total_capital=constraints.total_capital):
            per_strategy_cap = total * to_decimal(constraints.max_allocation_per_strategy)
            step_fraction = to_decimal(REMAINING_CAPITAL_FRACTION)
            for strategy in ranked:
                if remaining <= 0:
                    break
                cap = min(remaining, per_strategy_cap, remaining * step_fraction)
                if cap < MIN_ALLOCATION_USD:
                    logger.debug("skip %s: cap %s below minimum", strategy.name, cap)
                    continue
                amount = quantize(cap, places)
                share = float(amount / total)
                allocations.append(
                    AllocationResult(
                        strategy_name=strategy.name,
                        amount=amount,
                        percentage=share * 100,
                        expected_return=quantize(amount * to_decimal(strategy.apy) / 100, places),
                        risk=strategy.risk,
                        apy=strategy.apy,
                    )
                )
                remaining -= amount
                portfolio_risk += share * strategy.risk

        status = STATUS_ALLOCATED if allocations else STATUS_BELOW_MINIMUM
        result = self._result(status, allocations, total, remaining, portfolio_risk, places)
        metrics = result["portfolio_metrics"]
        logger.info(
            "Allocated %s of %s across %d strategies (weighted APY %.2f%%, risk %.3f)",
            metrics["total_allocated"],
            total,
            metrics["allocation_count"],
            metrics["weighted_apy"],
            metrics["portfolio_risk"],
        )
        return result

    @staticmethod
    def _result(
        status: str,
        allocations: List[AllocationResult],
        total: Decimal,
        remaining: Decimal,
        portfolio_risk: float,
        places: int,
    ) -> Dict[str, Any]:
        allocated = sum((a.amount for a in allocations), Decimal(0))
        expected = sum((a.expected_return for a in allocations), Decimal(0))
        with money_context("allocation_metrics"):
            weighted_apy = float(expected / allocated * 100) if allocated > 0 else 0.0
        return {
            "status": status,
            "allocations": [a.as_dict() for a in allocations],
            "portfolio_metrics": {
                "total_allocated": quantize(allocated, places),
                "remaining_cash": quantize(remaining, places),
                "weighted_apy": weighted_apy,
                "portfolio_risk": portfolio_risk,
                "allocation_count": len(allocations),
                "risk_profile": _risk_profile(portfolio_risk),
            },
        }


def optimize_allocation(
    strategies: Iterable[Union[Strategy, Mapping[str, Any]]],
    constraints: Union[AllocationConstraints, Mapping[str, Any], None] = None,
    config: Optional[AnalyticsConfig] = None,
) -> Dict[str, Any]:
    """Run the optimizer on Strategy objects or plain dicts."""
    if strategies is None:
        raise ValidationError("strategies is required", "strategies", strategies)
    parsed = [s if isinstance(s, Strategy) else Strategy.from_mapping(s) for s in strategies]
    if isinstance(constraints, Mapping):
        constraints = AllocationConstraints.from_mapping(constraints)
    return AllocationOptimizer(config).optimize(parsed, constraints)
