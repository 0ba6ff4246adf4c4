"""
Impermanent Loss Engine — closed form and constant-product scenarios
=====================================================================

Impermanent Loss (Pintail, 2019):
    IL = 2·√r / (1 + r) − 1,   r = current_ratio / initial_ratio
Ref: https://pintail.medium.com/uniswap-a-good-deal-for-liquidity-providers-104c0b6816f2

The engine reports |IL| as a positive percentage (5.72 = 5.72 % worse than
holding). IL is symmetric: a 2× move and a 0.5× move lose the same.

Scenario re-simulation keeps k = x·y fixed across an instantaneous price
shock. Real pools reach the new composition through arbitrage trades; the
simulation assumes the invariant still holds after the shock.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from defi_analytics.central_config import DEFAULT_CONFIG, AnalyticsConfig
from defi_analytics.errors import (
    CalculationError,
    ValidationError,
    ensure_finite,
    require_positive,
)
from defi_analytics.models import PoolState, Scenario
from defi_analytics.money import money_context, quantize, to_decimal

logger = logging.getLogger(__name__)

HIGH_SEVERITY_PCT = 20.0
MEDIUM_SEVERITY_PCT = 10.0

DEFAULT_SCENARIOS = (
    Scenario("Conservative", 0.10, -0.05),
    Scenario("Moderate", 0.25, -0.15),
    Scenario("Aggressive", 0.50, -0.30),
    Scenario("Extreme", 1.00, -0.50),
)


def _il_fraction(r: float) -> float:
    """Signed IL as a fraction (≤ 0) for a price-ratio change r."""
    if not r > 0:
        raise CalculationError(
            f"impermanent_loss: price ratio must be positive, got {r}",
            "impermanent_loss",
            {"ratio": r},
        )
    return ensure_finite("impermanent_loss", 2 * math.sqrt(r) / (1 + r) - 1, ratio=r)


class ImpermanentLossEngine:
    """IL math for two-token constant-product pools."""

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or DEFAULT_CONFIG

    @staticmethod
    def impermanent_loss(initial_ratio: float, current_ratio: float) -> float:
        """
        |IL| in percent for a shift of the token price ratio.

        Known values:
          r = 1    → 0 %
          r = 2    → 5.7191 %   (same for r = 0.5)
          r = 4    → 20 %       (same for r = 0.25)
        """
        require_positive("initial_ratio", initial_ratio)
        require_positive("current_ratio", current_ratio)
        r = ensure_finite(
            "impermanent_loss",
            current_ratio / initial_ratio,
            initial_ratio=initial_ratio,
            current_ratio=current_ratio,
        )
        return abs(_il_fraction(r)) * 100

    @staticmethod
    def classify_severity(il_percent: float) -> str:
        if il_percent > HIGH_SEVERITY_PCT:
            return "High"
        if il_percent > MEDIUM_SEVERITY_PCT:
            return "Medium"
        return "Low"

    @staticmethod
    def overall_risk_level(severities: Iterable[str]) -> str:
        """Two High scenarios → High; one High or two Medium → Medium; else Low."""
        severities = list(severities)
        high = severities.count("High")
        medium = severities.count("Medium")
        if high >= 2:
            return "High"
        if high >= 1 or medium >= 2:
            return "Medium"
        return "Low"

    def advanced_impermanent_loss(
        self, pool: PoolState, scenarios: Optional[Sequence[Scenario]] = None
    ) -> Dict[str, Any]:
        """
        Re-simulate the pool under each price scenario.

        Per scenario:
          p0' = p0·(1+Δ0),  p1' = p1·(1+Δ1),  r' = p0'/p1'
          price_ratio_change = r' / (p0/p1)        → IL via the closed form
          x' = √(k·r'),  y' = k / x'               (k = x·y preserved)
          pool_value = x'·p0' + y'·p1'
          hold_value = x·p0'  + y·p1'              (tokens never deposited)

        An empty / missing scenario list falls back to DEFAULT_SCENARIOS.
        """
        if not isinstance(pool, PoolState):
            raise ValidationError("pool must be a PoolState", "pool", pool)
        scenarios = tuple(scenarios) if scenarios else DEFAULT_SCENARIOS
        for scenario in scenarios:
            if not isinstance(scenario, Scenario):
                raise ValidationError("scenarios must contain Scenario objects", "scenarios", scenario)

        places = self.config.precision
        x = to_decimal(pool.token0_amount, "token0_amount")
        y = to_decimal(pool.token1_amount, "token1_amount")
        p0 = to_decimal(pool.token0_price, "token0_price")
        p1 = to_decimal(pool.token1_price, "token1_price")

        results: List[Dict[str, Any]] = []
        with money_context("advanced_impermanent_loss"):
            initial_value = x * p0 + y * p1
            initial_ratio = p0 / p1
            k = x * y

            for scenario in scenarios:
                new_p0 = p0 * (1 + to_decimal(scenario.token0_price_delta))
                new_p1 = p1 * (1 + to_decimal(scenario.token1_price_delta))
                new_ratio = new_p0 / new_p1
                ratio_change = float(new_ratio / initial_ratio)
                il_pct = abs(_il_fraction(ratio_change)) * 100

                new_x = (k * new_ratio).sqrt()
                new_y = k / new_x
                pool_value = new_x * new_p0 + new_y * new_p1
                hold_value = x * new_p0 + y * new_p1

                results.append(
                    {
                        "scenario": scenario.name,
                        "impermanent_loss": il_pct,
                        "price_ratio_change": ratio_change,
                        "token0_price": quantize(new_p0, places),
                        "token1_price": quantize(new_p1, places),
                        "new_token0_amount": quantize(new_x, places),
                        "new_token1_amount": quantize(new_y, places),
                        "pool_value": quantize(pool_value, places),
                        "hold_value": quantize(hold_value, places),
                        "difference": quantize(pool_value - hold_value, places),
                        "severity": self.classify_severity(il_pct),
                    }
                )

        severities = [r["severity"] for r in results]
        overall = self.overall_risk_level(severities)
        logger.debug(
            "advanced_impermanent_loss: %d scenarios, overall=%s", len(results), overall
        )
        return {
            "initial_value": quantize(initial_value, places),
            "initial_ratio": float(initial_ratio),
            "scenarios": results,
            "overall_risk_level": overall,
            "high_risk_scenarios": severities.count("High"),
            "medium_risk_scenarios": severities.count("Medium"),
        }
