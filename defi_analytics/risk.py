"""
Risk Engine — portfolio VaR, Sharpe, drawdown, concentration, correlation
==========================================================================

FORMULAS:
─────────
1. Portfolio variance (two-asset generalisation of Markowitz)
     σ²_p = Σ wᵢ²σᵢ² + 2·Σ_{i<j} wᵢwⱼσᵢσⱼρᵢⱼ
   σ annualized; unspecified σ → 0.3; unknown ρ → 0.3

2. Parametric Value-at-Risk
     σ_daily  = σ_p / √365
     σ_period = σ_daily · √horizon
     VaR      = V · σ_period · z        z ∈ {1.282, 1.645, 2.326}

3. Sharpe ratio
     S = (R − R_f) / σ                   all in percent

4. Herfindahl concentration
     H = Σ wᵢ²                           1/N (diversified) … 1 (single asset)

5. Maximum drawdown
     DD_t = (peak_t − P_t) / peak_t      peak_t = running maximum

Weights, volatilities and correlations are floats; portfolio value and
VaR amounts are Decimal.
"""

import logging
import math
from decimal import Decimal
from statistics import stdev
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from defi_analytics.central_config import (
    DAYS_PER_YEAR,
    DEFAULT_CONFIG,
    Z_SCORES,
    AnalyticsConfig,
)
from defi_analytics.errors import (
    CalculationError,
    ValidationError,
    ensure_finite,
    require_finite_number,
    require_positive,
    require_positive_int,
)
from defi_analytics.models import CorrelationTable, Portfolio
from defi_analytics.money import money_context, quantize, to_decimal

logger = logging.getLogger(__name__)

CorrelationInput = Union[CorrelationTable, Mapping, None]

# Fraction of an asset's daily volume assumed absorbable without moving price
LIQUIDATION_VOLUME_SHARE = Decimal("0.1")


def _as_table(correlations: CorrelationInput) -> CorrelationTable:
    if correlations is None:
        return CorrelationTable()
    if isinstance(correlations, CorrelationTable):
        return correlations
    if isinstance(correlations, Mapping):
        return CorrelationTable(dict(correlations))
    raise ValidationError(
        "correlations must be a CorrelationTable or a mapping", "correlations", correlations
    )


def _as_portfolio(portfolio: Any) -> Portfolio:
    if isinstance(portfolio, Portfolio):
        return portfolio
    if portfolio is None:
        raise ValidationError("portfolio is required", "portfolio", portfolio)
    return Portfolio.of(portfolio)


def _check_price_series(price_series: Sequence[float]) -> List[float]:
    if price_series is None:
        raise ValidationError("price_series is required", "price_series", price_series)
    prices = list(price_series)
    for i, price in enumerate(prices):
        require_positive(f"price_series[{i}]", price)
    return prices


class RiskEngine:
    """Portfolio risk metrics over explicit, caller-supplied snapshots."""

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or DEFAULT_CONFIG

    # ── Shared classification ────────────────────────────────────────────

    @staticmethod
    def risk_level_from_score(score: float) -> str:
        """Three-tier scheme shared by score-style metrics (0 … 1)."""
        if score > 0.7:
            return "High"
        if score > 0.4:
            return "Medium"
        return "Low"

    # ── Variance ─────────────────────────────────────────────────────────

    @staticmethod
    def _variance(
        portfolio: Portfolio, weights: Tuple[float, ...], table: CorrelationTable
    ) -> float:
        positions = portfolio.positions
        vols = [p.effective_volatility for p in positions]
        variance = sum((w * s) ** 2 for w, s in zip(weights, vols))
        for i in range(len(positions)):
            for j in range(i + 1, len(positions)):
                rho = table.get(positions[i].asset, positions[j].asset)
                variance += 2 * weights[i] * weights[j] * vols[i] * vols[j] * rho
        return ensure_finite("portfolio_variance", variance)

    # ── Value at Risk ────────────────────────────────────────────────────

    def portfolio_var(
        self,
        portfolio: Portfolio,
        correlations: CorrelationInput = None,
        confidence_level: Optional[float] = None,
        horizon_days: int = 1,
    ) -> Dict[str, Any]:
        """
        Correlation-adjusted parametric VaR.

        ``risk_level`` is driven by daily VaR as a share of portfolio value:
        > 5 % High, > 2 % Medium, else Low.
        """
        portfolio = _as_portfolio(portfolio)
        table = _as_table(correlations)
        confidence = self.config.confidence_level if confidence_level is None else confidence_level
        if confidence not in Z_SCORES:
            raise ValidationError(
                "confidence_level must be one of 0.90, 0.95, 0.99",
                "confidence_level",
                confidence,
            )
        require_positive_int("horizon_days", horizon_days)

        weights = portfolio.weights()
        total = portfolio.total_value
        variance = self._variance(portfolio, weights, table)
        if -1e-12 < variance < 0:
            # float rounding on strongly negative correlations
            variance = 0.0
        if variance < 0:
            raise CalculationError(
                f"portfolio_var: correlations produce a negative variance ({variance})",
                "portfolio_var",
                {"variance": variance, "correlations": dict(table.pairs)},
            )

        z = Z_SCORES[confidence]
        volatility = math.sqrt(variance)
        daily_vol = volatility / math.sqrt(DAYS_PER_YEAR)
        period_vol = daily_vol * math.sqrt(horizon_days)

        places = self.config.precision
        with money_context("portfolio_var", total=total):
            daily_var = total * to_decimal(daily_vol) * to_decimal(z)
            period_var = total * to_decimal(period_vol) * to_decimal(z)
            daily_share = float(daily_var / total)

        if daily_share > 0.05:
            level = "High"
        elif daily_share > 0.02:
            level = "Medium"
        else:
            level = "Low"

        logger.debug(
            "portfolio_var: V=%s σ=%.4f z=%s horizon=%s → %s",
            total,
            volatility,
            z,
            horizon_days,
            level,
        )
        return {
            "portfolio_value": quantize(total, places),
            "portfolio_volatility": volatility,
            "daily_volatility": daily_vol,
            "period_volatility": period_vol,
            "daily_var": quantize(daily_var, places),
            "period_var": quantize(period_var, places),
            "confidence_level": confidence,
            "horizon_days": horizon_days,
            "risk_level": level,
        }

    # ── Sharpe ───────────────────────────────────────────────────────────

    def sharpe_ratio(
        self,
        annual_return: float,
        risk_free_rate: Optional[float] = None,
        annual_volatility: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Excess return per unit of volatility (all inputs in percent).

        Rating: > 2 Excellent, > 1 Good, > 0.5 Fair, else Poor.
        """
        require_finite_number("annual_return", annual_return)
        rf = self.config.risk_free_rate if risk_free_rate is None else risk_free_rate
        require_finite_number("risk_free_rate", rf)
        if annual_volatility is None:
            raise ValidationError("annual_volatility is required", "annual_volatility", None)
        require_positive("annual_volatility", annual_volatility)
        # ratios are float even for Decimal inputs
        annual_return, rf = float(annual_return), float(rf)
        annual_volatility = float(annual_volatility)

        excess = annual_return - rf
        sharpe = ensure_finite(
            "sharpe_ratio", excess / annual_volatility, annual_return=annual_return
        )
        if sharpe > 2:
            rating = "Excellent"
        elif sharpe > 1:
            rating = "Good"
        elif sharpe > 0.5:
            rating = "Fair"
        else:
            rating = "Poor"
        return {
            "sharpe_ratio": sharpe,
            "excess_return": excess,
            "volatility": annual_volatility,
            "rating": rating,
        }

    # ── Drawdown / volatility from a price series ────────────────────────

    def max_drawdown(self, price_series: Sequence[float]) -> Dict[str, Any]:
        """
        Deepest peak-to-trough decline in one left-to-right scan.

        ``drawdown_period`` is the number of steps from the peak that produced
        the maximum drawdown to its trough. Fewer than two prices, or a series
        that never falls, give a drawdown of 0.
        """
        prices = _check_price_series(price_series)
        first = prices[0] if prices else None
        result = {
            "max_drawdown": 0.0,
            "drawdown_period": 0,
            "peak_value": first,
            "trough_value": first,
            "peak_index": 0 if prices else None,
            "trough_index": 0 if prices else None,
            "exceeds_threshold": False,
        }
        if len(prices) < 2:
            return result

        peak, peak_idx = prices[0], 0
        worst = 0.0
        for i in range(1, len(prices)):
            price = prices[i]
            if price > peak:
                peak, peak_idx = price, i
                continue
            drawdown = (peak - price) / peak
            if drawdown > worst:
                worst = drawdown
                result.update(
                    peak_value=peak,
                    trough_value=price,
                    peak_index=peak_idx,
                    trough_index=i,
                    drawdown_period=i - peak_idx,
                )

        result["max_drawdown"] = worst
        result["exceeds_threshold"] = worst > self.config.max_drawdown_threshold
        return result

    @staticmethod
    def historical_volatility(
        price_series: Sequence[float], window: Optional[int] = None
    ) -> float:
        """
        Annualized volatility of simple returns: stdev(returns[-window:]) · √365.
        """
        prices = _check_price_series(price_series)
        if len(prices) < 3:
            raise ValidationError(
                "historical_volatility needs at least 3 prices", "price_series", len(prices)
            )
        returns = [(prices[i] - prices[i - 1]) / prices[i - 1] for i in range(1, len(prices))]
        if window is not None:
            require_positive_int("window", window)
            if window < 2:
                raise ValidationError("window must cover at least 2 returns", "window", window)
            returns = returns[-window:]
        return ensure_finite(
            "historical_volatility", stdev(returns) * math.sqrt(DAYS_PER_YEAR)
        )

    # ── Concentration / correlation ──────────────────────────────────────

    def concentration_risk(self, portfolio: Portfolio) -> Dict[str, Any]:
        """Herfindahl index Σ wᵢ²: > 0.5 High, > 0.25 Medium, else Low."""
        portfolio = _as_portfolio(portfolio)
        weights = portfolio.weights()
        hhi = sum(w * w for w in weights)
        if hhi > 0.5:
            level = "High"
        elif hhi > 0.25:
            level = "Medium"
        else:
            level = "Low"
        return {
            "score": hhi,
            "level": level,
            "effective_positions": 1 / hhi if hhi > 0 else 0.0,
        }

    def correlation_risk(
        self, portfolio: Portfolio, correlations: CorrelationInput = None
    ) -> Dict[str, Any]:
        """
        Max and mean |ρ| over every unordered pair of positions.

        Level: High when any |ρ| > 0.8, otherwise the three-tier score scheme
        applied to the mean.
        """
        portfolio = _as_portfolio(portfolio)
        table = _as_table(correlations)
        weights = portfolio.weights()
        positions = portfolio.positions

        max_corr = 0.0
        total_corr = 0.0
        pair_count = 0
        for i in range(len(positions)):
            for j in range(i + 1, len(positions)):
                rho = abs(table.get(positions[i].asset, positions[j].asset))
                max_corr = max(max_corr, rho)
                total_corr += rho
                pair_count += 1
        avg_corr = total_corr / pair_count if pair_count else 0.0

        # Σ wᵢσᵢ / σ_p — 1.0 means no diversification benefit
        weighted_vol = sum(w * p.effective_volatility for w, p in zip(weights, positions))
        variance = self._variance(portfolio, weights, table)
        port_vol = math.sqrt(variance) if variance > 0 else 0.0
        diversification = weighted_vol / port_vol if port_vol > 0 else 1.0

        level = "High" if max_corr > 0.8 else self.risk_level_from_score(avg_corr)
        return {
            "max_correlation": max_corr,
            "average_correlation": avg_corr,
            "pair_count": pair_count,
            "diversification_ratio": diversification,
            "level": level,
        }

    # ── Liquidity ────────────────────────────────────────────────────────

    def liquidity_risk(self, portfolio: Portfolio) -> Dict[str, Any]:
        """
        Value-weighted liquidity score (0 … 1) from each asset's daily volume
        relative to ``config.liquidity_threshold``.

        Level: score ≥ 0.7 Low, ≥ 0.4 Medium, else High.
        """
        portfolio = _as_portfolio(portfolio)
        weights = portfolio.weights()
        threshold = self.config.liquidity_threshold
        places = self.config.precision

        positions = []
        score = 0.0
        for weight, pos in zip(weights, portfolio.positions):
            volume = pos.daily_volume or 0
            pos_score = min(1.0, float(volume) / threshold) if volume else 0.0
            score += weight * pos_score
            days = None
            if volume:
                with money_context("liquidity_risk", asset=pos.asset):
                    days = float(pos.value / (to_decimal(volume) * LIQUIDATION_VOLUME_SHARE))
            positions.append(
                {
                    "asset": pos.asset,
                    "value": quantize(pos.value, places),
                    "score": pos_score,
                    "days_to_liquidate": days,
                }
            )

        if score >= 0.7:
            level = "Low"
        elif score >= 0.4:
            level = "Medium"
        else:
            level = "High"
        return {"score": score, "level": level, "positions": positions}

    # ── Composite views ──────────────────────────────────────────────────

    def var_by_confidence(
        self,
        portfolio: Portfolio,
        correlations: CorrelationInput = None,
        horizon_days: int = 1,
    ) -> Dict[str, Any]:
        """
        Period VaR at every tabulated confidence level.

        Keyed "90%" / "95%" / "99%"; each entry carries the VaR amount and
        the same amount as a percentage of portfolio value.
        """
        portfolio = _as_portfolio(portfolio)
        table = _as_table(correlations)
        total = portfolio.total_value
        places = self.config.precision
        levels = {}
        for confidence in sorted(Z_SCORES):
            var = self.portfolio_var(portfolio, table, confidence, horizon_days)
            with money_context("var_by_confidence"):
                percentage = float(var["period_var"] / total * 100)
            levels[f"{round(confidence * 100)}%"] = {
                "confidence_level": confidence,
                "var": var["period_var"],
                "percentage": percentage,
            }
        return {
            "portfolio_value": quantize(total, places),
            "horizon_days": horizon_days,
            "levels": levels,
        }

    def overall_risk(
        self, portfolio: Portfolio, correlations: CorrelationInput = None
    ) -> Dict[str, Any]:
        """
        Composite 0 … 1 score, the mean of three components:

          var_95             daily 95 % VaR as a fraction of portfolio value
          illiquidity        1 − liquidity score
          concentration      Herfindahl index

        Level follows risk_level_from_score.
        """
        portfolio = _as_portfolio(portfolio)
        var = self.portfolio_var(portfolio, correlations, confidence_level=0.95)
        with money_context("overall_risk"):
            var_share = float(var["daily_var"] / portfolio.total_value)
        liquidity = self.liquidity_risk(portfolio)["score"]
        concentration = self.concentration_risk(portfolio)["score"]

        score = (var_share + (1 - liquidity) + concentration) / 3
        return {
            "score": score,
            "level": self.risk_level_from_score(score),
            "components": {
                "var_95": var_share,
                "liquidity_score": liquidity,
                "concentration": concentration,
            },
        }
