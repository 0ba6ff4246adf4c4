"""
Yield Engine — compounding, farming and fee-yield math
=======================================================

FORMULAS (every result is traceable to one of these):
─────────────────────────────────────────────────────
1. APR → APY (periodic compounding)
     APY = ((1 + APR/n)^n − 1)            n = compounds per year

2. Compound growth
     A = P · (1 + r/n)^(n·t)              t = years

3. Pool fee yield (pro-rata fee distribution)
     daily_fees  = volume × fee_rate / 365
     fee_APY     = daily_fees × 365 / TVL × 100

4. Compounding frequency vs. gas
     net(f) = P · APY(f) − gas × f         maximised over f ∈ {1, 4, 12, 52, 365}

Percentages in, percentages out: ``apr=12`` means 12 %.
Currency amounts are returned as ``Decimal`` quantized to
``config.precision`` places; APY figures are ``float``.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from defi_analytics.central_config import (
    COMPOUNDING_CANDIDATES,
    DAYS_PER_YEAR,
    DEFAULT_CONFIG,
    AnalyticsConfig,
)
from defi_analytics.errors import (
    CalculationError,
    ValidationError,
    ensure_finite,
    require_finite_number,
    require_fraction,
    require_non_negative,
    require_positive,
    require_positive_int,
)
from defi_analytics.money import money_context, quantize, to_decimal

logger = logging.getLogger(__name__)


class YieldEngine:
    """
    Pure yield calculations. Holds nothing but the immutable config, so one
    instance can be shared freely between threads.
    """

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or DEFAULT_CONFIG

    # ── APR / APY ────────────────────────────────────────────────────────

    def apy_from_apr(self, apr: float, compound_frequency: Optional[int] = None) -> float:
        """
        Convert a nominal APR (percent) to APY (percent).

        Formula: APY = ((1 + APR/100/n)^n − 1) × 100

        Examples:
          12 % APR, daily   (n=365) → 12.7475 % APY
          12 % APR, monthly (n=12)  → 12.6825 % APY
        """
        require_finite_number("apr", apr)
        if apr < 0:
            raise ValidationError("APR must be non-negative", "apr", apr)
        n = (
            self.config.default_compound_frequency
            if compound_frequency is None
            else require_positive_int("compound_frequency", compound_frequency)
        )
        try:
            apy = ((1 + apr / 100 / n) ** n - 1) * 100
        except OverflowError as exc:
            raise CalculationError(
                "apy_from_apr: overflow", "apy_from_apr", {"apr": apr, "n": n}
            ) from exc
        return ensure_finite("apy_from_apr", apy, apr=apr, compound_frequency=n)

    def compound_yield(
        self,
        principal: float,
        apy: float,
        compound_frequency: Optional[int] = None,
        years: float = 1,
    ) -> Dict[str, Any]:
        """
        Compound a principal at a periodic rate.

        Formula: A = P · (1 + apy/100/n)^(n·years)

        ``effective_apy`` is the realised annual growth of A over P and
        matches ``apy_from_apr(apy, n)``.
        """
        require_positive("principal", principal)
        require_non_negative("apy", apy)
        n = (
            self.config.default_compound_frequency
            if compound_frequency is None
            else require_positive_int("compound_frequency", compound_frequency)
        )
        require_positive("years", years)

        p = to_decimal(principal, "principal")
        with money_context("compound_yield", principal=principal, apy=apy, n=n, years=years):
            rate = to_decimal(apy, "apy") / 100 / n
            final = p * (1 + rate) ** (Decimal(n) * to_decimal(years, "years"))
            growth = (final / p) ** (1 / to_decimal(years, "years")) - 1
            effective_apy = float(growth * 100)

        final_amount = quantize(final, self.config.precision)
        logger.debug("compound_yield P=%s apy=%s n=%s years=%s → %s", p, apy, n, years, final_amount)
        return {
            "principal": p,
            "final_amount": final_amount,
            "total_gain": final_amount - p,
            "effective_apy": ensure_finite("compound_yield", effective_apy),
            "compound_frequency": n,
            "years": years,
        }

    # ── Farming ──────────────────────────────────────────────────────────

    def farming_yield(
        self,
        principal: float,
        apr: float,
        duration_days: float,
        compound_frequency: Optional[int] = None,
        fees: float = 0,
        impermanent_loss: float = 0,
    ) -> Dict[str, Any]:
        """
        Project a farming position over ``duration_days``.

        gross_yield = P · (1 + apr/100/n)^(n · days/365) − P
        net_yield   = gross_yield − fees − impermanent_loss   (may be negative)
        """
        require_positive("principal", principal)
        require_finite_number("apr", apr)
        if apr < 0:
            raise ValidationError("APR must be non-negative", "apr", apr)
        require_positive("duration_days", duration_days)
        n = (
            self.config.default_compound_frequency
            if compound_frequency is None
            else require_positive_int("compound_frequency", compound_frequency)
        )
        require_non_negative("fees", fees)
        require_non_negative("impermanent_loss", impermanent_loss)

        p = to_decimal(principal, "principal")
        with money_context("farming_yield", principal=principal, apr=apr, duration_days=duration_days):
            years = to_decimal(duration_days, "duration_days") / DAYS_PER_YEAR
            rate = to_decimal(apr, "apr") / 100 / n
            final = p * (1 + rate) ** (Decimal(n) * years)

        places = self.config.precision
        final_amount = quantize(final, places)
        with money_context("farming_yield"):
            gross = quantize(final - p, places)
        net = gross - to_decimal(fees, "fees") - to_decimal(impermanent_loss, "impermanent_loss")

        return {
            "principal": p,
            "final_amount": final_amount,
            "gross_yield": gross,
            "net_yield": net,
            "effective_apy": self.apy_from_apr(apr, n),
            "fees": to_decimal(fees, "fees"),
            "impermanent_loss": to_decimal(impermanent_loss, "impermanent_loss"),
            "duration_days": duration_days,
        }

    def farming_yield_from_params(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Same as farming_yield, taking a camelCase or snake_case parameter dict."""
        missing = [
            key
            for key, aliases in (
                ("principal", ("principal",)),
                ("apr", ("apr",)),
                ("duration_days", ("duration_days", "durationDays", "duration")),
            )
            if not any(a in params for a in aliases)
        ]
        if missing:
            raise ValidationError(
                f"Missing farming parameters: {', '.join(missing)}", missing[0], None
            )

        def pick(*keys, default=None):
            for k in keys:
                if k in params:
                    return params[k]
            return default

        return self.farming_yield(
            principal=params["principal"],
            apr=params["apr"],
            duration_days=pick("duration_days", "durationDays", "duration"),
            compound_frequency=pick("compound_frequency", "compoundFrequency"),
            fees=pick("fees", default=0),
            impermanent_loss=pick("impermanent_loss", "impermanentLoss", default=0),
        )

    # ── Liquidity pool fees ──────────────────────────────────────────────

    def pool_fee_yield(
        self,
        token0_amount: float,
        token1_amount: float,
        token0_price: float,
        token1_price: float,
        pool_fee_rate: float,
        trading_volume: float,
        timeframe_days: float = DAYS_PER_YEAR,
    ) -> Dict[str, Any]:
        """
        Fee yield of a two-token pool.

        Formula:
            total_value = amount0 × price0 + amount1 × price1
            daily_fees  = volume × fee_rate / 365
            annual_fees = daily_fees × 365
            fee_APY     = annual_fees / total_value × 100

        ``trading_volume`` is annual volume; ``timeframe_fees`` projects the
        daily fee rate over ``timeframe_days``.
        """
        for name, value in (
            ("token0_amount", token0_amount),
            ("token1_amount", token1_amount),
            ("token0_price", token0_price),
            ("token1_price", token1_price),
            ("trading_volume", trading_volume),
        ):
            require_non_negative(name, value)
        require_fraction("pool_fee_rate", pool_fee_rate)
        require_positive("timeframe_days", timeframe_days)

        with money_context("pool_fee_yield"):
            total_value = to_decimal(token0_amount) * to_decimal(token0_price) + to_decimal(
                token1_amount
            ) * to_decimal(token1_price)
            if total_value == 0:
                raise ValidationError(
                    "Pool total value must be greater than zero", "total_value", total_value
                )
            daily_fees = to_decimal(trading_volume) * to_decimal(pool_fee_rate) / DAYS_PER_YEAR
            annual_fees = daily_fees * DAYS_PER_YEAR
            fee_apy = float(annual_fees / total_value * 100)
            timeframe_fees = daily_fees * to_decimal(timeframe_days)

        places = self.config.precision
        return {
            "total_value": quantize(total_value, places),
            "daily_fees": quantize(daily_fees, places),
            "annual_fees": quantize(annual_fees, places),
            "fee_apy": ensure_finite("pool_fee_yield", fee_apy),
            "timeframe_days": timeframe_days,
            "timeframe_fees": quantize(timeframe_fees, places),
        }

    def position_fee_yield(
        self,
        principal: float,
        daily_volume: float,
        pool_fee_rate: float,
        pool_tvl: float,
    ) -> Dict[str, Any]:
        """
        A single LP's pro-rata share of pool fees.

        share = principal / TVL
        daily = volume × fee_rate × share
        APY   = daily × 365 / principal × 100
        """
        require_positive("principal", principal)
        require_non_negative("daily_volume", daily_volume)
        require_fraction("pool_fee_rate", pool_fee_rate)
        require_positive("pool_tvl", pool_tvl)

        p = to_decimal(principal, "principal")
        with money_context("position_fee_yield"):
            share = p / to_decimal(pool_tvl, "pool_tvl")
            daily = to_decimal(daily_volume) * to_decimal(pool_fee_rate) * share
            annual = daily * DAYS_PER_YEAR
            apy = float(annual / p * 100)

        places = self.config.precision
        return {
            "pool_share": float(share),
            "daily_earnings": quantize(daily, places),
            "monthly_earnings": quantize(daily * 30, places),
            "annual_earnings": quantize(annual, places),
            "apy": apy,
        }

    # ── Compounding vs gas ───────────────────────────────────────────────

    def optimal_compounding_frequency(
        self, apr: float, gas_cost_per_compound: float, principal: float
    ) -> Dict[str, Any]:
        """
        Pick the compounding frequency with the best yield net of gas.

        Candidates are tried from least to most frequent and only a strictly
        greater net yield replaces the current best, so ties resolve to the
        lower frequency.
        """
        require_finite_number("apr", apr)
        if apr < 0:
            raise ValidationError("APR must be non-negative", "apr", apr)
        require_non_negative("gas_cost_per_compound", gas_cost_per_compound)
        require_positive("principal", principal)

        p = to_decimal(principal, "principal")
        gas = to_decimal(gas_cost_per_compound, "gas_cost_per_compound")
        best_freq = None
        best_net = None
        candidates = []
        with money_context("optimal_compounding_frequency", apr=apr, gas=gas_cost_per_compound):
            for freq in COMPOUNDING_CANDIDATES:
                apy = to_decimal(self.apy_from_apr(apr, freq), "apy")
                net = p * apy / 100 - gas * freq
                candidates.append({"frequency": freq, "net_yield": quantize(net, self.config.precision)})
                if best_net is None or net > best_net:
                    best_net = net
                    best_freq = freq

        logger.debug(
            "optimal_compounding_frequency apr=%s gas=%s P=%s → f=%s",
            apr,
            gas_cost_per_compound,
            principal,
            best_freq,
        )
        return {
            "optimal_frequency": best_freq,
            "max_net_yield": quantize(best_net, self.config.precision),
            "candidates": candidates,
        }
