"""
Report Assembly — compose engine outputs into one analysis dict
===============================================================

No numerics of its own: every figure comes from YieldEngine,
ImpermanentLossEngine, RiskEngine or AllocationOptimizer.

Live data (pool state, holdings, price history) belongs to an external
``SnapshotProvider``. ``assemble_from_provider`` resolves every snapshot
before the first engine runs, so a failing provider never leaves a
half-computed report behind.
"""

import logging
from datetime import datetime, timezone
from typing import (
    Any,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from defi_analytics.allocation import AllocationConstraints, AllocationOptimizer
from defi_analytics.central_config import DEFAULT_CONFIG, AnalyticsConfig
from defi_analytics.impermanent_loss import ImpermanentLossEngine
from defi_analytics.models import Portfolio, PoolState, Scenario, Strategy
from defi_analytics.risk import CorrelationInput, RiskEngine
from defi_analytics.yield_math import YieldEngine

logger = logging.getLogger(__name__)


@runtime_checkable
class SnapshotProvider(Protocol):
    """Source of market snapshots; implemented outside this package."""

    def pool_state(self) -> PoolState:
        ...

    def portfolio(self) -> Portfolio:
        ...

    def price_series(self) -> Sequence[float]:
        ...


class ReportAssembler:
    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.yield_engine = YieldEngine(self.config)
        self.il_engine = ImpermanentLossEngine(self.config)
        self.risk_engine = RiskEngine(self.config)
        self.optimizer = AllocationOptimizer(self.config)

    def assemble(
        self,
        yield_params: Optional[Mapping[str, Any]] = None,
        pool: Optional[PoolState] = None,
        scenarios: Optional[Sequence[Scenario]] = None,
        portfolio: Optional[Portfolio] = None,
        correlations: CorrelationInput = None,
        price_series: Optional[Sequence[float]] = None,
        strategies: Optional[Iterable[Strategy]] = None,
        constraints: Optional[AllocationConstraints] = None,
    ) -> Dict[str, Any]:
        """
        Build the report sections whose inputs were supplied.

        - ``yield``             ← yield_params (farming_yield_from_params)
        - ``impermanent_loss``  ← pool (+ scenarios)
        - ``risk``              ← portfolio (+ correlations) and / or price_series
        - ``allocation``        ← strategies (+ constraints)
        """
        report: Dict[str, Any] = {}

        if yield_params is not None:
            report["yield"] = self.yield_engine.farming_yield_from_params(yield_params)

        if pool is not None:
            report["impermanent_loss"] = self.il_engine.advanced_impermanent_loss(
                pool, scenarios
            )

        risk: Dict[str, Any] = {}
        if portfolio is not None:
            risk["value_at_risk"] = self.risk_engine.portfolio_var(portfolio, correlations)
            risk["var_by_confidence"] = self.risk_engine.var_by_confidence(portfolio, correlations)
            risk["overall"] = self.risk_engine.overall_risk(portfolio, correlations)
            risk["concentration"] = self.risk_engine.concentration_risk(portfolio)
            risk["correlation"] = self.risk_engine.correlation_risk(portfolio, correlations)
            risk["liquidity"] = self.risk_engine.liquidity_risk(portfolio)
        if price_series is not None:
            risk["max_drawdown"] = self.risk_engine.max_drawdown(price_series)
            if len(price_series) >= 3:
                risk["historical_volatility"] = self.risk_engine.historical_volatility(
                    price_series
                )
        if risk:
            report["risk"] = risk

        if strategies is not None:
            report["allocation"] = self.optimizer.optimize(strategies, constraints)

        report["generated_at"] = datetime.now(timezone.utc).isoformat()
        logger.debug("assembled report sections: %s", sorted(report))
        return report

    def assemble_from_provider(
        self,
        provider: SnapshotProvider,
        scenarios: Optional[Sequence[Scenario]] = None,
        correlations: CorrelationInput = None,
        yield_params: Optional[Mapping[str, Any]] = None,
        strategies: Optional[Iterable[Strategy]] = None,
        constraints: Optional[AllocationConstraints] = None,
    ) -> Dict[str, Any]:
        """Resolve all provider snapshots, then assemble."""
        pool = provider.pool_state()
        portfolio = provider.portfolio()
        prices = provider.price_series()
        if prices is not None:
            prices = tuple(prices)
        return self.assemble(
            yield_params=yield_params,
            pool=pool,
            scenarios=scenarios,
            portfolio=portfolio,
            correlations=correlations,
            price_series=prices,
            strategies=strategies,
            constraints=constraints,
        )
