"""
DeFi Analytics — yield, impermanent-loss, risk and allocation engines.

The module-level functions below are bound to engines built with the
default ``AnalyticsConfig``. Construct the engines directly to use a
different configuration.
"""

from defi_analytics.allocation import (
    AllocationConstraints,
    AllocationOptimizer,
    optimize_allocation,
)
from defi_analytics.central_config import (
    DEFAULT_CONFIG,
    PROJECT_NAME,
    PROJECT_VERSION,
    AnalyticsConfig,
)
from defi_analytics.errors import AnalyticsError, CalculationError, ValidationError
from defi_analytics.impermanent_loss import DEFAULT_SCENARIOS, ImpermanentLossEngine
from defi_analytics.models import (
    AllocationResult,
    CorrelationTable,
    PoolState,
    Portfolio,
    Position,
    Scenario,
    Strategy,
)
from defi_analytics.report import ReportAssembler, SnapshotProvider
from defi_analytics.risk import RiskEngine
from defi_analytics.yield_math import YieldEngine

__version__ = PROJECT_VERSION

_yield = YieldEngine(DEFAULT_CONFIG)
_il = ImpermanentLossEngine(DEFAULT_CONFIG)
_risk = RiskEngine(DEFAULT_CONFIG)

apy_from_apr = _yield.apy_from_apr
compound_yield = _yield.compound_yield
farming_yield = _yield.farming_yield
pool_fee_yield = _yield.pool_fee_yield
position_fee_yield = _yield.position_fee_yield
optimal_compounding_frequency = _yield.optimal_compounding_frequency
impermanent_loss = _il.impermanent_loss
advanced_impermanent_loss = _il.advanced_impermanent_loss
portfolio_var = _risk.portfolio_var
sharpe_ratio = _risk.sharpe_ratio
max_drawdown = _risk.max_drawdown

__all__ = [
    "AllocationConstraints",
    "AllocationOptimizer",
    "AllocationResult",
    "AnalyticsConfig",
    "AnalyticsError",
    "CalculationError",
    "CorrelationTable",
    "DEFAULT_CONFIG",
    "DEFAULT_SCENARIOS",
    "ImpermanentLossEngine",
    "PROJECT_NAME",
    "PROJECT_VERSION",
    "PoolState",
    "Portfolio",
    "Position",
    "ReportAssembler",
    "RiskEngine",
    "Scenario",
    "SnapshotProvider",
    "Strategy",
    "ValidationError",
    "YieldEngine",
    "advanced_impermanent_loss",
    "apy_from_apr",
    "compound_yield",
    "farming_yield",
    "impermanent_loss",
    "max_drawdown",
    "optimal_compounding_frequency",
    "optimize_allocation",
    "pool_fee_yield",
    "portfolio_var",
    "position_fee_yield",
    "sharpe_ratio",
]
