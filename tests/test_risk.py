"""
Test Suite — Portfolio Risk Metrics
====================================

Validates risk.py against hand-computed values:
  - Markowitz variance  σ²_p = Σ wᵢ²σᵢ² + 2Σ wᵢwⱼσᵢσⱼρᵢⱼ
  - Parametric VaR      V · σ_p/√365 · √h · z
  - Sharpe, Herfindahl, max drawdown, historical volatility, liquidity

Run:  python -m pytest tests/test_risk.py -v
"""

import math
from decimal import Decimal

import pytest

from defi_analytics.central_config import AnalyticsConfig
from defi_analytics.errors import ValidationError
from defi_analytics.models import CorrelationTable, Portfolio, Position
from defi_analytics.risk import RiskEngine


# ── Helpers ──────────────────────────────────────────────────────────────

def expected_var(value: float, sigma: float, z: float, horizon: int = 1) -> float:
    """Reference VaR: V · σ/√365 · √h · z."""
    return value * sigma / math.sqrt(365) * math.sqrt(horizon) * z


def two_asset_portfolio(vol_a=0.2, vol_b=0.4):
    return Portfolio.of([
        Position("A", amount=1, price=50, volatility=vol_a),
        Position("B", amount=1, price=50, volatility=vol_b),
    ])


@pytest.fixture
def engine():
    return RiskEngine()


@pytest.fixture
def eth_only():
    return Portfolio.of([Position("ETH", amount=10, price=2000, volatility=0.5)])


# ── Value at Risk ────────────────────────────────────────────────────────

class TestPortfolioVar:
    def test_single_asset(self, engine, eth_only):
        result = engine.portfolio_var(eth_only)
        assert result["portfolio_value"] == Decimal("20000")
        assert result["portfolio_volatility"] == pytest.approx(0.5)
        assert float(result["daily_var"]) == pytest.approx(expected_var(20000, 0.5, 1.645))
        assert result["risk_level"] == "Medium"  # ≈ 4.3 % of value

    @pytest.mark.parametrize("confidence,z", [(0.90, 1.282), (0.95, 1.645), (0.99, 2.326)])
    def test_z_table(self, engine, eth_only, confidence, z):
        result = engine.portfolio_var(eth_only, confidence_level=confidence)
        assert float(result["daily_var"]) == pytest.approx(expected_var(20000, 0.5, z))
        assert result["confidence_level"] == confidence

    def test_horizon_scales_with_sqrt_time(self, engine, eth_only):
        result = engine.portfolio_var(eth_only, horizon_days=10)
        assert float(result["period_var"]) == pytest.approx(float(result["daily_var"]) * math.sqrt(10))
        assert result["period_volatility"] == pytest.approx(result["daily_volatility"] * math.sqrt(10))
        assert result["horizon_days"] == 10

    def test_two_asset_explicit_correlation(self, engine):
        table = CorrelationTable({("A", "B"): 0.5})
        result = engine.portfolio_var(two_asset_portfolio(), table)
        # .25·.04 + .25·.16 + 2·.25·.2·.4·.5 = 0.07
        assert result["portfolio_volatility"] == pytest.approx(math.sqrt(0.07))

    def test_mapping_correlations_accepted(self, engine):
        result = engine.portfolio_var(two_asset_portfolio(), {"A-B": 0.5})
        assert result["portfolio_volatility"] == pytest.approx(math.sqrt(0.07))

    def test_default_correlation(self, engine):
        result = engine.portfolio_var(two_asset_portfolio())
        # .01 + .04 + 2·.25·.08·.3 = 0.062
        assert result["portfolio_volatility"] == pytest.approx(math.sqrt(0.062))

    def test_default_volatility(self, engine):
        portfolio = Portfolio.of([Position("X", amount=1, price=100)])
        result = engine.portfolio_var(portfolio)
        assert result["portfolio_volatility"] == pytest.approx(0.3)

    def test_zero_volatility_is_zero_risk(self, engine):
        portfolio = Portfolio.of([Position("USDC", amount=1000, price=1, volatility=0.0)])
        result = engine.portfolio_var(portfolio)
        assert result["daily_var"] == 0
        assert result["risk_level"] == "Low"

    def test_perfect_hedge(self, engine):
        portfolio = two_asset_portfolio(0.2, 0.2)
        result = engine.portfolio_var(portfolio, {("A", "B"): -1.0})
        assert result["portfolio_volatility"] == pytest.approx(0.0, abs=1e-7)
        assert float(result["daily_var"]) == pytest.approx(0.0, abs=1e-4)

    def test_diversification_lowers_var(self, engine):
        correlated = engine.portfolio_var(two_asset_portfolio(), {("A", "B"): 0.9})
        diversified = engine.portfolio_var(two_asset_portfolio(), {("A", "B"): 0.1})
        assert diversified["daily_var"] < correlated["daily_var"]

    def test_high_risk_level(self, engine):
        portfolio = Portfolio.of([Position("MEME", amount=1, price=100, volatility=1.5)])
        assert engine.portfolio_var(portfolio)["risk_level"] == "High"

    def test_low_risk_level(self, engine):
        portfolio = Portfolio.of([Position("WBTC", amount=1, price=100, volatility=0.2)])
        assert engine.portfolio_var(portfolio)["risk_level"] == "Low"

    def test_plain_position_dicts(self, engine):
        result = engine.portfolio_var([{"asset": "ETH", "amount": 10, "price": 2000, "volatility": 0.5}])
        assert result["portfolio_value"] == Decimal("20000")

    def test_empty_portfolio_raises(self, engine):
        with pytest.raises(ValidationError):
            engine.portfolio_var(Portfolio())

    def test_zero_value_portfolio_raises(self, engine):
        with pytest.raises(ValidationError):
            engine.portfolio_var(Portfolio.of([Position("ETH", amount=0, price=2000)]))

    def test_unknown_confidence_raises(self, engine, eth_only):
        with pytest.raises(ValidationError):
            engine.portfolio_var(eth_only, confidence_level=0.97)

    @pytest.mark.parametrize("horizon", [0, -1, 1.5])
    def test_bad_horizon_raises(self, engine, eth_only, horizon):
        with pytest.raises(ValidationError):
            engine.portfolio_var(eth_only, horizon_days=horizon)


# ── Sharpe ───────────────────────────────────────────────────────────────

class TestSharpeRatio:
    """S = (R − R_f) / σ"""

    @pytest.mark.parametrize("ret,expected,rating", [
        (25, 2.3, "Excellent"),
        (15, 1.3, "Good"),
        (8, 0.6, "Fair"),
        (2, 0.0, "Poor"),
        (-10, -1.2, "Poor"),
    ])
    def test_ratings(self, engine, ret, expected, rating):
        result = engine.sharpe_ratio(ret, 2, 10)
        assert result["sharpe_ratio"] == pytest.approx(expected)
        assert result["rating"] == rating

    def test_default_risk_free_rate(self, engine):
        result = engine.sharpe_ratio(15, annual_volatility=10)
        assert result["sharpe_ratio"] == pytest.approx(1.3)
        assert result["excess_return"] == pytest.approx(13)

    def test_configured_risk_free_rate(self):
        engine = RiskEngine(AnalyticsConfig(risk_free_rate=5.0))
        assert engine.sharpe_ratio(15, annual_volatility=10)["sharpe_ratio"] == pytest.approx(1.0)

    @pytest.mark.parametrize("vol", [0, -5, None])
    def test_non_positive_volatility_raises(self, engine, vol):
        with pytest.raises(ValidationError):
            engine.sharpe_ratio(15, 2, vol)


# ── Max Drawdown ─────────────────────────────────────────────────────────

class TestMaxDrawdown:
    def test_known_series(self, engine):
        result = engine.max_drawdown([100, 110, 105, 90, 95, 120, 80, 85])
        assert result["max_drawdown"] == pytest.approx(1 / 3)
        assert result["peak_value"] == 120
        assert result["trough_value"] == 80
        assert result["drawdown_period"] == 1
        assert result["exceeds_threshold"] is True

    def test_period_spans_peak_to_trough(self, engine):
        result = engine.max_drawdown([100, 90, 80, 120, 110])
        assert result["max_drawdown"] == pytest.approx(0.2)
        assert result["drawdown_period"] == 2
        assert result["peak_value"] == 100
        assert result["exceeds_threshold"] is False  # 0.2 is not above 0.2

    @pytest.mark.parametrize("series", [[1, 2, 3, 4], [5, 5, 5], [42]])
    def test_no_drawdown(self, engine, series):
        result = engine.max_drawdown(series)
        assert result["max_drawdown"] == 0
        assert result["drawdown_period"] == 0
        assert result["peak_value"] == series[0]
        assert result["trough_value"] == series[0]

    def test_empty_series(self, engine):
        result = engine.max_drawdown([])
        assert result["max_drawdown"] == 0
        assert result["peak_value"] is None

    def test_bounded(self, engine):
        result = engine.max_drawdown([100, 1, 50, 0.5])
        assert 0 <= result["max_drawdown"] < 1

    def test_configured_threshold(self):
        engine = RiskEngine(AnalyticsConfig(max_drawdown_threshold=0.5))
        result = engine.max_drawdown([100, 110, 105, 90, 95, 120, 80, 85])
        assert result["exceeds_threshold"] is False

    @pytest.mark.parametrize("series", [[100, 0, 50], [100, -5], [100, float("nan")]])
    def test_non_positive_price_raises(self, engine, series):
        with pytest.raises(ValidationError):
            engine.max_drawdown(series)


# ── Historical Volatility ────────────────────────────────────────────────

class TestHistoricalVolatility:
    def test_alternating_returns(self, engine):
        # returns +10 %, −10 % → sample stdev √0.02
        vol = engine.historical_volatility([100, 110, 99])
        assert vol == pytest.approx(math.sqrt(0.02) * math.sqrt(365))

    def test_constant_growth_zero_vol(self, engine):
        assert engine.historical_volatility([100, 110, 121]) == pytest.approx(0.0, abs=1e-12)

    def test_window_uses_latest_returns(self, engine):
        series = [100, 200, 50, 100, 110, 121]
        assert engine.historical_volatility(series, window=2) == pytest.approx(0.0, abs=1e-12)
        assert engine.historical_volatility(series) > 1

    def test_too_short_raises(self, engine):
        with pytest.raises(ValidationError):
            engine.historical_volatility([100, 110])

    def test_window_too_small_raises(self, engine):
        with pytest.raises(ValidationError):
            engine.historical_volatility([100, 110, 120], window=1)


# ── Concentration / Correlation ──────────────────────────────────────────

class TestConcentrationRisk:
    """H = Σ wᵢ²"""

    def test_single_asset(self, engine, eth_only):
        result = engine.concentration_risk(eth_only)
        assert result["score"] == pytest.approx(1.0)
        assert result["level"] == "High"

    def test_two_equal(self, engine):
        result = engine.concentration_risk(two_asset_portfolio())
        assert result["score"] == pytest.approx(0.5)
        assert result["level"] == "Medium"

    def test_four_equal(self, engine):
        portfolio = Portfolio.of([Position(sym, 1, 25) for sym in ("A", "B", "C", "D")])
        result = engine.concentration_risk(portfolio)
        assert result["score"] == pytest.approx(0.25)
        assert result["level"] == "Low"
        assert result["effective_positions"] == pytest.approx(4)

    def test_bounds(self, engine):
        portfolio = Portfolio.of([Position("A", 1, 90), Position("B", 1, 7), Position("C", 1, 3)])
        score = engine.concentration_risk(portfolio)["score"]
        assert 1 / 3 <= score <= 1


class TestCorrelationRisk:
    @pytest.fixture
    def three_assets(self):
        return Portfolio.of([Position(sym, 1, 100) for sym in ("A", "B", "C")])

    def test_high_pair_dominates(self, engine, three_assets):
        result = engine.correlation_risk(three_assets, {("A", "B"): 0.9})
        assert result["max_correlation"] == pytest.approx(0.9)
        assert result["average_correlation"] == pytest.approx(0.5)
        assert result["pair_count"] == 3
        assert result["level"] == "High"

    def test_default_correlations_low(self, engine, three_assets):
        result = engine.correlation_risk(three_assets)
        assert result["average_correlation"] == pytest.approx(0.3)
        assert result["level"] == "Low"

    def test_medium_average(self, engine, three_assets):
        table = {("A", "B"): 0.6, ("A", "C"): 0.6, ("B", "C"): 0.6}
        assert engine.correlation_risk(three_assets, table)["level"] == "Medium"

    def test_negative_correlation_uses_magnitude(self, engine, three_assets):
        result = engine.correlation_risk(three_assets, {("A", "B"): -0.85})
        assert result["max_correlation"] == pytest.approx(0.85)
        assert result["level"] == "High"

    def test_single_position(self, engine, eth_only):
        result = engine.correlation_risk(eth_only)
        assert result["pair_count"] == 0
        assert result["average_correlation"] == 0
        assert result["diversification_ratio"] == pytest.approx(1.0)

    def test_diversification_ratio(self, engine):
        result = engine.correlation_risk(two_asset_portfolio(), {("A", "B"): 0.5})
        # Σwσ = 0.3, σ_p = √0.07
        assert result["diversification_ratio"] == pytest.approx(0.3 / math.sqrt(0.07))
        assert result["diversification_ratio"] >= 1

    def test_bad_correlations_type(self, engine, eth_only):
        with pytest.raises(ValidationError):
            engine.correlation_risk(eth_only, [("A", "B", 0.5)])


# ── Liquidity ────────────────────────────────────────────────────────────

class TestLiquidityRisk:
    def test_mixed_liquidity(self, engine):
        portfolio = Portfolio.of([
            Position("ETH", 1, 1000, daily_volume=200_000),
            Position("SHIB", 1000, 1, daily_volume=None),
        ])
        result = engine.liquidity_risk(portfolio)
        assert result["score"] == pytest.approx(0.5)
        assert result["level"] == "Medium"
        eth, shib = result["positions"]
        assert eth["score"] == 1.0
        assert eth["days_to_liquidate"] == pytest.approx(0.05)
        assert shib["score"] == 0.0
        assert shib["days_to_liquidate"] is None

    def test_deep_liquidity_is_low_risk(self, engine):
        portfolio = Portfolio.of([Position("ETH", 1, 1000, daily_volume=10_000_000)])
        assert engine.liquidity_risk(portfolio)["level"] == "Low"

    def test_thin_liquidity_is_high_risk(self, engine):
        portfolio = Portfolio.of([Position("XYZ", 1, 1000, daily_volume=10_000)])
        result = engine.liquidity_risk(portfolio)
        assert result["score"] == pytest.approx(0.1)
        assert result["level"] == "High"

    def test_configured_threshold(self):
        engine = RiskEngine(AnalyticsConfig(liquidity_threshold=10_000))
        portfolio = Portfolio.of([Position("XYZ", 1, 1000, daily_volume=10_000)])
        assert engine.liquidity_risk(portfolio)["level"] == "Low"


class TestRiskLevelFromScore:
    @pytest.mark.parametrize("score,expected", [
        (0.0, "Low"), (0.4, "Low"), (0.41, "Medium"), (0.7, "Medium"), (0.71, "High"),
    ])
    def test_tiers(self, score, expected):
        assert RiskEngine.risk_level_from_score(score) == expected


# ── Degenerate correlations / numeric types ──────────────────────────────

class TestInconsistentCorrelations:
    def test_negative_variance_is_calculation_error(self, engine):
        from defi_analytics.errors import CalculationError

        portfolio = Portfolio.of([Position(sym, 1, 100, volatility=0.5) for sym in ("A", "B", "C")])
        table = {("A", "B"): -1.0, ("A", "C"): -1.0, ("B", "C"): -1.0}
        with pytest.raises(CalculationError) as exc_info:
            engine.portfolio_var(portfolio, table)
        assert exc_info.value.operation == "portfolio_var"


class TestSharpeInputs:
    def test_decimal_return(self, engine):
        result = engine.sharpe_ratio(Decimal("15"), None, 10)
        assert result["sharpe_ratio"] == pytest.approx(1.3)
        assert isinstance(result["excess_return"], float)

    def test_all_decimal(self, engine):
        result = engine.sharpe_ratio(Decimal("15"), Decimal("2"), Decimal("10"))
        assert result["rating"] == "Good"

    def test_higher_risk_free_rate_lowers_sharpe(self, engine):
        low_rf = engine.sharpe_ratio(10, 1, 5)["sharpe_ratio"]
        high_rf = engine.sharpe_ratio(10, 3, 5)["sharpe_ratio"]
        assert low_rf > high_rf


# ── VaR table / composite score ──────────────────────────────────────────

class TestVarByConfidence:
    def test_all_levels(self, engine, eth_only):
        result = engine.var_by_confidence(eth_only)
        assert list(result["levels"]) == ["90%", "95%", "99%"]
        assert result["portfolio_value"] == Decimal("20000")
        for entry in result["levels"].values():
            z = {0.90: 1.282, 0.95: 1.645, 0.99: 2.326}[entry["confidence_level"]]
            assert float(entry["var"]) == pytest.approx(expected_var(20000, 0.5, z))
            assert entry["percentage"] == pytest.approx(expected_var(100, 0.5, z))

    def test_increasing_with_confidence(self, engine):
        levels = engine.var_by_confidence(two_asset_portfolio(), horizon_days=5)["levels"]
        amounts = [levels[key]["var"] for key in ("90%", "95%", "99%")]
        assert amounts == sorted(amounts)
        assert amounts[0] < amounts[2]

    def test_matches_portfolio_var(self, engine, eth_only):
        single = engine.portfolio_var(eth_only, confidence_level=0.99, horizon_days=10)
        table = engine.var_by_confidence(eth_only, horizon_days=10)
        assert table["levels"]["99%"]["var"] == single["period_var"]


class TestOverallRisk:
    def test_concentrated_illiquid(self, engine, eth_only):
        result = engine.overall_risk(eth_only)
        var_share = expected_var(1, 0.5, 1.645)
        assert result["components"]["var_95"] == pytest.approx(var_share)
        assert result["components"]["liquidity_score"] == 0.0
        assert result["components"]["concentration"] == pytest.approx(1.0)
        assert result["score"] == pytest.approx((var_share + 1 + 1) / 3)
        assert result["level"] == "Medium"

    def test_diversified_liquid_stable(self, engine):
        portfolio = Portfolio.of([
            Position(sym, 25, 1, volatility=0.0, daily_volume=1_000_000)
            for sym in ("USDC", "USDT", "DAI", "FRAX")
        ])
        result = engine.overall_risk(portfolio)
        assert result["score"] == pytest.approx(0.25 / 3)
        assert result["level"] == "Low"

    def test_score_bounded(self, engine):
        portfolio = Portfolio.of([Position("MEME", 1, 100, volatility=3.0)])
        result = engine.overall_risk(portfolio)
        assert result["level"] == "High"
        assert 0 <= result["score"] <= 1
