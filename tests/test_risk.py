"""Tests for the bump-and-reprice risk engine and position risk metrics."""

import math
from dataclasses import replace

import numpy as np
import pytest
from scipy.stats import norm

from derivpricer.black_scholes import bs_greeks, bs_price
from derivpricer.config import PricingConfig
from derivpricer.core import CompoundTerms, MarketData, OptionSpec
from derivpricer.errors import InvalidInput
from derivpricer.options import price_option
from derivpricer.risk import (
    cvar_historical, numerical_greeks, probability_distribution, risk_metrics, scenario_grid,
    theta_decay, var_historical,
)
from derivpricer.strategy import price_strategy, straddle

OPT = OptionSpec(spot=100.0, strike=100.0, expiry=1.0, rate=0.05, volatility=0.2)
COMPOUND = OptionSpec(
    spot=100.0, strike=5.0, expiry=0.5, rate=0.05, volatility=0.2,
    exotic="compound", compound=CompoundTerms(inner_strike=100.0, inner_expiry=0.501),
)
DAILY = 1.0 / 252.0
Z99 = norm.ppf(0.99)


def _bs_pricer(spec):
    """Closed-form pricer with the ``OptionSpec -> float`` signature."""
    return bs_price(spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend, spec.volatility, spec.kind)


class TestNumericalGreeks:
    @pytest.mark.parametrize("kind", ["call", "put"])
    def test_vs_analytical_bs(self, kind):
        spec = replace(OPT, kind=kind)
        ng = numerical_greeks(_bs_pricer, spec)
        ag = bs_greeks(100.0, 100.0, 1.0, 0.05, 0.0, 0.2, kind)
        assert abs(ng["delta"] - ag["delta"]) < 0.005
        assert abs(ng["gamma"] - ag["gamma"]) < 0.002
        assert abs(ng["vega"] - ag["vega"]) < 0.5
        assert abs(ng["theta"] - ag["theta"]) < 0.05
        assert abs(ng["rho"] - ag["rho"]) < 0.5

    def test_all_keys(self):
        assert set(numerical_greeks(_bs_pricer, OPT)) == {"delta", "gamma", "vega", "theta", "rho"}

    def test_put_delta_negative(self):
        assert numerical_greeks(_bs_pricer, replace(OPT, kind="put"))["delta"] < 0

    def test_base_price_reused(self):
        calls = []

        def counting(spec):
            calls.append(spec)
            return _bs_pricer(spec)

        numerical_greeks(counting, OPT, base_price=_bs_pricer(OPT))
        assert OPT not in calls

    def test_one_sided_vega_at_zero_vol(self):
        ng = numerical_greeks(_bs_pricer, replace(OPT, strike=140.0, volatility=0.0))
        assert ng["vega"] >= 0.0

    def test_theta_one_sided_near_expiry(self):
        spec = replace(OPT, expiry=0.5 / 365.0)
        ng = numerical_greeks(_bs_pricer, spec)
        assert ng["theta"] < 0.0

    def test_custom_vol_accessors(self):
        seen = []

        def vol_set(spec, v):
            seen.append(v)
            return replace(spec, volatility=v)

        numerical_greeks(_bs_pricer, OPT, vol_get=lambda s: 0.3, vol_set=vol_set)
        assert seen == pytest.approx([0.303, 0.297])

    def test_theta_keeps_compound_expiry_gap(self):
        gaps = []

        def pricer(spec):
            gaps.append(spec.compound.inner_expiry - spec.expiry)
            return _bs_pricer(spec)

        ng = numerical_greeks(pricer, COMPOUND)
        assert gaps == pytest.approx([0.001] * len(gaps))
        assert math.isfinite(ng["theta"])


class TestScenarioGrid:
    def test_output_shape(self):
        spots = np.array([90.0, 100.0, 110.0])
        vols = np.array([0.15, 0.20, 0.25])
        result = scenario_grid(_bs_pricer, OPT, spots, vols)
        assert result["prices"].shape == (3, 3)
        assert result["pnl"][1, 1] == pytest.approx(0.0, abs=1e-12)

    def test_call_monotone_in_spot_and_vol(self):
        result = scenario_grid(_bs_pricer, OPT, np.linspace(80, 120, 5), np.array([0.1, 0.2, 0.3]))
        assert np.all(np.diff(result["prices"], axis=0) > 0)
        assert np.all(np.diff(result["prices"], axis=1) > 0)


class TestThetaDecay:
    def test_value_decays(self):
        result = theta_decay(_bs_pricer, OPT, days=30, step=5)
        np.testing.assert_array_equal(result["days"], [0, 5, 10, 15, 20, 25, 30])
        assert np.all(np.diff(result["prices"]) < 0)

    def test_stops_at_expiry(self):
        result = theta_decay(_bs_pricer, replace(OPT, expiry=10 / 365.0), days=30)
        assert result["days"][-1] == 10
        assert result["prices"][-1] == pytest.approx(0.0, abs=1e-6)

    def test_compound_decay_rolls_both_expiries(self):
        result = theta_decay(lambda s: s.compound.inner_expiry - s.expiry, COMPOUND, days=5)
        np.testing.assert_allclose(result["prices"], 0.001, rtol=1e-9)


@pytest.fixture
def priced():
    return price_option(OPT)


class TestRiskMetrics:
    def test_delta_normal_var(self, priced):
        m = risk_metrics(priced, OPT)
        exposure = priced.greeks.delta * 100.0 * 0.2 * math.sqrt(DAILY)
        assert m["value_at_risk"] == pytest.approx(Z99 * exposure)
        # the 2.33 desk rule of thumb
        assert m["value_at_risk"] == pytest.approx(2.33 * exposure, rel=2e-3)

    def test_expected_shortfall_beyond_var(self, priced):
        m = risk_metrics(priced, OPT)
        assert m["expected_shortfall"] > m["value_at_risk"]
        assert m["expected_shortfall"] / m["value_at_risk"] == pytest.approx(norm.pdf(Z99) / (0.01 * Z99))

    def test_var_scales_with_root_horizon(self, priced):
        one_day = risk_metrics(priced, OPT)["value_at_risk"]
        four_days = risk_metrics(priced, OPT, horizon=4 * DAILY)["value_at_risk"]
        assert four_days == pytest.approx(2.0 * one_day)

    def test_lower_confidence_lower_var(self, priced):
        assert risk_metrics(priced, OPT, confidence=0.95)["value_at_risk"] < risk_metrics(priced, OPT)["value_at_risk"]

    def test_risk_breakdown(self, priced):
        g = priced.greeks
        m = risk_metrics(priced, OPT)
        assert m["directional_risk"] == pytest.approx(abs(g.delta) * 100.0 * 0.2)
        assert m["volatility_risk"] == pytest.approx(abs(g.vega) * 0.2)
        assert m["time_decay_risk"] == pytest.approx(abs(g.theta) * DAILY)
        assert m["interest_rate_risk"] == pytest.approx(abs(g.rho) * 0.01)
        assert m["dividend_risk"] == pytest.approx(abs(g.higher["epsilon"]) * 0.01)
        assert m["delta"] == g.delta

    def test_strategy_position(self):
        market = MarketData(spot=100.0, rate=0.05, volatility=0.2)
        res = price_strategy(straddle(market, 100.0, 1.0, quantity=-1.0))
        m = risk_metrics(res, market)
        assert m["value_at_risk"] == pytest.approx(Z99 * abs(res.greeks.delta) * 100.0 * 0.2 * math.sqrt(DAILY))
        assert m["price"] == res.price

    def test_needs_greeks(self):
        res = price_option(OPT, PricingConfig(compute_greeks=False))
        with pytest.raises(InvalidInput) as exc:
            risk_metrics(res, OPT)
        assert exc.value.parameter == "greeks"

    @pytest.mark.parametrize("kw", [{"confidence": 1.0}, {"confidence": 0.0}, {"horizon": 0.0}])
    def test_bad_arguments(self, priced, kw):
        with pytest.raises(InvalidInput):
            risk_metrics(priced, OPT, **kw)


class TestHistoricalVaR:
    PNL = np.random.default_rng(0).standard_normal(200_000)

    def test_normal_quantile(self):
        assert var_historical(self.PNL) == pytest.approx(Z99, abs=0.03)

    def test_expected_shortfall(self):
        es = cvar_historical(self.PNL)
        assert es == pytest.approx(norm.pdf(Z99) / 0.01, abs=0.05)
        assert es > var_historical(self.PNL)

    def test_horizon_scaling(self):
        assert var_historical(self.PNL, horizon=4) == pytest.approx(2.0 * var_historical(self.PNL))
        assert cvar_historical(self.PNL, horizon=9) == pytest.approx(3.0 * cvar_historical(self.PNL))


class TestProbabilityDistribution:
    def test_mass_matches_lognormal_cdf(self):
        d = probability_distribution(OPT, n_points=2001)
        x, f = d["prices"], d["density"]
        mass = np.sum(0.5 * (f[1:] + f[:-1]) * np.diff(x))
        mu = 0.05 - 0.5 * 0.2 ** 2
        expected = norm.cdf((math.log(1.5) - mu) / 0.2) - norm.cdf((math.log(0.5) - mu) / 0.2)
        assert mass == pytest.approx(expected, abs=1e-5)

    def test_grid(self):
        d = probability_distribution(OPT)
        assert d["prices"][0] == pytest.approx(50.0)
        assert d["prices"][-1] == pytest.approx(150.0)
        assert len(d["density"]) == 101
        assert np.all(d["density"] > 0.0)

    def test_needs_volatility(self):
        with pytest.raises(InvalidInput):
            probability_distribution(replace(OPT, volatility=0.0))
