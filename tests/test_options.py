"""Tests for option pricing dispatch, exotic payoffs and implied volatility."""

import math
import threading

import pytest

from derivpricer.black_scholes import (
    binary_price, bs_greeks, bs_price, geometric_asian_price, quanto_price,
)
from derivpricer.config import Model, PricingConfig
from derivpricer.core import (
    AsianTerms, BarrierTerms, BinaryTerms, CompoundTerms, ExoticKind, HestonParams,
    JumpDiffusionParams, LookbackTerms, OptionSpec, QuantoTerms, SABRParams, SecondAsset,
)
from derivpricer.errors import Cancelled, InvalidInput
from derivpricer.numerics import normal_cdf
from derivpricer.options import (
    implied_volatility, price_american, price_european, price_exotic, price_option,
)

S0, K, T, r, q, sigma = 100.0, 100.0, 1.0, 0.05, 0.0, 0.20
SEED = 11
MC = PricingConfig(model=Model.MONTE_CARLO, rng_seed=SEED, simulation_paths=40_000)
PATHS = PricingConfig(rng_seed=SEED, simulation_paths=40_000, time_steps=50, compute_greeks=False)


def option(**kw):
    base = dict(spot=S0, strike=K, expiry=T, rate=r, volatility=sigma, dividend=q)
    base.update(kw)
    return OptionSpec(**base)


BS_CALL = bs_price(S0, K, T, r, q, sigma, "call")
BS_PUT = bs_price(S0, K, T, r, q, sigma, "put")


class TestOptionSpec:
    def test_rejects_negative_volatility(self):
        with pytest.raises(InvalidInput) as exc:
            option(volatility=-0.1)
        assert exc.value.parameter == "volatility"

    def test_american_exotic_rejected(self):
        with pytest.raises(InvalidInput):
            option(style="american", exotic="binary")

    def test_barrier_needs_terms(self):
        with pytest.raises(InvalidInput) as exc:
            option(exotic=ExoticKind.BARRIER)
        assert exc.value.parameter == "barrier"

    def test_compound_inner_expiry_after_outer(self):
        with pytest.raises(InvalidInput):
            option(exotic="compound", compound=CompoundTerms(100.0, 0.5))

    def test_floating_lookback_ignores_strike(self):
        spec = option(strike=0.0, exotic="lookback", lookback=LookbackTerms("floating"))
        assert spec.strike == 0.0

    def test_with_expiry_keeps_compound_gap(self):
        spec = option(strike=2.0, expiry=0.5, exotic="compound", compound=CompoundTerms(100.0, 0.75))
        moved = spec.with_expiry(0.25)
        assert moved.expiry == 0.25
        assert moved.compound.inner_expiry == pytest.approx(0.5)
        assert option().with_expiry(2.0).expiry == 2.0


class TestEuropeanVanilla:
    def test_black_scholes_with_greeks(self):
        res = price_option(option())
        assert res.model == "bsm"
        assert res.price == pytest.approx(BS_CALL)
        assert res.greeks.delta == pytest.approx(0.6368, abs=1e-4)
        assert "vanna" in res.greeks.higher
        assert res.intrinsic_value == 0.0
        assert res.time_value == pytest.approx(res.price)

    def test_greeks_can_be_skipped(self):
        assert price_option(option(), PricingConfig(compute_greeks=False)).greeks is None

    def test_binomial_close_to_black_scholes(self):
        res = price_option(option(kind="put"), PricingConfig(model=Model.BINOMIAL, lattice_steps=500))
        assert res.model == "binomial"
        assert abs(res.price - BS_PUT) < 0.02
        assert res.greeks.delta == pytest.approx(bs_greeks(S0, K, T, r, q, sigma, "put")["delta"], abs=0.01)

    def test_monte_carlo_within_error(self):
        res = price_option(option(), MC)
        assert res.model == "monte_carlo"
        assert abs(res.price - BS_CALL) < 4 * res.std_error
        assert res.ci_method == "normal"
        lo, hi = res.confidence_interval
        assert lo < res.price < hi
        assert res.greeks.delta == pytest.approx(bs_greeks(S0, K, T, r, q, sigma)["delta"], abs=0.02)

    def test_monte_carlo_reproducible(self):
        assert price_option(option(), MC) == price_option(option(), MC)

    def test_heston_without_volvol_is_black_scholes(self):
        spec = option(heston=HestonParams(v0=sigma ** 2, kappa=1.5, theta=sigma ** 2, xi=0.0, rho=-0.5))
        cfg = PricingConfig(model=Model.HESTON, rng_seed=SEED, simulation_paths=20_000, time_steps=20,
                            compute_greeks=False)
        res = price_option(spec, cfg)
        assert res.model == "heston"
        assert abs(res.price - BS_CALL) < 4 * res.std_error + 0.01

    def test_heston_needs_parameters(self):
        with pytest.raises(InvalidInput) as exc:
            price_option(option(), PricingConfig(model=Model.HESTON, rng_seed=SEED, simulation_paths=100))
        assert exc.value.parameter == "heston"

    def test_sabr_lognormal_without_volvol(self):
        spec = option(volatility=0.5, sabr=SABRParams(alpha=0.2, beta=1.0, rho=0.0, nu=0.0))
        res = price_option(spec, PricingConfig(model=Model.SABR))
        assert res.price == pytest.approx(BS_CALL)
        assert res.greeks.vega > 0.0

    def test_jump_diffusion_without_jumps(self):
        spec = option(jump=JumpDiffusionParams(intensity=0.0, mean=-0.1, volatility=0.2))
        res = price_option(spec, PricingConfig(model=Model.JUMP_DIFFUSION))
        assert res.price == pytest.approx(BS_CALL)

    def test_zero_volatility_prices_forward_intrinsic(self):
        res = price_option(option(strike=90.0, volatility=0.0), MC)
        assert res.price == pytest.approx(S0 - 90.0 * math.exp(-r * T))
        assert res.std_error is None
        assert res.greeks.delta == pytest.approx(1.0)
        assert res.greeks.gamma == 0.0

    def test_zero_expiry_prices_intrinsic(self):
        res = price_option(option(strike=90.0, expiry=0.0))
        assert res.price == pytest.approx(10.0)
        assert res.intrinsic_value == pytest.approx(10.0)
        assert res.greeks.delta == pytest.approx(1.0)
        assert res.greeks.theta == pytest.approx(-r * 90.0)

    def test_out_of_the_money_at_expiry_has_no_greeks(self):
        g = price_option(option(strike=110.0, expiry=0.0)).greeks
        assert (g.delta, g.gamma, g.vega, g.theta, g.rho) == (0.0, 0.0, 0.0, 0.0, 0.0)

    def test_cancellation(self):
        flag = threading.Event()
        flag.set()
        with pytest.raises(Cancelled):
            price_option(option(), MC, flag)

    def test_price_european_rejects_exotics(self):
        with pytest.raises(InvalidInput):
            price_european(option(exotic="binary"))


class TestAmerican:
    def test_put_worth_more_than_european(self):
        res = price_option(option(kind="put", style="american"))
        assert res.model == "binomial"
        assert res.price > BS_PUT
        assert res.greeks.delta < 0.0
        assert res.greeks.gamma > 0.0

    def test_lattice_used_for_any_model(self):
        spec = option(kind="put", style="american")
        assert price_option(spec, MC).price == pytest.approx(price_option(spec).price)

    def test_zero_volatility_has_no_vega(self):
        res = price_american(option(kind="put", style="american", strike=120.0, volatility=0.0))
        assert res.price >= 20.0
        assert res.greeks.vega == 0.0


class TestExotics:
    def test_barrier_in_out_parity(self):
        knock = dict(exotic="barrier")
        out = price_option(option(barrier=BarrierTerms(125.0, "up-and-out"), **knock), PATHS)
        inn = price_option(option(barrier=BarrierTerms(125.0, "up-and-in"), **knock), PATHS)
        assert out.model == "monte_carlo"
        assert abs(out.price + inn.price - BS_CALL) < 4 * (out.std_error + inn.std_error) + 0.05
        assert out.price < BS_CALL

    def test_barrier_rebate_adds_value(self):
        plain = price_option(option(exotic="barrier", barrier=BarrierTerms(90.0, "down-and-out")), PATHS)
        rebated = price_option(option(exotic="barrier", barrier=BarrierTerms(90.0, "down-and-out", 5.0)), PATHS)
        assert rebated.price > plain.price

    def test_geometric_asian_closed_form(self):
        spec = option(exotic="asian", asian=AsianTerms("geometric"))
        res = price_option(spec, PATHS)
        assert res.model == "bsm"
        assert res.std_error is None
        assert res.price == pytest.approx(geometric_asian_price(S0, K, T, r, q, sigma, "call", 50))

    def test_arithmetic_asian_above_geometric(self):
        arith = price_option(option(exotic="asian"), PATHS)
        geo = price_option(option(exotic="asian", asian=AsianTerms("geometric")), PATHS)
        assert arith.price > geo.price - 3 * arith.std_error
        assert arith.price < BS_CALL

    def test_floating_asian(self):
        res = price_option(option(strike=0.0, exotic="asian", asian=AsianTerms(strike_type="floating")), PATHS)
        assert 0.0 < res.price < BS_CALL

    def test_binary_closed_form(self):
        res = price_option(option(exotic="binary", binary=BinaryTerms("cash", 10.0)), PATHS)
        assert res.price == pytest.approx(binary_price(S0, K, T, r, q, sigma, "call", "cash", 10.0))

    def test_binary_simulated_under_monte_carlo(self):
        cfg = MC.model_copy(update={"compute_greeks": False})
        res = price_option(option(exotic="binary"), cfg)
        assert abs(res.price - binary_price(S0, K, T, r, q, sigma)) < 4 * res.std_error + 1e-3

    def test_floating_lookback_above_vanilla(self):
        res = price_option(option(strike=0.0, exotic="lookback"), PATHS)
        assert res.price > BS_CALL

    def test_fixed_lookback_above_vanilla(self):
        res = price_option(option(exotic="lookback", lookback=LookbackTerms("fixed")), PATHS)
        assert res.price > BS_CALL - 3 * res.std_error

    def test_compound_call_on_call(self):
        spec = option(strike=2.0, expiry=0.5, exotic="compound", compound=CompoundTerms(100.0, 1.0))
        res = price_option(spec, PATHS)
        assert BS_CALL - 2.0 * math.exp(-r * 0.5) - 3 * res.std_error < res.price
        assert res.price < BS_CALL + 3 * res.std_error

    def test_compound_needs_lognormal_model(self):
        spec = option(
            strike=2.0, expiry=0.5, exotic="compound", compound=CompoundTerms(100.0, 1.0),
            heston=HestonParams(0.04, 1.0, 0.04, 0.3, -0.5),
        )
        with pytest.raises(InvalidInput) as exc:
            price_option(spec, PATHS.model_copy(update={"model": Model.HESTON}))
        assert exc.value.parameter == "model"

    def test_spread_option_matches_margrabe(self):
        second = SecondAsset(spot=95.0, volatility=0.25, correlation=0.5)
        res = price_option(option(strike=0.0, exotic="spread", second_asset=second), PATHS)
        vol = math.sqrt(0.2 ** 2 + 0.25 ** 2 - 2 * 0.5 * 0.2 * 0.25)
        d1 = (math.log(S0 / 95.0) + 0.5 * vol * vol * T) / (vol * math.sqrt(T))
        margrabe = S0 * normal_cdf(d1) - 95.0 * normal_cdf(d1 - vol * math.sqrt(T))
        assert abs(res.price - margrabe) < 4 * res.std_error + 0.02

    def test_best_of_call_above_each_vanilla(self):
        second = SecondAsset(spot=100.0, volatility=0.3, correlation=0.3)
        res = price_option(option(exotic="rainbow", second_asset=second), PATHS)
        floor = max(BS_CALL, bs_price(100.0, K, T, r, 0.0, 0.3, "call"))
        assert res.price > floor - 3 * res.std_error

    def test_worst_of_call_below_each_vanilla(self):
        second = SecondAsset(spot=100.0, volatility=0.3, correlation=0.3, best=False)
        res = price_option(option(exotic="rainbow", second_asset=second), PATHS)
        assert res.price < BS_CALL + 3 * res.std_error

    def test_quanto_closed_form_and_simulation_agree(self):
        terms = QuantoTerms(fx_rate=1.5, fx_volatility=0.1, correlation=-0.3, foreign_rate=0.02)
        spec = option(exotic="quanto", quanto=terms)
        closed = price_option(spec, PATHS)
        simulated = price_option(spec, MC.model_copy(update={"compute_greeks": False}))
        expected = quanto_price(S0, K, T, r, 0.02, q, sigma, 0.1, -0.3, 1.5)
        assert closed.price == pytest.approx(expected)
        assert abs(simulated.price - expected) < 4 * simulated.std_error

    def test_exotic_greeks_by_bumping(self):
        spec = option(exotic="binary")
        res = price_exotic(spec)
        assert res.greeks.delta > 0.0
        assert res.greeks.vega != 0.0

    def test_price_exotic_rejects_vanilla(self):
        with pytest.raises(InvalidInput):
            price_exotic(option())

    def test_compound_greeks_with_expiries_a_day_apart(self):
        spec = option(strike=5.0, expiry=0.5, exotic="compound", compound=CompoundTerms(100.0, 0.501))
        res = price_option(spec, PricingConfig(rng_seed=SEED, simulation_paths=20_000))
        assert res.greeks is not None
        assert res.greeks.delta > 0.0
        assert math.isfinite(res.greeks.theta)


EXPIRED = PricingConfig(compute_greeks=False)


def expired(**kw):
    return option(expiry=0.0, **kw)


class TestExpiredExotics:
    def test_binary_pays_on_spot(self):
        assert price_option(expired(spot=110.0, exotic="binary"), EXPIRED).price == 1.0
        spec = expired(spot=90.0, kind="put", exotic="binary", binary=BinaryTerms("asset"))
        assert price_option(spec, EXPIRED).price == 90.0

    @pytest.mark.parametrize("barrier_type,level,expected", [
        ("up-and-out", 120.0, 10.0),
        ("up-and-out", 105.0, 2.0),
        ("up-and-in", 105.0, 10.0),
        ("up-and-in", 120.0, 2.0),
        ("down-and-out", 115.0, 2.0),
        ("down-and-in", 105.0, 2.0),
    ])
    def test_barrier_checked_against_spot(self, barrier_type, level, expected):
        spec = expired(spot=110.0, exotic="barrier", barrier=BarrierTerms(level, barrier_type, rebate=2.0))
        assert price_option(spec, EXPIRED).price == pytest.approx(expected)

    def test_asian_averages_the_spot(self):
        assert price_option(expired(spot=110.0, exotic="asian"), EXPIRED).price == pytest.approx(10.0)
        floating = expired(spot=110.0, exotic="asian", asian=AsianTerms(strike_type="floating"))
        assert price_option(floating, EXPIRED).price == 0.0

    def test_lookback_extremes_are_the_spot(self):
        assert price_option(expired(spot=110.0, exotic="lookback"), EXPIRED).price == 0.0
        fixed = expired(spot=110.0, exotic="lookback", lookback=LookbackTerms("fixed"))
        assert price_option(fixed, EXPIRED).price == pytest.approx(10.0)

    def test_compound_pays_on_inner_value(self):
        spec = expired(strike=5.0, exotic="compound", compound=CompoundTerms(100.0, 0.5))
        inner = bs_price(S0, 100.0, 0.5, r, q, sigma, "call")
        assert price_option(spec, EXPIRED).price == pytest.approx(max(inner - 5.0, 0.0))

    def test_compound_still_needs_lognormal_model(self):
        spec = expired(strike=5.0, exotic="compound", compound=CompoundTerms(100.0, 0.5))
        with pytest.raises(InvalidInput) as exc:
            price_option(spec, EXPIRED.model_copy(update={"model": Model.HESTON}))
        assert exc.value.parameter == "model"

    def test_two_asset_payoffs(self):
        best = expired(exotic="rainbow", second_asset=SecondAsset(spot=120.0, volatility=0.3))
        assert price_option(best, EXPIRED).price == pytest.approx(20.0)
        spread = expired(strike=5.0, exotic="spread", second_asset=SecondAsset(spot=90.0, volatility=0.3))
        assert price_option(spread, EXPIRED).price == pytest.approx(5.0)

    def test_quanto_converts_intrinsic(self):
        terms = QuantoTerms(fx_rate=1.5, fx_volatility=0.1, correlation=-0.3, foreign_rate=0.02)
        spec = expired(spot=110.0, exotic="quanto", quanto=terms)
        assert price_option(spec, EXPIRED).price == pytest.approx(15.0)

    def test_greeks_at_expiry(self):
        res = price_option(expired(spot=110.0, exotic="binary"), PricingConfig(rng_seed=SEED))
        assert res.price == 1.0
        assert res.greeks is not None


class TestImpliedVolatility:
    def test_black_scholes_round_trip(self):
        price = bs_price(S0, 110.0, 0.5, r, 0.01, 0.35, "put")
        spec = option(strike=110.0, expiry=0.5, dividend=0.01, kind="put")
        assert implied_volatility(price, spec) == pytest.approx(0.35, abs=1e-6)

    def test_binomial_round_trip(self):
        cfg = PricingConfig(model=Model.BINOMIAL, lattice_steps=200)
        spec = option(volatility=0.25)
        price = price_option(spec, cfg).price
        assert implied_volatility(price, option(), cfg) == pytest.approx(0.25, abs=1e-3)

    def test_american_round_trip(self):
        spec = option(kind="put", style="american", volatility=0.3)
        price = price_option(spec).price
        assert implied_volatility(price, option(kind="put", style="american")) == pytest.approx(0.3, abs=1e-3)

    def test_price_below_intrinsic_bound(self):
        lower = S0 - 80.0 * math.exp(-r * T)
        with pytest.raises(InvalidInput):
            implied_volatility(lower - 0.5, option(strike=80.0))

    def test_price_above_spot(self):
        with pytest.raises(InvalidInput):
            implied_volatility(S0 + 1.0, option())

    def test_zero_expiry(self):
        with pytest.raises(InvalidInput):
            implied_volatility(5.0, option(expiry=0.0))

    def test_non_positive_price(self):
        with pytest.raises(InvalidInput):
            implied_volatility(0.0, option())
