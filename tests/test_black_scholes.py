"""Tests for the Black-Scholes-Merton closed forms."""

import math

import numpy as np
import pytest

from derivpricer.black_scholes import (
    binary_price, bs_greeks, bs_higher_greeks, bs_price, geometric_asian_price,
    merton_jump_price, quanto_price, sabr_implied_vol,
)
from derivpricer.errors import InvalidInput

S0, K, T, r, q, sigma = 100.0, 100.0, 1.0, 0.05, 0.0, 0.20
ARGS = (105.0, 100.0, 0.75, 0.04, 0.02, 0.25)
H = 1e-4


def _bump(args, index, h):
    out = list(args)
    out[index] += h
    return tuple(out)


def _central(fn, args, index, key=None, kind="call"):
    up = fn(*_bump(args, index, H), kind)
    dn = fn(*_bump(args, index, -H), kind)
    if key is not None:
        up, dn = up[key], dn[key]
    return (up - dn) / (2 * H)


class TestPrices:
    def test_known_values(self):
        assert abs(bs_price(S0, K, T, r, q, sigma, "call") - 10.4506) < 1e-3
        assert abs(bs_price(S0, K, T, r, q, sigma, "put") - 5.5735) < 1e-3

    def test_put_call_parity(self):
        S, K_, T_, r_, q_, v = ARGS
        c = bs_price(*ARGS, "call")
        p = bs_price(*ARGS, "put")
        assert c - p == pytest.approx(S * math.exp(-q_ * T_) - K_ * math.exp(-r_ * T_), abs=1e-12)

    def test_zero_volatility_is_forward_intrinsic(self):
        assert bs_price(S0, 90.0, T, r, q, 0.0, "call") == pytest.approx(S0 - 90.0 * math.exp(-r))
        assert bs_price(S0, 90.0, T, r, q, 0.0, "put") == 0.0

    def test_zero_expiry_is_intrinsic(self):
        assert bs_price(S0, 90.0, 0.0, r, q, sigma, "call") == pytest.approx(10.0)

    def test_broadcasts(self):
        spots = np.array([90.0, 100.0, 110.0])
        px = bs_price(spots, K, T, r, q, sigma, "call")
        assert px.shape == (3,)
        assert np.all(np.diff(px) > 0)
        assert px[1] == pytest.approx(bs_price(100.0, K, T, r, q, sigma, "call"))

    def test_rejects_unknown_kind(self):
        with pytest.raises(InvalidInput):
            bs_price(S0, K, T, r, q, sigma, "straddle")


class TestGreeks:
    def test_atm_delta(self):
        assert bs_greeks(S0, K, T, r, q, sigma, "call")["delta"] == pytest.approx(0.6368, abs=1e-4)

    @pytest.mark.parametrize("kind", ["call", "put"])
    def test_first_order_match_finite_differences(self, kind):
        g = bs_greeks(*ARGS, kind)
        assert g["delta"] == pytest.approx(_central(bs_price, ARGS, 0, kind=kind), rel=1e-6)
        assert g["vega"] == pytest.approx(_central(bs_price, ARGS, 5, kind=kind), rel=1e-6)
        assert g["rho"] == pytest.approx(_central(bs_price, ARGS, 3, kind=kind), rel=1e-6)
        assert g["theta"] == pytest.approx(-_central(bs_price, ARGS, 2, kind=kind), rel=1e-6)
        assert g["gamma"] == pytest.approx(_central(bs_greeks, ARGS, 0, "delta", kind), rel=1e-6)

    def test_call_put_gamma_and_vega_agree(self):
        c, p = bs_greeks(*ARGS, "call"), bs_greeks(*ARGS, "put")
        assert c["gamma"] == pytest.approx(p["gamma"])
        assert c["vega"] == pytest.approx(p["vega"])


class TestHigherGreeks:
    @pytest.mark.parametrize("kind", ["call", "put"])
    def test_match_finite_differences(self, kind):
        h = bs_higher_greeks(*ARGS, kind)
        tol = dict(rel=1e-4, abs=1e-8)
        assert h["vanna"] == pytest.approx(_central(bs_greeks, ARGS, 5, "delta", kind), **tol)
        assert h["volga"] == pytest.approx(_central(bs_greeks, ARGS, 5, "vega", kind), **tol)
        assert h["charm"] == pytest.approx(-_central(bs_greeks, ARGS, 2, "delta", kind), **tol)
        assert h["speed"] == pytest.approx(_central(bs_greeks, ARGS, 0, "gamma", kind), **tol)
        assert h["zomma"] == pytest.approx(_central(bs_greeks, ARGS, 5, "gamma", kind), **tol)
        assert h["color"] == pytest.approx(-_central(bs_greeks, ARGS, 2, "gamma", kind), **tol)
        assert h["ultima"] == pytest.approx(_central(bs_higher_greeks, ARGS, 5, "volga", kind), **tol)
        assert h["epsilon"] == pytest.approx(_central(bs_price, ARGS, 4, kind=kind), **tol)


class TestExoticClosedForms:
    def test_geometric_asian_single_fixing_is_vanilla(self):
        assert geometric_asian_price(*ARGS, "call", n_fixings=1) == pytest.approx(bs_price(*ARGS, "call"))

    def test_geometric_asian_cheaper_than_vanilla(self):
        assert geometric_asian_price(S0, K, T, r, q, sigma, "call", 252) < bs_price(S0, K, T, r, q, sigma, "call")

    def test_binary_decomposition(self):
        asset = binary_price(*ARGS, "call", payout="asset")
        cash = binary_price(*ARGS, "call", payout="cash", cash=1.0)
        assert asset - ARGS[1] * cash == pytest.approx(bs_price(*ARGS, "call"))

    def test_binary_call_plus_put_is_bond(self):
        S, K_, T_, r_, q_, v = ARGS
        total = binary_price(*ARGS, "call") + binary_price(*ARGS, "put")
        assert total == pytest.approx(math.exp(-r_ * T_))

    def test_quanto_without_fx_risk(self):
        S, K_, T_, r_, q_, v = ARGS
        px = quanto_price(S, K_, T_, r_, r_, q_, v, 0.0, 0.5, 1.0, "call")
        assert px == pytest.approx(bs_price(*ARGS, "call"))

    def test_quanto_scales_with_fx_rate(self):
        S, K_, T_, r_, q_, v = ARGS
        one = quanto_price(S, K_, T_, r_, 0.01, q_, v, 0.1, -0.3, 1.0)
        two = quanto_price(S, K_, T_, r_, 0.01, q_, v, 0.1, -0.3, 2.0)
        assert two == pytest.approx(2.0 * one)

    def test_merton_without_jumps_is_black_scholes(self):
        px = merton_jump_price(*ARGS, "put", lam=0.0, mJ=-0.1, sJ=0.2)
        assert px == pytest.approx(bs_price(*ARGS, "put"))

    def test_merton_jumps_add_value_out_of_the_money(self):
        base = bs_price(S0, 70.0, T, r, q, sigma, "put")
        assert merton_jump_price(S0, 70.0, T, r, q, sigma, "put", lam=1.0, mJ=-0.1, sJ=0.2) > base

    @pytest.mark.parametrize("strike", [80.0, 100.0, 125.0])
    def test_sabr_lognormal_without_volvol(self, strike):
        assert sabr_implied_vol(100.0, strike, 1.0, 0.3, 1.0, -0.3, 0.0) == pytest.approx(0.3)

    def test_sabr_skew(self):
        low = sabr_implied_vol(100.0, 80.0, 1.0, 0.3, 1.0, -0.5, 0.5)
        high = sabr_implied_vol(100.0, 120.0, 1.0, 0.3, 1.0, -0.5, 0.5)
        assert low > high
