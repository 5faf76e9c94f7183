"""Tests for the yield-curve layer."""

import math

import numpy as np
import pytest

from derivpricer.curves import (
    Interpolation, NelsonSiegelParams, YieldCurve, coupon_times, flattener, parallel_shift, steepener,
)
from derivpricer.errors import InvalidInput

TENORS = [0.5, 1.0, 2.0, 5.0, 10.0, 30.0]
RATES = [0.030, 0.032, 0.035, 0.038, 0.040, 0.042]
NS = NelsonSiegelParams(beta0=0.045, beta1=-0.015, beta2=0.01, tau=2.0)


@pytest.fixture
def linear():
    return YieldCurve(TENORS, RATES)


class TestConstruction:
    def test_rejects_unsorted_tenors(self):
        with pytest.raises(InvalidInput):
            YieldCurve([1.0, 0.5], [0.03, 0.03])

    def test_rejects_length_mismatch(self):
        with pytest.raises(InvalidInput):
            YieldCurve([1.0, 2.0], [0.03])

    def test_parametric_needs_params(self):
        with pytest.raises(InvalidInput):
            YieldCurve(method=Interpolation.NELSON_SIEGEL)

    def test_coupon_times_short_first_period(self):
        np.testing.assert_allclose(coupon_times(1.25, 2), [0.25, 0.75, 1.25])


class TestSpotRates:
    def test_linear_hits_nodes(self, linear):
        np.testing.assert_allclose(linear.spot_rate(np.array(TENORS)), RATES)

    def test_linear_midpoint(self, linear):
        assert linear.spot_rate(3.5) == pytest.approx(0.0365)

    def test_clamped_extrapolation(self, linear):
        assert linear.spot_rate(0.1) == pytest.approx(RATES[0])
        assert linear.spot_rate(50.0) == pytest.approx(RATES[-1])

    def test_cubic_hits_nodes(self):
        curve = YieldCurve(TENORS, RATES, Interpolation.CUBIC)
        np.testing.assert_allclose(curve.spot_rate(np.array(TENORS)), RATES, atol=1e-14)
        assert RATES[2] < curve.spot_rate(3.0) < RATES[3]

    def test_nelson_siegel_limits(self):
        curve = YieldCurve.parametric(NS)
        assert curve.spot_rate(1e-8) == pytest.approx(NS.beta0 + NS.beta1, abs=1e-6)
        assert curve.spot_rate(1000.0) == pytest.approx(NS.beta0, abs=1e-4)
        assert curve.long_rate() == NS.beta0

    def test_svensson_reduces_to_nelson_siegel(self):
        ns = YieldCurve.parametric(NS)
        sv = YieldCurve.parametric(NS, Interpolation.SVENSSON)
        assert sv.spot_rate(7.0) == pytest.approx(ns.spot_rate(7.0))

    def test_fit_recovers_parametric_curve(self):
        grid = np.array([0.25, 0.5, 1, 2, 3, 5, 7, 10, 20, 30], dtype=float)
        fitted = YieldCurve.fit(grid, NS.rates(grid))
        np.testing.assert_allclose(fitted.spot_rate(grid), NS.rates(grid), atol=2e-4)


class TestDerivedRates:
    def test_flat_discount_factor(self):
        curve = YieldCurve.flat(0.04)
        assert curve.discount_factor(2.0) == pytest.approx(1.04 ** -2)
        assert curve.discount_factor(2.0, frequency=0) == pytest.approx(math.exp(-0.08))

    def test_flat_forward_equals_rate(self):
        curve = YieldCurve.flat(0.04, compounding=2)
        assert curve.forward_rate(1.0, 3.0) == pytest.approx(0.04)

    def test_par_rate_of_flat_curve(self):
        curve = YieldCurve.flat(0.05)
        assert curve.par_rate(10.0, frequency=2) == pytest.approx(0.05, abs=1e-12)

    def test_upward_curve_forwards_above_spots(self, linear):
        assert linear.forward_rate(5.0, 10.0) > linear.spot_rate(10.0)

    def test_forward_rejects_reversed_interval(self, linear):
        with pytest.raises(InvalidInput):
            linear.forward_rate(2.0, 1.0)


class TestShifts:
    def test_parallel_shift(self, linear):
        moved = linear.shifted(0.01)
        assert moved.spot_rate(5.0) == pytest.approx(linear.spot_rate(5.0) + 0.01)
        np.testing.assert_allclose(parallel_shift(25)(np.array([1.0, 10.0])), 0.0025)

    def test_steepener_and_flattener(self, linear):
        steep = linear.reshaped(steepener(50))
        flat = linear.reshaped(flattener(50))
        assert steep.spot_rate(1.0) - linear.spot_rate(1.0) == pytest.approx(-0.005)
        assert steep.spot_rate(30.0) - linear.spot_rate(30.0) == pytest.approx(0.005)
        assert flat.spot_rate(30.0) - linear.spot_rate(30.0) == pytest.approx(-0.005)

    def test_reshaped_parametric_curve_resamples(self):
        moved = YieldCurve.parametric(NS).reshaped(parallel_shift(100))
        assert moved.method is Interpolation.CUBIC
        assert moved.spot_rate(5.0) == pytest.approx(float(NS.rates(5.0)) + 0.01, abs=1e-12)
