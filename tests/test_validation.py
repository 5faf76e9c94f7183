"""Tests for the model validation framework."""

import math

import pytest

from derivpricer.config import Model, PricingConfig
from derivpricer.core import OptionSpec
from derivpricer.errors import InvalidInput
from derivpricer.validation import convergence_analysis, cross_validate, put_call_gap

OPT = OptionSpec(spot=100.0, strike=100.0, expiry=1.0, rate=0.05, volatility=0.2)
SEEDED = PricingConfig(rng_seed=3)


class TestCrossValidate:
    def test_all_models_consistent(self):
        result = cross_validate(OPT, SEEDED)
        assert result["max_discrepancy"] < 0.5
        assert {"bsm", "binomial", "monte_carlo"} <= set(result)

    def test_subset_models(self):
        result = cross_validate(OPT, SEEDED, models=[Model.BSM, Model.BINOMIAL])
        assert "binomial" in result
        assert "monte_carlo" not in result

    def test_mc_returns_tuple(self):
        result = cross_validate(OPT, SEEDED, models=[Model.MONTE_CARLO])
        assert isinstance(result["monte_carlo"], tuple)
        assert len(result["monte_carlo"]) == 2

    def test_rejects_exotics(self):
        with pytest.raises(InvalidInput):
            cross_validate(OptionSpec(100.0, 100.0, 1.0, 0.05, 0.2, exotic="binary"))


class TestConvergenceAnalysis:
    def test_tree_convergence(self):
        result = convergence_analysis(OPT, Model.BINOMIAL, [50, 100, 200, 400])
        assert result["params"] == [50, 100, 200, 400]
        assert result["errors"][-1] < result["errors"][0]
        assert result["order"] > 0

    def test_monte_carlo_resolution(self):
        result = convergence_analysis(OPT, Model.MONTE_CARLO, [1_000, 4_000, 16_000], SEEDED)
        assert len(result["prices"]) == 3
        assert all(math.isfinite(p) for p in result["prices"])

    def test_explicit_reference(self):
        result = convergence_analysis(OPT, Model.BINOMIAL, [10, 20], reference=0.0)
        assert result["errors"] == pytest.approx(result["prices"])

    def test_model_without_resolution(self):
        with pytest.raises(InvalidInput):
            convergence_analysis(OPT, Model.BSM, [10, 20])


class TestPutCallGap:
    @pytest.mark.parametrize("model", [Model.BSM, Model.BINOMIAL])
    def test_parity_holds(self, model):
        assert put_call_gap(OPT, PricingConfig(model=model)) == pytest.approx(0.0, abs=1e-9)

    def test_monte_carlo_parity_within_noise(self):
        cfg = PricingConfig(model=Model.MONTE_CARLO, rng_seed=3, simulation_paths=40_000)
        assert abs(put_call_gap(OPT, cfg)) < 0.2
