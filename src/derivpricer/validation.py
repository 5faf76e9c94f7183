"""Model validation.

Cross-model benchmarking of a European vanilla (closed form against the
lattice and Monte Carlo) and convergence analysis of the numerical
methods as their resolution grows.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

import numpy as np

from .black_scholes import bs_price
from .config import DEFAULT_CONFIG, Model, PricingConfig
from .core import ExoticKind, OptionSpec
from .errors import InvalidInput
from .options import price_european

__all__ = [
    "cross_validate",
    "convergence_analysis",
    "put_call_gap",
]

_RESOLUTION = {
    Model.BINOMIAL: "lattice_steps",
    Model.MONTE_CARLO: "simulation_paths",
}


def _reference(spec: OptionSpec) -> float:
    return bs_price(spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend, spec.volatility, spec.kind)


def _check_vanilla(spec: OptionSpec) -> None:
    if spec.exotic is not ExoticKind.VANILLA or spec.style != "european":
        raise InvalidInput("model validation takes a European vanilla option", "exotic")


# ---------------------------------------------------------------------------
# Cross-model benchmarking
# ---------------------------------------------------------------------------

def cross_validate(
    spec: OptionSpec,
    config: PricingConfig = DEFAULT_CONFIG,
    *,
    models: Optional[list[Model]] = None,
) -> dict:
    """Price one European vanilla under several models.

    Parameters
    ----------
    spec : OptionSpec
    config : PricingConfig
        Shared settings (steps, paths, seed); ``model`` is overridden.
    models : list of Model, optional
        Subset of ``{BSM, BINOMIAL, MONTE_CARLO}``.  Default: all three.

    Returns
    -------
    dict
        One entry per model value (``"monte_carlo"`` maps to
        ``(price, std_error)``) plus ``"max_discrepancy"`` versus BSM.
    """
    _check_vanilla(spec)
    if models is None:
        models = [Model.BSM, Model.BINOMIAL, Model.MONTE_CARLO]

    results: dict = {}
    for model in models:
        cfg = config.model_copy(update={"model": Model(model), "compute_greeks": False})
        res = price_european(spec, cfg)
        results[cfg.model.value] = (res.price, res.std_error) if res.std_error is not None else res.price

    ref = _reference(spec)
    discs = []
    for key, value in results.items():
        if key == Model.BSM.value:
            continue
        p = value[0] if isinstance(value, tuple) else value
        discs.append(abs(p - ref))
    results["max_discrepancy"] = max(discs) if discs else 0.0
    return results


# ---------------------------------------------------------------------------
# Convergence analysis
# ---------------------------------------------------------------------------

def convergence_analysis(
    spec: OptionSpec,
    model: Model,
    values: list | np.ndarray,
    config: PricingConfig = DEFAULT_CONFIG,
    *,
    reference: Optional[float] = None,
) -> dict:
    """Error of a numerical method against a reference as resolution grows.

    Parameters
    ----------
    model : Model
        ``BINOMIAL`` (varies ``lattice_steps``) or ``MONTE_CARLO`` (varies
        ``simulation_paths``).
    values : array-like
        Resolutions to test.
    reference : float, optional
        True price.  Default: BSM closed form.

    Returns
    -------
    dict
        ``"params"``, ``"prices"``, ``"errors"``, ``"order"`` (estimated).
    """
    _check_vanilla(spec)
    model = Model(model)
    if model not in _RESOLUTION:
        raise InvalidInput(f"no resolution parameter for model {model.value}", "model")
    field = _RESOLUTION[model]
    values = [int(v) for v in values]
    if reference is None:
        reference = _reference(spec)

    prices = []
    for val in values:
        cfg = config.model_copy(update={"model": model, field: val, "compute_greeks": False})
        prices.append(price_european(spec, cfg).price)

    errors = [abs(p - reference) for p in prices]

    # error ~ C / v^order  =>  log(e) = -order * log(v) + const
    order = float("nan")
    valid = [(v, e) for v, e in zip(values, errors) if e > 0]
    if len(valid) >= 2:
        coeffs = np.polyfit(np.log([v for v, _ in valid]), np.log([e for _, e in valid]), 1)
        order = -float(coeffs[0])

    return {
        "params": values,
        "prices": prices,
        "errors": errors,
        "order": order,
    }


def put_call_gap(spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG) -> float:
    """``C - P - (S e^{-qT} - K e^{-rT})`` under the configured model."""
    _check_vanilla(spec)
    cfg = config.model_copy(update={"compute_greeks": False})
    call = price_european(replace(spec, kind="call"), cfg).price
    put = price_european(replace(spec, kind="put"), cfg).price
    forward = spec.spot * np.exp(-spec.dividend * spec.expiry) - spec.strike * np.exp(-spec.rate * spec.expiry)
    return float(call - put - forward)
