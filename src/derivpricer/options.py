"""Options pricing engine.

Routes an :class:`~derivpricer.core.OptionSpec` to a closed form, the CRR
lattice or Monte Carlo according to its exercise style, payoff family and
``PricingConfig.model``:

* American vanilla: binomial lattice.
* European vanilla: BSM, binomial, GBM / Heston Monte Carlo, SABR (Hagan
  vol into BSM) or the Merton jump series.
* Exotics: geometric Asian, binary and quanto closed forms under BSM;
  everything else is simulated with the model's path generator.

Zero volatility or zero time to expiry prices the discounted forward
intrinsic value; an expired exotic pays its payoff on the current spot.  Greeks are closed form for the BSM vanilla and
bump-and-reprice otherwise, with one seed shared by every bump.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from typing import Callable, Optional

import numpy as np

from .black_scholes import (
    binary_price,
    bs_greeks,
    bs_higher_greeks,
    bs_price,
    geometric_asian_price,
    merton_jump_price,
    quanto_price,
    sabr_implied_vol,
)
from .config import DEFAULT_CONFIG, Model, PricingConfig
from .core import CALL, AsianTerms, BinaryTerms, ExoticKind, LookbackTerms, OptionSpec
from .errors import InvalidInput
from .exotics import (
    asian_payoff,
    barrier_payoff,
    binary_payoff,
    compound_payoff,
    lookback_payoff,
    rainbow_payoff,
    spread_payoff,
    vanilla_payoff,
)
from .lattice import price_vanilla
from .montecarlo import SimulationSummary, simulate
from .numerics import RandomStream, solve_root
from .processes import correlated_gbm_paths, gbm_paths, heston_paths, merton_jump_paths, sabr_paths
from .results import Greeks, PricingResult
from .risk import numerical_greeks

logger = logging.getLogger(__name__)

__all__ = [
    "price_option",
    "price_european",
    "price_american",
    "price_exotic",
    "implied_volatility",
]

_LOGNORMAL = (Model.BSM, Model.BINOMIAL, Model.MONTE_CARLO)
_TERMINAL = (
    ExoticKind.VANILLA, ExoticKind.BINARY, ExoticKind.QUANTO,
    ExoticKind.COMPOUND, ExoticKind.RAINBOW, ExoticKind.SPREAD,
)
_TWO_ASSET = (ExoticKind.RAINBOW, ExoticKind.SPREAD)
_VOL_BRACKET = (1e-6, 5.0)

Valuation = tuple[float, Optional[SimulationSummary]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _model_params(spec: OptionSpec, model: Model):
    name = {Model.HESTON: "heston", Model.SABR: "sabr", Model.JUMP_DIFFUSION: "jump"}.get(model)
    if name is None:
        return None
    params = getattr(spec, name)
    if params is None:
        raise InvalidInput(f"model {model.value} needs OptionSpec.{name}", name)
    return params


def _degenerate(spec: OptionSpec, model: Model) -> bool:
    return spec.expiry == 0.0 or (spec.volatility == 0.0 and model in _LOGNORMAL)


def _forward_intrinsic_greeks(spec: OptionSpec) -> Greeks:
    # value is max(+-(S e^{-qT} - K e^{-rT}), 0): linear in S when in the money
    S, K, T, r, q = spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend
    sign = 1.0 if spec.kind == CALL else -1.0
    disc_q, disc_r = math.exp(-q * T), math.exp(-r * T)
    if sign * (S * disc_q - K * disc_r) <= 0.0:
        return Greeks()
    return Greeks(
        delta=sign * disc_q,
        theta=sign * (q * S * disc_q - r * K * disc_r),
        rho=sign * K * T * disc_r,
    )


def _seeded(config: PricingConfig) -> PricingConfig:
    """Config with a concrete seed so repeated simulations share random numbers."""
    if config.rng_seed is not None:
        return config
    seed = int(np.random.SeedSequence().generate_state(1, np.uint64)[0])
    return config.model_copy(update={"rng_seed": seed})


def _vol_accessors(spec: OptionSpec, model: Model):
    if model is Model.HESTON and spec.heston is not None:
        return (
            lambda s: math.sqrt(s.heston.v0),
            lambda s, v: replace(s, heston=replace(s.heston, v0=v * v)),
        )
    if model is Model.SABR and spec.sabr is not None:
        return (lambda s: s.sabr.alpha, lambda s, v: replace(s, sabr=replace(s.sabr, alpha=v)))
    return None, None


def _bumped_greeks(value: Callable[[OptionSpec], float], spec: OptionSpec, model: Model, base: float) -> Greeks:
    vol_get, vol_set = _vol_accessors(spec, model)
    return Greeks(**numerical_greeks(value, spec, vol_get=vol_get, vol_set=vol_set, base_price=base))


def _result(
    model: str,
    spec: OptionSpec,
    price: float,
    greeks: Optional[Greeks],
    summary: Optional[SimulationSummary] = None,
) -> PricingResult:
    intrinsic = spec.intrinsic if spec.exotic is ExoticKind.VANILLA else 0.0
    if summary is None:
        return PricingResult(
            model=model, price=price, intrinsic_value=intrinsic,
            time_value=price - intrinsic, greeks=greeks,
        )
    return PricingResult(
        model=model, price=price, intrinsic_value=intrinsic, time_value=price - intrinsic,
        greeks=greeks, std_error=summary.std_error,
        confidence_interval=summary.confidence_interval, ci_method=summary.ci_method,
    )


# ---------------------------------------------------------------------------
# Monte Carlo plumbing
# ---------------------------------------------------------------------------
def _paths(spec: OptionSpec, model: Model, stream: RandomStream, n: int, n_steps: int, antithetic: bool) -> np.ndarray:
    S, r, q, sigma, T = spec.spot, spec.rate, spec.dividend, spec.volatility, spec.expiry
    if model is Model.HESTON:
        h = _model_params(spec, model)
        return heston_paths(stream, S, r, q, h.v0, h.kappa, h.theta, h.xi, h.rho, T, n_steps, n, antithetic=antithetic)
    if model is Model.SABR:
        s = _model_params(spec, model)
        return sabr_paths(stream, S, r, q, s.alpha, s.beta, s.nu, s.rho, T, n_steps, n, antithetic=antithetic)
    if model is Model.JUMP_DIFFUSION:
        j = _model_params(spec, model)
        return merton_jump_paths(
            stream, S, r, q, sigma, T, n_steps, n,
            lam=j.intensity, mJ=j.mean, sJ=j.volatility, antithetic=antithetic,
        )
    return gbm_paths(stream, S, r, q, sigma, T, n_steps, n, antithetic=antithetic)


def _path_payoff(spec: OptionSpec, paths: np.ndarray) -> np.ndarray:
    K, kind, exotic = spec.strike, spec.kind, spec.exotic
    if exotic is ExoticKind.BARRIER:
        b = spec.barrier
        return barrier_payoff(paths, K, kind, b.level, b.barrier_type, b.rebate)
    if exotic is ExoticKind.ASIAN:
        a = spec.asian or AsianTerms()
        return asian_payoff(paths, K, kind, a.average, a.strike_type)
    if exotic is ExoticKind.LOOKBACK:
        lb = spec.lookback or LookbackTerms()
        return lookback_payoff(paths, kind, K, lb.strike_type)
    if exotic is ExoticKind.BINARY:
        b = spec.binary or BinaryTerms()
        return binary_payoff(paths, K, kind, b.payout, b.cash)
    return vanilla_payoff(paths[-1, :], K, kind)


def _require_lognormal(spec: OptionSpec, model: Model) -> None:
    if (spec.exotic in _TWO_ASSET or spec.exotic is ExoticKind.COMPOUND) and model not in _LOGNORMAL:
        raise InvalidInput(f"{spec.exotic.value} options are priced under lognormal dynamics only", "model")


def _sampler(spec: OptionSpec, config: PricingConfig) -> Callable[[RandomStream, int], np.ndarray]:
    """Discounted payoff sampler for one contract under ``config.model``."""
    model, exotic = config.model, spec.exotic
    disc = math.exp(-spec.rate * spec.expiry)
    antithetic = config.antithetic
    n_steps = 1 if exotic in _TERMINAL and model not in (Model.HESTON, Model.SABR) else config.time_steps

    _require_lognormal(spec, model)

    if exotic in _TWO_ASSET:
        a2 = spec.second_asset

        def two_asset(stream: RandomStream, n: int) -> np.ndarray:
            P = correlated_gbm_paths(
                stream, (spec.spot, a2.spot), spec.rate, (spec.dividend, a2.dividend),
                (spec.volatility, a2.volatility), a2.correlation, spec.expiry, 1, n, antithetic=antithetic,
            )
            S1, S2 = P[0, -1, :], P[1, -1, :]
            if exotic is ExoticKind.RAINBOW:
                return disc * rainbow_payoff(S1, S2, spec.strike, spec.kind, a2.best)
            return disc * spread_payoff(S1, S2, spec.strike, spec.kind)

        return two_asset

    if exotic is ExoticKind.COMPOUND:
        c = spec.compound
        remaining = c.inner_expiry - spec.expiry

        def compound(stream: RandomStream, n: int) -> np.ndarray:
            paths = _paths(spec, model, stream, n, 1, antithetic)
            return disc * compound_payoff(
                paths[-1, :], spec.strike, spec.kind, c.inner_strike, c.inner_kind,
                remaining, spec.rate, spec.dividend, spec.volatility,
            )

        return compound

    if exotic is ExoticKind.QUANTO:
        qt = spec.quanto
        adjusted = replace(
            spec,
            dividend=spec.dividend + spec.rate - qt.foreign_rate + qt.correlation * spec.volatility * qt.fx_volatility,
        )

        def quanto(stream: RandomStream, n: int) -> np.ndarray:
            paths = _paths(adjusted, model, stream, n, n_steps, antithetic)
            return disc * qt.fx_rate * vanilla_payoff(paths[-1, :], spec.strike, spec.kind)

        return quanto

    def single_asset(stream: RandomStream, n: int) -> np.ndarray:
        return disc * _path_payoff(spec, _paths(spec, model, stream, n, n_steps, antithetic))

    return single_asset


def _simulate(spec: OptionSpec, config: PricingConfig, cancel: Optional[threading.Event]) -> SimulationSummary:
    return simulate(
        _sampler(spec, config),
        n_paths=config.simulation_paths,
        seed=config.rng_seed,
        antithetic=config.antithetic,
        batch_size=config.batch_size,
        n_workers=config.n_workers,
        ci_method="normal",
        cancel=cancel,
    )


# ---------------------------------------------------------------------------
# Valuation by route
# ---------------------------------------------------------------------------
def _european_value(spec: OptionSpec, config: PricingConfig, cancel=None) -> Valuation:
    model = config.model
    S, K, T, r, q, sigma = spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend, spec.volatility
    if _degenerate(spec, model):
        return bs_price(S, K, T, r, q, 0.0, spec.kind), None
    if model is Model.BSM:
        return bs_price(S, K, T, r, q, sigma, spec.kind), None
    if model is Model.BINOMIAL:
        return price_vanilla(S, K, T, r, q, sigma, spec.kind, config.lattice_steps), None
    if model is Model.SABR:
        s = _model_params(spec, model)
        fwd = S * math.exp((r - q) * T)
        vol = sabr_implied_vol(fwd, K, T, s.alpha, s.beta, s.rho, s.nu)
        return bs_price(S, K, T, r, q, vol, spec.kind), None
    if model is Model.JUMP_DIFFUSION:
        j = _model_params(spec, model)
        return merton_jump_price(S, K, T, r, q, sigma, spec.kind, lam=j.intensity, mJ=j.mean, sJ=j.volatility), None
    summary = _simulate(spec, config, cancel)
    return summary.mean, summary


def _american_value(spec: OptionSpec, config: PricingConfig) -> float:
    if spec.expiry == 0.0:
        return spec.intrinsic
    return price_vanilla(
        spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend, spec.volatility,
        spec.kind, config.lattice_steps, american=True,
    )


def _exotic_closed_form(spec: OptionSpec, config: PricingConfig) -> Optional[float]:
    if config.model is not Model.BSM or spec.volatility == 0.0 or spec.expiry == 0.0:
        return None
    S, K, T, r, q, sigma = spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend, spec.volatility
    exotic = spec.exotic
    if exotic is ExoticKind.ASIAN:
        a = spec.asian or AsianTerms()
        if a.average == "geometric" and a.strike_type == "fixed":
            return geometric_asian_price(S, K, T, r, q, sigma, spec.kind, n_fixings=config.time_steps)
    elif exotic is ExoticKind.BINARY:
        b = spec.binary or BinaryTerms()
        return binary_price(S, K, T, r, q, sigma, spec.kind, payout=b.payout, cash=b.cash)
    elif exotic is ExoticKind.QUANTO:
        qt = spec.quanto
        return quanto_price(
            S, K, T, r, qt.foreign_rate, q, sigma, qt.fx_volatility, qt.correlation, qt.fx_rate, spec.kind,
        )
    return None


def _expired_value(spec: OptionSpec) -> float:
    """Exotic payoff at expiry: every observation is the current spot."""
    S = np.array([spec.spot])
    K, kind, exotic = spec.strike, spec.kind, spec.exotic
    if exotic in _TWO_ASSET:
        a2 = spec.second_asset
        S2 = np.array([a2.spot])
        if exotic is ExoticKind.RAINBOW:
            value = rainbow_payoff(S, S2, K, kind, a2.best)
        else:
            value = spread_payoff(S, S2, K, kind)
    elif exotic is ExoticKind.COMPOUND:
        c = spec.compound
        value = compound_payoff(
            S, K, kind, c.inner_strike, c.inner_kind, c.inner_expiry, spec.rate, spec.dividend, spec.volatility,
        )
    elif exotic is ExoticKind.QUANTO:
        value = spec.quanto.fx_rate * vanilla_payoff(S, K, kind)
    else:
        value = _path_payoff(spec, np.vstack([S, S]))
    return float(value[0])


def _exotic_value(spec: OptionSpec, config: PricingConfig, cancel=None) -> Valuation:
    closed = _exotic_closed_form(spec, config)
    if closed is not None:
        return closed, None
    if spec.expiry == 0.0:
        _require_lognormal(spec, config.model)
        return _expired_value(spec), None
    summary = _simulate(spec, config, cancel)
    return summary.mean, summary


# ---------------------------------------------------------------------------
# Public pricing entry points
# ---------------------------------------------------------------------------
def price_european(
    spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG, cancel: Optional[threading.Event] = None
) -> PricingResult:
    """European vanilla under ``config.model``."""
    if spec.exotic is not ExoticKind.VANILLA or spec.style != "european":
        raise InvalidInput("price_european takes a European vanilla option", "exotic")
    model = config.model
    logger.debug("european %s K=%g T=%g under %s", spec.kind, spec.strike, spec.expiry, model.value)

    cfg = _seeded(config) if model in (Model.MONTE_CARLO, Model.HESTON) else config
    price, summary = _european_value(spec, cfg, cancel)

    greeks = None
    if config.compute_greeks:
        if _degenerate(spec, model):
            greeks = _forward_intrinsic_greeks(spec)
        elif model is Model.BSM:
            args = (spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend, spec.volatility, spec.kind)
            greeks = Greeks(**bs_greeks(*args), higher=bs_higher_greeks(*args))
        else:
            greeks = _bumped_greeks(lambda s: _european_value(s, cfg, cancel)[0], spec, model, price)
    return _result(model.value, spec, price, greeks, summary)


def price_american(spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG) -> PricingResult:
    """American vanilla on the CRR lattice, whatever model is configured."""
    if spec.exotic is not ExoticKind.VANILLA:
        raise InvalidInput("american exercise is supported for vanilla options only", "style")
    if config.model not in (Model.BSM, Model.BINOMIAL):
        logger.debug("american exercise priced on the binomial lattice instead of %s", config.model.value)

    price = _american_value(spec, config)
    greeks = None
    if config.compute_greeks:
        # the tree has no arbitrage-free bump below zero volatility
        vol_set = (lambda s, v: s) if spec.volatility == 0.0 else None
        greeks = Greeks(**numerical_greeks(
            lambda s: _american_value(s, config), spec, vol_set=vol_set, base_price=price,
        ))
    return _result(Model.BINOMIAL.value, spec, price, greeks)


def price_exotic(
    spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG, cancel: Optional[threading.Event] = None
) -> PricingResult:
    """Path-dependent and multi-asset payoffs (closed form where BSM has one)."""
    if spec.exotic is ExoticKind.VANILLA:
        raise InvalidInput("price_exotic takes a non-vanilla option", "exotic")
    cfg = _seeded(config)
    price, summary = _exotic_value(spec, cfg, cancel)
    model = config.model.value
    if summary is not None and config.model in _LOGNORMAL:
        model = Model.MONTE_CARLO.value
    logger.debug("%s %s priced by %s", spec.exotic.value, spec.kind, "simulation" if summary else "closed form")

    greeks = None
    if config.compute_greeks:
        greeks = _bumped_greeks(lambda s: _exotic_value(s, cfg, cancel)[0], spec, config.model, price)
    return _result(model, spec, price, greeks, summary)


def price_option(
    spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG, cancel: Optional[threading.Event] = None
) -> PricingResult:
    """Price any option, dispatching on exercise style and payoff family."""
    if spec.style == "american":
        return price_american(spec, config)
    if spec.exotic is ExoticKind.VANILLA:
        return price_european(spec, config, cancel)
    return price_exotic(spec, config, cancel)


# ---------------------------------------------------------------------------
# Implied volatility
# ---------------------------------------------------------------------------
def _no_arbitrage_bounds(spec: OptionSpec) -> tuple[float, float]:
    S, K, T = spec.spot, spec.strike, spec.expiry
    fwd_spot = S * math.exp(-spec.dividend * T)
    disc_strike = K * math.exp(-spec.rate * T)
    if spec.kind == CALL:
        return max(fwd_spot - disc_strike, 0.0), fwd_spot
    return max(disc_strike - fwd_spot, 0.0), disc_strike


def implied_volatility(price: float, spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG) -> float:
    """Volatility that reproduces *price*.

    Newton on analytic vega for a European vanilla under BSM; for other
    models and exotics the full pricer is inverted with a numerical
    derivative.  Heston solves for ``sqrt(v0)`` and SABR for ``alpha``.
    The search is bracketed by ``[1e-6, 5]``.

    Raises
    ------
    InvalidInput
        Non-positive price, zero expiry, or a vanilla price outside its
        no-arbitrage bounds.
    NonConvergence
        No volatility in the bracket reproduces *price*.
    """
    if not (price > 0.0 and math.isfinite(price)):
        raise InvalidInput(f"option price must be positive, got {price}", "price")
    if spec.expiry == 0.0:
        raise InvalidInput("implied volatility needs a positive expiry", "expiry")

    vanilla = spec.exotic is ExoticKind.VANILLA
    if vanilla:
        lo, hi = _no_arbitrage_bounds(spec)
        if spec.style == "european" and not lo < price < hi:
            raise InvalidInput(f"price {price} outside no-arbitrage bounds ({lo:.6g}, {hi:.6g})", "price")

    S, K, T, r, q = spec.spot, spec.strike, spec.expiry, spec.rate, spec.dividend
    # Brenner-Subrahmanyam starting point
    x0 = min(max(math.sqrt(2.0 * math.pi / T) * price / S, 0.05), 2.0)

    if vanilla and spec.style == "european" and config.model is Model.BSM:
        result = solve_root(
            lambda v: bs_price(S, K, T, r, q, v, spec.kind) - price,
            x0,
            lambda v: bs_greeks(S, K, T, r, q, v, spec.kind)["vega"],
            tol=config.tolerance_abs,
            max_iter=config.max_iterations,
            bracket=_VOL_BRACKET,
            parameter="volatility",
        )
    else:
        cfg = _seeded(config).model_copy(update={"compute_greeks": False})
        vol_set = _vol_accessors(spec, config.model)[1] or (lambda s, v: replace(s, volatility=v))

        def objective(v: float) -> float:
            return price_option(vol_set(spec, v), cfg).price - price

        result = solve_root(
            objective, x0,
            tol=config.tolerance_abs,
            max_iter=config.max_iterations,
            bracket=_VOL_BRACKET,
            parameter="volatility",
        )
    logger.debug("implied vol %.6f after %d iterations (%s)", result.root, result.iterations, result.method)
    return result.root
