"""Bump-and-reprice risk engine.

Provides numerical Greeks via central finite differences that work with
**any** ``OptionSpec -> float`` pricer, plus spot x vol scenario grids,
theta-decay profiles and delta-normal / historical VaR of a priced
position.  Simulation pricers must reuse one seed across bumps so the
differences see common random numbers.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Optional

import numpy as np
from scipy.stats import norm

from .core import OptionSpec
from .errors import InvalidInput
from .results import PricingResult

__all__ = [
    "numerical_greeks",
    "scenario_grid",
    "theta_decay",
    "risk_metrics",
    "var_historical",
    "cvar_historical",
    "probability_distribution",
]

Pricer = Callable[[OptionSpec], float]
VolGetter = Callable[[OptionSpec], float]
VolSetter = Callable[[OptionSpec, float], OptionSpec]

_DAY = 1.0 / 365.0


def _get_vol(spec: OptionSpec) -> float:
    return spec.volatility


def _set_vol(spec: OptionSpec, vol: float) -> OptionSpec:
    return replace(spec, volatility=vol)


# ---------------------------------------------------------------------------
# Numerical Greeks
# ---------------------------------------------------------------------------

def numerical_greeks(
    pricer: Pricer,
    spec: OptionSpec,
    *,
    bump_pct: float = 0.01,
    rate_bump: float = 1e-4,
    vol_get: Optional[VolGetter] = None,
    vol_set: Optional[VolSetter] = None,
    base_price: Optional[float] = None,
) -> dict[str, float]:
    """Compute Greeks via central finite differences on an arbitrary pricer.

    Parameters
    ----------
    pricer : callable
        ``pricer(spec) -> float``.
    spec : OptionSpec
        Base contract and market.
    bump_pct : float
        Relative bump for spot and volatility (vol bump floored at 1e-4).
    rate_bump : float
        Absolute rate bump.
    vol_get, vol_set : callable, optional
        Accessors for the volatility parameter a model actually reads
        (defaults to ``spec.volatility``).
    base_price : float, optional
        ``pricer(spec)`` if already known.

    Returns
    -------
    dict[str, float]
        Keys: ``delta``, ``gamma``, ``vega``, ``theta``, ``rho``.  Theta is per
        year of calendar time.
    """
    vol_get = vol_get or _get_vol
    vol_set = vol_set or _set_vol
    P0 = pricer(spec) if base_price is None else base_price

    # --- Delta & Gamma (spot bump) ---
    eps_S = bump_pct * spec.spot
    P_up = pricer(replace(spec, spot=spec.spot + eps_S))
    P_dn = pricer(replace(spec, spot=spec.spot - eps_S))
    delta = (P_up - P_dn) / (2.0 * eps_S)
    gamma = (P_up - 2.0 * P0 + P_dn) / (eps_S ** 2)

    # --- Vega (vol bump, one-sided at zero vol) ---
    sigma = vol_get(spec)
    eps_v = max(bump_pct * sigma, 1e-4)
    P_vup = pricer(vol_set(spec, sigma + eps_v))
    if sigma - eps_v > 0:
        vega = (P_vup - pricer(vol_set(spec, sigma - eps_v))) / (2.0 * eps_v)
    else:
        vega = (P_vup - P0) / eps_v

    # --- Theta (1-day bump of expiry, calendar time) ---
    P_long = pricer(spec.with_expiry(spec.expiry + _DAY))
    if spec.expiry > _DAY:
        P_short = pricer(spec.with_expiry(spec.expiry - _DAY))
        theta = (P_short - P_long) / (2.0 * _DAY)
    else:
        theta = (P0 - P_long) / _DAY

    # --- Rho (rate bump) ---
    P_rup = pricer(replace(spec, rate=spec.rate + rate_bump))
    P_rdn = pricer(replace(spec, rate=spec.rate - rate_bump))
    rho = (P_rup - P_rdn) / (2.0 * rate_bump)

    return {
        "delta": float(delta),
        "gamma": float(gamma),
        "vega": float(vega),
        "theta": float(theta),
        "rho": float(rho),
    }


# ---------------------------------------------------------------------------
# Scenario grid
# ---------------------------------------------------------------------------

def scenario_grid(
    pricer: Pricer,
    spec: OptionSpec,
    spot_range: np.ndarray,
    vol_range: np.ndarray,
) -> dict:
    """Evaluate a pricer across a 2-D (spot x vol) scenario grid.

    Returns
    -------
    dict
        ``"spot_values"``, ``"vol_values"``, ``"prices"`` (shape n_spot x n_vol)
        and ``"pnl"`` relative to the unshocked price.
    """
    spot_range = np.asarray(spot_range, dtype=float)
    vol_range = np.asarray(vol_range, dtype=float)
    prices = np.empty((len(spot_range), len(vol_range)))

    for i, s in enumerate(spot_range):
        for j, v in enumerate(vol_range):
            prices[i, j] = pricer(replace(spec, spot=float(s), volatility=float(v)))

    return {
        "spot_values": spot_range.copy(),
        "vol_values": vol_range.copy(),
        "prices": prices,
        "pnl": prices - pricer(spec),
    }


def theta_decay(pricer: Pricer, spec: OptionSpec, days: int = 30, step: int = 1) -> dict:
    """Price as calendar time passes with everything else frozen.

    Returns ``"days"`` elapsed and ``"prices"``; stops at expiry.
    """
    elapsed = np.arange(0, days + 1, step)
    elapsed = elapsed[elapsed * _DAY <= spec.expiry + 1e-12]
    prices = np.array([
        pricer(spec.with_expiry(max(spec.expiry - d * _DAY, 0.0))) for d in elapsed
    ])
    return {"days": elapsed, "prices": prices}


# ---------------------------------------------------------------------------
# Position risk metrics
# ---------------------------------------------------------------------------

def risk_metrics(
    result: PricingResult,
    market,
    *,
    horizon: float = 1.0 / 252.0,
    confidence: float = 0.99,
) -> dict[str, float]:
    """Delta-normal risk of a priced option or strategy.

    Parameters
    ----------
    result : PricingResult
        Priced position; must carry Greeks.
    market : OptionSpec or MarketData
        Supplies the spot and flat volatility the Greeks were taken at.
    horizon : float
        Holding period in years (default one trading day).
    confidence : float
        VaR confidence level.

    Returns
    -------
    dict[str, float]
        ``value_at_risk`` is ``z |delta| S sigma sqrt(horizon)`` with
        ``z = norm.ppf(confidence)``; ``expected_shortfall`` is the mean
        loss beyond it under the same normal P&L.  The breakdown sizes each
        exposure to a one-vol spot move (``directional_risk``), a move in
        vol equal to itself (``volatility_risk``), the passage of
        *horizon* (``time_decay_risk``) and 1% moves in the rate and the
        dividend yield.  The position Greeks are included.
    """
    if result.greeks is None:
        raise InvalidInput("risk metrics need Greeks; price with compute_greeks=True", "greeks")
    if not 0.0 < confidence < 1.0:
        raise InvalidInput(f"confidence must be in (0, 1), got {confidence}", "confidence")
    if horizon <= 0.0:
        raise InvalidInput(f"horizon must be positive, got {horizon}", "horizon")

    g = result.greeks
    S, sigma = market.spot, market.volatility
    z = norm.ppf(confidence)
    # P&L standard deviation over the horizon, to first order in spot
    pnl_sd = abs(g.delta) * S * sigma * np.sqrt(horizon)

    return {
        "price": result.price,
        "value_at_risk": float(z * pnl_sd),
        "expected_shortfall": float(norm.pdf(z) / (1.0 - confidence) * pnl_sd),
        "delta": g.delta,
        "gamma": g.gamma,
        "vega": g.vega,
        "theta": g.theta,
        "rho": g.rho,
        "directional_risk": abs(g.delta * S * sigma),
        "volatility_risk": abs(g.vega * sigma),
        "time_decay_risk": abs(g.theta * horizon),
        "interest_rate_risk": abs(g.rho * 0.01),
        "dividend_risk": abs(g.higher.get("epsilon", 0.0) * 0.01),
    }


def var_historical(pnl: np.ndarray, confidence: float = 0.99, horizon: float = 1.0) -> float:
    """Loss at the ``1 - confidence`` quantile of P&L samples.

    Scaled by ``sqrt(horizon)`` (in sample periods) for i.i.d. P&L.
    Returned as a positive number.
    """
    pnl = np.asarray(pnl, dtype=float)
    cutoff = np.percentile(pnl, 100.0 * (1.0 - confidence))
    return float(-cutoff * np.sqrt(horizon))


def cvar_historical(pnl: np.ndarray, confidence: float = 0.99, horizon: float = 1.0) -> float:
    """Expected shortfall: mean loss at or beyond the VaR quantile."""
    pnl = np.asarray(pnl, dtype=float)
    cutoff = np.percentile(pnl, 100.0 * (1.0 - confidence))
    tail = pnl[pnl <= cutoff]
    return float(-tail.mean() * np.sqrt(horizon))


def probability_distribution(spec: OptionSpec, n_points: int = 101, width: float = 0.5) -> dict:
    """Risk-neutral lognormal density of the spot at expiry.

    Evaluated on ``n_points`` prices spanning ``spot * (1 +- width)``.
    Returns ``"prices"`` and ``"density"``.
    """
    if spec.expiry <= 0.0 or spec.volatility <= 0.0:
        raise InvalidInput("terminal density needs positive expiry and volatility", "expiry")
    if not 0.0 < width < 1.0:
        raise InvalidInput(f"width must be in (0, 1), got {width}", "width")
    prices = np.linspace(spec.spot * (1.0 - width), spec.spot * (1.0 + width), n_points)
    drift = (spec.rate - spec.dividend - 0.5 * spec.volatility ** 2) * spec.expiry
    diffusion = spec.volatility * np.sqrt(spec.expiry)
    z = (np.log(prices / spec.spot) - drift) / diffusion
    return {"prices": prices, "density": norm.pdf(z) / (prices * diffusion)}
