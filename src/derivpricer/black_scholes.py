# black_scholes.py
# Black-Scholes-Merton family: vanilla prices, first- and higher-order
# Greeks, and the closed forms that exotic pricing may use instead of
# simulation (geometric Asian, binary, quanto, Merton jump series, SABR vol).
# Public functions accept scalars or NumPy arrays and broadcast.

from __future__ import annotations

import math

import numpy as np

from .errors import InvalidInput
from .numerics import log_factorial, normal_cdf, normal_pdf

_N = normal_cdf
_n = normal_pdf


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _d1_d2(S, K, T, r, q, sigma):
    """Compute d1, d2 arrays.  All inputs broadcast; T and sigma must be > 0."""
    S, K, T, r, q, sigma = (np.asarray(x, dtype=float) for x in (S, K, T, r, q, sigma))
    sig_sqrt_T = sigma * np.sqrt(T)
    d1 = (np.log(S / K) + (r - q + 0.5 * sigma * sigma) * T) / sig_sqrt_T
    return d1, d1 - sig_sqrt_T


def _is_call(kind) -> np.ndarray:
    kind = np.asarray(kind)
    if kind.ndim == 0:
        if str(kind) not in ("call", "put"):
            raise InvalidInput(f"kind must be 'call' or 'put', got {kind!r}", "kind")
        return np.bool_(str(kind) == "call")
    return np.array([str(k) == "call" for k in kind.flat], dtype=bool).reshape(kind.shape)


def _out(x):
    x = np.asarray(x, dtype=float)
    return float(x) if x.ndim == 0 else x


# ---------------------------------------------------------------------------
# Vanilla price and Greeks
# ---------------------------------------------------------------------------
def bs_price(S, K, T, r, q, sigma, kind="call"):
    """Black-Scholes-Merton price with continuous dividend yield *q*.

    Where ``sigma * sqrt(T) == 0`` the price collapses to the discounted
    intrinsic value on the forward.
    """
    S, K, T, r, q, sigma = (np.asarray(x, dtype=float) for x in (S, K, T, r, q, sigma))
    is_call = _is_call(kind)
    disc_r = np.exp(-r * T)
    disc_q = np.exp(-q * T)
    degenerate = sigma * np.sqrt(T) <= 0.0

    with np.errstate(divide="ignore", invalid="ignore"):
        d1, d2 = _d1_d2(S, K, T, r, q, np.where(degenerate, 1.0, sigma))
    call_px = disc_q * S * _N(d1) - disc_r * K * _N(d2)
    put_px = disc_r * K * _N(-d2) - disc_q * S * _N(-d1)
    px = np.where(is_call, call_px, put_px)

    fwd_gap = disc_q * S - disc_r * K
    intrinsic = np.where(is_call, np.maximum(fwd_gap, 0.0), np.maximum(-fwd_gap, 0.0))
    return _out(np.where(degenerate, intrinsic, px))


def bs_greeks(S, K, T, r, q, sigma, kind="call") -> dict:
    """Closed-form delta, gamma, vega, theta, rho.

    Vega is dPrice/dSigma (absolute), theta is dPrice/dt per year of
    calendar time, rho is dPrice/dr.
    """
    S, K, T, r, q, sigma = (np.asarray(x, dtype=float) for x in (S, K, T, r, q, sigma))
    d1, d2 = _d1_d2(S, K, T, r, q, sigma)
    disc_r = np.exp(-r * T)
    disc_q = np.exp(-q * T)
    sqrt_T = np.sqrt(T)
    n_d1 = _n(d1)
    is_call = _is_call(kind)

    gamma = disc_q * n_d1 / (S * sigma * sqrt_T)
    vega = S * disc_q * n_d1 * sqrt_T
    decay = -S * disc_q * n_d1 * sigma / (2 * sqrt_T)

    delta_c = disc_q * _N(d1)
    theta_c = decay - r * K * disc_r * _N(d2) + q * S * disc_q * _N(d1)
    rho_c = K * T * disc_r * _N(d2)

    delta_p = disc_q * (_N(d1) - 1.0)
    theta_p = decay + r * K * disc_r * _N(-d2) - q * S * disc_q * _N(-d1)
    rho_p = -K * T * disc_r * _N(-d2)

    return {
        "delta": _out(np.where(is_call, delta_c, delta_p)),
        "gamma": _out(gamma),
        "vega": _out(vega),
        "theta": _out(np.where(is_call, theta_c, theta_p)),
        "rho": _out(np.where(is_call, rho_c, rho_p)),
    }


def bs_higher_greeks(S, K, T, r, q, sigma, kind="call") -> dict:
    """Second- and third-order sensitivities.

    Keys: ``vanna`` (d delta/d sigma), ``volga`` (d vega/d sigma),
    ``charm`` (d delta/dt), ``speed`` (d gamma/dS), ``zomma``
    (d gamma/d sigma), ``color`` (d gamma/dt), ``ultima`` (d volga/d sigma)
    and ``epsilon`` (dPrice/dq).  Time derivatives are per year of
    calendar time.
    """
    S, K, T, r, q, sigma = (np.asarray(x, dtype=float) for x in (S, K, T, r, q, sigma))
    d1, d2 = _d1_d2(S, K, T, r, q, sigma)
    disc_q = np.exp(-q * T)
    sqrt_T = np.sqrt(T)
    sig_sqrt_T = sigma * sqrt_T
    n_d1 = _n(d1)
    is_call = _is_call(kind)

    gamma = disc_q * n_d1 / (S * sig_sqrt_T)
    vega = S * disc_q * n_d1 * sqrt_T
    carry_term = (2.0 * (r - q) * T - d2 * sig_sqrt_T) / (2.0 * T * sig_sqrt_T)

    charm_common = -disc_q * n_d1 * carry_term
    charm = np.where(is_call, q * disc_q * _N(d1), -q * disc_q * _N(-d1)) + charm_common
    color = -disc_q * n_d1 / (2.0 * S * T * sig_sqrt_T) * (
        2.0 * q * T + 1.0 + (2.0 * (r - q) * T - d2 * sig_sqrt_T) * d1 / sig_sqrt_T
    )
    epsilon = np.where(is_call, -S * T * disc_q * _N(d1), S * T * disc_q * _N(-d1))

    return {
        "vanna": _out(-disc_q * n_d1 * d2 / sigma),
        "volga": _out(vega * d1 * d2 / sigma),
        "charm": _out(charm),
        "speed": _out(-gamma / S * (d1 / sig_sqrt_T + 1.0)),
        "zomma": _out(gamma * (d1 * d2 - 1.0) / sigma),
        "color": _out(color),
        "ultima": _out(-vega / (sigma * sigma) * (d1 * d2 * (1.0 - d1 * d2) + d1 * d1 + d2 * d2)),
        "epsilon": _out(epsilon),
    }


# ---------------------------------------------------------------------------
# Closed forms for exotic payoffs
# ---------------------------------------------------------------------------
def geometric_asian_price(S, K, T, r, q, sigma, kind="call", n_fixings: int = 100) -> float:
    """Fixed-strike discrete geometric-average option.

    Fixings at ``T * i / n_fixings`` for ``i = 1..n_fixings``; ``log G`` is
    normal with mean ``log S + (r - q - sigma^2/2) * T (n+1)/(2n)`` and
    variance ``sigma^2 T (n+1)(2n+1)/(6 n^2)``.
    """
    n = n_fixings
    mean = math.log(S) + (r - q - 0.5 * sigma * sigma) * T * (n + 1) / (2.0 * n)
    var = sigma * sigma * T * (n + 1) * (2 * n + 1) / (6.0 * n * n)
    disc = math.exp(-r * T)
    if var <= 0.0:
        g = math.exp(mean)
        return disc * max(g - K if kind == "call" else K - g, 0.0)
    sd = math.sqrt(var)
    d1 = (mean - math.log(K) + var) / sd
    d2 = d1 - sd
    expected_g = math.exp(mean + 0.5 * var)
    if kind == "call":
        return disc * (expected_g * _N(d1) - K * _N(d2))
    return disc * (K * _N(-d2) - expected_g * _N(-d1))


def binary_price(S, K, T, r, q, sigma, kind="call", payout: str = "cash", cash: float = 1.0) -> float:
    """Cash-or-nothing (pays *cash*) or asset-or-nothing binary."""
    d1, d2 = _d1_d2(S, K, T, r, q, sigma)
    sign = 1.0 if kind == "call" else -1.0
    if payout == "cash":
        return float(cash * math.exp(-r * T) * _N(sign * d2))
    return float(S * math.exp(-q * T) * _N(sign * d1))


def quanto_price(
    S, K, T, r_dom, r_for, q, sigma, fx_vol, correlation, fx_rate, kind="call"
) -> float:
    """Vanilla on a foreign asset paid in domestic currency at a fixed FX rate.

    The foreign asset drifts at ``r_for - q - correlation * sigma * fx_vol``
    under the domestic measure.
    """
    quanto_q = q + r_dom - r_for + correlation * sigma * fx_vol
    return fx_rate * bs_price(S, K, T, r_dom, quanto_q, sigma, kind)


def merton_jump_price(
    S, K, T, r, q, sigma, kind="call", *, lam: float, mJ: float, sJ: float, n_terms: int = 20
) -> float:
    """Merton (1976) jump-diffusion price as a Poisson mixture of BSM prices."""
    k = math.exp(mJ + 0.5 * sJ * sJ) - 1.0
    lam_p = lam * (1.0 + k)
    total = 0.0
    for n in range(n_terms):
        weight = math.exp(-lam_p * T + n * math.log(lam_p * T) - log_factorial(n)) if lam_p > 0 else float(n == 0)
        sigma_n = math.sqrt(sigma * sigma + n * sJ * sJ / T)
        r_n = r - lam * k + n * math.log(1.0 + k) / T
        total += weight * bs_price(S, K, T, r_n, q, sigma_n, kind)
    return total


def sabr_implied_vol(F, K, T, alpha, beta, rho, nu) -> float:
    """Hagan et al. (2002) lognormal implied volatility of the SABR model."""
    one_b = 1.0 - beta
    if abs(F - K) < 1e-12 * max(F, 1.0):
        fk = F ** one_b
        correction = (
            one_b ** 2 / 24.0 * alpha ** 2 / fk ** 2
            + rho * beta * nu * alpha / (4.0 * fk)
            + (2.0 - 3.0 * rho ** 2) * nu ** 2 / 24.0
        )
        return alpha / fk * (1.0 + correction * T)

    log_fk = math.log(F / K)
    fk_mid = (F * K) ** (one_b / 2.0)
    z = nu / alpha * fk_mid * log_fk
    x = math.log((math.sqrt(1.0 - 2.0 * rho * z + z * z) + z - rho) / (1.0 - rho))
    ratio = z / x if abs(z) > 1e-12 else 1.0
    denom = fk_mid * (1.0 + one_b ** 2 / 24.0 * log_fk ** 2 + one_b ** 4 / 1920.0 * log_fk ** 4)
    correction = (
        one_b ** 2 / 24.0 * alpha ** 2 / fk_mid ** 2
        + rho * beta * nu * alpha / (4.0 * fk_mid)
        + (2.0 - 3.0 * rho ** 2) * nu ** 2 / 24.0
    )
    return alpha / denom * ratio * (1.0 + correction * T)
