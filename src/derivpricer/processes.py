# processes.py
# Path generators for Monte Carlo pricing.
# Every generator draws from a RandomStream and returns an array of shape
# (n_steps+1, n_paths) including the t=0 row.  With antithetic=True the
# second half of the columns mirrors the first half's normal shocks, so
# n_paths must be even.

from __future__ import annotations

import numpy as np

from .errors import InvalidInput, InvalidModel
from .numerics import RandomStream


__all__ = [
    "gbm_paths",
    "merton_jump_paths",
    "heston_paths",
    "sabr_paths",
    "correlated_gbm_paths",
    "vasicek_paths",
]


def _check_grid(T: float, n_steps: int, n_paths: int, antithetic: bool) -> None:
    if n_steps <= 0 or n_paths <= 0:
        raise InvalidInput("n_steps and n_paths must be positive", "n_paths")
    if T <= 0:
        raise InvalidInput("horizon must be positive", "T")
    if antithetic and n_paths % 2:
        raise InvalidInput("antithetic sampling needs an even path count", "n_paths")


def _shocks(stream: RandomStream, shape, antithetic: bool) -> np.ndarray:
    return stream.antithetic_normals(shape) if antithetic else stream.normals(shape)


def _prepend(row0, increments_path: np.ndarray) -> np.ndarray:
    first = np.broadcast_to(np.asarray(row0, dtype=float), (1, increments_path.shape[1]))
    return np.vstack([first, increments_path])


# -----------------------------
# 1) Geometric Brownian Motion
# -----------------------------
def gbm_paths(
    stream: RandomStream,
    S0: float, r: float, q: float, sigma: float,
    T: float, n_steps: int, n_paths: int,
    *, antithetic: bool = True,
) -> np.ndarray:
    """
    Exact-discretization GBM under Q:
        S_{t+dt} = S_t * exp((r - q - 0.5*sigma^2) dt + sigma * sqrt(dt) * Z)
    """
    _check_grid(T, n_steps, n_paths, antithetic)
    dt = T / n_steps
    Z = _shocks(stream, (n_steps, n_paths), antithetic)
    log_paths = np.cumsum((r - q - 0.5 * sigma * sigma) * dt + sigma * np.sqrt(dt) * Z, axis=0)
    return _prepend(S0, S0 * np.exp(log_paths))


# ------------------------------------
# 2) Merton Jump-Diffusion (lognormal)
# ------------------------------------
def merton_jump_paths(
    stream: RandomStream,
    S0: float, r: float, q: float, sigma: float,
    T: float, n_steps: int, n_paths: int,
    *, lam: float, mJ: float, sJ: float,
    antithetic: bool = True,
) -> np.ndarray:
    """
    Merton model under Q:
        dS/S = (r - q - lam*kappa) dt + sigma dW + (e^Y - 1) dN,
    with N ~ Poisson(lam t), Y ~ N(mJ, sJ^2), kappa = exp(mJ + sJ^2/2) - 1.
    Antithetic pairs share jump counts and mirror both normal shocks.
    """
    _check_grid(T, n_steps, n_paths, antithetic)
    if lam < 0 or sJ < 0:
        raise InvalidInput("jump intensity and jump volatility must be non-negative", "lam")

    dt = T / n_steps
    kappa = np.exp(mJ + 0.5 * sJ * sJ) - 1.0
    drift = (r - q - 0.5 * sigma * sigma - lam * kappa) * dt

    Z = _shocks(stream, (n_steps, n_paths), antithetic)
    ZJ = _shocks(stream, (n_steps, n_paths), antithetic)
    base_cols = n_paths // 2 if antithetic else n_paths
    counts = stream.poisson(lam * dt, (n_steps, base_cols))
    if antithetic:
        counts = np.concatenate([counts, counts], axis=1)

    jumps = mJ * counts + sJ * np.sqrt(counts) * ZJ
    log_paths = np.cumsum(drift + sigma * np.sqrt(dt) * Z + jumps, axis=0)
    return _prepend(S0, S0 * np.exp(log_paths))


# -------------------------------
# 3) Heston (CIR variance process)
# -------------------------------
def heston_paths(
    stream: RandomStream,
    S0: float, r: float, q: float,
    v0: float, kappa: float, theta: float, xi: float, rho: float,
    T: float, n_steps: int, n_paths: int,
    *, antithetic: bool = True,
) -> np.ndarray:
    """
    Heston under Q:
        dS = (r - q) S dt + sqrt(v) S dW1
        dv = kappa (theta - v) dt + xi sqrt(v) dW2,   corr(dW1, dW2) = rho
    Full-truncation Euler for v, log-Euler for S.
    """
    _check_grid(T, n_steps, n_paths, antithetic)
    if not (-1.0 <= rho <= 1.0):
        raise InvalidInput("rho must be in [-1, 1]", "rho")

    dt = T / n_steps
    sqrt_dt = np.sqrt(dt)
    Z2 = _shocks(stream, (n_steps, n_paths), antithetic)
    Zp = _shocks(stream, (n_steps, n_paths), antithetic)
    Z1 = rho * Z2 + np.sqrt(max(0.0, 1.0 - rho * rho)) * Zp

    S = np.empty((n_steps + 1, n_paths), dtype=float)
    S[0, :] = S0
    v_t = np.full(n_paths, max(v0, 0.0), dtype=float)
    for t in range(n_steps):
        v_eff = np.maximum(v_t, 0.0)
        S[t + 1, :] = S[t, :] * np.exp((r - q - 0.5 * v_eff) * dt + np.sqrt(v_eff) * sqrt_dt * Z1[t, :])
        v_t = v_t + kappa * (theta - v_eff) * dt + xi * np.sqrt(v_eff) * sqrt_dt * Z2[t, :]
    return S


# ---------------------------
# 4) SABR (lognormal vol-of-vol)
# ---------------------------
def sabr_paths(
    stream: RandomStream,
    S0: float, r: float, q: float,
    alpha: float, beta: float, nu: float, rho: float,
    T: float, n_steps: int, n_paths: int,
    *, antithetic: bool = True,
) -> np.ndarray:
    """
    SABR with drift:
        dS = (r - q) S dt + sigma * S^beta dW1
        d(sigma) = nu * sigma dW2,   corr(dW1, dW2) = rho
    Volatility evolves exactly; S uses log-Euler when beta == 1 and a
    positivity-clamped Euler step otherwise.
    """
    _check_grid(T, n_steps, n_paths, antithetic)
    if not (0.0 <= beta <= 1.0):
        raise InvalidInput("beta must be in [0, 1]", "beta")
    if alpha <= 0.0 or nu < 0.0:
        raise InvalidInput("alpha must be > 0 and nu >= 0", "alpha")
    if not (-1.0 <= rho <= 1.0):
        raise InvalidInput("rho must be in [-1, 1]", "rho")

    dt = T / n_steps
    sqrt_dt = np.sqrt(dt)
    Z2 = _shocks(stream, (n_steps, n_paths), antithetic)
    Zp = _shocks(stream, (n_steps, n_paths), antithetic)
    Z1 = rho * Z2 + np.sqrt(max(0.0, 1.0 - rho * rho)) * Zp

    S = np.empty((n_steps + 1, n_paths), dtype=float)
    S[0, :] = S0
    sigma_t = np.full(n_paths, alpha, dtype=float)
    for t in range(n_steps):
        sigma_t = sigma_t * np.exp(nu * sqrt_dt * Z2[t, :] - 0.5 * nu * nu * dt)
        if beta == 1.0:
            S[t + 1, :] = S[t, :] * np.exp((r - q - 0.5 * sigma_t ** 2) * dt + sigma_t * sqrt_dt * Z1[t, :])
        else:
            step = (r - q) * S[t, :] * dt + sigma_t * S[t, :] ** beta * sqrt_dt * Z1[t, :]
            S[t + 1, :] = np.maximum(S[t, :] + step, 1e-12)
    return S


# ---------------------------------
# 5) Two correlated GBM assets
# ---------------------------------
def correlated_gbm_paths(
    stream: RandomStream,
    S0: tuple[float, float], r: float, q: tuple[float, float],
    sigma: tuple[float, float], rho: float,
    T: float, n_steps: int, n_paths: int,
    *, antithetic: bool = True,
) -> np.ndarray:
    """Paths for two assets with instantaneous correlation *rho*.

    Returns shape (2, n_steps+1, n_paths).  Raises ``InvalidModel`` when the
    correlation matrix is not positive definite.
    """
    _check_grid(T, n_steps, n_paths, antithetic)
    corr = np.array([[1.0, rho], [rho, 1.0]])
    try:
        L = np.linalg.cholesky(corr)
    except np.linalg.LinAlgError as exc:
        raise InvalidModel(f"correlation {rho} is not positive definite", "rho") from exc

    dt = T / n_steps
    Z = _shocks(stream, (2, n_steps, n_paths), antithetic)
    W = np.einsum("ij,jkl->ikl", L, Z)
    out = np.empty((2, n_steps + 1, n_paths), dtype=float)
    for a in range(2):
        drift = (r - q[a] - 0.5 * sigma[a] ** 2) * dt
        log_paths = np.cumsum(drift + sigma[a] * np.sqrt(dt) * W[a], axis=0)
        out[a] = _prepend(S0[a], S0[a] * np.exp(log_paths))
    return out


# ---------------------------------
# 6) Vasicek short rate
# ---------------------------------
def vasicek_paths(
    stream: RandomStream,
    r0: float, kappa: float, theta: float, sigma: float,
    T: float, n_steps: int, n_paths: int,
    *, antithetic: bool = True,
) -> np.ndarray:
    """
    Mean-reverting short rate dr = kappa (theta - r) dt + sigma dW, sampled
    with the exact Gaussian transition.
    """
    _check_grid(T, n_steps, n_paths, antithetic)
    if kappa < 0 or sigma < 0:
        raise InvalidInput("kappa and sigma must be non-negative", "kappa")

    dt = T / n_steps
    if kappa > 0:
        decay = np.exp(-kappa * dt)
        step_sd = sigma * np.sqrt((1.0 - decay * decay) / (2.0 * kappa))
    else:
        decay, step_sd = 1.0, sigma * np.sqrt(dt)
    Z = _shocks(stream, (n_steps, n_paths), antithetic)

    out = np.empty((n_steps + 1, n_paths), dtype=float)
    out[0, :] = r0
    for t in range(n_steps):
        out[t + 1, :] = theta + (out[t, :] - theta) * decay + step_sd * Z[t, :]
    return out
