# exotics.py
# Payoff functions for exotic options.
#
# Path payoffs take pre-generated paths from ``processes.py``
# (shape ``(n_steps+1, n_paths)`` including the t=0 row) and return the
# undiscounted payoff per path.  Two-asset payoffs take terminal prices.
# The stochastic process is chosen independently of the payoff.

from __future__ import annotations

import numpy as np

from .black_scholes import bs_price
from .errors import InvalidInput

__all__ = [
    "vanilla_payoff",
    "barrier_payoff",
    "asian_payoff",
    "binary_payoff",
    "lookback_payoff",
    "compound_payoff",
    "rainbow_payoff",
    "spread_payoff",
]

BARRIER_TYPES = ("up-and-out", "up-and-in", "down-and-out", "down-and-in")


def vanilla_payoff(ST: np.ndarray, K: float, kind: str) -> np.ndarray:
    if kind == "call":
        return np.maximum(ST - K, 0.0)
    if kind == "put":
        return np.maximum(K - ST, 0.0)
    raise InvalidInput(f"kind must be 'call' or 'put', got {kind!r}", "kind")


# ---------------------------------------------------------------------------
# Barrier options
# ---------------------------------------------------------------------------
def barrier_payoff(
    paths: np.ndarray,
    K: float,
    kind: str,
    barrier: float,
    barrier_type: str,
    rebate: float = 0.0,
) -> np.ndarray:
    """Discretely monitored barrier payoff.

    Parameters
    ----------
    paths : ndarray, shape (n_steps+1, n_paths)
        Asset price paths including t=0 row.
    K : float
        Strike.
    kind : str
        ``"call"`` or ``"put"``.
    barrier : float
        Barrier level.
    barrier_type : str
        One of ``"up-and-out"``, ``"up-and-in"``,
        ``"down-and-out"``, ``"down-and-in"``.
    rebate : float
        Paid at expiry when a knock-out triggers or a knock-in never does.
    """
    if barrier_type not in BARRIER_TYPES:
        raise InvalidInput(f"barrier_type must be one of {BARRIER_TYPES}, got {barrier_type!r}", "barrier_type")

    if barrier_type.startswith("up"):
        crossed = np.any(paths >= barrier, axis=0)
    else:
        crossed = np.any(paths <= barrier, axis=0)

    vanilla = vanilla_payoff(paths[-1, :], K, kind)
    if barrier_type.endswith("out"):
        return np.where(crossed, rebate, vanilla)
    return np.where(crossed, vanilla, rebate)


# ---------------------------------------------------------------------------
# Asian options
# ---------------------------------------------------------------------------
def asian_payoff(
    paths: np.ndarray,
    K: float,
    kind: str,
    average_type: str = "arithmetic",
    strike_type: str = "fixed",
) -> np.ndarray:
    """Average-price (fixed strike) or average-strike (floating) payoff.

    The average runs over the monitoring dates after t=0.
    """
    monitoring = paths[1:, :]
    if average_type == "arithmetic":
        avg = monitoring.mean(axis=0)
    elif average_type == "geometric":
        avg = np.exp(np.log(monitoring).mean(axis=0))
    else:
        raise InvalidInput("average_type must be 'arithmetic' or 'geometric'", "average_type")

    if strike_type == "fixed":
        return vanilla_payoff(avg, K, kind)
    if strike_type == "floating":
        return vanilla_payoff(paths[-1, :], avg, kind)
    raise InvalidInput("strike_type must be 'fixed' or 'floating'", "strike_type")


# ---------------------------------------------------------------------------
# Binary options
# ---------------------------------------------------------------------------
def binary_payoff(
    paths: np.ndarray, K: float, kind: str, payout: str = "cash", cash: float = 1.0
) -> np.ndarray:
    """Cash-or-nothing (pays *cash*) or asset-or-nothing (pays S_T) when ITM."""
    ST = paths[-1, :]
    if kind == "call":
        itm = ST > K
    elif kind == "put":
        itm = ST < K
    else:
        raise InvalidInput(f"kind must be 'call' or 'put', got {kind!r}", "kind")
    if payout == "cash":
        return np.where(itm, cash, 0.0)
    if payout == "asset":
        return np.where(itm, ST, 0.0)
    raise InvalidInput("payout must be 'cash' or 'asset'", "payout")


# ---------------------------------------------------------------------------
# Lookback options
# ---------------------------------------------------------------------------
def lookback_payoff(
    paths: np.ndarray, kind: str, K: float = 0.0, strike_type: str = "floating"
) -> np.ndarray:
    """
    Floating lookback call: S_T - S_min        Floating put: S_max - S_T
    Fixed lookback call:    max(S_max - K, 0)  Fixed put:    max(K - S_min, 0)
    """
    S_max = paths.max(axis=0)
    S_min = paths.min(axis=0)
    ST = paths[-1, :]
    if kind not in ("call", "put"):
        raise InvalidInput(f"kind must be 'call' or 'put', got {kind!r}", "kind")

    if strike_type == "floating":
        return ST - S_min if kind == "call" else S_max - ST
    if strike_type == "fixed":
        return np.maximum(S_max - K, 0.0) if kind == "call" else np.maximum(K - S_min, 0.0)
    raise InvalidInput("strike_type must be 'floating' or 'fixed'", "strike_type")


# ---------------------------------------------------------------------------
# Compound options
# ---------------------------------------------------------------------------
def compound_payoff(
    S_first: np.ndarray,
    K_outer: float,
    outer_kind: str,
    K_inner: float,
    inner_kind: str,
    remaining: float,
    r: float,
    q: float,
    sigma: float,
) -> np.ndarray:
    """Option on a vanilla: at the first expiry the inner option is worth
    its BSM value for the *remaining* life."""
    inner = np.asarray(bs_price(S_first, K_inner, remaining, r, q, sigma, inner_kind))
    return vanilla_payoff(inner, K_outer, outer_kind)


# ---------------------------------------------------------------------------
# Two-asset options
# ---------------------------------------------------------------------------
def rainbow_payoff(S1: np.ndarray, S2: np.ndarray, K: float, kind: str, best: bool = True) -> np.ndarray:
    """Option on the best (or worst) of two terminal prices."""
    ref = np.maximum(S1, S2) if best else np.minimum(S1, S2)
    return vanilla_payoff(ref, K, kind)


def spread_payoff(S1: np.ndarray, S2: np.ndarray, K: float, kind: str) -> np.ndarray:
    """Option on ``S1 - S2`` struck at *K*."""
    return vanilla_payoff(S1 - S2, K, kind)
