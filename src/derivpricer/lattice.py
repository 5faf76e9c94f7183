from __future__ import annotations

import logging
from dataclasses import dataclass, field
from math import cosh, exp, sqrt
from typing import Callable, Optional

import numpy as np

from .errors import InvalidInput, InvalidModel

logger = logging.getLogger(__name__)

__all__ = [
    "BinomialTree",
    "backward_induct",
    "price_vanilla",
    "ShortRateLattice",
]

CALL = "call"
PUT = "put"


def _intrinsic(kind: str, strike: float) -> Callable[[np.ndarray], np.ndarray]:
    if kind == CALL:
        return lambda s: np.maximum(s - strike, 0.0)
    if kind == PUT:
        return lambda s: np.maximum(strike - s, 0.0)
    raise InvalidInput(f"kind must be 'call' or 'put', got {kind!r}", "kind")


# ---------------------------------------------------------------------------
# Cox-Ross-Rubinstein equity tree
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class BinomialTree:
    """Recombining CRR tree over ``[0, maturity]``.

    ``u = exp(sigma sqrt(dt))``, ``d = 1/u`` and
    ``p = (exp((rate - carry) dt) - d) / (u - d)``.
    """
    steps: int
    maturity: float
    sigma: float
    rate: float
    carry: float = 0.0
    dt: float = field(init=False)
    u: float = field(init=False)
    d: float = field(init=False)
    p: float = field(init=False)
    disc: float = field(init=False)

    def __post_init__(self):
        if self.steps <= 0:
            raise InvalidInput("steps must be positive", "steps")
        if self.maturity <= 0:
            raise InvalidInput("maturity must be positive", "maturity")
        if self.sigma <= 0:
            raise InvalidInput("tree volatility must be positive", "sigma")
        dt = self.maturity / self.steps
        u = exp(self.sigma * sqrt(dt))
        d = 1.0 / u
        p = (exp((self.rate - self.carry) * dt) - d) / (u - d)
        if not (0.0 <= p <= 1.0):
            raise InvalidModel(
                f"risk-neutral probability {p:.6f} outside [0, 1]; increase steps", "p"
            )
        for name, value in (("dt", dt), ("u", u), ("d", d), ("p", p), ("disc", exp(-self.rate * dt))):
            object.__setattr__(self, name, value)

    def spots(self, spot: float, step: int) -> np.ndarray:
        """Underlying prices at the ``step + 1`` nodes of level *step*."""
        j = np.arange(step + 1)
        return spot * (self.u ** j) * (self.d ** (step - j))


def backward_induct(
    tree: BinomialTree,
    terminal: np.ndarray,
    exercise: Optional[Callable[[int], np.ndarray]] = None,
) -> float:
    """Roll *terminal* node values back to the root.

    With *exercise* (step -> exercise values) every node takes
    ``max(continuation, exercise)``; without it the value is pure continuation.
    """
    V = np.asarray(terminal, dtype=float)
    if V.shape != (tree.steps + 1,):
        raise InvalidInput("terminal values must have steps + 1 entries", "terminal")
    p, disc = tree.p, tree.disc
    for k in range(tree.steps - 1, -1, -1):
        V = disc * (p * V[1:] + (1.0 - p) * V[:-1])
        if exercise is not None:
            V = np.maximum(V, exercise(k))
    return float(V[0])


def price_vanilla(
    spot: float, strike: float, maturity: float, rate: float, carry: float, sigma: float,
    kind: str = CALL, steps: int = 100, *, american: bool = False,
) -> float:
    """CRR price of a vanilla call/put, European or American."""
    payoff = _intrinsic(kind, strike)
    if sigma == 0.0:
        return _deterministic_value(spot, maturity, rate, carry, steps, payoff, american)

    tree = BinomialTree(steps, maturity, sigma, rate, carry)
    terminal = payoff(tree.spots(spot, steps))
    exercise = (lambda k: payoff(tree.spots(spot, k))) if american else None
    return backward_induct(tree, terminal, exercise)


def _deterministic_value(spot, maturity, rate, carry, steps, payoff, american) -> float:
    # zero volatility: the tree collapses onto the forward path
    t = np.linspace(0.0, maturity, steps + 1)
    values = np.exp(-rate * t) * payoff(spot * np.exp((rate - carry) * t))
    return float(values.max() if american else values[-1])


# ---------------------------------------------------------------------------
# Short-rate lattice for embedded bond options
# ---------------------------------------------------------------------------
@dataclass(frozen=True, eq=False)
class ShortRateLattice:
    """Recombining lognormal short-rate lattice with ``p = 1/2``.

    Node ``j`` of step ``i`` carries
    ``f_i * exp(x (2j - i)) / cosh(x)**i`` with ``x = sigma sqrt(dt)``,
    so the node rates average to the curve's continuous forward ``f_i``.
    """
    dt: float
    forwards: np.ndarray
    sigma: float

    @classmethod
    def build(cls, curve, maturity: float, steps: int, sigma: float, frequency: int = 1) -> "ShortRateLattice":
        if steps <= 0:
            raise InvalidInput("steps must be positive", "steps")
        if maturity <= 0:
            raise InvalidInput("maturity must be positive", "maturity")
        if sigma < 0:
            raise InvalidInput("rate volatility must be non-negative", "sigma")
        grid = np.linspace(0.0, maturity, steps + 1)
        dfs = np.ones(steps + 1)
        dfs[1:] = curve.discount_factor(grid[1:], frequency)
        dt = maturity / steps
        forwards = np.log(dfs[:-1] / dfs[1:]) / dt
        logger.debug("short-rate lattice: %d steps, dt=%.5f, sigma=%.4f", steps, dt, sigma)
        return cls(dt, forwards, sigma)

    @property
    def steps(self) -> int:
        return len(self.forwards)

    def rates(self, step: int) -> np.ndarray:
        x = self.sigma * sqrt(self.dt)
        j = np.arange(step + 1)
        return self.forwards[step] * np.exp(x * (2 * j - step)) / cosh(x) ** step

    def value_bond(
        self,
        flows: np.ndarray,
        oas: float = 0.0,
        call_prices: Optional[np.ndarray] = None,
        put_prices: Optional[np.ndarray] = None,
    ) -> tuple[float, float]:
        """Straight and option-embedded bond values at the root.

        Parameters
        ----------
        flows : ndarray, shape (steps + 1,)
            Cash paid at each lattice date.
        oas : float
            Constant spread added to every node's discount rate.
        call_prices, put_prices : ndarray, shape (steps + 1,), optional
            Exercise price at each date, NaN where not exercisable.  A call
            caps and a put floors the ex-coupon node value.

        Returns
        -------
        tuple[float, float]
            ``(straight_value, embedded_value)``.
        """
        n = self.steps
        flows = np.asarray(flows, dtype=float)
        if flows.shape != (n + 1,):
            raise InvalidInput("flows must have steps + 1 entries", "flows")
        straight = np.full(n + 1, flows[n])
        embedded = straight.copy()
        for i in range(n - 1, -1, -1):
            disc = np.exp(-(self.rates(i) + oas) * self.dt)
            straight = disc * 0.5 * (straight[1:] + straight[:-1]) + flows[i]
            cont = disc * 0.5 * (embedded[1:] + embedded[:-1])
            if i > 0:
                if call_prices is not None and not np.isnan(call_prices[i]):
                    cont = np.minimum(cont, call_prices[i])
                if put_prices is not None and not np.isnan(put_prices[i]):
                    cont = np.maximum(cont, put_prices[i])
            embedded = cont + flows[i]
        return float(straight[0]), float(embedded[0])
