# numerics.py
# Numeric kernel shared by every engine: special functions, a guarded
# Newton-Raphson root-finder and a seedable normal-variate stream.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np
from scipy import special

from .errors import InvalidInput, NonConvergence, NumericOverflow

logger = logging.getLogger(__name__)

__all__ = [
    "normal_cdf",
    "normal_pdf",
    "gamma_fn",
    "log_factorial",
    "ensure_finite",
    "RootResult",
    "solve_root",
    "RandomStream",
]

_SQRT2 = math.sqrt(2.0)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)

SeedLike = Union[int, np.random.SeedSequence, None]


# ---------------------------------------------------------------------------
# Special functions
# ---------------------------------------------------------------------------
def normal_cdf(x):
    """Standard normal CDF, ``0.5 * erfc(-x / sqrt(2))``.

    ``erfc`` keeps full relative precision in the lower tail, so
    ``normal_cdf(-x) == 1 - normal_cdf(x)`` holds to machine precision.
    Scalars in, float out; arrays in, arrays out.
    """
    out = 0.5 * special.erfc(-np.asarray(x, dtype=float) / _SQRT2)
    return float(out) if np.ndim(out) == 0 else out


def normal_pdf(x):
    """Standard normal density."""
    x = np.asarray(x, dtype=float)
    out = _INV_SQRT_2PI * np.exp(-0.5 * x * x)
    return float(out) if np.ndim(out) == 0 else out


def gamma_fn(x):
    """Euler gamma function."""
    out = special.gamma(np.asarray(x, dtype=float))
    return float(out) if np.ndim(out) == 0 else out


def log_factorial(n):
    """``log(n!)`` via ``gammaln(n + 1)``; stable for large ``n``."""
    out = special.gammaln(np.asarray(n, dtype=float) + 1.0)
    return float(out) if np.ndim(out) == 0 else out


def ensure_finite(value, parameter: str):
    """Return *value* unchanged, or raise ``NumericOverflow`` on NaN/Inf."""
    if not np.all(np.isfinite(value)):
        raise NumericOverflow(f"computed value is not finite: {value!r}", parameter)
    return value


# ---------------------------------------------------------------------------
# Root finding
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RootResult:
    root: float
    iterations: int
    method: str     # "newton", "bisection" or "newton+bisection"


def solve_root(
    f: Callable[[float], float],
    x0: float,
    fprime: Optional[Callable[[float], float]] = None,
    *,
    tol: float = 1e-6,
    max_iter: int = 100,
    bracket: Optional[Sequence[float]] = None,
    bound: float = 10.0,
    parameter: str = "x",
) -> RootResult:
    """Newton-Raphson with bisection fallback.

    Parameters
    ----------
    f : callable
        Objective; the root satisfies ``|f(x)| < tol``.
    x0 : float
        Starting guess.
    fprime : callable, optional
        Analytic derivative.  A central difference is used when omitted.
    tol : float
        Absolute tolerance on ``|f(x)|``.
    max_iter : int
        Iteration budget.
    bracket : (lo, hi), optional
        Interval with a sign change.  Enables the bisection fallback taken
        whenever the derivative is degenerate, the Newton step leaves the
        bracket, or ``|x|`` exceeds *bound*.
    bound : float
        Sane magnitude for the iterate (10.0 = 1000% for rates).
    parameter : str
        Name reported on failure.

    Returns
    -------
    RootResult

    Raises
    ------
    NonConvergence
        Budget exhausted, a bracket without a sign change, or a divergent
        Newton step with no bracket to fall back on.
    NumericOverflow
        The objective returned NaN/Inf.
    """
    def _eval(x: float) -> float:
        fx = float(f(x))
        if not math.isfinite(fx):
            raise NumericOverflow(f"objective is not finite at {x!r}", parameter)
        return fx

    lo = hi = None
    f_lo = 0.0
    if bracket is not None:
        lo, hi = float(bracket[0]), float(bracket[1])
        if not lo < hi:
            raise NonConvergence(f"empty bracket [{lo}, {hi}]", parameter)
        f_lo, f_hi = _eval(lo), _eval(hi)
        if abs(f_lo) < tol:
            return RootResult(lo, 0, "bisection")
        if abs(f_hi) < tol:
            return RootResult(hi, 0, "bisection")
        if f_lo * f_hi > 0.0:
            raise NonConvergence(
                f"no sign change on [{lo}, {hi}]", parameter, iterations=0, last_value=x0
            )
        if not lo < x0 < hi:
            x0 = 0.5 * (lo + hi)

    x = float(x0)
    used_newton = used_bisection = False
    for it in range(1, max_iter + 1):
        fx = _eval(x)
        if abs(fx) < tol:
            return RootResult(x, it, _method_name(used_newton, used_bisection))

        if lo is not None:
            if (fx < 0.0) == (f_lo < 0.0):
                lo, f_lo = x, fx
            else:
                hi = x

        if fprime is not None:
            d = float(fprime(x))
        else:
            h = 1e-6 * max(1.0, abs(x))
            d = (_eval(x + h) - _eval(x - h)) / (2.0 * h)

        x_new = x - fx / d if (math.isfinite(d) and abs(d) > 1e-14) else math.nan
        newton_ok = math.isfinite(x_new) and abs(x_new) <= bound
        if lo is not None and newton_ok:
            newton_ok = lo < x_new < hi

        if newton_ok:
            used_newton = True
            x = x_new
        elif lo is not None:
            logger.debug("solve_root(%s): bisection step at x=%.6g", parameter, x)
            used_bisection = True
            x = 0.5 * (lo + hi)
        else:
            raise NonConvergence(
                f"Newton step diverged from {x!r} and no bracket was supplied",
                parameter, iterations=it, last_value=x,
            )

    raise NonConvergence(
        f"no root within tolerance {tol} after {max_iter} iterations",
        parameter, iterations=max_iter, last_value=x,
    )


def _method_name(newton: bool, bisection: bool) -> str:
    if newton and bisection:
        return "newton+bisection"
    return "bisection" if bisection else "newton"


# ---------------------------------------------------------------------------
# Random numbers
# ---------------------------------------------------------------------------
class RandomStream:
    """Seedable stream of uniforms and Box-Muller normals.

    Backed by PCG64 over a ``numpy.random.SeedSequence``; the same seed
    always yields a bit-identical sequence.  Child streams for parallel
    batches come from :meth:`spawn` or :meth:`for_batch`, which depend only
    on the master seed and the child index.
    """

    def __init__(self, seed: SeedLike = None):
        if isinstance(seed, np.random.SeedSequence):
            self._seed_seq = seed
        else:
            self._seed_seq = np.random.SeedSequence(seed)
        self._gen = np.random.Generator(np.random.PCG64(self._seed_seq))
        self._spare: Optional[float] = None

    @classmethod
    def for_batch(cls, master: SeedLike, index: int) -> "RandomStream":
        """Stream for batch *index* of a simulation seeded by *master*."""
        if not isinstance(master, np.random.SeedSequence):
            master = np.random.SeedSequence(master)
        child = np.random.SeedSequence(
            master.entropy, spawn_key=tuple(master.spawn_key) + (int(index),)
        )
        return cls(child)

    def spawn(self, n: int) -> list["RandomStream"]:
        return [RandomStream(s) for s in self._seed_seq.spawn(n)]

    # -- scalars ----------------------------------------------------------
    def next_uniform(self) -> float:
        """Uniform draw on (0, 1]."""
        return 1.0 - float(self._gen.random())

    def next_normal(self) -> float:
        if self._spare is not None:
            z, self._spare = self._spare, None
            return z
        u1, u2 = self.next_uniform(), float(self._gen.random())
        radius = math.sqrt(-2.0 * math.log(u1))
        angle = 2.0 * math.pi * u2
        self._spare = radius * math.sin(angle)
        return radius * math.cos(angle)

    def next_antithetic_pair(self) -> tuple[float, float]:
        z = self.next_normal()
        return z, -z

    # -- arrays -----------------------------------------------------------
    def uniforms(self, shape) -> np.ndarray:
        return 1.0 - self._gen.random(shape)

    def normals(self, shape) -> np.ndarray:
        """Array of standard normals by vectorised Box-Muller."""
        shape = (shape,) if np.isscalar(shape) else tuple(shape)
        n = int(np.prod(shape))
        m = (n + 1) // 2
        u1 = 1.0 - self._gen.random(m)
        u2 = self._gen.random(m)
        radius = np.sqrt(-2.0 * np.log(u1))
        angle = 2.0 * np.pi * u2
        z = np.concatenate([radius * np.cos(angle), radius * np.sin(angle)])[:n]
        return z.reshape(shape)

    def antithetic_normals(self, shape) -> np.ndarray:
        """Normals whose last axis is ``[Z, -Z]``; the last dimension must be even."""
        shape = (shape,) if np.isscalar(shape) else tuple(shape)
        if shape[-1] % 2:
            raise InvalidInput("antithetic draws need an even last dimension", "shape")
        half = self.normals(shape[:-1] + (shape[-1] // 2,))
        return np.concatenate([half, -half], axis=-1)

    def poisson(self, lam, shape) -> np.ndarray:
        return self._gen.poisson(lam, size=shape)
