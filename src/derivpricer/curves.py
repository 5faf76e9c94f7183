from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np
from scipy.interpolate import CubicSpline
from scipy.optimize import least_squares

from .errors import InvalidInput, NumericOverflow

__all__ = [
    "Interpolation",
    "NelsonSiegelParams",
    "YieldCurve",
    "coupon_times",
    "parallel_shift",
    "steepener",
    "flattener",
]

# Sampling grid used when a parametric curve has to be re-expressed on nodes.
_DEFAULT_GRID = (0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 7.0, 10.0, 15.0, 20.0, 30.0)


class Interpolation(str, Enum):
    LINEAR = "linear"
    CUBIC = "cubic"
    NELSON_SIEGEL = "nelson_siegel"
    SVENSSON = "svensson"


def coupon_times(maturity: float, frequency: int) -> np.ndarray:
    """Payment times ``maturity - k/frequency`` that are still in the future.

    A fractional ``maturity * frequency`` yields a short first period.
    """
    if maturity <= 0 or frequency <= 0:
        raise InvalidInput("maturity and frequency must be positive", "maturity")
    n = int(math.ceil(maturity * frequency - 1e-9))
    return maturity - np.arange(n - 1, -1, -1, dtype=float) / frequency


# ---------------------------------------------------------------------------
# Nelson-Siegel / Svensson
# ---------------------------------------------------------------------------
def _ns_loadings(t: np.ndarray, tau: float) -> tuple[np.ndarray, np.ndarray]:
    x = t / tau
    with np.errstate(divide="ignore", invalid="ignore"):
        slope = np.where(t == 0, 1.0, -np.expm1(-x) / np.where(x == 0, 1.0, x))
    return slope, slope - np.exp(-x)


@dataclass(frozen=True)
class NelsonSiegelParams:
    """Nelson-Siegel level/slope/curvature with optional Svensson hump.

    Rates are decimals.  ``beta3``/``tau2`` only enter the Svensson form.
    """
    beta0: float
    beta1: float
    beta2: float
    tau: float
    beta3: float = 0.0
    tau2: float = 1.0

    def __post_init__(self):
        if self.tau <= 0 or self.tau2 <= 0:
            raise InvalidInput("decay parameters must be positive", "tau")

    def rates(self, t, svensson: bool = False) -> np.ndarray:
        t = np.asarray(t, dtype=float)
        slope, hump = _ns_loadings(t, self.tau)
        y = self.beta0 + self.beta1 * slope + self.beta2 * hump
        if svensson:
            _, hump2 = _ns_loadings(t, self.tau2)
            y = y + self.beta3 * hump2
        return y


# ---------------------------------------------------------------------------
# Yield curve
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class YieldCurve:
    """Immutable term structure of nominal annual spot rates.

    Parameters
    ----------
    tenors, rates : sequence of float
        Curve nodes (years, decimal rates); tenors strictly increasing.
        Optional for an unfitted parametric curve.
    method : Interpolation
        ``linear`` / ``cubic`` interpolate the nodes; ``nelson_siegel`` /
        ``svensson`` evaluate *params*.
    params : NelsonSiegelParams, optional
        Required by the parametric methods.
    compounding : int
        Default compounding frequency per year for discount factors,
        forwards and par rates (0 = continuous).
    shift : float
        Parallel shift added to every spot rate.

    Tenors outside the node range clamp to the boundary rate.
    """
    tenors: Sequence[float] = ()
    rates: Sequence[float] = ()
    method: Interpolation = Interpolation.LINEAR
    params: Optional[NelsonSiegelParams] = None
    compounding: int = 1
    shift: float = 0.0
    _spline: Optional[CubicSpline] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        tenors = tuple(float(t) for t in self.tenors)
        rates = tuple(float(r) for r in self.rates)
        object.__setattr__(self, "tenors", tenors)
        object.__setattr__(self, "rates", rates)
        object.__setattr__(self, "method", Interpolation(self.method))

        if len(tenors) != len(rates):
            raise InvalidInput("tenors and rates differ in length", "rates")
        if self.is_parametric:
            if self.params is None:
                raise InvalidInput(f"{self.method.value} curve needs parameters", "params")
        elif not tenors:
            raise InvalidInput("curve needs at least one node", "tenors")
        if any(t < 0 for t in tenors):
            raise InvalidInput("tenors must be non-negative", "tenors")
        if np.any(np.diff(tenors) <= 0):
            raise InvalidInput("tenors must be strictly increasing", "tenors")
        if not all(math.isfinite(r) for r in rates) or not math.isfinite(self.shift):
            raise InvalidInput("rates must be finite", "rates")
        if int(self.compounding) != self.compounding or self.compounding < 0:
            raise InvalidInput("compounding must be a non-negative integer", "compounding")

        if self.method is Interpolation.CUBIC:
            if len(tenors) < 2:
                raise InvalidInput("cubic spline needs at least two nodes", "tenors")
            object.__setattr__(self, "_spline", CubicSpline(tenors, rates, bc_type="natural"))

    # -- constructors -------------------------------------------------------
    @classmethod
    def flat(cls, rate: float, compounding: int = 1) -> "YieldCurve":
        return cls((0.0,), (rate,), Interpolation.LINEAR, compounding=compounding)

    @classmethod
    def parametric(
        cls, params: NelsonSiegelParams, method=Interpolation.NELSON_SIEGEL, compounding: int = 1
    ) -> "YieldCurve":
        return cls((), (), method, params, compounding)

    @classmethod
    def fit(
        cls,
        tenors: Sequence[float],
        rates: Sequence[float],
        method=Interpolation.NELSON_SIEGEL,
        compounding: int = 1,
    ) -> "YieldCurve":
        """Least-squares Nelson-Siegel or Svensson fit to observed nodes."""
        method = Interpolation(method)
        if method not in (Interpolation.NELSON_SIEGEL, Interpolation.SVENSSON):
            raise InvalidInput("fit supports nelson_siegel and svensson only", "method")
        t = np.asarray(tenors, dtype=float)
        y = np.asarray(rates, dtype=float)
        svensson = method is Interpolation.SVENSSON
        n_params = 6 if svensson else 4
        if t.size < n_params:
            raise InvalidInput(f"need at least {n_params} nodes to fit", "tenors")

        tau0 = min(max(0.5, float(np.median(t))), 10.0)
        x0 = [y[-1], y[0] - y[-1], 0.0, tau0]
        lower = [-1.0, -1.0, -1.0, 1e-3]
        upper = [1.0, 1.0, 1.0, 30.0]
        if svensson:
            x0 += [0.0, 2.0 * tau0]
            lower += [-1.0, 1e-3]
            upper += [1.0, 30.0]

        def residuals(theta):
            p = NelsonSiegelParams(*theta)
            return p.rates(t, svensson) - y

        res = least_squares(residuals, x0, bounds=(lower, upper))
        return cls(t, y, method, NelsonSiegelParams(*res.x), compounding)

    # -- rates ----------------------------------------------------------------
    @property
    def is_parametric(self) -> bool:
        return self.method in (Interpolation.NELSON_SIEGEL, Interpolation.SVENSSON)

    def spot_rate(self, t):
        """Spot rate at tenor(s) *t*; scalar in, float out."""
        t_arr = np.asarray(t, dtype=float)
        if np.any(t_arr < 0):
            raise InvalidInput("tenor must be non-negative", "tenor")
        if self.tenors:
            t_arr = np.clip(t_arr, self.tenors[0], self.tenors[-1])

        if self.method is Interpolation.LINEAR:
            r = np.interp(t_arr, self.tenors, self.rates)
        elif self.method is Interpolation.CUBIC:
            r = self._spline(t_arr)
        else:
            r = self.params.rates(t_arr, svensson=self.method is Interpolation.SVENSSON)
        r = np.asarray(r, dtype=float) + self.shift
        return float(r) if r.ndim == 0 else r

    def long_rate(self) -> float:
        """Rate the curve settles to at the long end."""
        if self.tenors:
            return self.spot_rate(self.tenors[-1])
        return self.params.beta0 + self.shift

    def discount_factor(self, t, frequency: Optional[int] = None):
        m = self.compounding if frequency is None else frequency
        t_arr = np.asarray(t, dtype=float)
        r = np.asarray(self.spot_rate(t_arr), dtype=float)
        if m == 0:
            df = np.exp(-r * t_arr)
        else:
            base = 1.0 + r / m
            if np.any(base <= 0):
                raise NumericOverflow("rate below -100% per period", "rate")
            df = base ** (-m * t_arr)
        return float(df) if df.ndim == 0 else df

    def forward_rate(self, t1: float, t2: float, frequency: Optional[int] = None) -> float:
        """Forward rate over ``[t1, t2]`` implied by the discount factors."""
        if t1 < 0 or t2 <= t1:
            raise InvalidInput(f"need 0 <= t1 < t2, got ({t1}, {t2})", "t2")
        m = self.compounding if frequency is None else frequency
        ratio = (1.0 if t1 == 0 else self.discount_factor(t1, m)) / self.discount_factor(t2, m)
        tau = t2 - t1
        if m == 0:
            return math.log(ratio) / tau
        return m * (ratio ** (1.0 / (m * tau)) - 1.0)

    def par_rate(self, tenor: float, frequency: Optional[int] = None) -> float:
        """Coupon rate that prices a bond of *tenor* years at par."""
        m = frequency or self.compounding or 1
        times = coupon_times(tenor, m)
        annuity = float(np.sum(self.discount_factor(times, m))) / m
        return (1.0 - self.discount_factor(tenor, m)) / annuity

    # -- scenarios ----------------------------------------------------------
    def shifted(self, amount: float) -> "YieldCurve":
        """Parallel shift of every spot rate by *amount* (decimal)."""
        return replace(self, shift=self.shift + amount)

    def reshaped(self, shift_fn: Callable[[np.ndarray], np.ndarray]) -> "YieldCurve":
        """Tenor-dependent shift; parametric curves are resampled onto nodes."""
        if not self.is_parametric:
            t = np.asarray(self.tenors)
            return replace(self, rates=tuple(np.asarray(self.rates) + shift_fn(t)))
        grid = np.asarray(self.tenors or _DEFAULT_GRID, dtype=float)
        rates = self.spot_rate(grid) + shift_fn(grid)
        return YieldCurve(grid, rates, Interpolation.CUBIC, compounding=self.compounding)


# ---------------------------------------------------------------------------
# Curve shift builders (bp in, decimal shift function out)
# ---------------------------------------------------------------------------
def parallel_shift(bp: float) -> Callable[[np.ndarray], np.ndarray]:
    s = bp / 10000.0
    return lambda tau: np.full_like(np.asarray(tau, dtype=float), s)


def steepener(bp: float, pivot: float = 2.0, long: float = 10.0) -> Callable[[np.ndarray], np.ndarray]:
    """Short end down *bp*, long end up *bp*, linear in between."""
    a = bp / 10000.0
    return lambda tau: np.interp(np.asarray(tau, dtype=float), [pivot, long], [-a, a])


def flattener(bp: float, pivot: float = 2.0, long: float = 10.0) -> Callable[[np.ndarray], np.ndarray]:
    """Short end up *bp*, long end down *bp*, linear in between."""
    a = bp / 10000.0
    return lambda tau: np.interp(np.asarray(tau, dtype=float), [pivot, long], [a, -a])
