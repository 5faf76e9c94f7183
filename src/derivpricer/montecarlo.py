# montecarlo.py
# Batch runner for Monte Carlo estimators.
#
# A sampler maps (RandomStream, n) -> n discounted payoffs.  Paths are split
# into fixed-size batches; batch i always draws from the i-th child of the
# master seed, so results do not depend on how many workers run them.

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .errors import Cancelled, InvalidInput, NumericOverflow
from .numerics import RandomStream

logger = logging.getLogger(__name__)

__all__ = ["SimulationSummary", "plan_batches", "simulate", "summarize"]

Sampler = Callable[[RandomStream, int], np.ndarray]

_Z95 = 1.959963984540054


@dataclass(frozen=True)
class SimulationSummary:
    """Reduction of a simulated sample.

    ``ci_method`` is ``"percentile"`` (2.5/97.5 percentiles of the sample)
    or ``"normal"`` (mean +/- 1.96 standard errors).
    """
    mean: float
    std_error: float
    ci_low: float
    ci_high: float
    n_paths: int
    ci_method: str

    @property
    def confidence_interval(self) -> tuple[float, float]:
        return (self.ci_low, self.ci_high)


def plan_batches(n_paths: int, batch_size: int, antithetic: bool) -> list[int]:
    """Split *n_paths* into batches; with antithetic pairing every batch is even."""
    if n_paths <= 0 or batch_size <= 0:
        raise InvalidInput("path count and batch size must be positive", "n_paths")
    if antithetic:
        n_paths += n_paths % 2
        batch_size += batch_size % 2
    sizes = []
    remaining = n_paths
    while remaining > 0:
        m = min(batch_size, remaining)
        sizes.append(m)
        remaining -= m
    return sizes


def _run_batch(sampler: Sampler, master, index: int, size: int, cancel) -> np.ndarray:
    if cancel is not None and cancel.is_set():
        raise Cancelled(f"simulation cancelled before batch {index}")
    values = np.asarray(sampler(RandomStream.for_batch(master, index), size), dtype=float)
    if values.shape != (size,):
        raise InvalidInput(f"sampler returned shape {values.shape}, expected ({size},)", "sampler")
    return values


def simulate(
    sampler: Sampler,
    *,
    n_paths: int = 10_000,
    seed: Optional[int] = None,
    antithetic: bool = True,
    batch_size: int = 5_000,
    n_workers: int = 1,
    ci_method: str = "normal",
    cancel: Optional[threading.Event] = None,
) -> SimulationSummary:
    """Run *sampler* over all batches and reduce to a :class:`SimulationSummary`.

    Parameters
    ----------
    sampler : callable
        ``sampler(stream, n) -> ndarray (n,)`` of discounted payoffs.  With
        antithetic pairing, element ``k`` and ``k + n/2`` form a pair.
    n_paths : int
        Total paths (rounded up to even under antithetic pairing).
    seed : int, optional
        Master seed; ``None`` draws fresh OS entropy.
    batch_size : int
        Paths per batch; cancellation is checked between batches.
    n_workers : int
        Threads used to run batches.
    ci_method : str
        ``"normal"`` or ``"percentile"``.
    cancel : threading.Event, optional
        Cooperative cancellation flag.

    Raises
    ------
    Cancelled
        *cancel* was set; no partial result is returned.
    NumericOverflow
        A sampled payoff was NaN/Inf.
    """
    if ci_method not in ("normal", "percentile"):
        raise InvalidInput(f"ci_method must be 'normal' or 'percentile', got {ci_method!r}", "ci_method")

    sizes = plan_batches(n_paths, batch_size, antithetic)
    master = np.random.SeedSequence(seed)
    logger.info(
        "monte carlo: %d paths in %d batches, %d worker(s), antithetic=%s",
        sum(sizes), len(sizes), n_workers, antithetic,
    )

    if n_workers <= 1 or len(sizes) == 1:
        batches = [_run_batch(sampler, master, i, m, cancel) for i, m in enumerate(sizes)]
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as ex:
            futs = [ex.submit(_run_batch, sampler, master, i, m, cancel) for i, m in enumerate(sizes)]
            try:
                batches = [f.result() for f in futs]
            except Cancelled:
                for f in futs:
                    f.cancel()
                raise
    if cancel is not None and cancel.is_set():
        raise Cancelled("simulation cancelled")

    return summarize(batches, antithetic=antithetic, ci_method=ci_method)


def summarize(batches: list[np.ndarray], *, antithetic: bool, ci_method: str) -> SimulationSummary:
    """Reduce per-batch samples in batch order."""
    X = np.concatenate(batches)
    if not np.all(np.isfinite(X)):
        raise NumericOverflow("simulated payoff is not finite", "payoff")
    n = X.size
    mean = float(X.mean())

    if antithetic:
        pair_means = np.concatenate([0.5 * (b[: b.size // 2] + b[b.size // 2:]) for b in batches])
        se = float(pair_means.std(ddof=1) / math.sqrt(pair_means.size)) if pair_means.size > 1 else 0.0
    else:
        se = float(X.std(ddof=1) / math.sqrt(n)) if n > 1 else 0.0

    if ci_method == "percentile":
        lo, hi = np.percentile(X, [2.5, 97.5])
    else:
        lo, hi = mean - _Z95 * se, mean + _Z95 * se
    return SimulationSummary(mean, se, float(lo), float(hi), n, ci_method)
