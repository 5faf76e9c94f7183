from __future__ import annotations

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Mapping, Optional

from .numerics import ensure_finite

__all__ = ["Greeks", "BondAnalytics", "StrategyAnalytics", "PricingResult"]

FIRST_ORDER = ("delta", "gamma", "vega", "theta", "rho")


@dataclass(frozen=True)
class Greeks:
    """Price sensitivities.

    Vega is per 1.00 of volatility, rho per 1.00 of rate and theta per year
    of calendar time.  ``higher`` holds named higher-order terms
    (vanna, volga, charm, ...) as a read-only mapping.
    """
    delta: float = 0.0
    gamma: float = 0.0
    vega: float = 0.0
    theta: float = 0.0
    rho: float = 0.0
    higher: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "higher", MappingProxyType({k: float(v) for k, v in self.higher.items()}))
        for name in FIRST_ORDER:
            ensure_finite(getattr(self, name), name)

    def scaled(self, factor: float) -> "Greeks":
        return Greeks(
            *(factor * getattr(self, n) for n in FIRST_ORDER),
            higher={k: factor * v for k, v in self.higher.items()},
        )

    def __add__(self, other: "Greeks") -> "Greeks":
        keys = set(self.higher) | set(other.higher)
        return Greeks(
            *(getattr(self, n) + getattr(other, n) for n in FIRST_ORDER),
            higher={k: self.higher.get(k, 0.0) + other.higher.get(k, 0.0) for k in keys},
        )

    def as_dict(self) -> dict[str, float]:
        out = {n: getattr(self, n) for n in FIRST_ORDER}
        out.update(self.higher)
        return out


@dataclass(frozen=True)
class BondAnalytics:
    """Yield, spread and risk measures of a priced bond.

    Yield measures are nominal annual rates compounded at the bond's
    payment frequency; durations are in years; DV01 is per 1bp.
    """
    clean_price: float
    accrued_interest: float
    ytm: float
    current_yield: float
    macaulay_duration: float
    modified_duration: float
    convexity: float
    dv01: float
    effective_duration: float
    effective_convexity: float
    z_spread: float
    i_spread: float
    expected_loss: float
    credit_var: float
    ytc: Optional[float] = None
    ytw: Optional[float] = None
    oas: Optional[float] = None
    option_value: float = 0.0


@dataclass(frozen=True)
class StrategyAnalytics:
    """Expiry profile of a multi-leg strategy.

    ``max_profit`` / ``max_loss`` are ``inf`` / ``-inf`` when unbounded and
    ``None`` when the legs do not share one expiry.
    """
    net_premium: float
    max_profit: Optional[float]
    max_loss: Optional[float]
    breakevens: tuple[float, ...] = ()
    probability_of_profit: Optional[float] = None


@dataclass(frozen=True)
class PricingResult:
    """Immutable output of one pricing call."""
    model: str
    price: float
    intrinsic_value: float = 0.0
    time_value: float = 0.0
    greeks: Optional[Greeks] = None
    std_error: Optional[float] = None
    confidence_interval: Optional[tuple[float, float]] = None
    ci_method: Optional[str] = None
    converged: bool = True
    iterations: int = 0
    bond: Optional[BondAnalytics] = None
    strategy: Optional[StrategyAnalytics] = None

    def __post_init__(self):
        ensure_finite(self.price, "price")
        if self.std_error is not None:
            ensure_finite(self.std_error, "std_error")
        if self.bond is not None:
            for f in fields(self.bond):
                value = getattr(self.bond, f.name)
                if value is not None:
                    ensure_finite(value, f.name)
