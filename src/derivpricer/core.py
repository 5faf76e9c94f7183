from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .errors import InvalidInput

CALL = "call"
PUT = "put"
EUROPEAN = "european"
AMERICAN = "american"


class ExoticKind(str, Enum):
    VANILLA = "vanilla"
    ASIAN = "asian"
    BARRIER = "barrier"
    LOOKBACK = "lookback"
    BINARY = "binary"
    COMPOUND = "compound"
    RAINBOW = "rainbow"
    QUANTO = "quanto"
    SPREAD = "spread"


def _require(cond: bool, message: str, parameter: str) -> None:
    if not cond:
        raise InvalidInput(message, parameter)


# ---------------------------------------------------------------------------
# Exotic terms
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class BarrierTerms:
    level: float
    barrier_type: str = "up-and-out"
    rebate: float = 0.0

    def __post_init__(self):
        _require(self.level > 0, "barrier level must be positive", "level")
        _require(self.rebate >= 0, "rebate must be non-negative", "rebate")


@dataclass(frozen=True)
class AsianTerms:
    average: str = "arithmetic"     # or "geometric"
    strike_type: str = "fixed"      # or "floating"


@dataclass(frozen=True)
class LookbackTerms:
    strike_type: str = "floating"   # or "fixed"


@dataclass(frozen=True)
class BinaryTerms:
    payout: str = "cash"            # or "asset"
    cash: float = 1.0


@dataclass(frozen=True)
class CompoundTerms:
    """The underlying option of a compound option.

    The outer option expires at ``OptionSpec.expiry`` with strike
    ``OptionSpec.strike``; the inner option runs to *inner_expiry*.
    """
    inner_strike: float
    inner_expiry: float
    inner_kind: str = CALL

    def __post_init__(self):
        _require(self.inner_strike > 0, "inner strike must be positive", "inner_strike")
        _require(self.inner_kind in (CALL, PUT), "inner kind must be 'call' or 'put'", "inner_kind")


@dataclass(frozen=True)
class SecondAsset:
    """Second underlying of rainbow and spread options.

    ``best`` selects best-of (True) or worst-of (False) for rainbows.
    """
    spot: float
    volatility: float
    dividend: float = 0.0
    correlation: float = 0.0
    best: bool = True

    def __post_init__(self):
        _require(self.spot > 0, "second asset spot must be positive", "spot")
        _require(self.volatility >= 0, "second asset volatility must be non-negative", "volatility")
        _require(-1.0 <= self.correlation <= 1.0, "correlation must be in [-1, 1]", "correlation")


@dataclass(frozen=True)
class QuantoTerms:
    fx_rate: float
    fx_volatility: float
    correlation: float
    foreign_rate: float

    def __post_init__(self):
        _require(self.fx_rate > 0, "fx rate must be positive", "fx_rate")
        _require(self.fx_volatility >= 0, "fx volatility must be non-negative", "fx_volatility")
        _require(-1.0 <= self.correlation <= 1.0, "correlation must be in [-1, 1]", "correlation")


# ---------------------------------------------------------------------------
# Stochastic model parameters
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class HestonParams:
    v0: float
    kappa: float
    theta: float
    xi: float
    rho: float

    def __post_init__(self):
        _require(self.v0 >= 0 and self.theta >= 0, "variances must be non-negative", "v0")
        _require(self.kappa >= 0 and self.xi >= 0, "kappa and xi must be non-negative", "kappa")
        _require(-1.0 <= self.rho <= 1.0, "rho must be in [-1, 1]", "rho")

    @property
    def feller(self) -> bool:
        """``2 kappa theta > xi^2``: the variance stays strictly positive."""
        return 2.0 * self.kappa * self.theta > self.xi * self.xi


@dataclass(frozen=True)
class SABRParams:
    alpha: float
    beta: float
    rho: float
    nu: float

    def __post_init__(self):
        _require(self.alpha > 0, "alpha must be positive", "alpha")
        _require(0.0 <= self.beta <= 1.0, "beta must be in [0, 1]", "beta")
        _require(-1.0 < self.rho < 1.0, "rho must be in (-1, 1)", "rho")
        _require(self.nu >= 0, "nu must be non-negative", "nu")


@dataclass(frozen=True)
class JumpDiffusionParams:
    intensity: float        # jumps per year
    mean: float             # mean log jump size
    volatility: float       # sd of log jump size

    def __post_init__(self):
        _require(self.intensity >= 0, "intensity must be non-negative", "intensity")
        _require(self.volatility >= 0, "jump volatility must be non-negative", "volatility")


# ---------------------------------------------------------------------------
# Option contract + market snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class MarketData:
    """Market snapshot shared by the legs of a strategy.

    Parameters
    ----------
    spot : float
        Current underlying price.
    rate : float
        Continuously-compounded risk-free rate.
    volatility : float
        Flat volatility.
    dividend : float
        Continuous dividend / carry yield (default 0).
    """
    spot: float
    rate: float
    volatility: float
    dividend: float = 0.0

    def __post_init__(self):
        _require(self.spot > 0, f"spot must be positive, got {self.spot}", "spot")
        _require(self.volatility >= 0, f"volatility must be non-negative, got {self.volatility}", "volatility")


@dataclass(frozen=True)
class OptionSpec:
    """Single option: contract terms plus the market it is priced in.

    Parameters
    ----------
    spot, strike : float
        Underlying price and strike.  Spread options accept any finite
        strike; floating-strike payoffs ignore it.
    expiry : float
        Years to expiry; zero prices the intrinsic value.
    rate, dividend : float
        Continuous risk-free rate and dividend/carry yield.
    volatility : float
        Flat volatility; stochastic models read their own parameter block.
    kind : str
        ``"call"`` or ``"put"``.
    style : str
        ``"european"`` or ``"american"`` (vanilla only).
    exotic : ExoticKind
        Payoff family; kind-specific terms go in the matching field.
    """
    spot: float
    strike: float
    expiry: float
    rate: float
    volatility: float
    dividend: float = 0.0
    kind: str = CALL
    style: str = EUROPEAN
    exotic: ExoticKind = ExoticKind.VANILLA
    barrier: Optional[BarrierTerms] = None
    asian: Optional[AsianTerms] = None
    lookback: Optional[LookbackTerms] = None
    binary: Optional[BinaryTerms] = None
    compound: Optional[CompoundTerms] = None
    second_asset: Optional[SecondAsset] = None
    quanto: Optional[QuantoTerms] = None
    heston: Optional[HestonParams] = None
    sabr: Optional[SABRParams] = None
    jump: Optional[JumpDiffusionParams] = None

    def __post_init__(self):
        object.__setattr__(self, "exotic", ExoticKind(self.exotic))
        for name in ("spot", "strike", "expiry", "rate", "volatility", "dividend"):
            _require(math.isfinite(getattr(self, name)), f"{name} must be finite", name)
        _require(self.spot > 0, f"spot must be positive, got {self.spot}", "spot")
        if self.exotic is not ExoticKind.SPREAD:
            _require(self.strike > 0 or self._strike_unused, f"strike must be positive, got {self.strike}", "strike")
        _require(self.expiry >= 0, f"expiry must be non-negative, got {self.expiry}", "expiry")
        _require(self.volatility >= 0, f"volatility must be non-negative, got {self.volatility}", "volatility")
        _require(self.kind in (CALL, PUT), f"kind must be 'call' or 'put', got {self.kind!r}", "kind")
        _require(self.style in (EUROPEAN, AMERICAN), f"style must be 'european' or 'american', got {self.style!r}", "style")
        _require(
            self.style == EUROPEAN or self.exotic is ExoticKind.VANILLA,
            "american exercise is supported for vanilla options only", "style",
        )
        required = {
            ExoticKind.BARRIER: "barrier",
            ExoticKind.COMPOUND: "compound",
            ExoticKind.RAINBOW: "second_asset",
            ExoticKind.SPREAD: "second_asset",
            ExoticKind.QUANTO: "quanto",
        }
        field_name = required.get(self.exotic)
        if field_name is not None:
            _require(getattr(self, field_name) is not None, f"{self.exotic.value} option needs {field_name}", field_name)
        if self.compound is not None:
            _require(self.compound.inner_expiry > self.expiry, "inner expiry must follow the compound expiry", "inner_expiry")

    @property
    def _strike_unused(self) -> bool:
        floating_lookback = self.exotic is ExoticKind.LOOKBACK and (self.lookback or LookbackTerms()).strike_type == "floating"
        floating_asian = self.exotic is ExoticKind.ASIAN and (self.asian or AsianTerms()).strike_type == "floating"
        return floating_lookback or floating_asian

    def with_expiry(self, expiry: float) -> "OptionSpec":
        """Same contract with *expiry* years left.

        A compound option's inner expiry moves by the same amount, so the
        time between the two expiries is preserved.
        """
        if self.compound is None:
            return replace(self, expiry=expiry)
        inner_expiry = self.compound.inner_expiry + (expiry - self.expiry)
        return replace(self, expiry=expiry, compound=replace(self.compound, inner_expiry=inner_expiry))

    @property
    def intrinsic(self) -> float:
        """Exercise value against the current spot."""
        if self.kind == CALL:
            return max(self.spot - self.strike, 0.0)
        return max(self.strike - self.spot, 0.0)

    @classmethod
    def from_market(cls, market: MarketData, strike: float, expiry: float, kind: str = CALL, **terms) -> "OptionSpec":
        return cls(
            spot=market.spot, strike=strike, expiry=expiry, rate=market.rate,
            volatility=market.volatility, dividend=market.dividend, kind=kind, **terms,
        )
