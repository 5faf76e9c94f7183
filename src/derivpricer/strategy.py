"""Multi-leg option strategies.

A :class:`Strategy` is a set of signed option legs (plus an optional
underlying position) on one market.  Its value and Greeks are the signed
sums of the legs'; when every leg is a European vanilla sharing one expiry
the expiry payoff is piecewise linear in ``S_T`` and
:func:`expiry_profile` reads max profit, max loss and breakevens off its
kinks.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import DEFAULT_CONFIG, PricingConfig
from .core import CALL, EUROPEAN, PUT, MarketData, OptionSpec
from .errors import InvalidInput
from .numerics import normal_cdf
from .options import price_option
from .results import Greeks, PricingResult, StrategyAnalytics

logger = logging.getLogger(__name__)

__all__ = [
    "StrategyLeg",
    "Strategy",
    "price_strategy",
    "payoff_at_expiry",
    "expiry_profile",
    "covered_call",
    "protective_put",
    "bull_call_spread",
    "bear_put_spread",
    "straddle",
    "strangle",
    "butterfly",
    "iron_condor",
]


@dataclass(frozen=True)
class StrategyLeg:
    """One option position; negative *quantity* is a short."""
    kind: str
    strike: float
    expiry: float
    quantity: float = 1.0
    entry_price: Optional[float] = None
    style: str = EUROPEAN

    def __post_init__(self):
        if self.quantity == 0:
            raise InvalidInput("leg quantity must be non-zero", "quantity")
        if self.entry_price is not None and self.entry_price < 0:
            raise InvalidInput("entry price must be non-negative", "entry_price")


@dataclass(frozen=True)
class Strategy:
    """Legs plus an optional underlying position on one market.

    ``underlying_entry`` defaults to the current spot.
    """
    market: MarketData
    legs: tuple[StrategyLeg, ...]
    underlying_quantity: float = 0.0
    underlying_entry: Optional[float] = None
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "legs", tuple(self.legs))
        if not self.legs and self.underlying_quantity == 0:
            raise InvalidInput("strategy has no positions", "legs")

    def leg_spec(self, leg: StrategyLeg) -> OptionSpec:
        return OptionSpec.from_market(self.market, leg.strike, leg.expiry, leg.kind, style=leg.style)

    @property
    def single_expiry(self) -> bool:
        return (
            len({leg.expiry for leg in self.legs}) <= 1
            and all(leg.style == EUROPEAN for leg in self.legs)
        )


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------
def price_strategy(
    strategy: Strategy, config: PricingConfig = DEFAULT_CONFIG, cancel: Optional[threading.Event] = None
) -> PricingResult:
    """Signed sum of leg prices and Greeks, with the expiry profile attached.

    Simulation standard errors are combined in quadrature and reported with
    a normal confidence interval.
    """
    spot = strategy.market.spot
    price = strategy.underlying_quantity * spot
    intrinsic = strategy.underlying_quantity * spot
    greeks = Greeks(delta=strategy.underlying_quantity) if config.compute_greeks else None
    variance, simulated = 0.0, False
    premiums = []

    for leg in strategy.legs:
        res = price_option(strategy.leg_spec(leg), config, cancel)
        price += leg.quantity * res.price
        intrinsic += leg.quantity * res.intrinsic_value
        premiums.append(res.price)
        if greeks is not None and res.greeks is not None:
            greeks = greeks + res.greeks.scaled(leg.quantity)
        if res.std_error is not None:
            simulated = True
            variance += (leg.quantity * res.std_error) ** 2

    logger.debug("strategy %r: %d legs, value %.6g", strategy.name, len(strategy.legs), price)
    analytics = expiry_profile(strategy, premiums)

    if simulated:
        se = math.sqrt(variance)
        return PricingResult(
            model=config.model.value, price=price, intrinsic_value=intrinsic,
            time_value=price - intrinsic, greeks=greeks, std_error=se,
            confidence_interval=(price - 1.959963984540054 * se, price + 1.959963984540054 * se),
            ci_method="normal", strategy=analytics,
        )
    return PricingResult(
        model=config.model.value, price=price, intrinsic_value=intrinsic,
        time_value=price - intrinsic, greeks=greeks, strategy=analytics,
    )


def _net_cost(strategy: Strategy, premiums) -> float:
    cost = strategy.underlying_quantity * (
        strategy.market.spot if strategy.underlying_entry is None else strategy.underlying_entry
    )
    for leg, premium in zip(strategy.legs, premiums):
        cost += leg.quantity * (premium if leg.entry_price is None else leg.entry_price)
    return cost


def payoff_at_expiry(strategy: Strategy, prices, premiums) -> np.ndarray:
    """P&L at expiry for terminal prices *prices*, net of the entry cost."""
    S = np.asarray(prices, dtype=float)
    value = strategy.underlying_quantity * S
    for leg in strategy.legs:
        intrinsic = np.maximum(S - leg.strike, 0.0) if leg.kind == CALL else np.maximum(leg.strike - S, 0.0)
        value = value + leg.quantity * intrinsic
    return value - _net_cost(strategy, premiums)


# ---------------------------------------------------------------------------
# Expiry analytics
# ---------------------------------------------------------------------------
def expiry_profile(strategy: Strategy, premiums) -> StrategyAnalytics:
    """Max profit / loss, breakevens and probability of profit at expiry.

    Parameters
    ----------
    strategy : Strategy
    premiums : sequence of float
        Model price per leg, used where a leg has no ``entry_price``.

    Returns
    -------
    StrategyAnalytics
        Bounds are ``None`` when the legs do not share one European expiry.
    """
    net = _net_cost(strategy, premiums)
    if not strategy.single_expiry:
        return StrategyAnalytics(net_premium=net, max_profit=None, max_loss=None)

    kinks = np.unique([0.0] + [leg.strike for leg in strategy.legs])
    values = payoff_at_expiry(strategy, kinks, premiums)
    right_slope = strategy.underlying_quantity + sum(leg.quantity for leg in strategy.legs if leg.kind == CALL)

    max_profit = math.inf if right_slope > 0 else float(values.max())
    max_loss = -math.inf if right_slope < 0 else float(values.min())

    breakevens = []
    for i in range(len(kinks)):
        if values[i] == 0.0:
            breakevens.append(float(kinks[i]))
        if i + 1 < len(kinks) and values[i] * values[i + 1] < 0.0:
            w = values[i] / (values[i] - values[i + 1])
            breakevens.append(float(kinks[i] + w * (kinks[i + 1] - kinks[i])))
    if values[-1] * right_slope < 0.0:
        breakevens.append(float(kinks[-1] - values[-1] / right_slope))
    breakevens = sorted(set(breakevens))

    pop = _probability_of_profit(strategy, premiums, breakevens, float(kinks[-1]))
    return StrategyAnalytics(
        net_premium=net,
        max_profit=max_profit,
        max_loss=max_loss,
        breakevens=tuple(breakevens),
        probability_of_profit=pop,
    )


def _prob_above(x: float, strategy: Strategy, T: float) -> float:
    """Risk-neutral P(S_T > x) under lognormal dynamics."""
    m = strategy.market
    if x <= 0.0:
        return 1.0
    sd = m.volatility * math.sqrt(T)
    drift = math.log(m.spot / x) + (m.rate - m.dividend - 0.5 * m.volatility ** 2) * T
    if sd == 0.0:
        return 1.0 if drift > 0 else 0.0
    return float(normal_cdf(drift / sd))


def _probability_of_profit(strategy, premiums, breakevens, last_kink) -> Optional[float]:
    if not strategy.legs:
        return None
    T = strategy.legs[0].expiry
    edges = [0.0] + breakevens + [math.inf]
    prob = 0.0
    for lo, hi in zip(edges[:-1], edges[1:]):
        sample = 0.5 * (lo + hi) if math.isfinite(hi) else max(lo, last_kink) + 1.0
        if payoff_at_expiry(strategy, [sample], premiums)[0] > 0.0:
            upper = 0.0 if math.isinf(hi) else _prob_above(hi, strategy, T)
            prob += _prob_above(lo, strategy, T) - upper
    return min(max(prob, 0.0), 1.0)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def covered_call(market: MarketData, strike: float, expiry: float, quantity: float = 1.0) -> Strategy:
    return Strategy(market, (StrategyLeg(CALL, strike, expiry, -quantity),), underlying_quantity=quantity,
                    name="covered call")


def protective_put(market: MarketData, strike: float, expiry: float, quantity: float = 1.0) -> Strategy:
    return Strategy(market, (StrategyLeg(PUT, strike, expiry, quantity),), underlying_quantity=quantity,
                    name="protective put")


def bull_call_spread(market: MarketData, low: float, high: float, expiry: float) -> Strategy:
    if not low < high:
        raise InvalidInput("bull call spread needs low < high", "strike")
    legs = (StrategyLeg(CALL, low, expiry, 1.0), StrategyLeg(CALL, high, expiry, -1.0))
    return Strategy(market, legs, name="bull call spread")


def bear_put_spread(market: MarketData, low: float, high: float, expiry: float) -> Strategy:
    if not low < high:
        raise InvalidInput("bear put spread needs low < high", "strike")
    legs = (StrategyLeg(PUT, high, expiry, 1.0), StrategyLeg(PUT, low, expiry, -1.0))
    return Strategy(market, legs, name="bear put spread")


def straddle(market: MarketData, strike: float, expiry: float, quantity: float = 1.0) -> Strategy:
    """Long straddle; negative *quantity* sells it."""
    legs = (StrategyLeg(CALL, strike, expiry, quantity), StrategyLeg(PUT, strike, expiry, quantity))
    return Strategy(market, legs, name="straddle")


def strangle(market: MarketData, put_strike: float, call_strike: float, expiry: float,
             quantity: float = 1.0) -> Strategy:
    if not put_strike < call_strike:
        raise InvalidInput("strangle needs put strike < call strike", "strike")
    legs = (StrategyLeg(PUT, put_strike, expiry, quantity), StrategyLeg(CALL, call_strike, expiry, quantity))
    return Strategy(market, legs, name="strangle")


def butterfly(market: MarketData, low: float, mid: float, high: float, expiry: float) -> Strategy:
    """Long call butterfly: +1 low, -2 mid, +1 high."""
    if not low < mid < high:
        raise InvalidInput("butterfly needs low < mid < high", "strike")
    legs = (
        StrategyLeg(CALL, low, expiry, 1.0),
        StrategyLeg(CALL, mid, expiry, -2.0),
        StrategyLeg(CALL, high, expiry, 1.0),
    )
    return Strategy(market, legs, name="butterfly")


def iron_condor(market: MarketData, k1: float, k2: float, k3: float, k4: float, expiry: float) -> Strategy:
    """Short iron condor: long k1 put, short k2 put, short k3 call, long k4 call."""
    if not k1 < k2 < k3 < k4:
        raise InvalidInput("iron condor needs k1 < k2 < k3 < k4", "strike")
    legs = (
        StrategyLeg(PUT, k1, expiry, 1.0),
        StrategyLeg(PUT, k2, expiry, -1.0),
        StrategyLeg(CALL, k3, expiry, -1.0),
        StrategyLeg(CALL, k4, expiry, 1.0),
    )
    return Strategy(market, legs, name="iron condor")
