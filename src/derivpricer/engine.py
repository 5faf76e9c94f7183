"""External call surface of the pricing engine.

Every entry point takes an explicit :class:`PricingConfig` (defaulted) and
either returns an immutable result or raises an
:class:`~derivpricer.errors.EngineError` naming what failed.  Pricing
calls accept a ``threading.Event`` that cancels Monte Carlo work between
batches.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from . import bonds, options, strategy
from .bonds import BondSpec
from .config import DEFAULT_CONFIG, PricingConfig
from .core import OptionSpec
from .curves import YieldCurve
from .results import PricingResult
from .strategy import Strategy

logger = logging.getLogger(__name__)

__all__ = [
    "price_bond",
    "price_option",
    "price_strategy",
    "solve_implied_yield",
    "solve_implied_volatility",
]


def price_bond(
    spec: BondSpec,
    curve: YieldCurve,
    config: PricingConfig = DEFAULT_CONFIG,
    *,
    market_price: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> PricingResult:
    logger.debug("price_bond %s maturity=%g model=%s", spec.structure.value, spec.maturity, config.model.value)
    return bonds.price_bond(spec, curve, config, market_price=market_price, cancel=cancel)


def price_option(
    spec: OptionSpec,
    config: PricingConfig = DEFAULT_CONFIG,
    *,
    cancel: Optional[threading.Event] = None,
) -> PricingResult:
    logger.debug("price_option %s %s model=%s", spec.exotic.value, spec.kind, config.model.value)
    return options.price_option(spec, config, cancel)


def price_strategy(
    spec: Strategy,
    config: PricingConfig = DEFAULT_CONFIG,
    *,
    cancel: Optional[threading.Event] = None,
) -> PricingResult:
    logger.debug("price_strategy %r model=%s", spec.name, config.model.value)
    return strategy.price_strategy(spec, config, cancel)


def solve_implied_yield(
    price: float, spec: BondSpec, curve: Optional[YieldCurve] = None, config: PricingConfig = DEFAULT_CONFIG
) -> float:
    """Yield to maturity (nominal, bond frequency) that reprices *price*.

    Floating and inverse-floating bonds need *curve* to project coupons.
    """
    return bonds.solve_yield(price, spec, curve, config)


def solve_implied_volatility(
    price: float, spec: OptionSpec, config: PricingConfig = DEFAULT_CONFIG
) -> float:
    """Volatility that reprices *price* under ``config.model``."""
    return options.implied_volatility(price, spec, config)
