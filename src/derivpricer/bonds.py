# bonds.py
# Bond pricing engine: cash-flow schedules per structure, curve discounting,
# implied yields, spreads (Z, I, OAS), duration/convexity, scenario and
# Monte Carlo stress.  Yields and spreads are nominal annual rates
# compounded at the bond's payment frequency.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from .config import DEFAULT_CONFIG, Model, PricingConfig
from .curves import YieldCurve, coupon_times, flattener, steepener
from .errors import InvalidInput, NumericOverflow
from .lattice import ShortRateLattice
from .montecarlo import SimulationSummary, simulate
from .numerics import RandomStream, solve_root
from .processes import vasicek_paths
from .results import BondAnalytics, PricingResult

logger = logging.getLogger(__name__)

__all__ = [
    "BondStructure",
    "ExerciseStyle",
    "RATING_TABLE",
    "CreditProfile",
    "EmbeddedOption",
    "CashFlow",
    "BondSpec",
    "cash_flows",
    "accrued_interest",
    "price_bond",
    "solve_yield",
    "yield_to_call",
    "z_spread",
    "option_adjusted_spread",
    "effective_duration_convexity",
    "RateScenario",
    "ScenarioOutcome",
    "ScenarioReport",
    "DEFAULT_SCENARIOS",
    "scenario_analysis",
    "simulate_bond_prices",
]

_BP = 1e-4
_YIELD_BRACKET = (-0.99, 10.0)


class BondStructure(str, Enum):
    FIXED = "fixed"
    ZERO = "zero"
    FLOATING = "floating"
    PERPETUAL = "perpetual"
    CALLABLE = "callable"
    PUTABLE = "putable"
    CONVERTIBLE = "convertible"
    STEP_UP = "step_up"
    INVERSE_FLOATER = "inverse_floater"


class ExerciseStyle(str, Enum):
    EUROPEAN = "european"   # first exercise date only
    BERMUDAN = "bermudan"   # every listed date
    AMERICAN = "american"   # every lattice date from the first listed date


# rating -> (one-year default probability, credit spread)
RATING_TABLE: dict[str, tuple[float, float]] = {
    "AAA": (0.0002, 0.0005),
    "AA+": (0.0005, 0.001), "AA": (0.0005, 0.001), "AA-": (0.0008, 0.0015),
    "A+": (0.0015, 0.002), "A": (0.0015, 0.002), "A-": (0.0025, 0.0025),
    "BBB+": (0.005, 0.004), "BBB": (0.005, 0.004), "BBB-": (0.008, 0.006),
    "BB+": (0.015, 0.015), "BB": (0.015, 0.015), "BB-": (0.025, 0.025),
    "B+": (0.05, 0.04), "B": (0.05, 0.04), "B-": (0.08, 0.06),
    "CCC+": (0.15, 0.1), "CCC": (0.15, 0.1), "CCC-": (0.25, 0.15),
    "CC": (0.4, 0.25), "C": (0.6, 0.4), "D": (1.0, 0.8),
}


# ---------------------------------------------------------------------------
# Instrument description
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CreditProfile:
    """Issuer credit descriptor.

    An explicit *spread* wins over the rating's table spread; with neither
    the bond is discounted on the curve alone.
    """
    rating: Optional[str] = None
    spread: Optional[float] = None
    recovery_rate: float = 0.4

    def __post_init__(self):
        if self.rating is not None and self.rating not in RATING_TABLE:
            raise InvalidInput(f"unknown rating {self.rating!r}", "rating")
        if not 0.0 <= self.recovery_rate <= 1.0:
            raise InvalidInput("recovery rate must be in [0, 1]", "recovery_rate")
        if self.spread is not None and not math.isfinite(self.spread):
            raise InvalidInput("spread must be finite", "spread")

    @property
    def credit_spread(self) -> float:
        if self.spread is not None:
            return self.spread
        return RATING_TABLE[self.rating][1] if self.rating else 0.0

    @property
    def default_probability(self) -> float:
        return RATING_TABLE[self.rating][0] if self.rating else 0.0

    @property
    def expected_loss(self) -> float:
        """Expected loss per unit of face."""
        return self.default_probability * (1.0 - self.recovery_rate)

    @property
    def credit_var(self) -> float:
        """99% credit VaR per unit of face."""
        return self.expected_loss * 2.33


@dataclass(frozen=True)
class EmbeddedOption:
    """Issuer call or holder put exercisable at *exercise_price* (currency)."""
    kind: str
    exercise_price: float
    exercise_dates: Sequence[float]
    volatility: float = 0.2
    style: ExerciseStyle = ExerciseStyle.BERMUDAN

    def __post_init__(self):
        dates = tuple(float(t) for t in self.exercise_dates)
        object.__setattr__(self, "exercise_dates", dates)
        object.__setattr__(self, "style", ExerciseStyle(self.style))
        if self.kind not in ("call", "put"):
            raise InvalidInput(f"kind must be 'call' or 'put', got {self.kind!r}", "kind")
        if self.exercise_price <= 0:
            raise InvalidInput("exercise price must be positive", "exercise_price")
        if not dates or any(t <= 0 for t in dates) or np.any(np.diff(dates) <= 0):
            raise InvalidInput("exercise dates must be positive and increasing", "exercise_dates")
        if self.volatility < 0:
            raise InvalidInput("volatility must be non-negative", "volatility")


@dataclass(frozen=True)
class CashFlow:
    time: float
    amount: float


@dataclass(frozen=True)
class BondSpec:
    """Bond terms.

    Parameters
    ----------
    face : float
        Redemption amount.
    coupon_rate : float
        Annual coupon (decimal).  For ``floating`` it is the margin over the
        projected index; for ``inverse_floater`` the fixed strike rate; for
        ``step_up`` the initial coupon.
    maturity : float
        Years to maturity (ignored for ``perpetual``).
    frequency : int
        Coupons per year: 1, 2, 4 or 12.
    structure : BondStructure
    credit : CreditProfile
    embedded_options : sequence of EmbeddedOption
        Valued on one short-rate lattice, so all must quote the same
        volatility.
    step_schedule : sequence of (time, coupon_rate)
        Step-up coupons in force from each time onwards.
    leverage : float
        Inverse-floater multiplier on the index.
    conversion_ratio, stock_price : float, optional
        Convertible parity terms.
    """
    face: float
    coupon_rate: float
    maturity: float
    frequency: int = 2
    structure: BondStructure = BondStructure.FIXED
    credit: CreditProfile = CreditProfile()
    embedded_options: Sequence[EmbeddedOption] = ()
    step_schedule: Sequence[tuple[float, float]] = ()
    leverage: float = 1.0
    conversion_ratio: Optional[float] = None
    stock_price: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "structure", BondStructure(self.structure))
        object.__setattr__(self, "embedded_options", tuple(self.embedded_options))
        object.__setattr__(
            self, "step_schedule", tuple((float(t), float(c)) for t, c in self.step_schedule)
        )
        if self.face <= 0:
            raise InvalidInput("face value must be positive", "face")
        if self.maturity <= 0:
            raise InvalidInput("maturity must be positive", "maturity")
        if self.frequency not in (1, 2, 4, 12):
            raise InvalidInput("frequency must be 1, 2, 4 or 12", "frequency")
        if not math.isfinite(self.coupon_rate):
            raise InvalidInput("coupon rate must be finite", "coupon_rate")
        if self.coupon_rate < 0 and self.structure is not BondStructure.FLOATING:
            raise InvalidInput("coupon rate must be non-negative", "coupon_rate")
        if self.structure is BondStructure.PERPETUAL and self.coupon_rate <= 0:
            raise InvalidInput("perpetual bonds need a positive coupon", "coupon_rate")

        kinds = {o.kind for o in self.embedded_options}
        if self.structure is BondStructure.CALLABLE and "call" not in kinds:
            raise InvalidInput("callable bond needs a call option", "embedded_options")
        if self.structure is BondStructure.PUTABLE and "put" not in kinds:
            raise InvalidInput("putable bond needs a put option", "embedded_options")
        if self.embedded_options and self.structure in (
            BondStructure.PERPETUAL, BondStructure.FLOATING, BondStructure.ZERO
        ):
            raise InvalidInput(
                f"embedded options are not supported on {self.structure.value} bonds", "embedded_options"
            )
        for opt in self.embedded_options:
            if opt.exercise_dates[-1] > self.maturity:
                raise InvalidInput("exercise date after maturity", "exercise_dates")
        if len({o.volatility for o in self.embedded_options}) > 1:
            raise InvalidInput("embedded options share one rate lattice and need one volatility", "volatility")

        if self.step_schedule and np.any(np.diff([t for t, _ in self.step_schedule]) <= 0):
            raise InvalidInput("step schedule times must be increasing", "step_schedule")
        if (self.conversion_ratio is None) != (self.stock_price is None):
            raise InvalidInput("conversion ratio and stock price go together", "conversion_ratio")
        if self.conversion_ratio is not None and (self.conversion_ratio <= 0 or self.stock_price <= 0):
            raise InvalidInput("conversion terms must be positive", "conversion_ratio")

    @property
    def annual_coupon(self) -> float:
        return self.face * self.coupon_rate


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------
_NEEDS_CURVE = (BondStructure.FLOATING, BondStructure.INVERSE_FLOATER)


def _coupon_rates(spec: BondSpec, times: np.ndarray, curve: Optional[YieldCurve]) -> np.ndarray:
    m = spec.frequency
    starts = np.maximum(times - 1.0 / m, 0.0)
    if spec.structure in _NEEDS_CURVE:
        if curve is None:
            raise InvalidInput(f"{spec.structure.value} coupons need a curve to project", "curve")
        index = np.array([curve.forward_rate(s, t, m) for s, t in zip(starts, times)])
        if spec.structure is BondStructure.FLOATING:
            return index + spec.coupon_rate
        return np.maximum(spec.coupon_rate - spec.leverage * index, 0.0)

    rates = np.full(times.shape, spec.coupon_rate)
    if spec.structure is BondStructure.STEP_UP and spec.step_schedule:
        step_times = np.array([t for t, _ in spec.step_schedule])
        step_rates = np.array([c for _, c in spec.step_schedule])
        idx = np.searchsorted(step_times, starts + 1e-12, side="right") - 1
        rates = np.where(idx >= 0, step_rates[np.maximum(idx, 0)], rates)
    return rates


def _schedule(spec: BondSpec, curve: Optional[YieldCurve] = None) -> tuple[np.ndarray, np.ndarray]:
    if spec.structure is BondStructure.PERPETUAL:
        raise InvalidInput("perpetual bonds have no finite schedule", "structure")
    if spec.structure is BondStructure.ZERO:
        return np.array([spec.maturity]), np.array([spec.face])
    times = coupon_times(spec.maturity, spec.frequency)
    amounts = spec.face * _coupon_rates(spec, times, curve) / spec.frequency
    amounts[-1] += spec.face
    return times, amounts


def cash_flows(spec: BondSpec, curve: Optional[YieldCurve] = None) -> tuple[CashFlow, ...]:
    """Ordered cash flows; the last one includes redemption."""
    times, amounts = _schedule(spec, curve)
    return tuple(CashFlow(float(t), float(a)) for t, a in zip(times, amounts))


def accrued_interest(spec: BondSpec, curve: Optional[YieldCurve] = None) -> float:
    """Coupon accrued since the last payment date of a part-elapsed period."""
    if spec.structure in (BondStructure.ZERO, BondStructure.PERPETUAL):
        return 0.0
    times, amounts = _schedule(spec, curve)
    elapsed = 1.0 / spec.frequency - times[0]
    if elapsed <= 1e-12:
        return 0.0
    coupon = amounts[0] - (spec.face if times.size == 1 else 0.0)
    return float(coupon * elapsed * spec.frequency)


# ---------------------------------------------------------------------------
# Discounting
# ---------------------------------------------------------------------------
def _discount(curve: YieldCurve, times: np.ndarray, m: int, spread: float) -> np.ndarray:
    base = 1.0 + (np.asarray(curve.spot_rate(times)) + spread) / m
    if np.any(base <= 0):
        raise NumericOverflow("discount rate below -100% per period", "spread")
    return base ** (-m * times)


def _yield_price(times: np.ndarray, amounts: np.ndarray, y: float, m: int) -> float:
    return float(np.sum(amounts * (1.0 + y / m) ** (-m * times)))


def _yield_dprice(times: np.ndarray, amounts: np.ndarray, y: float, m: int) -> float:
    return float(np.sum(-times * amounts * (1.0 + y / m) ** (-m * times - 1.0)))


def _lattice_setup(spec: BondSpec, curve: YieldCurve, config: PricingConfig):
    times, amounts = _schedule(spec, curve)
    n_periods = times.size
    per_period = max(1, math.ceil(config.lattice_steps / n_periods))
    steps = n_periods * per_period
    dt = spec.maturity / steps
    flows = np.zeros(steps + 1)
    np.add.at(flows, np.rint(times / dt).astype(int), amounts)

    calls = np.full(steps + 1, np.nan)
    puts = np.full(steps + 1, np.nan)
    for opt in spec.embedded_options:
        first = int(round(opt.exercise_dates[0] / dt))
        if opt.style is ExerciseStyle.AMERICAN:
            idx = np.arange(first, steps + 1)
        elif opt.style is ExerciseStyle.EUROPEAN:
            idx = np.array([first])
        else:
            idx = np.rint(np.asarray(opt.exercise_dates) / dt).astype(int)
        target = calls if opt.kind == "call" else puts
        combine = np.fmin if opt.kind == "call" else np.fmax
        target[idx] = combine(target[idx], opt.exercise_price)

    sigma = spec.embedded_options[0].volatility
    lattice = ShortRateLattice.build(curve, spec.maturity, steps, sigma, spec.frequency)
    return lattice, flows, calls, puts


def _lattice_values(spec, curve, config, oas: float) -> tuple[float, float]:
    lattice, flows, calls, puts = _lattice_setup(spec, curve, config)
    return lattice.value_bond(flows, oas, calls, puts)


def _model_price(spec: BondSpec, curve: YieldCurve, config: PricingConfig) -> tuple[float, float]:
    """(price, embedded option value) under the curve plus credit spread."""
    m = spec.frequency
    spread = spec.credit.credit_spread

    if spec.structure is BondStructure.PERPETUAL:
        rate = curve.long_rate() + spread
        if rate <= 0:
            raise NumericOverflow("perpetual discount rate must be positive", "spread")
        return spec.annual_coupon / rate, 0.0

    if spec.structure is BondStructure.FLOATING:
        times = coupon_times(spec.maturity, m)
        margin_pv = spec.face * spec.coupon_rate / m * float(np.sum(_discount(curve, times, m, spread)))
        return spec.face + margin_pv, 0.0

    times, amounts = _schedule(spec, curve)
    price = float(np.sum(amounts * _discount(curve, times, m, spread)))
    option_value = 0.0
    if spec.embedded_options:
        straight, embedded = _lattice_values(spec, curve, config, spread)
        option_value = straight - embedded
        price -= option_value
    if spec.conversion_ratio is not None:
        price = max(price, spec.conversion_ratio * spec.stock_price)
    return price, option_value


# ---------------------------------------------------------------------------
# Implied yields and spreads
# ---------------------------------------------------------------------------
def solve_yield(
    price: float,
    spec: BondSpec,
    curve: Optional[YieldCurve] = None,
    config: PricingConfig = DEFAULT_CONFIG,
) -> float:
    """Yield to maturity reproducing *price* (dirty).

    Closed form for zero-coupon and perpetual bonds; Newton-Raphson with the
    analytic price derivative otherwise.  Floating-rate structures need
    *curve* to project their coupons.
    """
    return _solve_yield(price, spec, curve, config)[0]


def _solve_yield(price, spec, curve, config) -> tuple[float, int]:
    if not price > 0:
        raise InvalidInput(f"price must be positive, got {price}", "price")
    m = spec.frequency
    if spec.structure is BondStructure.PERPETUAL:
        return spec.annual_coupon / price, 0
    if spec.structure is BondStructure.ZERO:
        return m * ((spec.face / price) ** (1.0 / (m * spec.maturity)) - 1.0), 0

    times, amounts = _schedule(spec, curve)
    return _solve_schedule_yield(price, times, amounts, m, spec.coupon_rate, config)


def _solve_schedule_yield(price, times, amounts, m, guess, config) -> tuple[float, int]:
    res = solve_root(
        lambda y: _yield_price(times, amounts, y, m) - price,
        x0=guess,
        fprime=lambda y: _yield_dprice(times, amounts, y, m),
        tol=config.tolerance_abs,
        max_iter=config.max_iterations,
        bracket=_YIELD_BRACKET,
        parameter="yield",
    )
    return res.root, res.iterations


def yield_to_call(
    price: float, spec: BondSpec, option: EmbeddedOption,
    curve: Optional[YieldCurve] = None, config: PricingConfig = DEFAULT_CONFIG,
) -> float:
    """Yield assuming redemption at *option*'s first exercise date and price."""
    if spec.structure in (BondStructure.PERPETUAL, BondStructure.ZERO):
        raise InvalidInput(f"no call schedule on {spec.structure.value} bonds", "structure")
    times, amounts = _schedule(spec, curve)
    t_call = option.exercise_dates[0]
    coupons = amounts.copy()
    coupons[-1] -= spec.face
    keep = times <= t_call + 1e-9
    times, coupons = times[keep], coupons[keep]
    if times.size and abs(times[-1] - t_call) < 1e-9:
        coupons[-1] += option.exercise_price
    else:
        times = np.append(times, t_call)
        coupons = np.append(coupons, option.exercise_price)
    return _solve_schedule_yield(price, times, coupons, spec.frequency, spec.coupon_rate, config)[0]


def z_spread(
    price: float, spec: BondSpec, curve: YieldCurve, config: PricingConfig = DEFAULT_CONFIG
) -> float:
    """Constant spread over every curve spot rate that reproduces *price*.

    Uses the analytic derivative of the discounted cash flows; falls back to
    bisection when the Newton step is degenerate.
    """
    if not price > 0:
        raise InvalidInput(f"price must be positive, got {price}", "price")
    m = spec.frequency
    if spec.structure is BondStructure.PERPETUAL:
        return spec.annual_coupon / price - curve.long_rate()

    times, amounts = _schedule(spec, curve)
    spots = np.asarray(curve.spot_rate(times))

    def f(z):
        return float(np.sum(amounts * (1.0 + (spots + z) / m) ** (-m * times))) - price

    def fprime(z):
        return float(np.sum(-times * amounts * (1.0 + (spots + z) / m) ** (-m * times - 1.0)))

    lo = -float(spots.min()) - 0.99 * m
    res = solve_root(
        f, x0=spec.credit.credit_spread, fprime=fprime,
        tol=config.tolerance_abs, max_iter=config.max_iterations,
        bracket=(max(lo, -1.0), 10.0), parameter="z_spread",
    )
    return res.root


def option_adjusted_spread(
    price: float, spec: BondSpec, curve: YieldCurve, config: PricingConfig = DEFAULT_CONFIG
) -> float:
    """Spread added to every lattice node rate that reproduces *price*."""
    if not spec.embedded_options:
        raise InvalidInput("OAS needs at least one embedded option", "embedded_options")
    if not price > 0:
        raise InvalidInput(f"price must be positive, got {price}", "price")
    lattice, flows, calls, puts = _lattice_setup(spec, curve, config)
    res = solve_root(
        lambda x: lattice.value_bond(flows, x, calls, puts)[1] - price,
        x0=spec.credit.credit_spread,
        tol=config.tolerance_abs,
        max_iter=config.max_iterations,
        bracket=(-0.5, 2.0),
        parameter="oas",
    )
    return res.root


def effective_duration_convexity(
    spec: BondSpec, curve: YieldCurve, config: PricingConfig = DEFAULT_CONFIG, bump: float = _BP
) -> tuple[float, float]:
    """Duration and convexity from a symmetric parallel curve bump."""
    p0 = _model_price(spec, curve, config)[0]
    p_up = _model_price(spec, curve.shifted(bump), config)[0]
    p_dn = _model_price(spec, curve.shifted(-bump), config)[0]
    duration = (p_dn - p_up) / (2.0 * p0 * bump)
    convexity = (p_up + p_dn - 2.0 * p0) / (p0 * bump * bump)
    return duration, convexity


def _yield_measures(spec: BondSpec, curve: YieldCurve, y: float) -> tuple[float, float, float]:
    """(Macaulay, modified, convexity) at yield *y*."""
    m = spec.frequency
    growth = 1.0 + y / m
    if spec.structure is BondStructure.PERPETUAL:
        if y <= 0:
            raise NumericOverflow("perpetual duration needs a positive yield", "ytm")
        return growth / y, 1.0 / y, 2.0 / (y * y)
    if spec.structure is BondStructure.FLOATING:
        mac = 1.0 / m
        return mac, mac / growth, mac * (mac + 1.0 / m) / growth ** 2

    times, amounts = _schedule(spec, curve)
    pv = amounts * growth ** (-m * times)
    price = float(pv.sum())
    if price <= 0:
        raise NumericOverflow("zero present value in duration", "price")
    mac = float(np.sum(times * pv)) / price
    conv = float(np.sum(amounts * times * (times + 1.0 / m) * growth ** (-m * times - 2.0))) / price
    return mac, mac / growth, conv


# ---------------------------------------------------------------------------
# Pricing entry point
# ---------------------------------------------------------------------------
def price_bond(
    spec: BondSpec,
    curve: YieldCurve,
    config: PricingConfig = DEFAULT_CONFIG,
    market_price: Optional[float] = None,
    cancel=None,
) -> PricingResult:
    """Price *spec* off *curve* and compute its yield, spread and risk measures.

    Yield-based measures are taken at *market_price* when given, else at the
    model price.  With ``config.model == monte_carlo`` the result also
    carries the percentile confidence interval of the simulated
    (rate, spread) scenario prices.
    """
    price, option_value = _model_price(spec, curve, config)
    quoted = price if market_price is None else market_price
    accrued = accrued_interest(spec, curve)
    ytm, iterations = _solve_yield(quoted, spec, curve, config)
    mac, mod, conv = _yield_measures(spec, curve, ytm)
    eff_dur, eff_conv = effective_duration_convexity(spec, curve, config)
    maturity_rate = curve.long_rate() if spec.structure is BondStructure.PERPETUAL else curve.spot_rate(spec.maturity)

    if spec.structure is BondStructure.FLOATING:
        first_coupon = float(_schedule(spec, curve)[1][0])
        annual_income = first_coupon * spec.frequency
    else:
        annual_income = 0.0 if spec.structure is BondStructure.ZERO else spec.annual_coupon

    ytc = ytw = oas = None
    calls = [o for o in spec.embedded_options if o.kind == "call"]
    if calls:
        ytcs = [yield_to_call(quoted, spec, o, curve, config) for o in calls]
        ytc, ytw = ytcs[0], min([ytm] + ytcs)
    if spec.embedded_options:
        oas = option_adjusted_spread(quoted, spec, curve, config)

    analytics = BondAnalytics(
        clean_price=quoted - accrued,
        accrued_interest=accrued,
        ytm=ytm,
        current_yield=annual_income / (quoted - accrued),
        macaulay_duration=mac,
        modified_duration=mod,
        convexity=conv,
        dv01=mod * quoted * _BP,
        effective_duration=eff_dur,
        effective_convexity=eff_conv,
        z_spread=z_spread(quoted, spec, curve, config),
        i_spread=ytm - maturity_rate,
        expected_loss=spec.credit.expected_loss,
        credit_var=spec.credit.credit_var,
        ytc=ytc,
        ytw=ytw,
        oas=oas,
        option_value=option_value,
    )

    if config.model is Model.MONTE_CARLO:
        summary = simulate_bond_prices(spec, curve, config, cancel=cancel)
        return PricingResult(
            model=Model.MONTE_CARLO.value, price=price, std_error=summary.std_error,
            confidence_interval=summary.confidence_interval, ci_method=summary.ci_method,
            iterations=iterations, bond=analytics,
        )
    model = "lattice" if spec.embedded_options else "discounted_cash_flow"
    return PricingResult(model=model, price=price, iterations=iterations, bond=analytics)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RateScenario:
    """Curve and spread move; *shape* is parallel, steepener or flattener.

    For shaped moves *rate_shift* is the amplitude at either end of the curve.
    """
    name: str
    rate_shift: float
    spread_shift: float = 0.0
    probability: float = 0.0
    vol_shift: float = 0.0
    shape: str = "parallel"

    def __post_init__(self):
        if self.shape not in ("parallel", "steepener", "flattener"):
            raise InvalidInput(f"unknown scenario shape {self.shape!r}", "shape")
        if not 0.0 <= self.probability <= 1.0:
            raise InvalidInput("probability must be in [0, 1]", "probability")

    def apply(self, spec: BondSpec, curve: YieldCurve) -> tuple[BondSpec, YieldCurve]:
        if self.shape == "parallel":
            moved = curve.shifted(self.rate_shift)
        else:
            builder = steepener if self.shape == "steepener" else flattener
            moved = curve.reshaped(builder(self.rate_shift / _BP))
        credit = replace(spec.credit, spread=max(0.0, spec.credit.credit_spread + self.spread_shift))
        options = tuple(
            replace(o, volatility=max(0.0, o.volatility + self.vol_shift)) for o in spec.embedded_options
        )
        return replace(spec, credit=credit, embedded_options=options), moved


DEFAULT_SCENARIOS = (
    RateScenario("Bull", -0.02, -0.001, 0.25, vol_shift=-0.05),
    RateScenario("Base", 0.0, 0.0, 0.5),
    RateScenario("Bear", 0.03, 0.002, 0.25, vol_shift=0.1),
)


@dataclass(frozen=True)
class ScenarioOutcome:
    name: str
    price: float
    pnl: float
    probability: float


@dataclass(frozen=True)
class ScenarioReport:
    base_price: float
    outcomes: tuple[ScenarioOutcome, ...]
    expected_price: float


def scenario_analysis(
    spec: BondSpec,
    curve: YieldCurve,
    scenarios: Sequence[RateScenario] = DEFAULT_SCENARIOS,
    config: PricingConfig = DEFAULT_CONFIG,
) -> ScenarioReport:
    """Reprice under each scenario; expected price is probability-weighted."""
    base = _model_price(spec, curve, config)[0]
    outcomes = []
    for sc in scenarios:
        moved_spec, moved_curve = sc.apply(spec, curve)
        p = _model_price(moved_spec, moved_curve, config)[0]
        outcomes.append(ScenarioOutcome(sc.name, p, p - base, sc.probability))
    total = sum(o.probability for o in outcomes)
    expected = sum(o.probability * o.price for o in outcomes) / total if total > 0 else base
    return ScenarioReport(base, tuple(outcomes), expected)


_EXACT_REPRICE = (BondStructure.FIXED, BondStructure.ZERO, BondStructure.STEP_UP, BondStructure.CONVERTIBLE)


def simulate_bond_prices(
    spec: BondSpec,
    curve: YieldCurve,
    config: PricingConfig = DEFAULT_CONFIG,
    *,
    rate_vol: float = 0.01,
    spread_vol_ratio: float = 0.5,
    mean_reversion: float = 0.0,
    long_run_rate: Optional[float] = None,
    horizon: float = 1.0,
    cancel=None,
) -> SimulationSummary:
    """Price distribution under joint (rate, spread) shocks.

    Rate shocks are parallel curve moves, normal with sd *rate_vol*, or the
    Vasicek transition over *horizon* when *mean_reversion* > 0.  Spreads are
    ``max(0, s + z * spread_vol_ratio * s)`` with an independent normal
    ``z``.  Plain schedules are repriced exactly; bonds with embedded options
    or projected coupons use their effective duration and convexity.
    Confidence interval: 2.5/97.5 percentiles of the simulated prices.
    """
    if rate_vol < 0 or spread_vol_ratio < 0 or horizon <= 0:
        raise InvalidInput("volatilities must be non-negative and horizon positive", "rate_vol")
    m = spec.frequency
    base_spread = spec.credit.credit_spread
    r0 = curve.spot_rate(min(horizon, spec.maturity))
    theta = r0 if long_run_rate is None else long_run_rate

    if spec.structure is BondStructure.PERPETUAL:
        coupon, long_rate = spec.annual_coupon, curve.long_rate()

        def reprice(dr, s):
            return coupon / np.maximum(long_rate + dr + s, 1e-8)
    elif spec.structure in _EXACT_REPRICE and not spec.embedded_options and spec.conversion_ratio is None:
        times, amounts = _schedule(spec, curve)
        spots = np.asarray(curve.spot_rate(times))

        def reprice(dr, s):
            rates = spots[None, :] + (dr + s)[:, None]
            return ((1.0 + rates / m) ** (-m * times[None, :])) @ amounts
    else:
        p0 = _model_price(spec, curve, config)[0]
        dur, conv = effective_duration_convexity(spec, curve, config)

        def reprice(dr, s):
            dy = dr + (s - base_spread)
            return p0 * (1.0 - dur * dy + 0.5 * conv * dy * dy)

    def sampler(stream: RandomStream, n: int) -> np.ndarray:
        if mean_reversion > 0:
            dr = vasicek_paths(
                stream, r0, mean_reversion, theta, rate_vol, horizon, 1, n, antithetic=config.antithetic
            )[-1] - r0
        else:
            z = stream.antithetic_normals(n) if config.antithetic else stream.normals(n)
            dr = rate_vol * z
        zs = stream.antithetic_normals(n) if config.antithetic else stream.normals(n)
        s = np.maximum(0.0, base_spread + zs * spread_vol_ratio * base_spread)
        return reprice(dr, s)

    return simulate(
        sampler,
        n_paths=config.simulation_paths,
        seed=config.rng_seed,
        antithetic=config.antithetic,
        batch_size=config.batch_size,
        n_workers=config.n_workers,
        ci_method="percentile",
        cancel=cancel,
    )
