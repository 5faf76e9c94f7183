# derivpricer: derivatives pricing and risk engine
# Public API

# Call surface
from .engine import (
    price_bond, price_option, price_strategy,
    solve_implied_yield, solve_implied_volatility,
)

# Configuration and errors
from .config import Model, PricingConfig, DEFAULT_CONFIG
from .errors import (
    EngineError, InvalidInput, NonConvergence, InvalidModel, Cancelled, NumericOverflow,
)

# Results
from .results import Greeks, BondAnalytics, StrategyAnalytics, PricingResult

# Term structure
from .curves import (
    Interpolation, NelsonSiegelParams, YieldCurve,
    parallel_shift, steepener, flattener,
)

# Bonds
from .bonds import (
    BondStructure, ExerciseStyle, CreditProfile, EmbeddedOption, BondSpec, CashFlow,
    RateScenario, DEFAULT_SCENARIOS, cash_flows, scenario_analysis, simulate_bond_prices,
)

# Options
from .core import (
    CALL, PUT, ExoticKind, OptionSpec, MarketData,
    BarrierTerms, AsianTerms, LookbackTerms, BinaryTerms, CompoundTerms,
    SecondAsset, QuantoTerms, HestonParams, SABRParams, JumpDiffusionParams,
)
from .black_scholes import bs_price, bs_greeks, bs_higher_greeks

# Strategies
from .strategy import (
    StrategyLeg, Strategy,
    covered_call, protective_put, bull_call_spread, bear_put_spread,
    straddle, strangle, butterfly, iron_condor,
)

# Risk & validation
from .risk import (
    cvar_historical, numerical_greeks, probability_distribution, risk_metrics, scenario_grid, theta_decay,
    var_historical,
)
from .validation import cross_validate, convergence_analysis, put_call_gap

__version__ = "0.1.0"

__all__ = [
    # Call surface
    "price_bond", "price_option", "price_strategy",
    "solve_implied_yield", "solve_implied_volatility",
    # Configuration and errors
    "Model", "PricingConfig", "DEFAULT_CONFIG",
    "EngineError", "InvalidInput", "NonConvergence", "InvalidModel", "Cancelled", "NumericOverflow",
    # Results
    "Greeks", "BondAnalytics", "StrategyAnalytics", "PricingResult",
    # Term structure
    "Interpolation", "NelsonSiegelParams", "YieldCurve",
    "parallel_shift", "steepener", "flattener",
    # Bonds
    "BondStructure", "ExerciseStyle", "CreditProfile", "EmbeddedOption", "BondSpec", "CashFlow",
    "RateScenario", "DEFAULT_SCENARIOS", "cash_flows", "scenario_analysis", "simulate_bond_prices",
    # Options
    "CALL", "PUT", "ExoticKind", "OptionSpec", "MarketData",
    "BarrierTerms", "AsianTerms", "LookbackTerms", "BinaryTerms", "CompoundTerms",
    "SecondAsset", "QuantoTerms", "HestonParams", "SABRParams", "JumpDiffusionParams",
    "bs_price", "bs_greeks", "bs_higher_greeks",
    # Strategies
    "StrategyLeg", "Strategy",
    "covered_call", "protective_put", "bull_call_spread", "bear_put_spread",
    "straddle", "strangle", "butterfly", "iron_condor",
    # Risk & validation
    "numerical_greeks", "scenario_grid", "theta_decay",
    "risk_metrics", "var_historical", "cvar_historical", "probability_distribution",
    "cross_validate", "convergence_analysis", "put_call_gap",
]
