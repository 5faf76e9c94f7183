"""Pricing configuration.

A single explicit configuration object replaces per-call keyword soup:
every tunable the engines read is declared here with its default.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = ["Model", "PricingConfig", "DEFAULT_CONFIG"]


class Model(str, Enum):
    """Pricing model family requested by the caller."""

    BSM = "bsm"
    BINOMIAL = "binomial"
    MONTE_CARLO = "monte_carlo"
    HESTON = "heston"
    SABR = "sabr"
    JUMP_DIFFUSION = "jump_diffusion"


class PricingConfig(BaseModel):
    """Options recognised by every pricing entry point.

    Unknown keys are rejected and instances are immutable, so a config can be
    shared between concurrent pricing calls.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    model: Model = Field(default=Model.BSM, description="Pricing model family")
    lattice_steps: int = Field(default=100, ge=1, description="Binomial tree steps")
    simulation_paths: int = Field(
        default=10_000, ge=2, description="Monte Carlo paths (antithetic pairs count twice)"
    )
    time_steps: int = Field(
        default=100, ge=1, description="Monte Carlo time steps for path-dependent payoffs"
    )
    rng_seed: Optional[int] = Field(
        default=None, ge=0, lt=2**64, description="Master seed; None draws OS entropy"
    )
    tolerance_abs: float = Field(default=1e-6, gt=0.0, description="Root-finder tolerance on |f(x)|")
    max_iterations: int = Field(default=100, ge=1, description="Root-finder iteration budget")
    antithetic: bool = Field(default=True, description="Pair each normal draw with its negation")
    batch_size: int = Field(default=5_000, ge=2, description="Paths per Monte Carlo batch")
    n_workers: int = Field(default=1, ge=1, description="Threads used for Monte Carlo batches")
    compute_greeks: bool = Field(default=True, description="Populate Greeks on option results")


DEFAULT_CONFIG = PricingConfig()
