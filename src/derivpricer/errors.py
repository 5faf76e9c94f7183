# errors.py
# Typed failures raised by the pricing engine.
# Every error carries a ``kind`` tag and, where known, the offending parameter.

from __future__ import annotations
from typing import Optional


__all__ = [
    "EngineError",
    "InvalidInput",
    "NonConvergence",
    "InvalidModel",
    "Cancelled",
    "NumericOverflow",
]


class EngineError(Exception):
    """Base class for every failure reported by the engine.

    Parameters
    ----------
    message : str
        Human-readable description of what failed.
    parameter : str | None
        Name of the input that caused the failure, if any.
    """
    kind = "engine_error"

    def __init__(self, message: str, parameter: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.parameter = parameter

    def __str__(self) -> str:
        if self.parameter:
            return f"[{self.kind}] {self.parameter}: {self.message}"
        return f"[{self.kind}] {self.message}"


class InvalidInput(EngineError, ValueError):
    """Malformed input: negative price/vol/time, bad curve nodes, bad schedule."""
    kind = "invalid_input"


class NonConvergence(EngineError):
    """Root-finder exhausted its iteration budget without meeting tolerance."""
    kind = "non_convergence"

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        *,
        iterations: int = 0,
        last_value: Optional[float] = None,
    ):
        super().__init__(message, parameter)
        self.iterations = iterations
        self.last_value = last_value


class InvalidModel(EngineError):
    """Model inputs are arbitrage-inconsistent or otherwise unusable."""
    kind = "invalid_model"


class Cancelled(EngineError):
    """Cooperative cancellation was observed between simulation batches."""
    kind = "cancelled"


class NumericOverflow(EngineError, ArithmeticError):
    """A computed quantity is NaN or infinite."""
    kind = "numeric_overflow"
