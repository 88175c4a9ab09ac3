"""Error taxonomy for relaxfit."""

from __future__ import annotations

from typing import Any


class RelaxfitError(Exception):
    """Base class for all relaxfit errors."""


class ContractViolation(RelaxfitError, ValueError):
    """Mismatched vector lengths, unknown variants or invalid configuration."""


class NumericalDomainError(RelaxfitError, ArithmeticError):
    """Forward model evaluated outside its physical validity."""


class FitDivergedError(RelaxfitError, RuntimeError):
    """Estimation produced a non-physical or non-finite result.

    The offending output vector is kept on ``outputs`` so that callers can
    decide how to flag the voxel.
    """

    def __init__(self, message: str, *, outputs: Any = None) -> None:
        super().__init__(message)
        self.outputs = outputs
