"""Core utilities for relaxfit."""

from .arrays import as_1d_float_array, as_magnitude, as_readonly_1d
from .fit_image import run_fit_image
from .result_schema import FitResult

__all__ = [
    "as_1d_float_array",
    "as_magnitude",
    "as_readonly_1d",
    "FitResult",
    "run_fit_image",
]
