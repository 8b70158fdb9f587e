"""Multiple testing correction utilities for statistical hypothesis testing.

This package provides methods for controlling the false discovery rate
(FDR) when performing multiple hypothesis tests.

Modules
-------
base
    Core step-up FDR correction (Benjamini-Hochberg, Benjamini-Yekutieli)
dispatcher
    Unified interface for selecting correction method
"""

from .base import benjamini_hochberg_correction, fdr_correction
from .dispatcher import (
    CORRECTION_METHODS,
    apply_multiple_testing_correction,
    resolve_correction_method,
)

__all__ = [
    # Core functions
    "benjamini_hochberg_correction",
    "fdr_correction",
    # Dispatcher
    "CORRECTION_METHODS",
    "apply_multiple_testing_correction",
    "resolve_correction_method",
]
