"""Dispatcher for multiple testing correction methods.

This module provides a unified interface for selecting and applying
different correction methods based on a string identifier.
"""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

from .base import fdr_correction

# Public method name -> statsmodels method name.
CORRECTION_METHODS: Dict[str, str] = {
    "fdr_bh": "fdr_bh",
    "bh": "fdr_bh",
    "fdr_by": "fdr_by",
    "by": "fdr_by",
}


def resolve_correction_method(method: str) -> str:
    """Return the canonical name of ``method``.

    Raises
    ------
    ValueError
        If method is not one of the supported values
    """
    try:
        return CORRECTION_METHODS[str(method).lower()]
    except KeyError:
        raise ValueError(
            f"Unknown correction method: {method!r}. "
            f"Supported methods: {sorted(set(CORRECTION_METHODS))}"
        ) from None


def apply_multiple_testing_correction(
    p_values: np.ndarray,
    alpha: float,
    method: str = "fdr_bh",
) -> Tuple[np.ndarray, np.ndarray]:
    """Correct one family of simultaneous hypotheses.

    Parameters
    ----------
    p_values : np.ndarray
        Array of p-values, one per hypothesis in the family
    alpha : float
        Target false discovery rate
    method : str
        Correction method:
        - "fdr_bh" (default): Benjamini-Hochberg step-up
        - "fdr_by": Benjamini-Yekutieli, valid under arbitrary dependence

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        (reject_null, adjusted_p_values) arrays aligned to input

    Examples
    --------
    >>> import numpy as np
    >>> rejected, adjusted = apply_multiple_testing_correction(
    ...     np.array([0.01, 0.02, 0.03, 0.04]), alpha=0.05, method="fdr_bh"
    ... )
    """
    alpha = float(alpha)
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must lie in (0, 1), got {alpha!r}.")
    return fdr_correction(p_values, alpha=alpha, method=resolve_correction_method(method))


__all__ = [
    "CORRECTION_METHODS",
    "resolve_correction_method",
    "apply_multiple_testing_correction",
]
