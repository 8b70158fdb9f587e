"""Core step-up FDR correction.

This module provides the fundamental Benjamini-Hochberg correction that the
candidate evaluator applies to every candidate (one family of simultaneous
hypotheses per tree cut) and to the pooled cross-feature pass.

References
----------
Benjamini, Y., and Hochberg, Y. (1995). Controlling the false discovery
rate: a practical and powerful approach to multiple testing. Journal of
the Royal Statistical Society Series B, 57, 289-300.

Benjamini, Y., and Yekutieli, D. (2001). The control of the false discovery
rate in multiple testing under dependency. Annals of Statistics, 29,
1165-1188.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from statsmodels.stats.multitest import multipletests


def fdr_correction(
    p_values: np.ndarray, alpha: float = 0.05, method: str = "fdr_bh"
) -> Tuple[np.ndarray, np.ndarray]:
    """Apply a step-up FDR correction to p-values.

    Parameters
    ----------
    p_values : np.ndarray
        Array of p-values to correct, in [0, 1].
    alpha : float, default=0.05
        Target false discovery rate.
    method : str, default="fdr_bh"
        statsmodels method name (``"fdr_bh"`` or ``"fdr_by"``).

    Returns
    -------
    rejected_hypotheses : np.ndarray (bool)
        ``adjusted_p_values <= alpha``
    adjusted_p_values : np.ndarray (float)
        FDR-adjusted p-values aligned to the input

    Notes
    -----
    Returns empty arrays for empty input. Rejection is derived from the
    adjusted p-values so that ``signal == (adjusted <= alpha)`` holds exactly
    for every row the evaluator reports.
    """
    p_values_array = np.asarray(p_values, dtype=float)

    if p_values_array.size == 0:
        return np.array([], dtype=bool), np.array([], dtype=float)

    _, adjusted, _, _ = multipletests(
        p_values_array,
        alpha=alpha,
        method=method,
        is_sorted=False,
        returnsorted=False,
    )

    adjusted_p_values = np.minimum(adjusted.astype(float), 1.0)
    rejected_hypotheses = adjusted_p_values <= float(alpha)
    return rejected_hypotheses, adjusted_p_values


def benjamini_hochberg_correction(
    p_values: np.ndarray, alpha: float = 0.05
) -> Tuple[np.ndarray, np.ndarray]:
    """Benjamini-Hochberg step-up correction.

    Examples
    --------
    >>> import numpy as np
    >>> p_values = np.array([0.001, 0.01, 0.04, 0.2])
    >>> rejected, adjusted = benjamini_hochberg_correction(p_values)
    >>> rejected
    array([ True,  True, False, False])
    """
    return fdr_correction(p_values, alpha=alpha, method="fdr_bh")


__all__ = ["fdr_correction", "benjamini_hochberg_correction"]
