"""Tree utility functions shared by the statistics and candidate modules.

Low-level array operations over a :class:`TreeIndex` that don't depend on
hierarchy_analysis modules, avoiding circular import issues.
"""

from __future__ import annotations

import numpy as np

from ..tree.tree_index import TreeIndex


def aggregate_leaf_values(tree: TreeIndex, leaf_matrix: np.ndarray) -> np.ndarray:
    """Sum leaf rows up the tree.

    Parameters
    ----------
    tree
        Indexed tree.
    leaf_matrix
        Array of shape ``(n_leaves, n_samples)`` whose rows follow
        ``tree.leaf_order``.

    Returns
    -------
    np.ndarray
        Array of shape ``(n_nodes, n_samples)`` aligned to tree positions;
        every node row is the sum of its descendant-leaf rows.

    Notes
    -----
    Each node covers a contiguous run of the depth-first leaf order, so all
    node totals come from one prefix sum in O(N · n_samples).
    """
    leaf_matrix = np.asarray(leaf_matrix, dtype=float)
    if leaf_matrix.ndim != 2 or leaf_matrix.shape[0] != tree.n_leaves:
        raise ValueError(
            f"Expected a ({tree.n_leaves}, n_samples) leaf matrix, "
            f"got shape {leaf_matrix.shape}."
        )

    prefix = np.vstack(
        [np.zeros((1, leaf_matrix.shape[1])), np.cumsum(leaf_matrix, axis=0)]
    )
    start, stop = tree.leaf_intervals
    return prefix[stop] - prefix[start]


def compute_leaf_counts(tree: TreeIndex) -> np.ndarray:
    """Number of descendant leaves per position."""
    start, stop = tree.leaf_intervals
    return (stop - start).astype(np.int64)


__all__ = [
    "aggregate_leaf_values",
    "compute_leaf_counts",
]
