"""Merge/split decision for one internal node.

The decision is a pure function of the node's own score, one summary per
child subtree and the tuning value ``t``; it never looks at ancestors. That
independence, together with the merge tolerance growing with ``t``,
is what makes candidates coarsen monotonically as ``t`` grows.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from ... import config
from ...tree.tree_index import TreeIndex


class Decision(enum.Enum):
    MERGE = "merge"
    SPLIT = "split"


@dataclass(frozen=True)
class NodeScore:
    """A node's own ``(p-value, sign)``."""

    pvalue: float
    sign: int


@dataclass(frozen=True)
class SubtreeSummary:
    """Evidence summary of a whole child subtree.

    Attributes
    ----------
    max_pvalue
        Weakest evidence (largest p-value) of any node in the subtree.
    sign
        The common non-zero sign of every node in the subtree, or 0 when the
        subtree is not sign-unanimous.
    """

    max_pvalue: float
    sign: int


def decide(
    parent: NodeScore,
    children: Sequence[SubtreeSummary],
    t: float,
    threshold: float = config.CANDIDATE_THRESHOLD,
) -> Decision:
    """Decide whether ``parent`` represents its whole subtree at tuning ``t``.

    Parameters
    ----------
    parent
        Score of the internal node under consideration.
    children
        One summary per child subtree.
    t
        Fraction of the gap between the parent's p-value and ``threshold``
        that a child subtree's weakest p-value may exceed the parent by.
        At ``t = 0`` children must be at least as strong as the parent; at
        ``t = 1`` every node of the subtree must reach ``threshold``.
    threshold
        The parent must be significant at this level to be merged, and no
        node of a merged subtree may be weaker.

    Returns
    -------
    Decision
        ``MERGE`` keeps ``parent`` as the sole representative of its subtree;
        ``SPLIT`` descends into every child.
    """
    if not children:
        raise ValueError("decide() needs at least one child summary; leaves are terminal.")

    if parent.sign == 0 or parent.pvalue > threshold:
        return Decision.SPLIT

    # Scaled to the threshold so a non-significant subtree is never absorbed.
    tolerance = parent.pvalue + t * (threshold - parent.pvalue)
    for child in children:
        if child.sign != parent.sign:
            return Decision.SPLIT
        if child.max_pvalue > tolerance + config.EPSILON:
            return Decision.SPLIT

    return Decision.MERGE


def summarize_subtrees(
    tree: TreeIndex, pvalues: np.ndarray, signs: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Postorder pass computing a :class:`SubtreeSummary` for every position.

    Returns
    -------
    (max_pvalue, sign)
        Arrays aligned to tree positions.
    """
    max_pvalue = np.asarray(pvalues, dtype=float).copy()
    unanimous = np.asarray(signs, dtype=np.int64).copy()
    children = tree.children_positions

    for pos in tree.postorder_positions:
        for child in children[pos]:
            if max_pvalue[child] > max_pvalue[pos]:
                max_pvalue[pos] = max_pvalue[child]
            if unanimous[child] != unanimous[pos]:
                unanimous[pos] = 0

    return max_pvalue, unanimous


__all__ = ["Decision", "NodeScore", "SubtreeSummary", "decide", "summarize_subtrees"]
