from __future__ import annotations

import numpy as np
import pytest

from tree_signal_analysis.hierarchy_analysis.candidates.decision import (
    Decision,
    NodeScore,
    SubtreeSummary,
    decide,
    summarize_subtrees,
)
from tree_signal_analysis.tree.tree_index import TreeIndex


def test_consistent_children_merge() -> None:
    parent = NodeScore(pvalue=0.001, sign=1)
    children = [SubtreeSummary(0.01, 1), SubtreeSummary(0.02, 1)]
    assert decide(parent, children, t=0.5) is Decision.MERGE


def test_tolerance_scales_with_threshold() -> None:
    parent = NodeScore(pvalue=0.001, sign=1)
    children = [SubtreeSummary(0.01, 1), SubtreeSummary(0.03, 1)]
    # Tolerance is 0.001 + t * 0.049.
    assert decide(parent, children, t=0.5) is Decision.SPLIT
    assert decide(parent, children, t=0.6) is Decision.MERGE


def test_non_significant_subtree_never_merges() -> None:
    parent = NodeScore(pvalue=0.001, sign=1)
    children = [SubtreeSummary(0.003, 1), SubtreeSummary(0.7, 1)]
    assert decide(parent, children, t=1.0) is Decision.SPLIT
    assert decide(parent, [SubtreeSummary(0.05, 1)], t=1.0) is Decision.MERGE


def test_zero_tolerance_merges_only_equal_evidence() -> None:
    parent = NodeScore(pvalue=0.01, sign=-1)
    assert decide(parent, [SubtreeSummary(0.01, -1)] * 2, t=0.0) is Decision.MERGE
    assert decide(parent, [SubtreeSummary(0.0100001, -1)] * 2, t=0.0) is Decision.SPLIT


def test_sign_disagreement_splits() -> None:
    parent = NodeScore(pvalue=0.001, sign=1)
    opposed = [SubtreeSummary(0.01, 1), SubtreeSummary(0.01, -1)]
    mixed = [SubtreeSummary(0.01, 1), SubtreeSummary(0.01, 0)]
    assert decide(parent, opposed, t=1.0) is Decision.SPLIT
    assert decide(parent, mixed, t=1.0) is Decision.SPLIT


@pytest.mark.parametrize(
    "parent",
    [NodeScore(pvalue=0.001, sign=0), NodeScore(pvalue=0.2, sign=1)],
)
def test_parent_without_own_evidence_splits(parent: NodeScore) -> None:
    children = [SubtreeSummary(0.2, parent.sign or 1)]
    assert decide(parent, children, t=1.0) is Decision.SPLIT


def test_threshold_is_configurable() -> None:
    parent = NodeScore(pvalue=0.2, sign=1)
    children = [SubtreeSummary(0.24, 1)]
    assert decide(parent, children, t=1.0) is Decision.SPLIT
    assert decide(parent, children, t=1.0, threshold=0.25) is Decision.MERGE
    assert decide(parent, children, t=0.5, threshold=0.25) is Decision.SPLIT


def test_decide_is_monotone_in_t() -> None:
    rng = np.random.default_rng(3)
    grid = np.linspace(0.0, 1.0, 11)
    for _ in range(200):
        sign = int(rng.choice([-1, 1]))
        parent = NodeScore(float(rng.uniform(0, 0.05)), sign)
        children = [
            SubtreeSummary(float(rng.uniform(0, 1)), sign) for _ in range(rng.integers(1, 4))
        ]
        merged = [decide(parent, children, t) is Decision.MERGE for t in grid]
        # Once merged, larger tolerances stay merged.
        assert merged == sorted(merged)


def test_leaf_has_no_decision() -> None:
    with pytest.raises(ValueError, match="at least one child"):
        decide(NodeScore(0.01, 1), [], t=0.5)


def test_summarize_subtrees(small_tree: TreeIndex) -> None:
    pos = small_tree.position
    pvalues = np.zeros(len(small_tree))
    signs = np.zeros(len(small_tree), dtype=int)
    for node, p, s in [
        (1, 0.01, 1),
        (2, 0.03, 1),
        (3, 0.20, 1),
        (4, 0.02, -1),
        (5, 0.001, 1),
        (6, 0.04, 1),
        (7, 0.002, 1),
    ]:
        pvalues[pos(node)] = p
        signs[pos(node)] = s

    max_p, sign = summarize_subtrees(small_tree, pvalues, signs)
    assert max_p[pos(5)] == pytest.approx(0.03)
    assert max_p[pos(6)] == pytest.approx(0.20)
    assert max_p[pos(7)] == pytest.approx(0.20)
    assert sign[pos(5)] == 1
    assert sign[pos(6)] == 0
    assert sign[pos(7)] == 0
    assert sign[pos(4)] == -1
