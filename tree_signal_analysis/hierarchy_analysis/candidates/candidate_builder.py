"""Candidate tree cuts, one per tuning value.

For a single feature the builder walks the tree top-down once per tuning
value ``t``. At every internal node :func:`decide` either merges (the node
represents its whole subtree and descent stops) or splits (descent continues
into every child). Leaves reached without a merge are terminal. The nodes at
which descent stopped form a tree cut: their leaf sets are disjoint and cover
every leaf.

Because the merge test at a node ignores ancestors and only relaxes as ``t``
grows, candidates coarsen monotonically along the tuning grid.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed

from ... import config
from ...errors import CandidateInvariantViolation, preview
from ...tree.tree_index import TreeIndex
from .decision import Decision, NodeScore, SubtreeSummary, decide, summarize_subtrees

logger = logging.getLogger(__name__)

TuningInput = Union[Iterable[Union[float, str]], Mapping[Union[float, str], object], None]


@dataclass(frozen=True)
class Candidate:
    """A tree cut produced at tuning value ``t``.

    ``nodes`` is stored sorted ascending regardless of the order given.
    """

    t: float
    nodes: Tuple[int, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "t", float(self.t))
        object.__setattr__(self, "nodes", tuple(sorted(int(n) for n in self.nodes)))

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[int]:
        return iter(self.nodes)

    def __contains__(self, node: object) -> bool:
        return node in self.nodes


# =====================================================================
# Tuning grid
# =====================================================================


def parse_tuning_values(values: TuningInput = None) -> Tuple[float, ...]:
    """Normalize a tuning grid.

    Parameters
    ----------
    values
        Iterable of numbers or numeric strings (``"0.3"``), or a mapping whose
        keys are such values. ``None`` selects
        :data:`config.DEFAULT_TUNING_VALUES`.

    Returns
    -------
    tuple[float, ...]
        The grid as floats.

    Raises
    ------
    ValueError
        If the grid is empty, has a non-numeric, non-finite or out-of-range
        entry, or is not strictly ascending.
    """
    if values is None:
        return tuple(float(v) for v in config.DEFAULT_TUNING_VALUES)
    if isinstance(values, Mapping):
        values = list(values.keys())

    parsed = []
    for raw in values:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Tuning value {raw!r} is not a number.") from None
        if not math.isfinite(value) or not 0.0 <= value <= 1.0:
            raise ValueError(f"Tuning value {raw!r} must be finite and within [0, 1].")
        parsed.append(value)

    if not parsed:
        raise ValueError("The tuning grid is empty.")

    unordered = [
        (a, b) for a, b in zip(parsed, parsed[1:]) if not b > a
    ]
    if unordered:
        raise ValueError(
            "Tuning values must be strictly ascending; offending pairs: "
            f"{preview(unordered)}."
        )
    return tuple(parsed)


def format_tuning_key(t: float) -> str:
    """String key for a tuning value, e.g. ``0.3 -> "0.3"``, ``1.0 -> "1"``."""
    return np.format_float_positional(float(t), trim="-")


# =====================================================================
# Validation
# =====================================================================


def validate_tree_cut(tree: TreeIndex, nodes: Sequence[int]) -> None:
    """Check that ``nodes`` is an antichain covering every leaf.

    Raises
    ------
    CandidateInvariantViolation
        Naming unknown, overlapping or uncovered nodes.
    """
    unknown = [n for n in nodes if n not in tree]
    if unknown:
        raise CandidateInvariantViolation(
            f"Candidate references nodes absent from the tree: {preview(unknown)}."
        )

    intervals = sorted((tree.leaf_interval(n), int(n)) for n in nodes)
    overlapping = []
    uncovered = []
    cursor = 0
    previous = None
    for (start, stop), node in intervals:
        if start < cursor:
            overlapping.append((previous, node))
        elif start > cursor:
            uncovered.extend(tree.leaf_order[cursor:start])
        if stop > cursor:
            cursor = stop
            previous = node
    if cursor < tree.n_leaves:
        uncovered.extend(tree.leaf_order[cursor:])

    if overlapping:
        raise CandidateInvariantViolation(
            f"Candidate nodes overlap: {preview(overlapping)}."
        )
    if uncovered:
        raise CandidateInvariantViolation(
            f"Candidate leaves uncovered: {preview(sorted(uncovered))}."
        )


def validate_coarsening(tree: TreeIndex, candidates: Mapping[float, "Candidate"]) -> None:
    """Check that every node of a finer candidate lies under a coarser one.

    Raises
    ------
    CandidateInvariantViolation
        Naming the tuning pair and the stranded nodes.
    """
    grid = sorted(candidates)
    for finer_t, coarser_t in zip(grid, grid[1:]):
        coarser = candidates[coarser_t].nodes
        starts = np.array([tree.leaf_interval(n)[0] for n in coarser], dtype=np.int64)
        order = np.argsort(starts)
        starts = starts[order]
        stranded = []
        for node in candidates[finer_t].nodes:
            idx = int(np.searchsorted(starts, tree.leaf_interval(node)[0], side="right")) - 1
            if idx < 0 or not tree.is_descendant(node, coarser[order[idx]]):
                stranded.append(node)
        if stranded:
            raise CandidateInvariantViolation(
                f"Candidate at t={finer_t} is not nested in the candidate at "
                f"t={coarser_t}; stranded nodes: {preview(stranded)}."
            )


# =====================================================================
# Construction
# =====================================================================


def build_candidates(
    tree: TreeIndex,
    pvalues: np.ndarray,
    signs: np.ndarray,
    tuning_values: TuningInput = None,
    threshold: float = config.CANDIDATE_THRESHOLD,
) -> Dict[float, Candidate]:
    """Build one :class:`Candidate` per tuning value for a single feature.

    Parameters
    ----------
    tree
        Indexed tree.
    pvalues, signs
        One feature's scores aligned to tree positions.
    tuning_values
        Ascending grid in [0, 1]; see :func:`parse_tuning_values`.
    threshold
        Significance a node needs to be merged.

    Returns
    -------
    dict[float, Candidate]
        Ascending tuning value -> candidate.
    """
    grid = parse_tuning_values(tuning_values)
    pvalues = np.asarray(pvalues, dtype=float)
    signs = np.asarray(signs, dtype=np.int64)

    max_pvalue, unanimous = summarize_subtrees(tree, pvalues, signs)
    children = tree.children_positions
    is_leaf = tree.is_leaf_mask

    # Child summaries are fixed for the feature; build them once.
    scores = [NodeScore(float(pvalues[p]), int(signs[p])) for p in range(len(tree))]
    summaries = [
        [SubtreeSummary(float(max_pvalue[c]), int(unanimous[c])) for c in children[p]]
        for p in range(len(tree))
    ]

    candidates: Dict[float, Candidate] = {}
    for t in grid:
        selected = []
        stack = [tree.position(tree.root)]
        while stack:
            pos = stack.pop()
            if is_leaf[pos]:
                selected.append(tree.node_at(pos))
                continue
            if decide(scores[pos], summaries[pos], t, threshold) is Decision.MERGE:
                selected.append(tree.node_at(pos))
            else:
                stack.extend(children[pos])

        candidate = Candidate(t=t, nodes=tuple(selected))
        validate_tree_cut(tree, candidate.nodes)
        candidates[t] = candidate

    validate_coarsening(tree, candidates)
    return candidates


class CandidateBuilder:
    """Reusable candidate construction for one tree and tuning grid.

    Parameters
    ----------
    tree
        Indexed tree shared by every feature.
    tuning_values
        Ascending grid in [0, 1], numeric or string keys.
    threshold
        Significance a node needs to be merged.
    """

    def __init__(
        self,
        tree: TreeIndex,
        tuning_values: TuningInput = None,
        threshold: float = config.CANDIDATE_THRESHOLD,
    ) -> None:
        if not 0.0 <= float(threshold) <= 1.0:
            raise ValueError(f"threshold must lie in [0, 1], got {threshold!r}.")
        self.tree = tree
        self.tuning_values = parse_tuning_values(tuning_values)
        self.threshold = float(threshold)

    def build(self, pvalues: np.ndarray, signs: np.ndarray) -> Dict[float, Candidate]:
        return build_candidates(
            self.tree, pvalues, signs, self.tuning_values, threshold=self.threshold
        )

    def build_feature(self, stat_table, feature: Hashable) -> Dict[float, Candidate]:
        candidates = self.build(stat_table.pvalues(feature), stat_table.signs(feature))
        logger.debug(
            "Feature %r: candidate sizes %s",
            feature,
            [len(c) for c in candidates.values()],
        )
        return candidates


def build_candidate_lists(
    tree: TreeIndex,
    stat_table,
    tuning_values: TuningInput = None,
    threshold: float = config.CANDIDATE_THRESHOLD,
    n_jobs: int = config.N_JOBS,
    features: Optional[Sequence[Hashable]] = None,
) -> Dict[Hashable, Dict[float, Candidate]]:
    """Build candidates for every feature of a ``NodeStatTable``.

    Features are independent and read only the shared tree and their own
    scores, so they fan out across joblib threads. The returned mapping
    follows the table's feature order.
    """
    builder = CandidateBuilder(tree, tuning_values=tuning_values, threshold=threshold)
    features = list(stat_table.features if features is None else features)

    results = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(builder.build_feature)(stat_table, feature) for feature in features
    )

    logger.info(
        "Built candidates for %d features over %d tuning values.",
        len(features),
        len(builder.tuning_values),
    )
    return dict(zip(features, results))


__all__ = [
    "Candidate",
    "CandidateBuilder",
    "build_candidates",
    "build_candidate_lists",
    "format_tuning_key",
    "parse_tuning_values",
    "validate_coarsening",
    "validate_tree_cut",
]
