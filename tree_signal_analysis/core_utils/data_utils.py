from __future__ import annotations

from collections import Counter
from typing import Dict, Hashable, List, Mapping, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..errors import ScoreMismatch, preview
from ..tree.tree_index import TreeIndex

ObservationInput = Union[pd.DataFrame, Mapping[Hashable, pd.DataFrame]]
ScoreInput = Union[pd.DataFrame, Mapping[Hashable, pd.DataFrame]]

LONG_OBSERVATION_COLUMNS = ("feature", "leaf", "sample", "value")
SCORE_COLUMNS = ("node", "pvalue", "sign")


def split_score_frames(scores: ScoreInput) -> Dict[Hashable, pd.DataFrame]:
    """Normalize score input into one ``node, pvalue, sign`` frame per feature.

    Parameters
    ----------
    scores
        Either a long DataFrame with columns ``feature, node, pvalue, sign`` or
        a mapping from feature to a DataFrame with ``node, pvalue, sign``.

    Returns
    -------
    dict
        Feature -> frame, in order of first appearance.

    Raises
    ------
    ScoreMismatch
        If required columns are missing.
    """
    if isinstance(scores, pd.DataFrame):
        missing = [c for c in ("feature",) + SCORE_COLUMNS if c not in scores.columns]
        if missing:
            raise ScoreMismatch(f"Score table is missing columns: {preview(missing)}.")
        return {
            feature: scores.loc[scores["feature"] == feature, list(SCORE_COLUMNS)]
            for feature in pd.unique(scores["feature"])
        }

    frames: Dict[Hashable, pd.DataFrame] = {}
    for feature, frame in scores.items():
        missing = [c for c in SCORE_COLUMNS if c not in frame.columns]
        if missing:
            raise ScoreMismatch(
                f"Score table for feature {feature!r} is missing columns: {preview(missing)}."
            )
        frames[feature] = frame.loc[:, list(SCORE_COLUMNS)]
    return frames


def extract_node_positions(
    tree: TreeIndex, feature: Hashable, nodes: Sequence[object]
) -> np.ndarray:
    """Map the node column of one feature's scores onto tree positions.

    Raises
    ------
    ScoreMismatch
        If nodes are unknown to the tree, duplicated, or missing.
    """
    try:
        node_ids = [int(n) for n in nodes]
    except (TypeError, ValueError):
        raise ScoreMismatch(
            f"Score table for feature {feature!r} has non-integer node ids."
        ) from None

    unknown = sorted({n for n in node_ids if n not in tree})
    if unknown:
        raise ScoreMismatch(
            f"Score table for feature {feature!r} references nodes absent from the tree: "
            f"{preview(unknown)}."
        )

    counts = Counter(node_ids)
    duplicated = sorted(n for n, c in counts.items() if c > 1)
    if duplicated:
        raise ScoreMismatch(
            f"Score table for feature {feature!r} has duplicate rows for nodes: "
            f"{preview(duplicated)}."
        )

    missing = sorted(set(int(n) for n in tree.node_ids) - set(counts))
    if missing:
        raise ScoreMismatch(
            f"Score table for feature {feature!r} has no rows for nodes: {preview(missing)}."
        )

    return tree.positions(node_ids)


def split_observation_frames(observations: ObservationInput) -> Dict[Hashable, pd.DataFrame]:
    """Normalize observations into one ``leaf x sample`` frame per feature.

    A long frame (``feature, leaf, sample, value``) is pivoted; values of
    repeated ``(leaf, sample)`` pairs are summed and absent pairs count as 0.
    """
    if isinstance(observations, pd.DataFrame):
        missing = [c for c in LONG_OBSERVATION_COLUMNS if c not in observations.columns]
        if missing:
            raise ScoreMismatch(
                f"Observation table is missing columns: {preview(missing)}."
            )
        frames: Dict[Hashable, pd.DataFrame] = {}
        for feature in pd.unique(observations["feature"]):
            subset = observations.loc[observations["feature"] == feature]
            frames[feature] = subset.pivot_table(
                index="leaf",
                columns="sample",
                values="value",
                aggfunc="sum",
                fill_value=0,
            )
        return frames

    return {feature: frame for feature, frame in observations.items()}


def resolve_leaf_rows(
    tree: TreeIndex, feature: Hashable, index: Sequence[object]
) -> np.ndarray:
    """Map observation row keys (leaf ids or leaf labels) to leaf-order slots.

    Returns
    -------
    np.ndarray
        For each slot of ``tree.leaf_order``, the row number in ``index``.

    Raises
    ------
    ScoreMismatch
        If a row names a non-leaf / unknown node, or a leaf has no row.
    """
    leaf_ids = tree.leaf_order
    by_label = {tree.label(leaf): leaf for leaf in leaf_ids}
    leaf_set = set(leaf_ids)

    row_of_leaf: Dict[int, int] = {}
    unknown: List[object] = []
    for row, key in enumerate(index):
        if isinstance(key, str) and key in by_label:
            leaf = by_label[key]
        else:
            try:
                leaf = int(key)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                unknown.append(key)
                continue
        if leaf not in leaf_set:
            unknown.append(key)
            continue
        row_of_leaf[leaf] = row

    if unknown:
        raise ScoreMismatch(
            f"Observations for feature {feature!r} reference unknown or non-leaf nodes: "
            f"{preview(unknown)}."
        )

    missing = [leaf for leaf in leaf_ids if leaf not in row_of_leaf]
    if missing:
        raise ScoreMismatch(
            f"Observations for feature {feature!r} have no rows for leaves: "
            f"{preview(sorted(missing))}."
        )

    return np.array([row_of_leaf[leaf] for leaf in leaf_ids], dtype=np.int64)


def resolve_comparison(
    sample_groups: Mapping[Hashable, Hashable],
    comparison: Tuple[Hashable, Hashable] | None,
) -> Tuple[Hashable, Hashable]:
    """Pick the ``(reference, target)`` group pair.

    Without an explicit ``comparison`` exactly two groups must be present;
    the group seen first in ``sample_groups`` is the reference.
    """
    groups = list(pd.unique(pd.Series(list(sample_groups.values()), dtype=object)))
    if comparison is None:
        if len(groups) != 2:
            raise ValueError(
                f"Found {len(groups)} sample groups ({preview(groups)}); "
                "pass comparison=(reference, target) to choose two."
            )
        return groups[0], groups[1]

    reference, target = comparison
    absent = [g for g in (reference, target) if g not in groups]
    if absent:
        raise ValueError(f"Comparison groups not found in sample_groups: {preview(absent)}.")
    if reference == target:
        raise ValueError(f"Comparison needs two distinct groups, got {reference!r} twice.")
    return reference, target


__all__ = [
    "ObservationInput",
    "ScoreInput",
    "LONG_OBSERVATION_COLUMNS",
    "SCORE_COLUMNS",
    "split_score_frames",
    "extract_node_positions",
    "split_observation_frames",
    "resolve_leaf_rows",
    "resolve_comparison",
]
