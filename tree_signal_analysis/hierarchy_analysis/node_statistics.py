"""Per-node, per-feature scores over an indexed tree.

:class:`NodeStatTable` holds one ``(p-value, sign)`` pair for every
(feature, node). It is built either from externally computed scores
(:meth:`NodeStatTable.from_scores`) or from raw per-leaf observations that
are summed up the tree and tested at every node
(:meth:`NodeStatTable.from_observations`).
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .. import config
from ..core_utils.data_utils import (
    ObservationInput,
    ScoreInput,
    extract_node_positions,
    resolve_comparison,
    resolve_leaf_rows,
    split_observation_frames,
    split_score_frames,
)
from ..core_utils.tree_utils import aggregate_leaf_values
from ..errors import ScoreMismatch, preview
from ..tree.tree_index import TreeIndex
from .statistics.two_sample_tests import (
    TwoSampleTest,
    get_two_sample_test,
    run_two_sample_test,
)

logger = logging.getLogger(__name__)

SCORE_TABLE_COLUMNS = ("feature", "node", "pvalue", "sign")


# =====================================================================
# Worker (module-level for joblib pickling / clarity)
# =====================================================================


def _score_feature(
    tree: TreeIndex,
    feature: Hashable,
    frame: pd.DataFrame,
    reference_columns: list,
    target_columns: list,
    test: TwoSampleTest,
) -> Tuple[Hashable, np.ndarray, np.ndarray, int]:
    """Aggregate one feature's leaf observations and test every node."""
    rows = resolve_leaf_rows(tree, feature, list(frame.index))
    leaf_matrix = frame.to_numpy(dtype=float)[rows]
    node_matrix = aggregate_leaf_values(tree, leaf_matrix)

    columns = list(frame.columns)
    reference_idx = [columns.index(c) for c in reference_columns]
    target_idx = [columns.index(c) for c in target_columns]

    n_nodes = len(tree)
    pvalues = np.ones(n_nodes, dtype=float)
    signs = np.zeros(n_nodes, dtype=np.int64)
    n_degenerate = 0
    for pos in range(n_nodes):
        p_value, sign, degenerate = run_two_sample_test(
            test,
            node_matrix[pos, reference_idx],
            node_matrix[pos, target_idx],
        )
        if degenerate:
            n_degenerate += 1
            logger.debug(
                "Degenerate test for feature %r at node %d; using p=1, sign=%d.",
                feature,
                tree.node_at(pos),
                sign,
            )
        pvalues[pos] = p_value
        signs[pos] = sign
    return feature, pvalues, signs, n_degenerate


# =====================================================================
# Public API
# =====================================================================


class NodeStatTable:
    """Validated ``(p-value, sign)`` scores for every (feature, node).

    Scores are stored as arrays aligned to tree positions, one pair of arrays
    per feature. Features keep their input order.

    Parameters
    ----------
    tree
        The indexed tree the scores refer to.
    pvalues, signs
        Feature -> array of length ``len(tree)`` aligned to tree positions.
    degenerate_counts
        Feature -> number of nodes whose score was substituted by the
        degenerate-result policy.
    """

    def __init__(
        self,
        tree: TreeIndex,
        pvalues: Mapping[Hashable, np.ndarray],
        signs: Mapping[Hashable, np.ndarray],
        degenerate_counts: Optional[Mapping[Hashable, int]] = None,
    ) -> None:
        if list(pvalues) != list(signs):
            raise ScoreMismatch("P-value and sign tables must cover the same features.")
        if not pvalues:
            raise ScoreMismatch("Score data contains no features.")

        self.tree = tree
        self._pvalues: Dict[Hashable, np.ndarray] = {}
        self._signs: Dict[Hashable, np.ndarray] = {}
        for feature in pvalues:
            p = np.array(pvalues[feature], dtype=float)
            s = np.array(signs[feature], dtype=np.int64)
            if p.shape != (len(tree),) or s.shape != (len(tree),):
                raise ScoreMismatch(
                    f"Scores for feature {feature!r} must have one entry per node "
                    f"({len(tree)}), got {p.shape[0]} p-values and {s.shape[0]} signs."
                )
            p.setflags(write=False)
            s.setflags(write=False)
            self._pvalues[feature] = p
            self._signs[feature] = s
        self.degenerate_counts: Dict[Hashable, int] = dict(degenerate_counts or {})

    # ---------------- Constructors ----------------

    @classmethod
    def from_scores(cls, tree: TreeIndex, scores: ScoreInput) -> "NodeStatTable":
        """Validate externally computed scores.

        Parameters
        ----------
        tree
            Indexed tree.
        scores
            Long DataFrame with columns ``feature, node, pvalue, sign`` or a
            mapping feature -> DataFrame with ``node, pvalue, sign``.

        Raises
        ------
        ScoreMismatch
            For unknown, duplicated or missing nodes, p-values outside [0, 1]
            and signs outside {-1, 0, 1}.

        Notes
        -----
        A missing (NaN) p-value is treated as a degenerate test result and
        replaced by 1.0.
        """
        pvalues: Dict[Hashable, np.ndarray] = {}
        signs: Dict[Hashable, np.ndarray] = {}
        degenerate: Dict[Hashable, int] = {}

        for feature, frame in split_score_frames(scores).items():
            positions = extract_node_positions(tree, feature, frame["node"].tolist())
            p = pd.to_numeric(frame["pvalue"], errors="coerce").to_numpy(dtype=float)
            s = pd.to_numeric(frame["sign"], errors="coerce").to_numpy(dtype=float)
            nodes = frame["node"].to_numpy()

            bad_sign = ~np.isin(s, (-1.0, 0.0, 1.0))
            if bad_sign.any():
                raise ScoreMismatch(
                    f"Signs for feature {feature!r} must be -1, 0 or 1; offending nodes: "
                    f"{preview(nodes[bad_sign].tolist())}."
                )

            undefined = np.isnan(p)
            out_of_range = ~undefined & ((p < 0.0) | (p > 1.0))
            if out_of_range.any():
                raise ScoreMismatch(
                    f"P-values for feature {feature!r} must lie in [0, 1]; offending nodes: "
                    f"{preview(nodes[out_of_range].tolist())}."
                )
            if undefined.any():
                logger.info(
                    "Feature %r: %d undefined p-values replaced by 1.0.",
                    feature,
                    int(undefined.sum()),
                )
                p = np.where(undefined, 1.0, p)

            feature_p = np.empty(len(tree), dtype=float)
            feature_s = np.empty(len(tree), dtype=np.int64)
            feature_p[positions] = p
            feature_s[positions] = s.astype(np.int64)
            pvalues[feature] = feature_p
            signs[feature] = feature_s
            degenerate[feature] = int(undefined.sum())

        return cls(tree, pvalues, signs, degenerate_counts=degenerate)

    @classmethod
    def from_observations(
        cls,
        tree: TreeIndex,
        observations: ObservationInput,
        sample_groups: Union[Mapping[Hashable, Hashable], pd.Series],
        *,
        comparison: Optional[Tuple[Hashable, Hashable]] = None,
        test: Union[str, TwoSampleTest] = config.TWO_SAMPLE_TEST,
        n_jobs: int = config.N_JOBS,
    ) -> "NodeStatTable":
        """Aggregate per-leaf observations up the tree and test every node.

        Parameters
        ----------
        tree
            Indexed tree.
        observations
            Mapping feature -> DataFrame (rows = leaves by id or label,
            columns = samples), or a long DataFrame with columns
            ``feature, leaf, sample, value``.
        sample_groups
            Sample -> group membership.
        comparison
            ``(reference, target)`` groups. Required with more than two
            groups; otherwise the first group seen is the reference.
        test
            Test name (``"rank_sum"``, ``"welch_t"``) or a callable
            ``(reference_values, target_values) -> (p_value, sign)``.
        n_jobs
            joblib workers for the per-feature fan-out.
        """
        if isinstance(sample_groups, pd.Series):
            sample_groups = sample_groups.to_dict()
        reference, target = resolve_comparison(sample_groups, comparison)
        test_fn = get_two_sample_test(test)

        frames = split_observation_frames(observations)
        if not frames:
            raise ScoreMismatch("Observation data contains no features.")

        jobs = []
        for feature, frame in frames.items():
            unassigned = [c for c in frame.columns if c not in sample_groups]
            if unassigned:
                raise ScoreMismatch(
                    f"Observations for feature {feature!r} contain samples without a group: "
                    f"{preview(unassigned)}."
                )
            reference_columns = [c for c in frame.columns if sample_groups[c] == reference]
            target_columns = [c for c in frame.columns if sample_groups[c] == target]
            jobs.append(
                delayed(_score_feature)(
                    tree, feature, frame, reference_columns, target_columns, test_fn
                )
            )

        results = Parallel(n_jobs=n_jobs, prefer="threads")(jobs)

        pvalues: Dict[Hashable, np.ndarray] = {}
        signs: Dict[Hashable, np.ndarray] = {}
        degenerate: Dict[Hashable, int] = {}
        for feature, p, s, n_degenerate in results:
            pvalues[feature] = p
            signs[feature] = s
            degenerate[feature] = n_degenerate
            if n_degenerate:
                logger.info(
                    "Feature %r: %d/%d nodes had degenerate tests (p set to 1).",
                    feature,
                    n_degenerate,
                    len(tree),
                )

        logger.debug(
            "Scored %d features on %d nodes (%r vs %r).",
            len(pvalues),
            len(tree),
            target,
            reference,
        )
        return cls(tree, pvalues, signs, degenerate_counts=degenerate)

    # ---------------- Accessors ----------------

    @property
    def features(self) -> Tuple[Hashable, ...]:
        return tuple(self._pvalues)

    def has_feature(self, feature: Hashable) -> bool:
        return feature in self._pvalues

    def _require(self, feature: Hashable) -> None:
        if feature not in self._pvalues:
            raise ScoreMismatch(f"No score entries for feature {feature!r}.")

    def pvalues(self, feature: Hashable) -> np.ndarray:
        """Read-only p-values aligned to tree positions."""
        self._require(feature)
        return self._pvalues[feature]

    def signs(self, feature: Hashable) -> np.ndarray:
        """Read-only signs aligned to tree positions."""
        self._require(feature)
        return self._signs[feature]

    def feature_scores(self, feature: Hashable) -> pd.DataFrame:
        """``node, pvalue, sign`` rows for one feature, ascending node id."""
        self._require(feature)
        return pd.DataFrame(
            {
                "node": self.tree.node_ids,
                "pvalue": self._pvalues[feature],
                "sign": self._signs[feature],
            }
        )

    def to_frame(self) -> pd.DataFrame:
        """Long ``feature, node, pvalue, sign`` table, features in input order."""
        frames = []
        for feature in self.features:
            frame = self.feature_scores(feature)
            frame.insert(0, "feature", [feature] * len(frame))
            frames.append(frame)
        return pd.concat(frames, ignore_index=True).loc[:, list(SCORE_TABLE_COLUMNS)]

    def __repr__(self) -> str:
        return f"NodeStatTable(n_features={len(self._pvalues)}, n_nodes={len(self.tree)})"


__all__ = ["NodeStatTable", "SCORE_TABLE_COLUMNS"]
