"""Correction, resolution selection and cross-feature pooling.

Every candidate of a feature is one family of simultaneous hypotheses: its
nodes are disjoint in leaf coverage, so each is corrected on its own with the
configured step-up procedure (Benjamini-Hochberg by default). A pluggable
:class:`FalseDiscoveryEstimator` then scores each candidate and the
evaluator picks one resolution per feature.

Modes
-----
``single``
    Each feature keeps the flags of its own selected candidate.
``multiple``
    The raw p-values of every selected (feature, node) row are pooled into a
    single correction pass, which sets the final adjusted p-values and flags.
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ... import config
from ...core_utils.tree_utils import compute_leaf_counts
from ...errors import ScoreMismatch, UnknownMode, preview
from ...tree.tree_index import TreeIndex
from ..candidates.candidate_builder import Candidate
from ..node_statistics import NodeStatTable
from ..results import (
    LEVEL_INFO_COLUMNS,
    OUTPUT_COLUMN_NAMES,
    TABLE_COLUMNS,
    CandidateResult,
    FDRSummary,
    ResultAggregator,
    TreeSignalResult,
)
from ..statistics.multiple_testing import (
    apply_multiple_testing_correction,
    resolve_correction_method,
)
from .fdr_estimators import CandidateEvaluation, FalseDiscoveryEstimator, get_fdr_estimator

logger = logging.getLogger(__name__)

EVALUATION_MODES = ("single", "multiple")


class CandidateEvaluator:
    """Evaluate candidate lists against a :class:`NodeStatTable`.

    Parameters
    ----------
    alpha
        Target false discovery rate, in (0, 1).
    mode
        ``"single"`` or ``"multiple"``.
    correction
        Step-up procedure name (``"fdr_bh"``, ``"fdr_by"``).
    fdr_estimator
        Estimator name or instance, see
        :mod:`~tree_signal_analysis.hierarchy_analysis.evaluation.fdr_estimators`.
    n_jobs
        joblib workers for the per-feature fan-out.

    Raises
    ------
    UnknownMode
        If ``mode`` is not one of :data:`EVALUATION_MODES`.
    ValueError
        For an out-of-range ``alpha`` or an unknown correction/estimator.
    """

    def __init__(
        self,
        alpha: float = config.SIGNIFICANCE_ALPHA,
        mode: str = config.EVALUATION_MODE,
        correction: str = config.CORRECTION_METHOD,
        fdr_estimator: Union[str, FalseDiscoveryEstimator] = config.FDR_ESTIMATOR,
        n_jobs: int = config.N_JOBS,
    ) -> None:
        if mode not in EVALUATION_MODES:
            raise UnknownMode(
                f"Unknown evaluation mode {mode!r}; expected one of {list(EVALUATION_MODES)}."
            )
        alpha = float(alpha)
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must lie in (0, 1), got {alpha!r}.")

        self.alpha = alpha
        self.mode = mode
        self.correction = resolve_correction_method(correction)
        self.estimator = get_fdr_estimator(fdr_estimator)
        self.n_jobs = n_jobs

    @property
    def method(self) -> str:
        """Tag naming the mode, correction and FDP estimator."""
        return f"{self.mode}:{self.correction}:{self.estimator.name}"

    # ---------------- Per candidate ----------------

    def evaluate_candidate(
        self,
        tree: TreeIndex,
        candidate: Candidate,
        pvalues: np.ndarray,
        signs: np.ndarray,
    ) -> CandidateEvaluation:
        """Correct one candidate as a family of simultaneous hypotheses."""
        positions = tree.positions(candidate.nodes)
        raw = np.asarray(pvalues, dtype=float)[positions]
        rejected, adjusted = apply_multiple_testing_correction(
            raw, alpha=self.alpha, method=self.correction
        )
        return CandidateEvaluation(
            candidate=candidate,
            positions=positions,
            pvalues=raw,
            signs=np.asarray(signs, dtype=np.int64)[positions],
            adjusted=adjusted,
            signal=rejected,
        )

    # ---------------- Per feature ----------------

    def evaluate_feature(
        self,
        tree: TreeIndex,
        feature: Hashable,
        candidate_list: Mapping[float, Candidate],
        stat_table: NodeStatTable,
    ) -> CandidateResult:
        """Evaluate every candidate of one feature and select a resolution.

        Among candidates whose estimated FDP does not exceed ``alpha`` the
        one covering the most leaves with signal nodes wins; ties go to the
        candidate with fewer signal nodes, then to the smaller tuning value.
        When no candidate qualifies, the finest candidate is kept with every
        signal flag cleared.

        Raises
        ------
        ScoreMismatch
            If the feature has no scores or a candidate names a node the tree
            does not contain.
        """
        if not stat_table.has_feature(feature):
            raise ScoreMismatch(f"Feature {feature!r} has no entries in the score table.")
        if not candidate_list:
            raise ScoreMismatch(f"Feature {feature!r} has an empty candidate list.")
        if stat_table.tree is not tree and not np.array_equal(
            stat_table.tree.node_ids, tree.node_ids
        ):
            raise ScoreMismatch(
                f"Scores for feature {feature!r} were computed on a different tree."
            )

        for t, candidate in candidate_list.items():
            unknown = [n for n in candidate.nodes if n not in tree]
            if unknown:
                raise ScoreMismatch(
                    f"Candidate t={t} of feature {feature!r} references nodes absent "
                    f"from the score table: {preview(unknown)}."
                )

        pvalues = stat_table.pvalues(feature)
        signs = stat_table.signs(feature)
        grid = sorted(candidate_list)
        evaluations = [
            self.evaluate_candidate(tree, candidate_list[t], pvalues, signs) for t in grid
        ]

        fdp = self.estimator.estimate(tree, evaluations, self.alpha)
        admissible = fdp <= self.alpha + config.EPSILON
        leaf_counts = compute_leaf_counts(tree)
        signal_leaves = np.array(
            [int(leaf_counts[e.positions[e.signal]].sum()) for e in evaluations],
            dtype=np.int64,
        )

        if admissible.any():
            best = min(
                np.flatnonzero(admissible),
                key=lambda i: (-signal_leaves[i], evaluations[i].n_signal, grid[i]),
            )
            best_signal = evaluations[best].signal
        else:
            best = 0
            best_signal = np.zeros(len(evaluations[0].positions), dtype=bool)
            logger.warning(
                "Feature %r: no candidate keeps the estimated FDP at or below %.3g "
                "(smallest estimate %.3g); reporting the finest candidate without signal.",
                feature,
                self.alpha,
                float(fdp.min()),
            )
        best = int(best)

        table = pd.concat(
            [_candidate_frame(e, e.signal, t=e.t) for e in evaluations], ignore_index=True
        ).loc[:, list(TABLE_COLUMNS)]

        level_info = pd.DataFrame(
            {
                "t": grid,
                "n_nodes": [len(e.candidate) for e in evaluations],
                "n_signal_nodes": [e.n_signal for e in evaluations],
                "n_signal_leaves": signal_leaves,
                "fdp_estimate": fdp,
                "admissible": admissible,
                "best": np.arange(len(grid)) == best,
            }
        ).loc[:, list(LEVEL_INFO_COLUMNS)]

        output = _candidate_frame(evaluations[best], best_signal)
        logger.debug(
            "Feature %r: selected t=%s (%d nodes, %d signal, estimated FDP %.3g).",
            feature,
            grid[best],
            len(evaluations[best].candidate),
            int(best_signal.sum()),
            float(fdp[best]),
        )

        return CandidateResult(
            feature=feature,
            candidate_list=dict((t, candidate_list[t]) for t in grid),
            candidate_best=evaluations[best].candidate,
            best_t=grid[best],
            table=table,
            level_info=level_info,
            output=output,
            admissible=bool(admissible.any()),
            fdp_estimate=float(fdp[best]) if admissible.any() else 0.0,
        )

    # ---------------- All features ----------------

    def evaluate(
        self,
        tree: TreeIndex,
        candidate_lists: Mapping[Hashable, Mapping[float, Candidate]],
        stat_table: NodeStatTable,
    ) -> TreeSignalResult:
        """Evaluate all features and assemble the final result.

        Output rows are grouped by feature in ``candidate_lists`` order, then
        by ascending node id.
        """
        features = list(candidate_lists)
        if not features:
            raise ScoreMismatch("candidate_lists contains no features.")
        unscored = [f for f in features if not stat_table.has_feature(f)]
        if unscored:
            raise ScoreMismatch(
                f"Features without entries in the score table: {preview(unscored)}."
            )

        results: List[CandidateResult] = Parallel(n_jobs=self.n_jobs, prefer="threads")(
            delayed(self.evaluate_feature)(tree, feature, candidate_lists[feature], stat_table)
            for feature in features
        )
        feature_results: Dict[Hashable, CandidateResult] = dict(zip(features, results))

        frames = []
        for feature, result in feature_results.items():
            frame = result.output.copy()
            frame.insert(0, "feature", [feature] * len(frame))
            frames.append(frame)
        output = pd.concat(frames, ignore_index=True).loc[:, list(OUTPUT_COLUMN_NAMES)]

        if self.mode == "multiple":
            output = self._pool(output, feature_results)

        fdr = FDRSummary(
            target=self.alpha,
            realized=self._realized_fdr(output, feature_results),
        )
        n_signal = int(output["signal"].sum())
        logger.info(
            "Evaluated %d features (%s): %d signal rows, estimated FDR %.3g.",
            len(features),
            self.method,
            n_signal,
            fdr.realized,
        )
        return ResultAggregator.assemble(
            feature_results, output, fdr=fdr, method=self.method, mode=self.mode
        )

    def _pool(
        self, output: pd.DataFrame, feature_results: Mapping[Hashable, CandidateResult]
    ) -> pd.DataFrame:
        """One correction pass over every selected row of every feature."""
        rejected, adjusted = apply_multiple_testing_correction(
            output["pvalue"].to_numpy(dtype=float), alpha=self.alpha, method=self.correction
        )
        inadmissible = [f for f, r in feature_results.items() if not r.admissible]
        pooled = output.copy()
        pooled["adj_pvalue"] = adjusted
        pooled["signal"] = rejected & ~pooled["feature"].isin(inadmissible).to_numpy()
        logger.debug(
            "Pooled %d rows across %d features: %d signal.",
            len(pooled),
            len(feature_results),
            int(pooled["signal"].sum()),
        )
        return pooled

    @staticmethod
    def _realized_fdr(
        output: pd.DataFrame, feature_results: Mapping[Hashable, CandidateResult]
    ) -> float:
        """Signal-weighted average of the selected candidates' FDP estimates."""
        counts = output.groupby("feature", sort=False)["signal"].sum()
        total = float(counts.sum())
        if total == 0:
            return 0.0
        expected = sum(
            feature_results[f].fdp_estimate * float(n) for f, n in counts.items()
        )
        return float(expected / total)


def _candidate_frame(
    evaluation: CandidateEvaluation,
    signal: np.ndarray,
    t: Optional[float] = None,
) -> pd.DataFrame:
    columns: Dict[str, Sequence] = {}
    if t is not None:
        columns["t"] = np.full(len(evaluation.candidate), t, dtype=float)
    columns.update(
        node=np.asarray(evaluation.candidate.nodes, dtype=np.int64),
        pvalue=evaluation.pvalues,
        sign=evaluation.signs,
        adj_pvalue=evaluation.adjusted,
        signal=np.asarray(signal, dtype=bool),
    )
    return pd.DataFrame(columns)


__all__ = ["CandidateEvaluator", "EVALUATION_MODES"]
