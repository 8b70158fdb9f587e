"""End-to-end helper chaining scores, candidates and evaluation.

Used by the quick start and the end-to-end tests.
"""

from __future__ import annotations

import logging
from typing import Hashable, Mapping, Optional, Tuple, Union

import pandas as pd

from tree_signal_analysis import config
from tree_signal_analysis.core_utils.data_utils import ObservationInput, ScoreInput
from tree_signal_analysis.hierarchy_analysis.candidates import (
    build_candidate_lists,
    parse_tuning_values,
)
from tree_signal_analysis.hierarchy_analysis.candidates.candidate_builder import TuningInput
from tree_signal_analysis.hierarchy_analysis.evaluation import (
    CandidateEvaluator,
    FalseDiscoveryEstimator,
)
from tree_signal_analysis.hierarchy_analysis.node_statistics import NodeStatTable
from tree_signal_analysis.hierarchy_analysis.results import TreeSignalResult
from tree_signal_analysis.hierarchy_analysis.statistics.two_sample_tests import TwoSampleTest
from tree_signal_analysis.tree.tree_index import TreeIndex

logger = logging.getLogger(__name__)


def run_tree_signal_analysis(
    tree: TreeIndex,
    scores: Optional[ScoreInput] = None,
    observations: Optional[ObservationInput] = None,
    sample_groups: Optional[Union[Mapping[Hashable, Hashable], pd.Series]] = None,
    comparison: Optional[Tuple[Hashable, Hashable]] = None,
    test: Union[str, TwoSampleTest] = config.TWO_SAMPLE_TEST,
    tuning_values: TuningInput = None,
    threshold: float = config.CANDIDATE_THRESHOLD,
    alpha: float = config.SIGNIFICANCE_ALPHA,
    mode: str = config.EVALUATION_MODE,
    correction: str = config.CORRECTION_METHOD,
    fdr_estimator: Union[str, FalseDiscoveryEstimator] = config.FDR_ESTIMATOR,
    n_jobs: int = config.N_JOBS,
) -> TreeSignalResult:
    """Score every node, build candidates and evaluate them.

    Pass either precomputed ``scores`` or raw ``observations`` together with
    ``sample_groups``.

    Parameters
    ----------
    tree
        Indexed tree.
    scores
        Per-node ``(pvalue, sign)`` per feature; see
        :meth:`NodeStatTable.from_scores`.
    observations, sample_groups, comparison, test
        Raw per-leaf data; see :meth:`NodeStatTable.from_observations`.
    tuning_values
        Ascending grid in [0, 1]; defaults to ``0.0, 0.1, ..., 1.0``.
    threshold
        Significance a node needs to represent its subtree.
    alpha, mode, correction, fdr_estimator
        Evaluator settings; see :class:`CandidateEvaluator`.
    n_jobs
        joblib workers for the per-feature stages.

    Returns
    -------
    TreeSignalResult
    """
    if (scores is None) == (observations is None):
        raise ValueError("Pass exactly one of 'scores' or 'observations'.")

    # Fail on configuration errors before any per-node test runs.
    evaluator = CandidateEvaluator(
        alpha=alpha,
        mode=mode,
        correction=correction,
        fdr_estimator=fdr_estimator,
        n_jobs=n_jobs,
    )
    grid = parse_tuning_values(tuning_values)

    if scores is not None:
        stat_table = NodeStatTable.from_scores(tree, scores)
    else:
        if sample_groups is None:
            raise ValueError("'sample_groups' is required with 'observations'.")
        stat_table = NodeStatTable.from_observations(
            tree,
            observations,
            sample_groups,
            comparison=comparison,
            test=test,
            n_jobs=n_jobs,
        )

    logger.info(
        "Running analysis: %d features, %d nodes, %d tuning values, mode=%s.",
        len(stat_table.features),
        len(tree),
        len(grid),
        mode,
    )
    candidate_lists = build_candidate_lists(
        tree, stat_table, tuning_values=grid, threshold=threshold, n_jobs=n_jobs
    )
    return evaluator.evaluate(tree, candidate_lists, stat_table)


__all__ = ["run_tree_signal_analysis"]
