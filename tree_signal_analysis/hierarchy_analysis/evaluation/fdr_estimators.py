"""Estimators of the false discovery proportion of a candidate.

Ground truth is unknown, so the evaluator relies on a proxy to decide which
resolutions keep false discoveries under control. Estimators share one
interface: given every evaluated candidate of a feature they return one
estimated false discovery proportion (FDP) per candidate.

Available strategies
--------------------
``directional`` (:class:`DirectionalConsistencyEstimator`)
    Sign disagreement between nested signal nodes anywhere along the tuning
    sequence counts as false discoveries, and so does a signal that no coarser
    candidate confirms; remaining signals are charged the expected null rate
    ``alpha * pi0``.
``leaf_bound`` (:class:`LeafBoundEstimator`)
    Leaf-weighted bound that charges a candidate by its largest signal node.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Dict, Sequence, Type, Union

import numpy as np

from ... import config
from ...tree.tree_index import TreeIndex
from ..candidates.candidate_builder import Candidate


@dataclass(frozen=True)
class CandidateEvaluation:
    """Per-node correction results for one candidate of one feature.

    All arrays are aligned to ``candidate.nodes``.
    """

    candidate: Candidate
    positions: np.ndarray
    pvalues: np.ndarray
    signs: np.ndarray
    adjusted: np.ndarray
    signal: np.ndarray

    @property
    def t(self) -> float:
        return self.candidate.t

    @property
    def n_signal(self) -> int:
        return int(self.signal.sum())


def storey_null_proportion(
    pvalues: np.ndarray, lam: float = config.NULL_PROPORTION_LAMBDA
) -> float:
    """Storey's estimate of the proportion of true null hypotheses.

    ``pi0 = #{p > lam} / ((1 - lam) * m)``, capped at 1. Returns 1 for an
    empty family.
    """
    pvalues = np.asarray(pvalues, dtype=float)
    if pvalues.size == 0:
        return 1.0
    if not 0.0 <= lam < 1.0:
        raise ValueError(f"lambda must lie in [0, 1), got {lam!r}.")
    return float(min(1.0, np.sum(pvalues > lam) / ((1.0 - lam) * pvalues.size)))


class FalseDiscoveryEstimator(abc.ABC):
    """Interface for FDP proxies."""

    name: str = ""

    @abc.abstractmethod
    def expected_false(
        self,
        tree: TreeIndex,
        evaluations: Sequence[CandidateEvaluation],
        alpha: float,
    ) -> np.ndarray:
        """Expected number of false signal nodes, one value per evaluation."""

    def estimate(
        self,
        tree: TreeIndex,
        evaluations: Sequence[CandidateEvaluation],
        alpha: float,
    ) -> np.ndarray:
        """Estimated FDP per evaluation: expected false / max(signals, 1)."""
        expected = np.asarray(self.expected_false(tree, evaluations, alpha), dtype=float)
        n_signal = np.array([e.n_signal for e in evaluations], dtype=float)
        return expected / np.maximum(n_signal, 1.0)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DirectionalConsistencyEstimator(FalseDiscoveryEstimator):
    """Directional-consistency proxy.

    A signal node is counted as a false discovery when its sign is 0, when
    a signal node of the same feature that shares leaves with it (in any
    candidate of the tuning sequence) points the other way, or when no
    coarser candidate (larger ``t``) has a same-sign signal node covering it.
    The coarsest candidate has nothing to be confirmed by. The remaining
    ``signals - conflicts`` nodes are charged ``alpha * pi0`` each, with
    ``pi0`` from :func:`storey_null_proportion` over the candidate's raw
    p-values.
    """

    name = "directional"

    def __init__(self, null_lambda: float = config.NULL_PROPORTION_LAMBDA) -> None:
        self.null_lambda = float(null_lambda)

    def expected_false(self, tree, evaluations, alpha):
        start, stop = tree.leaf_intervals

        # Signal positions across the whole tuning sequence, split by direction.
        by_sign: Dict[int, set] = {1: set(), -1: set()}
        for evaluation in evaluations:
            mask = evaluation.signal
            for pos, sign in zip(evaluation.positions[mask], evaluation.signs[mask]):
                if sign != 0:
                    by_sign[int(sign)].add(int(pos))
        opposing = {
            sign: np.array(sorted(by_sign[-sign]), dtype=np.int64) for sign in (1, -1)
        }

        # Same-sign signal positions per candidate, for confirmation by coarser t.
        supporting = [
            {
                sign: evaluation.positions[evaluation.signal & (evaluation.signs == sign)]
                for sign in (1, -1)
            }
            for evaluation in evaluations
        ]
        tuning = np.array([evaluation.t for evaluation in evaluations], dtype=float)

        expected = np.zeros(len(evaluations), dtype=float)
        for i, evaluation in enumerate(evaluations):
            coarser = [supporting[j] for j in np.flatnonzero(tuning > evaluation.t)]
            signal_positions = evaluation.positions[evaluation.signal]
            signal_signs = evaluation.signs[evaluation.signal]
            conflicts = 0
            for pos, sign in zip(signal_positions, signal_signs):
                if sign == 0:
                    conflicts += 1
                    continue
                others = opposing[int(sign)]
                if others.size and np.any(
                    (start[others] < stop[pos]) & (start[pos] < stop[others])
                ):
                    conflicts += 1
                    continue
                if coarser and not any(
                    _covers(start, stop, hosts[int(sign)], pos) for hosts in coarser
                ):
                    conflicts += 1
            pi0 = storey_null_proportion(evaluation.pvalues, self.null_lambda)
            expected[i] = conflicts + alpha * pi0 * (signal_positions.size - conflicts)
        return expected

    def __repr__(self) -> str:
        return f"DirectionalConsistencyEstimator(null_lambda={self.null_lambda})"


def _covers(start: np.ndarray, stop: np.ndarray, hosts: np.ndarray, pos: int) -> bool:
    """Whether any position in ``hosts`` is ``pos`` or one of its ancestors."""
    if hosts.size == 0:
        return False
    return bool(np.any((start[hosts] <= start[pos]) & (stop[pos] <= stop[hosts])))


class LeafBoundEstimator(FalseDiscoveryEstimator):
    """Leaf-weighted bound ``alpha * S * max_signal_leaves / signal_leaves``.

    A candidate whose discoveries are spread over many comparable nodes is
    charged less than one dominated by a single large node.
    """

    name = "leaf_bound"

    def expected_false(self, tree, evaluations, alpha):
        start, stop = tree.leaf_intervals
        expected = np.zeros(len(evaluations), dtype=float)
        for i, evaluation in enumerate(evaluations):
            signal_positions = evaluation.positions[evaluation.signal]
            if signal_positions.size == 0:
                continue
            leaves = stop[signal_positions] - start[signal_positions]
            expected[i] = alpha * signal_positions.size * leaves.max() / leaves.sum()
        return expected


FDR_ESTIMATORS: Dict[str, Type[FalseDiscoveryEstimator]] = {
    DirectionalConsistencyEstimator.name: DirectionalConsistencyEstimator,
    LeafBoundEstimator.name: LeafBoundEstimator,
}


def get_fdr_estimator(
    estimator: Union[str, FalseDiscoveryEstimator] = config.FDR_ESTIMATOR,
) -> FalseDiscoveryEstimator:
    """Resolve an estimator name (or pass an instance through)."""
    if isinstance(estimator, FalseDiscoveryEstimator):
        return estimator
    try:
        return FDR_ESTIMATORS[str(estimator).lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown FDR estimator: {estimator!r}. "
            f"Supported estimators: {sorted(FDR_ESTIMATORS)}"
        ) from None


__all__ = [
    "CandidateEvaluation",
    "DirectionalConsistencyEstimator",
    "FDR_ESTIMATORS",
    "FalseDiscoveryEstimator",
    "LeafBoundEstimator",
    "get_fdr_estimator",
    "storey_null_proportion",
]
