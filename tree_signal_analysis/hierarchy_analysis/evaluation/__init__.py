from .fdr_estimators import (
    FDR_ESTIMATORS,
    CandidateEvaluation,
    DirectionalConsistencyEstimator,
    FalseDiscoveryEstimator,
    LeafBoundEstimator,
    get_fdr_estimator,
    storey_null_proportion,
)
from .candidate_evaluator import EVALUATION_MODES, CandidateEvaluator

__all__ = [
    "CandidateEvaluator",
    "EVALUATION_MODES",
    "CandidateEvaluation",
    "FalseDiscoveryEstimator",
    "DirectionalConsistencyEstimator",
    "LeafBoundEstimator",
    "FDR_ESTIMATORS",
    "get_fdr_estimator",
    "storey_null_proportion",
]
