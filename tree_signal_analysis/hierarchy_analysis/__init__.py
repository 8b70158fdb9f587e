"""
Hierarchical signal analysis over an indexed tree.

This package provides the stages of the analysis:
- Per-node, per-feature scores (``NodeStatTable``)
- Candidate tree cuts per tuning value (``candidates``)
- Correction, resolution selection and cross-feature pooling (``evaluation``)
- The typed result bundle (``results``)
"""

from .node_statistics import NodeStatTable
from .candidates import Candidate, CandidateBuilder, build_candidate_lists
from .evaluation import CandidateEvaluator
from .results import (
    CandidateResult,
    ColumnInfo,
    FDRSummary,
    ResultAggregator,
    TreeSignalResult,
)
from .statistics import benjamini_hochberg_correction

__all__ = [
    "NodeStatTable",
    "Candidate",
    "CandidateBuilder",
    "build_candidate_lists",
    "CandidateEvaluator",
    "CandidateResult",
    "ColumnInfo",
    "FDRSummary",
    "ResultAggregator",
    "TreeSignalResult",
    "benjamini_hochberg_correction",
]
