from .decision import Decision, NodeScore, SubtreeSummary, decide, summarize_subtrees
from .candidate_builder import (
    Candidate,
    CandidateBuilder,
    build_candidate_lists,
    build_candidates,
    format_tuning_key,
    parse_tuning_values,
    validate_coarsening,
    validate_tree_cut,
)

__all__ = [
    # Merge rule
    "Decision",
    "NodeScore",
    "SubtreeSummary",
    "decide",
    "summarize_subtrees",
    # Candidate construction
    "Candidate",
    "CandidateBuilder",
    "build_candidates",
    "build_candidate_lists",
    "format_tuning_key",
    "parse_tuning_values",
    "validate_coarsening",
    "validate_tree_cut",
]
