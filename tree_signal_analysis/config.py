"""
Central configuration for the tree signal analysis library.
"""

from typing import Tuple

# --- Statistical Parameters ---

# Default target false discovery rate (alpha) for candidate evaluation.
SIGNIFICANCE_ALPHA: float = 0.05

# A node may only represent its whole subtree in a candidate when its own
# p-value is at most this threshold.
CANDIDATE_THRESHOLD: float = 0.05

# Default two-sample test used to score every node.
# Options: 'rank_sum', 'welch_t'
TWO_SAMPLE_TEST: str = "rank_sum"

# --- Candidate Parameters ---

# Default tuning grid (ascending, within [0, 1]).
# Larger values tolerate more heterogeneity before a subtree is split.
DEFAULT_TUNING_VALUES: Tuple[float, ...] = tuple(round(i / 10, 1) for i in range(11))

# Numerical slack when comparing p-values against a merge tolerance or alpha.
EPSILON: float = 1e-12

# --- Evaluation Parameters ---

# Evaluation mode.
# Options:
#   "single": each feature is finalized on its own selected candidate
#   "multiple": selected candidates of all features share one correction pass
EVALUATION_MODE: str = "single"

# Multiple testing correction applied to each candidate.
# Options: 'fdr_bh' (Benjamini-Hochberg), 'fdr_by' (Benjamini-Yekutieli)
CORRECTION_METHOD: str = "fdr_bh"

# Strategy estimating the false discovery proportion of a candidate.
# Options: 'directional', 'leaf_bound'
FDR_ESTIMATOR: str = "directional"

# Lambda used by the Storey estimate of the proportion of true nulls.
NULL_PROPORTION_LAMBDA: float = 0.5

# --- Parallelism ---

# Number of joblib workers for per-feature fan-out (1 = serial, -1 = all cores).
N_JOBS: int = 1
