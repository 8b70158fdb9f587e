from .two_sample_tests import (
    TWO_SAMPLE_TESTS,
    get_two_sample_test,
    rank_sum_test,
    run_two_sample_test,
    welch_t_test,
)
from .multiple_testing import (
    apply_multiple_testing_correction,
    benjamini_hochberg_correction,
    fdr_correction,
)

__all__ = [
    # Node-level tests
    "TWO_SAMPLE_TESTS",
    "get_two_sample_test",
    "rank_sum_test",
    "welch_t_test",
    "run_two_sample_test",
    # Multiple testing correction
    "benjamini_hochberg_correction",
    "fdr_correction",
    "apply_multiple_testing_correction",
]
