from __future__ import annotations

import numpy as np
import pytest

from tree_signal_analysis.hierarchy_analysis.statistics.two_sample_tests import (
    get_two_sample_test,
    mean_difference_sign,
    rank_sum_test,
    run_two_sample_test,
    welch_t_test,
)


def test_rank_sum_detects_separated_groups() -> None:
    reference = np.arange(10, 20, dtype=float)
    target = reference * 3
    p_value, sign = rank_sum_test(reference, target)
    assert p_value < 0.001
    assert sign == 1


def test_welch_sign_points_to_target() -> None:
    reference = np.array([5.0, 6.0, 7.0, 8.0])
    target = np.array([1.0, 2.0, 3.0, 2.5])
    p_value, sign = welch_t_test(reference, target)
    assert 0.0 <= p_value < 0.05
    assert sign == -1


def test_mean_difference_sign_ties_exactly() -> None:
    values = np.array([1.0, 2.0, 3.0])
    assert mean_difference_sign(values, values.copy()) == 0
    assert mean_difference_sign(values, values + 1e-9) == 1


def test_zero_variance_is_degenerate() -> None:
    """Constant pooled values cannot be tested: p=1, sign from the means."""
    reference = np.full(5, 4.0)
    target = np.full(5, 4.0)
    p_value, sign, degenerate = run_two_sample_test(rank_sum_test, reference, target)
    assert (p_value, sign, degenerate) == (1.0, 0, True)


def test_non_finite_p_value_is_degenerate() -> None:
    def broken_test(reference, target):
        return float("nan"), 1

    p_value, sign, degenerate = run_two_sample_test(
        broken_test, np.array([1.0, 2.0]), np.array([5.0, 6.0])
    )
    assert degenerate
    assert p_value == 1.0
    assert sign == 1


def test_p_value_is_clipped() -> None:
    def overshooting_test(reference, target):
        return 1.2, -1

    p_value, sign, degenerate = run_two_sample_test(
        overshooting_test, np.array([1.0, 2.0]), np.array([0.5, 0.7])
    )
    assert p_value == 1.0
    assert sign == -1
    assert not degenerate


def test_empty_group_raises() -> None:
    with pytest.raises(ValueError, match="at least one sample"):
        run_two_sample_test(rank_sum_test, np.array([]), np.array([1.0]))


def test_registry_resolution() -> None:
    assert get_two_sample_test("rank_sum") is rank_sum_test
    assert get_two_sample_test("Welch_T") is welch_t_test
    custom = lambda reference, target: (0.5, 0)  # noqa: E731
    assert get_two_sample_test(custom) is custom
    with pytest.raises(ValueError, match="Unknown two-sample test"):
        get_two_sample_test("chi_square")
