"""100-leaf scenario: five enriched clades in half of ten features."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from tree_signal_analysis.benchmarking.generators import (
    generate_nested_tree,
    generate_signal_counts,
    pick_enriched_clades,
)
from tree_signal_analysis.core_utils.pipeline_helpers import run_tree_signal_analysis
from tree_signal_analysis.hierarchy_analysis.node_statistics import NodeStatTable

CLADES = {100, 104, 108, 112, 116}


@pytest.fixture(scope="module")
def scenario():
    tree = generate_nested_tree(n_clades=20, clade_size=5, clades_per_group=2)
    observations, sample_groups, truth = generate_signal_counts(
        tree, n_features=10, random_seed=7
    )
    return tree, observations, sample_groups, truth


@pytest.fixture(scope="module")
def single_result(scenario):
    tree, observations, sample_groups, _ = scenario
    return run_tree_signal_analysis(
        tree, observations=observations, sample_groups=sample_groups, alpha=0.05
    )


def test_generated_tree_layout(scenario) -> None:
    tree, _, _, truth = scenario
    assert tree.n_leaves == 100
    assert tree.root == 130
    assert tree.descendant_leaves(104) == frozenset(range(20, 25))
    assert tree.children(122) == (104, 105)
    assert set(truth["clades"]) == CLADES
    assert pick_enriched_clades(tree) == tuple(sorted(CLADES))


def test_enriched_features_recover_exact_clades(scenario, single_result) -> None:
    _, _, _, truth = scenario
    assert truth["enriched_features"] == ["F0", "F1", "F2", "F3", "F4"]
    for feature in truth["enriched_features"]:
        assert set(single_result.signal_nodes(feature)) == CLADES


def test_unperturbed_features_keep_all_leaves(scenario, single_result) -> None:
    tree = scenario[0]
    for feature in ["F5", "F6", "F7", "F8", "F9"]:
        assert single_result.candidate_best[feature].nodes == tree.leaves
        rows = single_result.output[single_result.output["feature"] == feature]
        assert not rows["signal"].any()
        for candidate in single_result.candidate_list[feature].values():
            assert candidate.nodes == tree.leaves


def test_multiple_mode_agrees(scenario) -> None:
    tree, observations, sample_groups, truth = scenario
    result = run_tree_signal_analysis(
        tree,
        observations=observations,
        sample_groups=sample_groups,
        mode="multiple",
    )
    assert result.mode == "multiple"
    assert result.output["feature"].unique().tolist() == [f"F{j}" for j in range(10)]
    for feature in truth["enriched_features"]:
        assert set(result.signal_nodes(feature)) == CLADES
    for feature in ["F5", "F6", "F7", "F8", "F9"]:
        assert result.signal_nodes(feature) == ()


def test_row_counts_match_candidates(single_result) -> None:
    for feature, feature_result in single_result.feature_results.items():
        counts = feature_result.table.groupby("t").size()
        for t, candidate in feature_result.candidate_list.items():
            assert counts[t] == len(candidate)
        best_rows = single_result.output[single_result.output["feature"] == feature]
        assert len(best_rows) == len(single_result.candidate_best[feature])


def test_candidates_are_nested_tree_cuts(scenario, single_result) -> None:
    tree = scenario[0]
    all_leaves = sorted(tree.leaves)
    for candidates in single_result.candidate_list.values():
        grid = sorted(candidates)
        for t in grid:
            covered = sorted(
                leaf for node in candidates[t].nodes for leaf in tree.descendant_leaves(node)
            )
            assert covered == all_leaves
        for finer, coarser in zip(grid, grid[1:]):
            for node in candidates[finer].nodes:
                assert sum(tree.is_descendant(node, c) for c in candidates[coarser].nodes) == 1


def test_output_order_is_feature_then_node(single_result) -> None:
    output = single_result.output
    features = [f"F{j}" for j in range(10)]
    order = output["feature"].map({f: i for i, f in enumerate(features)})
    keys = list(zip(order, output["node"]))
    assert keys == sorted(keys)


def test_deterministic_output(scenario, single_result) -> None:
    tree, observations, sample_groups, _ = scenario
    again = run_tree_signal_analysis(
        tree, observations=observations, sample_groups=sample_groups, alpha=0.05
    )
    assert again.output.to_csv(index=False) == single_result.output.to_csv(index=False)
    assert again.to_dict() == single_result.to_dict()


def test_parallel_run_matches_serial(scenario, single_result) -> None:
    tree, observations, sample_groups, _ = scenario
    parallel = run_tree_signal_analysis(
        tree, observations=observations, sample_groups=sample_groups, n_jobs=2
    )
    pd.testing.assert_frame_equal(parallel.output, single_result.output)


def test_scores_input_reproduces_observation_run(scenario, single_result) -> None:
    tree, observations, sample_groups, _ = scenario
    scores = NodeStatTable.from_observations(tree, observations, sample_groups).to_frame()
    from_scores = run_tree_signal_analysis(tree, scores=scores)
    pd.testing.assert_frame_equal(from_scores.output, single_result.output)


def test_signal_count_monotone_in_alpha(scenario) -> None:
    tree, observations, sample_groups, _ = scenario
    scores = NodeStatTable.from_observations(tree, observations, sample_groups).to_frame()
    counts = []
    for alpha in (0.001, 0.01, 0.05, 0.1):
        result = run_tree_signal_analysis(tree, scores=scores, alpha=alpha)
        evaluated = result.evaluated_table()
        counts.append(evaluated.groupby(["feature", "t"])["signal"].sum())
    for smaller, larger in zip(counts, counts[1:]):
        assert np.all(smaller.to_numpy() <= larger.to_numpy())


def test_helper_requires_one_input(scenario) -> None:
    tree, observations, sample_groups, _ = scenario
    with pytest.raises(ValueError, match="exactly one"):
        run_tree_signal_analysis(tree)
    with pytest.raises(ValueError, match="sample_groups"):
        run_tree_signal_analysis(tree, observations=observations)


@pytest.fixture(scope="module")
def noisy_scenario():
    """Same design, but each group draws its own baseline counts."""
    tree = generate_nested_tree(n_clades=20, clade_size=5, clades_per_group=2)
    observations, sample_groups, truth = generate_signal_counts(
        tree, n_features=10, shared_baseline=False, random_seed=11
    )
    result = run_tree_signal_analysis(
        tree, observations=observations, sample_groups=sample_groups, alpha=0.05
    )
    return tree, observations, sample_groups, truth, result


def test_noisy_enriched_features_keep_clade_resolution(noisy_scenario) -> None:
    tree, _, _, truth, result = noisy_scenario
    clade_leaves = set().union(*(tree.descendant_leaves(c) for c in CLADES))
    for feature in truth["enriched_features"]:
        best = result.candidate_best[feature]
        assert CLADES <= set(best.nodes)
        # Null sibling clades are never absorbed into group nodes.
        assert all(node in CLADES or tree.is_leaf(node) for node in best.nodes)

        signal = set(result.signal_nodes(feature))
        assert CLADES <= signal
        assert all(tree.is_leaf(node) and node not in clade_leaves for node in signal - CLADES)


def test_noisy_null_features_keep_all_leaves(noisy_scenario) -> None:
    tree, _, _, truth, result = noisy_scenario
    for feature in result.features:
        if feature not in truth["enriched_features"]:
            assert result.candidate_best[feature].nodes == tree.leaves


def test_noisy_false_signals_stay_a_minority(noisy_scenario) -> None:
    _, _, _, truth, result = noisy_scenario
    signal = result.output[result.output["signal"]]
    true_rows = signal["feature"].isin(truth["enriched_features"]) & signal["node"].isin(CLADES)
    assert int(true_rows.sum()) == 25
    assert int((~true_rows).sum()) * 2 < int(true_rows.sum())


def test_noisy_multiple_mode_recovers_clades(noisy_scenario) -> None:
    tree, observations, sample_groups, truth, _ = noisy_scenario
    pooled = run_tree_signal_analysis(
        tree,
        observations=observations,
        sample_groups=sample_groups,
        mode="multiple",
    )
    for feature in truth["enriched_features"]:
        assert CLADES <= set(pooled.signal_nodes(feature))
        assert all(node in CLADES or tree.is_leaf(node) for node in pooled.signal_nodes(feature))
