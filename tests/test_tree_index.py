from __future__ import annotations

import pytest

from tree_signal_analysis.errors import InvalidTree
from tree_signal_analysis.tree.tree_index import TreeIndex


def _caterpillar(n_leaves: int) -> list[tuple[int, int]]:
    """Maximally unbalanced tree: every internal node has one leaf child."""
    edges = []
    internal = list(range(n_leaves, 2 * n_leaves - 1))
    for i, node in enumerate(internal):
        edges.append((node, i))
        nxt = internal[i + 1] if i + 1 < len(internal) else n_leaves - 1
        edges.append((node, nxt))
    return edges


def test_basic_structure(small_tree: TreeIndex) -> None:
    assert small_tree.root == 7
    assert len(small_tree) == 7
    assert small_tree.n_leaves == 4
    assert small_tree.leaves == (1, 2, 3, 4)
    assert small_tree.internal_nodes == (5, 6, 7)
    assert small_tree.parent(7) is None
    assert small_tree.parent(3) == 6
    assert small_tree.children(7) == (5, 6)
    assert small_tree.is_leaf(2)
    assert not small_tree.is_leaf(5)
    assert small_tree.depth(7) == 0
    assert small_tree.depth(4) == 2


def test_leaf_sets_and_ancestry(small_tree: TreeIndex) -> None:
    assert small_tree.descendant_leaves(5) == frozenset({1, 2})
    assert small_tree.descendant_leaves(7) == frozenset({1, 2, 3, 4})
    assert small_tree.descendant_leaves(3) == frozenset({3})
    assert small_tree.ancestors(4) == (7, 6, 4)
    assert small_tree.ancestors(7) == (7,)
    assert small_tree.leaf_count(6) == 2

    assert small_tree.is_descendant(1, 5)
    assert small_tree.is_descendant(5, 5)
    assert not small_tree.is_descendant(5, 1)
    assert not small_tree.is_descendant(3, 5)

    assert small_tree.overlaps(7, 3)
    assert small_tree.overlaps(3, 7)
    assert not small_tree.overlaps(5, 6)


def test_traversal_orders(small_tree: TreeIndex) -> None:
    assert small_tree.preorder() == (7, 5, 1, 2, 6, 3, 4)
    assert small_tree.postorder() == (1, 2, 5, 3, 4, 6, 7)
    assert small_tree.leaf_order == (1, 2, 3, 4)


def test_unknown_node_raises(small_tree: TreeIndex) -> None:
    assert 99 not in small_tree
    with pytest.raises(KeyError, match="99"):
        small_tree.position(99)


def test_labels_default_to_ids() -> None:
    tree = TreeIndex.from_edges([(3, 1), (3, 2)], labels={1: "alpha"})
    assert tree.label(1) == "alpha"
    assert tree.label(2) == "2"


def test_deep_caterpillar_does_not_recurse() -> None:
    """Iterative traversal handles trees deeper than the recursion limit."""
    n_leaves = 5000
    tree = TreeIndex.from_edges(_caterpillar(n_leaves), n_leaves=n_leaves)
    assert tree.n_leaves == n_leaves
    assert tree.leaf_count(tree.root) == n_leaves
    assert tree.depth(n_leaves - 1) == n_leaves - 1


def test_to_networkx_round_trips_edges(small_tree: TreeIndex) -> None:
    graph = small_tree.to_networkx()
    assert sorted(graph.edges) == [(5, 1), (5, 2), (6, 3), (6, 4), (7, 5), (7, 6)]
    assert graph.graph["root"] == 7
    assert graph.nodes[1]["is_leaf"]


@pytest.mark.parametrize(
    "edges, n_leaves, message",
    [
        ([], None, "no edges"),
        ([(1, 1)], None, "self loops"),
        ([(5, 1), (6, 1), (7, 5), (7, 6)], None, "more than one parent"),
        ([(1, 2), (2, 3), (3, 1)], None, "cycle"),
        ([(5, 1), (5, 2), (6, 3), (6, 4)], None, "disconnected"),
        ([(7, 5), (7, 6), (5, 1), (5, 2), (6, 3), (6, 4)], 3, "Expected 3 leaves"),
    ],
)
def test_invalid_trees(edges, n_leaves, message) -> None:
    with pytest.raises(InvalidTree, match=message):
        TreeIndex.from_edges(edges, n_leaves=n_leaves)


def test_two_roots_sharing_a_child_raise() -> None:
    """Two roots sharing a child are rejected before the root check."""
    with pytest.raises(InvalidTree):
        TreeIndex.from_edges([(5, 1), (6, 2), (5, 3), (6, 3)])


def test_invalid_tree_is_value_error() -> None:
    with pytest.raises(ValueError):
        TreeIndex.from_edges([(1, 2), (2, 1)])
