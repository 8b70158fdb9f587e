"""I/O helpers for constructing :class:`TreeIndex` from external representations.

Each public function accepts a raw tree description (edge list, linkage
matrix, sklearn model, networkx graph) and returns a fully-initialised
:class:`TreeIndex`.

Merge-based constructors share the scipy numbering convention: leaves are
``0 … n-1`` and the merge in row ``k`` becomes node ``n + k``.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import networkx as nx
import numpy as np
from sklearn.cluster import AgglomerativeClustering

from ..errors import InvalidTree
from .tree_index import TreeIndex


# ---------------------------------------------------------------------------
# Shared builder
# ---------------------------------------------------------------------------


def _build_tree_from_merges(
    n_leaves: int,
    leaf_names: List[str],
    children: np.ndarray,
) -> TreeIndex:
    """Build a :class:`TreeIndex` from merge arrays.

    Parameters
    ----------
    n_leaves
        Number of original samples.
    leaf_names
        Labels for the leaf nodes (length ``n_leaves``).
    children
        ``(n_leaves - 1, 2)`` array of child index pairs produced by scipy or
        sklearn.
    """
    if len(leaf_names) != n_leaves:
        raise InvalidTree(
            f"Expected {n_leaves} leaf names, got {len(leaf_names)}."
        )

    edges: List[Tuple[int, int]] = []
    for k, (a, b) in enumerate(np.asarray(children, dtype=np.int64)):
        parent = n_leaves + k
        edges.append((parent, int(a)))
        edges.append((parent, int(b)))

    labels: Dict[int, str] = {i: str(name) for i, name in enumerate(leaf_names)}
    return TreeIndex.from_edges(edges, n_leaves=n_leaves, labels=labels)


# ---------------------------------------------------------------------------
# Public constructors
# ---------------------------------------------------------------------------


def tree_from_edges(
    edges: Iterable[Tuple[int, int]],
    n_leaves: Optional[int] = None,
    labels: Optional[Mapping[int, str]] = None,
) -> TreeIndex:
    """Build a :class:`TreeIndex` from ``(parent, child)`` pairs.

    Thin alias of :meth:`TreeIndex.from_edges` kept next to the other
    constructors.
    """
    return TreeIndex.from_edges(edges, n_leaves=n_leaves, labels=labels)


def tree_from_linkage(
    linkage_matrix: np.ndarray,
    leaf_names: Optional[List[str]] = None,
) -> TreeIndex:
    """Build a :class:`TreeIndex` from a SciPy linkage matrix.

    Parameters
    ----------
    linkage_matrix
        A ``(n-1, 4)`` NumPy array from :func:`scipy.cluster.hierarchy.linkage`.
    leaf_names
        Optional list of leaf labels; defaults to ``leaf_0 … leaf_{n-1}``.
    """
    linkage_matrix = np.asarray(linkage_matrix)
    if linkage_matrix.ndim != 2 or linkage_matrix.shape[1] != 4:
        raise InvalidTree(
            f"Expected a (n-1, 4) linkage matrix, got shape {linkage_matrix.shape}."
        )
    n_leaves = linkage_matrix.shape[0] + 1
    if leaf_names is None:
        leaf_names = [f"leaf_{i}" for i in range(n_leaves)]

    children = linkage_matrix[:, :2].astype(int)
    return _build_tree_from_merges(n_leaves, list(leaf_names), children)


def tree_from_agglomerative(
    X: np.ndarray,
    leaf_names: Optional[List[str]] = None,
    linkage: str = "average",
    metric: str = "euclidean",
) -> TreeIndex:
    """Cluster entities hierarchically and index the resulting tree.

    Parameters
    ----------
    X
        Entity profile matrix of shape ``(n_entities, n_markers)``, e.g. median
        marker expression per cell subpopulation.
    leaf_names
        Optional list of labels; defaults to ``leaf_0 … leaf_{n-1}``.
    linkage, metric
        Passed through to :class:`AgglomerativeClustering`.
    """
    X = np.asarray(X)
    n = int(X.shape[0])
    if n < 2:
        raise InvalidTree(f"Need at least two entities to build a tree, got {n}.")
    if leaf_names is None:
        leaf_names = [f"leaf_{i}" for i in range(n)]

    model = AgglomerativeClustering(
        n_clusters=1,
        linkage=linkage,
        metric=metric,
    )
    model.fit(X)

    return _build_tree_from_merges(n, list(leaf_names), model.children_)


def tree_from_networkx(graph: nx.DiGraph) -> TreeIndex:
    """Index a parent -> child :class:`networkx.DiGraph`.

    Integer node ids are kept as they are. Any other node keys are relabelled
    ``0 … N-1`` in sorted order of their string form, with the original key
    kept as the node label.
    """
    nodes = list(graph.nodes)
    if all(isinstance(n, (int, np.integer)) for n in nodes):
        return TreeIndex.from_digraph(graph)

    ordered = sorted(nodes, key=str)
    mapping = {node: i for i, node in enumerate(ordered)}
    relabelled = nx.relabel_nodes(graph, mapping, copy=True)
    labels = {
        mapping[node]: str(graph.nodes[node].get("label", node)) for node in ordered
    }
    return TreeIndex.from_digraph(relabelled, labels=labels)


__all__ = [
    "tree_from_edges",
    "tree_from_linkage",
    "tree_from_agglomerative",
    "tree_from_networkx",
]
