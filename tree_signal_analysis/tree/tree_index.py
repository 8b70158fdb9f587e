"""Flat, interval-coded index over a rooted tree.

:class:`TreeIndex` stores a tree as an arena: every node gets a position
``0 … N-1`` (ordered by node id) and the structure lives in plain arrays
(parent position, children positions, preorder entry/exit times and
descendant-leaf intervals). Ancestry and leaf-overlap questions become
O(1) interval comparisons, which the candidate search relies on.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import networkx as nx
import numpy as np

from ..errors import InvalidTree, preview


class TreeIndex:
    """Read-only rooted tree with O(1) descendant and overlap tests.

    Nodes are identified by caller-supplied integer ids (for example ape-style
    ``1 … N`` or scipy linkage-style ``0 … 2n-2``). Ids are fixed at
    construction and never reassigned.

    Use :meth:`from_edges` (or the helpers in :mod:`tree_signal_analysis.tree.io`)
    rather than calling the constructor directly.
    """

    def __init__(
        self,
        node_ids: np.ndarray,
        parent: np.ndarray,
        children: Tuple[Tuple[int, ...], ...],
        labels: Optional[Mapping[int, str]] = None,
    ) -> None:
        self._node_ids = np.asarray(node_ids, dtype=np.int64)
        self._position: Dict[int, int] = {
            int(node_id): pos for pos, node_id in enumerate(self._node_ids)
        }
        self._parent = np.asarray(parent, dtype=np.int64)
        self._children = children
        self._labels: Dict[int, str] = {int(k): str(v) for k, v in (labels or {}).items()}

        roots = np.flatnonzero(self._parent < 0)
        if roots.size != 1:
            raise InvalidTree(
                f"Expected one root, got {preview(self._node_ids[roots].tolist())}"
            )
        self._root_pos = int(roots[0])
        self._build_intervals()

    # ---------------- Constructors ----------------

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Tuple[int, int]],
        n_leaves: Optional[int] = None,
        labels: Optional[Mapping[int, str]] = None,
    ) -> "TreeIndex":
        """Build an index from ``(parent, child)`` pairs.

        Parameters
        ----------
        edges
            Iterable of ``(parent_id, child_id)`` integer pairs.
        n_leaves
            Expected number of leaves. When given, a mismatch with the number
            of childless nodes raises :class:`InvalidTree`.
        labels
            Optional human-readable label per node id.

        Raises
        ------
        InvalidTree
            If the edges are empty, contain a self loop, give a node more than
            one parent, contain a cycle, are disconnected, yield more than one
            root, or disagree with ``n_leaves``.
        """
        edge_list = [(int(parent), int(child)) for parent, child in edges]
        if not edge_list:
            raise InvalidTree("Tree has no edges; at least one parent -> child edge is required.")

        self_loops = sorted({parent for parent, child in edge_list if parent == child})
        if self_loops:
            raise InvalidTree(f"Tree contains self loops at nodes: {preview(self_loops)}.")

        graph = nx.DiGraph()
        graph.add_edges_from(edge_list)
        return cls.from_digraph(graph, n_leaves=n_leaves, labels=labels)

    @classmethod
    def from_digraph(
        cls,
        graph: nx.DiGraph,
        n_leaves: Optional[int] = None,
        labels: Optional[Mapping[int, str]] = None,
    ) -> "TreeIndex":
        """Validate a parent -> child :class:`networkx.DiGraph` and index it."""
        _validate_tree_graph(graph, n_leaves)

        node_ids = np.array(sorted(int(n) for n in graph.nodes), dtype=np.int64)
        position = {int(node_id): pos for pos, node_id in enumerate(node_ids)}

        parent = np.full(node_ids.size, -1, dtype=np.int64)
        children: List[Tuple[int, ...]] = []
        for node_id in node_ids:
            child_positions = sorted(position[int(c)] for c in graph.successors(int(node_id)))
            for child_pos in child_positions:
                parent[child_pos] = position[int(node_id)]
            children.append(tuple(child_positions))

        if labels is None:
            labels = {
                int(n): str(data["label"])
                for n, data in graph.nodes(data=True)
                if data.get("label") is not None
            }
        return cls(node_ids, parent, tuple(children), labels=labels)

    # ---------------- Interval coding ----------------

    def _build_intervals(self) -> None:
        """Assign preorder entry/exit times and descendant-leaf intervals.

        Uses an explicit stack so very deep (caterpillar) trees do not hit the
        recursion limit. Children are visited in ascending node-id order, which
        fixes the leaf order deterministically.
        """
        n = self._node_ids.size
        self._tin = np.empty(n, dtype=np.int64)
        self._tout = np.empty(n, dtype=np.int64)
        self._leaf_start = np.empty(n, dtype=np.int64)
        self._leaf_stop = np.empty(n, dtype=np.int64)
        self._depth = np.zeros(n, dtype=np.int64)

        preorder: List[int] = []
        postorder: List[int] = []
        leaf_order: List[int] = []

        stack: List[Tuple[int, bool]] = [(self._root_pos, False)]
        while stack:
            pos, finished = stack.pop()
            if finished:
                self._tout[pos] = len(preorder)
                self._leaf_stop[pos] = len(leaf_order)
                postorder.append(pos)
                continue

            self._tin[pos] = len(preorder)
            self._leaf_start[pos] = len(leaf_order)
            preorder.append(pos)
            if not self._children[pos]:
                leaf_order.append(pos)

            stack.append((pos, True))
            for child_pos in reversed(self._children[pos]):
                self._depth[child_pos] = self._depth[pos] + 1
                stack.append((child_pos, False))

        if len(preorder) != n:
            unreachable = sorted(set(range(n)) - set(preorder))
            raise InvalidTree(
                "Nodes unreachable from the root: "
                f"{preview(self._node_ids[unreachable].tolist())}."
            )

        self._preorder = np.asarray(preorder, dtype=np.int64)
        self._postorder = np.asarray(postorder, dtype=np.int64)
        self._leaf_order = np.asarray(leaf_order, dtype=np.int64)
        self._is_leaf = np.array([not c for c in self._children], dtype=bool)

    # ---------------- Basic accessors ----------------

    def __len__(self) -> int:
        return int(self._node_ids.size)

    def __contains__(self, node: object) -> bool:
        try:
            return int(node) in self._position  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

    def __repr__(self) -> str:
        return (
            f"TreeIndex(n_nodes={len(self)}, n_leaves={self.n_leaves}, "
            f"root={self.root})"
        )

    @property
    def root(self) -> int:
        return int(self._node_ids[self._root_pos])

    @property
    def n_leaves(self) -> int:
        return int(self._leaf_order.size)

    @property
    def node_ids(self) -> np.ndarray:
        """All node ids in ascending order (position order)."""
        return self._node_ids.copy()

    @property
    def leaves(self) -> Tuple[int, ...]:
        """Leaf ids in ascending id order."""
        return tuple(int(n) for n in self._node_ids[self._is_leaf])

    @property
    def internal_nodes(self) -> Tuple[int, ...]:
        return tuple(int(n) for n in self._node_ids[~self._is_leaf])

    @property
    def leaf_order(self) -> Tuple[int, ...]:
        """Leaf ids in depth-first order; every node covers a contiguous run."""
        return tuple(int(n) for n in self._node_ids[self._leaf_order])

    def position(self, node: int) -> int:
        """Arena position of ``node``."""
        try:
            return self._position[int(node)]
        except KeyError:
            raise KeyError(f"Unknown node id {node!r}.") from None

    def positions(self, nodes: Iterable[int]) -> np.ndarray:
        return np.array([self.position(n) for n in nodes], dtype=np.int64)

    def node_at(self, pos: int) -> int:
        return int(self._node_ids[pos])

    def label(self, node: int) -> str:
        node = int(node)
        self.position(node)
        return self._labels.get(node, str(node))

    # ---------------- Structure queries ----------------

    def parent(self, node: int) -> Optional[int]:
        """Parent id, or ``None`` for the root."""
        parent_pos = int(self._parent[self.position(node)])
        return None if parent_pos < 0 else self.node_at(parent_pos)

    def children(self, node: int) -> Tuple[int, ...]:
        """Child ids in ascending order."""
        return tuple(self.node_at(c) for c in self._children[self.position(node)])

    def is_leaf(self, node: int) -> bool:
        return bool(self._is_leaf[self.position(node)])

    def depth(self, node: int) -> int:
        """Number of edges between ``node`` and the root."""
        return int(self._depth[self.position(node)])

    def ancestors(self, node: int) -> Tuple[int, ...]:
        """Root-to-node path, ending with ``node`` itself."""
        path: List[int] = []
        pos = self.position(node)
        while pos >= 0:
            path.append(pos)
            pos = int(self._parent[pos])
        return tuple(self.node_at(p) for p in reversed(path))

    def leaf_interval(self, node: int) -> Tuple[int, int]:
        """Half-open range of :attr:`leaf_order` covered by ``node``."""
        pos = self.position(node)
        return int(self._leaf_start[pos]), int(self._leaf_stop[pos])

    def leaf_count(self, node: int) -> int:
        start, stop = self.leaf_interval(node)
        return stop - start

    def descendant_leaves(self, node: int) -> FrozenSet[int]:
        """Ids of all leaves below (or equal to) ``node``."""
        start, stop = self.leaf_interval(node)
        return frozenset(int(n) for n in self._node_ids[self._leaf_order[start:stop]])

    def is_descendant(self, node: int, ancestor: int) -> bool:
        """``True`` when ``node`` equals ``ancestor`` or lies below it."""
        pos = self.position(node)
        anc = self.position(ancestor)
        return bool(self._tin[anc] <= self._tin[pos] < self._tout[anc])

    def overlaps(self, node_a: int, node_b: int) -> bool:
        """``True`` when the two nodes share at least one descendant leaf."""
        return self.is_descendant(node_a, node_b) or self.is_descendant(node_b, node_a)

    def preorder(self) -> Tuple[int, ...]:
        return tuple(self.node_at(p) for p in self._preorder)

    def postorder(self) -> Tuple[int, ...]:
        return tuple(self.node_at(p) for p in self._postorder)

    # ---------------- Position-level views (hot paths) ----------------

    @property
    def children_positions(self) -> Tuple[Tuple[int, ...], ...]:
        return self._children

    @property
    def postorder_positions(self) -> np.ndarray:
        return self._postorder

    @property
    def leaf_intervals(self) -> Tuple[np.ndarray, np.ndarray]:
        """``(start, stop)`` arrays aligned to positions."""
        return self._leaf_start, self._leaf_stop

    @property
    def is_leaf_mask(self) -> np.ndarray:
        return self._is_leaf

    # ---------------- Interop ----------------

    def to_networkx(self) -> nx.DiGraph:
        """Export as a parent -> child :class:`networkx.DiGraph`."""
        graph = nx.DiGraph()
        for pos, node_id in enumerate(self._node_ids):
            node_id = int(node_id)
            graph.add_node(
                node_id,
                is_leaf=bool(self._is_leaf[pos]),
                label=self._labels.get(node_id, str(node_id)),
            )
        for pos, parent_pos in enumerate(self._parent):
            if parent_pos >= 0:
                graph.add_edge(self.node_at(int(parent_pos)), self.node_at(pos))
        graph.graph["root"] = self.root
        return graph


def _validate_tree_graph(graph: nx.DiGraph, n_leaves: Optional[int]) -> None:
    """Raise :class:`InvalidTree` unless ``graph`` is a single rooted tree."""
    if graph.number_of_nodes() == 0:
        raise InvalidTree("Tree has no nodes.")

    multi_parent = sorted(n for n, d in graph.in_degree() if d > 1)
    if multi_parent:
        raise InvalidTree(f"Nodes with more than one parent: {preview(multi_parent)}.")

    if not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        cycle_nodes = [edge[0] for edge in cycle]
        raise InvalidTree(f"Tree contains a cycle through nodes: {preview(cycle_nodes)}.")

    if not nx.is_weakly_connected(graph):
        components = sorted(
            (sorted(c) for c in nx.weakly_connected_components(graph)),
            key=lambda c: c[0],
        )
        raise InvalidTree(
            f"Tree is disconnected into {len(components)} components; "
            f"first nodes of each: {preview([c[0] for c in components])}."
        )

    roots = sorted(n for n, d in graph.in_degree() if d == 0)
    if len(roots) != 1:
        raise InvalidTree(f"Expected one root, got {preview(roots)}.")

    if n_leaves is not None:
        leaves = [n for n, d in graph.out_degree() if d == 0]
        if len(leaves) != int(n_leaves):
            raise InvalidTree(
                f"Expected {int(n_leaves)} leaves, found {len(leaves)} childless nodes."
            )


__all__ = ["TreeIndex"]
