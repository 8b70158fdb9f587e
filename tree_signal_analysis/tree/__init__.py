from .tree_index import TreeIndex
from .io import (
    tree_from_agglomerative,
    tree_from_edges,
    tree_from_linkage,
    tree_from_networkx,
)

__all__ = [
    "TreeIndex",
    "tree_from_edges",
    "tree_from_linkage",
    "tree_from_agglomerative",
    "tree_from_networkx",
]
