import os
import sys

import pytest

# Ensure the project root is on sys.path so tests can import
# ``tree_signal_analysis`` when running directly from the repository.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture
def small_tree():
    """Seven-node tree: root 7 -> (5, 6); 5 -> (1, 2); 6 -> (3, 4)."""
    from tree_signal_analysis.tree.tree_index import TreeIndex

    return TreeIndex.from_edges(
        [(7, 5), (7, 6), (5, 1), (5, 2), (6, 3), (6, 4)], n_leaves=4
    )
