"""
Synthetic data helpers for exercising the analysis end-to-end.
"""

from .generators import generate_nested_tree, generate_signal_counts

__all__ = ["generate_nested_tree", "generate_signal_counts"]
