from .generate_signal_data import (
    generate_nested_tree,
    generate_signal_counts,
    pick_enriched_clades,
)

__all__ = ["generate_nested_tree", "generate_signal_counts", "pick_enriched_clades"]
