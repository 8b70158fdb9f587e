"""Synthetic per-leaf counts with enriched clades.

Exports:
- generate_nested_tree(n_clades, clade_size, clades_per_group) -> TreeIndex
- pick_enriched_clades(tree, n_clades) -> tuple[int, ...]
- generate_signal_counts(tree, ...) -> tuple[dict, pd.Series, dict]

By default both groups share one baseline draw per (leaf, sample index), so
an unperturbed node has identical group values (sign 0, no evidence) while an
enriched clade separates the groups completely. With ``shared_baseline=False``
each group gets its own draw and unperturbed nodes carry ordinary sampling
noise.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from tree_signal_analysis.tree.tree_index import TreeIndex


def generate_nested_tree(
    n_clades: int = 20, clade_size: int = 5, clades_per_group: int = 2
) -> TreeIndex:
    """Three-level tree: leaves -> clades -> groups -> root.

    Leaves are ``0 .. n_clades*clade_size - 1``; clade ``k`` gets id
    ``n_leaves + k`` and covers leaves ``k*clade_size .. (k+1)*clade_size - 1``;
    groups follow the clades and the root has the largest id. The default is
    a 100-leaf tree with clades ``100..119``, groups ``120..129`` and root 130.
    """
    if n_clades < 1 or clade_size < 1 or clades_per_group < 1:
        raise ValueError("n_clades, clade_size and clades_per_group must be positive.")
    if n_clades % clades_per_group:
        raise ValueError(
            f"n_clades ({n_clades}) must be a multiple of clades_per_group ({clades_per_group})."
        )

    n_leaves = n_clades * clade_size
    n_groups = n_clades // clades_per_group
    root = n_leaves + n_clades + n_groups

    edges: List[Tuple[int, int]] = []
    for k in range(n_clades):
        clade = n_leaves + k
        edges.extend((clade, leaf) for leaf in range(k * clade_size, (k + 1) * clade_size))
    for g in range(n_groups):
        group = n_leaves + n_clades + g
        edges.extend(
            (group, n_leaves + k)
            for k in range(g * clades_per_group, (g + 1) * clades_per_group)
        )
        edges.append((root, group))

    return TreeIndex.from_edges(edges, n_leaves=n_leaves)


def pick_enriched_clades(tree: TreeIndex, n_clades: int = 5) -> Tuple[int, ...]:
    """Evenly spaced, disjoint internal nodes whose children are all leaves."""
    pool = [
        node
        for node in tree.internal_nodes
        if all(tree.is_leaf(child) for child in tree.children(node))
    ]
    if len(pool) < n_clades:
        raise ValueError(
            f"Tree has only {len(pool)} leaf-parent nodes; cannot pick {n_clades} clades."
        )
    step = len(pool) // n_clades
    return tuple(pool[::step][:n_clades])


def generate_signal_counts(
    tree: TreeIndex,
    n_features: int = 10,
    enriched_features: Optional[Sequence[Hashable]] = None,
    clades: Optional[Sequence[int]] = None,
    n_samples_per_group: int = 10,
    fold_change: float = 3.0,
    baseline: int = 10,
    groups: Tuple[str, str] = ("control", "case"),
    shared_baseline: bool = True,
    random_seed: Optional[int] = None,
) -> Tuple[Dict[str, pd.DataFrame], pd.Series, Dict[str, Any]]:
    """Per-leaf counts for two sample groups, inflated on chosen clades.

    Parameters
    ----------
    tree
        Indexed tree whose leaves are the entities.
    n_features
        Number of features ``F0 .. F{n-1}``.
    enriched_features
        Features whose clade leaves are inflated in the second group.
        Defaults to the first half.
    clades
        Disjoint nodes to enrich; defaults to :func:`pick_enriched_clades`.
    n_samples_per_group
        Samples per group.
    fold_change
        Multiplier applied to enriched counts. Values of at least 2 separate
        the groups completely at every enriched node.
    baseline
        Baseline counts are drawn uniformly from ``[baseline, 2*baseline)``.
    groups
        ``(reference, target)`` group names.
    shared_baseline
        Reuse the reference draw as the target baseline. When ``False`` the
        target group is drawn independently.
    random_seed
        Seed for the baseline draws.

    Returns
    -------
    observations
        Feature -> ``leaf x sample`` count frame (rows indexed by leaf id).
    sample_groups
        Sample -> group.
    metadata
        Ground truth: enriched features and clades.
    """
    features = [f"F{j}" for j in range(n_features)]
    if enriched_features is None:
        enriched_features = features[: n_features // 2]
    unknown = [f for f in enriched_features if f not in features]
    if unknown:
        raise ValueError(f"Unknown enriched features: {unknown}")
    if clades is None:
        clades = pick_enriched_clades(tree)
    for a in clades:
        for b in clades:
            if a != b and tree.overlaps(a, b):
                raise ValueError(f"Clades {a} and {b} overlap.")

    reference, target = groups
    reference_samples = [f"{reference}_{i}" for i in range(n_samples_per_group)]
    target_samples = [f"{target}_{i}" for i in range(n_samples_per_group)]
    sample_groups = pd.Series(
        [reference] * n_samples_per_group + [target] * n_samples_per_group,
        index=reference_samples + target_samples,
        name="group",
    )

    leaves = list(tree.leaves)
    enriched_leaves = np.isin(
        leaves, sorted(set().union(*(tree.descendant_leaves(c) for c in clades)))
    )

    rng = np.random.default_rng(random_seed)
    observations: Dict[str, pd.DataFrame] = {}
    for feature in features:
        shape = (len(leaves), n_samples_per_group)
        base = rng.integers(baseline, 2 * baseline, size=shape)
        if shared_baseline:
            case = base.astype(float)
        else:
            case = rng.integers(baseline, 2 * baseline, size=shape).astype(float)
        if feature in enriched_features:
            case[enriched_leaves] *= fold_change
        observations[feature] = pd.DataFrame(
            np.hstack([base.astype(float), case]),
            index=pd.Index(leaves, name="leaf"),
            columns=reference_samples + target_samples,
        )

    metadata = {
        "enriched_features": list(enriched_features),
        "clades": tuple(int(c) for c in clades),
        "n_samples_per_group": n_samples_per_group,
        "fold_change": fold_change,
        "shared_baseline": shared_baseline,
        "groups": groups,
    }
    return observations, sample_groups, metadata


__all__ = ["generate_nested_tree", "generate_signal_counts", "pick_enriched_clades"]
