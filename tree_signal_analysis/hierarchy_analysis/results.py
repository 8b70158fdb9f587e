"""Typed result bundle of a tree signal analysis run."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Tuple

import pandas as pd

from ..errors import CandidateInvariantViolation, preview
from .candidates.candidate_builder import Candidate, format_tuning_key


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    dtype: str
    meaning: str


@dataclass(frozen=True)
class FDRSummary:
    """Target false discovery rate and the realized estimate."""

    target: float
    realized: float


OUTPUT_COLUMNS: Tuple[ColumnInfo, ...] = (
    ColumnInfo("feature", "object", "Feature identifier; present in single and multiple mode."),
    ColumnInfo("node", "int64", "Node id of the selected candidate."),
    ColumnInfo("pvalue", "float64", "Raw p-value of the node."),
    ColumnInfo("sign", "int64", "Effect direction of the target group (-1, 0, 1)."),
    ColumnInfo("adj_pvalue", "float64", "Multiplicity-adjusted p-value."),
    ColumnInfo("signal", "bool", "adj_pvalue <= alpha at the final correction level."),
)

OUTPUT_COLUMN_NAMES: Tuple[str, ...] = tuple(c.name for c in OUTPUT_COLUMNS)

# Per-feature evaluated table: every (t, node) row of every candidate.
TABLE_COLUMNS: Tuple[str, ...] = ("t", "node", "pvalue", "sign", "adj_pvalue", "signal")

LEVEL_INFO_COLUMNS: Tuple[str, ...] = (
    "t",
    "n_nodes",
    "n_signal_nodes",
    "n_signal_leaves",
    "fdp_estimate",
    "admissible",
    "best",
)


@dataclass
class CandidateResult:
    """Evaluation of one feature.

    Attributes
    ----------
    feature
        Feature identifier.
    candidate_list
        Ascending tuning value -> candidate.
    candidate_best
        Selected candidate.
    best_t
        Tuning value of :attr:`candidate_best`.
    table
        One row per (t, node) over every candidate, with the per-candidate
        correction (columns :data:`TABLE_COLUMNS`).
    level_info
        One row per tuning value summarizing the candidate.
    output
        Rows of the selected candidate before any cross-feature pooling.
    admissible
        ``False`` when no candidate met the FDP target; the selected
        candidate then carries no signal.
    fdp_estimate
        Estimated FDP of the selected candidate.
    """

    feature: Hashable
    candidate_list: Dict[float, Candidate]
    candidate_best: Candidate
    best_t: float
    table: pd.DataFrame
    level_info: pd.DataFrame
    output: pd.DataFrame
    admissible: bool = True
    fdp_estimate: float = 0.0

    @property
    def signal_nodes(self) -> Tuple[int, ...]:
        return tuple(int(n) for n in self.output.loc[self.output["signal"], "node"])


@dataclass
class TreeSignalResult:
    """Final result of an analysis over all features."""

    candidate_list: Dict[Hashable, Dict[float, Candidate]]
    candidate_best: Dict[Hashable, Candidate]
    output: pd.DataFrame
    fdr: FDRSummary
    method: str
    column_info: List[ColumnInfo]
    mode: str
    feature_results: Dict[Hashable, CandidateResult] = field(default_factory=dict)

    @property
    def features(self) -> Tuple[Hashable, ...]:
        return tuple(self.candidate_list)

    def signal_nodes(self, feature: Hashable) -> Tuple[int, ...]:
        """Node ids flagged as signal for ``feature`` in the final output."""
        if feature not in self.candidate_list:
            raise KeyError(f"Unknown feature {feature!r}.")
        rows = self.output.loc[(self.output["feature"] == feature) & self.output["signal"]]
        return tuple(int(n) for n in rows["node"])

    def evaluated_table(self) -> pd.DataFrame:
        """All per-feature evaluated tables stacked, with a ``feature`` column."""
        frames = []
        for feature, result in self.feature_results.items():
            frame = result.table.copy()
            frame.insert(0, "feature", [feature] * len(frame))
            frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=("feature",) + TABLE_COLUMNS)
        return pd.concat(frames, ignore_index=True)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view; tuning keys are rendered as strings (``"0.3"``)."""
        return {
            "candidate_list": {
                _feature_key(feature): {
                    format_tuning_key(t): list(candidate.nodes)
                    for t, candidate in candidates.items()
                }
                for feature, candidates in self.candidate_list.items()
            },
            "candidate_best": {
                _feature_key(feature): list(candidate.nodes)
                for feature, candidate in self.candidate_best.items()
            },
            "output": self.output.to_dict(orient="records"),
            "FDR": asdict(self.fdr),
            "method": self.method,
            "mode": self.mode,
            "column_info": [asdict(c) for c in self.column_info],
        }


def _feature_key(feature: Hashable) -> str:
    return feature if isinstance(feature, str) else str(feature)


class ResultAggregator:
    """Assemble and cross-check the final :class:`TreeSignalResult`."""

    @staticmethod
    def assemble(
        feature_results: Mapping[Hashable, CandidateResult],
        output: pd.DataFrame,
        fdr: FDRSummary,
        method: str,
        mode: str,
        column_info: Optional[List[ColumnInfo]] = None,
    ) -> TreeSignalResult:
        """Bundle per-feature results with the final output table.

        Raises
        ------
        CandidateInvariantViolation
            If a feature lacks a selected candidate, is absent from
            ``output``, or its output rows disagree with its selected
            candidate.
        """
        candidate_list = {f: r.candidate_list for f, r in feature_results.items()}
        candidate_best = {
            f: r.candidate_best for f, r in feature_results.items() if r.candidate_best is not None
        }

        missing_best = [f for f in candidate_list if f not in candidate_best]
        if missing_best:
            raise CandidateInvariantViolation(
                f"Features without a selected candidate: {preview(missing_best)}."
            )

        missing_columns = [c for c in OUTPUT_COLUMN_NAMES if c not in output.columns]
        if missing_columns:
            raise CandidateInvariantViolation(
                f"Output table is missing columns: {preview(missing_columns)}."
            )

        rows_by_feature = {
            feature: rows["node"].tolist()
            for feature, rows in output.groupby("feature", sort=False)
        }
        absent = [f for f in candidate_list if f not in rows_by_feature]
        if absent:
            raise CandidateInvariantViolation(
                f"Features absent from the output table: {preview(absent)}."
            )
        mismatched = [
            f for f, best in candidate_best.items() if rows_by_feature[f] != list(best.nodes)
        ]
        if mismatched:
            raise CandidateInvariantViolation(
                f"Output rows disagree with the selected candidate for features: "
                f"{preview(mismatched)}."
            )
        extra = [f for f in rows_by_feature if f not in candidate_list]
        if extra:
            raise CandidateInvariantViolation(
                f"Output table has rows for unknown features: {preview(extra)}."
            )

        return TreeSignalResult(
            candidate_list=candidate_list,
            candidate_best=candidate_best,
            output=output.loc[:, list(OUTPUT_COLUMN_NAMES)].reset_index(drop=True),
            fdr=fdr,
            method=method,
            column_info=list(column_info or OUTPUT_COLUMNS),
            mode=mode,
            feature_results=dict(feature_results),
        )


__all__ = [
    "CandidateResult",
    "ColumnInfo",
    "FDRSummary",
    "LEVEL_INFO_COLUMNS",
    "OUTPUT_COLUMNS",
    "OUTPUT_COLUMN_NAMES",
    "ResultAggregator",
    "TABLE_COLUMNS",
    "TreeSignalResult",
]
