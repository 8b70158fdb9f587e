from __future__ import annotations

import json

import pandas as pd
import pytest

from tree_signal_analysis.errors import CandidateInvariantViolation
from tree_signal_analysis.hierarchy_analysis.candidates import Candidate
from tree_signal_analysis.hierarchy_analysis.results import (
    OUTPUT_COLUMN_NAMES,
    CandidateResult,
    FDRSummary,
    ResultAggregator,
)


def _feature_result(feature: str, nodes: tuple, signal: tuple) -> CandidateResult:
    candidate = Candidate(0.5, nodes)
    output = pd.DataFrame(
        {
            "node": list(candidate.nodes),
            "pvalue": [0.01] * len(nodes),
            "sign": [1] * len(nodes),
            "adj_pvalue": [0.02] * len(nodes),
            "signal": list(signal),
        }
    )
    return CandidateResult(
        feature=feature,
        candidate_list={0.0: Candidate(0.0, (1, 2, 3, 4)), 0.5: candidate},
        candidate_best=candidate,
        best_t=0.5,
        table=output.assign(t=0.5),
        level_info=pd.DataFrame(),
        output=output,
    )


def _output(results: dict) -> pd.DataFrame:
    frames = [r.output.assign(feature=f) for f, r in results.items()]
    return pd.concat(frames, ignore_index=True).loc[:, list(OUTPUT_COLUMN_NAMES)]


def _results() -> dict:
    return {
        "F0": _feature_result("F0", (5, 3, 4), (False, False, True)),
        "F1": _feature_result("F1", (1, 2, 6), (False, False, False)),
    }


def test_assemble_and_query() -> None:
    results = _results()
    bundle = ResultAggregator.assemble(
        results,
        _output(results),
        FDRSummary(0.05, 0.02),
        method="single:fdr_bh:directional",
        mode="single",
    )
    assert bundle.features == ("F0", "F1")
    assert bundle.candidate_best["F0"].nodes == (3, 4, 5)
    assert bundle.signal_nodes("F0") == (5,)
    assert bundle.signal_nodes("F1") == ()
    assert [c.name for c in bundle.column_info] == list(OUTPUT_COLUMN_NAMES)
    with pytest.raises(KeyError):
        bundle.signal_nodes("F9")

    stacked = bundle.evaluated_table()
    assert stacked.columns[0] == "feature"
    assert len(stacked) == 6


def test_to_dict_uses_string_tuning_keys() -> None:
    results = _results()
    bundle = ResultAggregator.assemble(
        results, _output(results), FDRSummary(0.05, 0.02), method="m", mode="single"
    )
    payload = bundle.to_dict()
    assert payload["candidate_list"]["F0"] == {"0": [1, 2, 3, 4], "0.5": [3, 4, 5]}
    assert payload["candidate_best"]["F1"] == [1, 2, 6]
    assert payload["FDR"] == {"target": 0.05, "realized": 0.02}
    assert payload["column_info"][0]["name"] == "feature"
    # Everything must be JSON serializable.
    json.dumps(payload)


def test_missing_feature_in_output_is_a_defect() -> None:
    results = _results()
    output = _output(results)
    output = output[output["feature"] == "F0"]
    with pytest.raises(CandidateInvariantViolation, match="F1"):
        ResultAggregator.assemble(results, output, FDRSummary(0.05, 0.0), method="m", mode="single")


def test_row_mismatch_is_a_defect() -> None:
    results = _results()
    output = _output(results).drop(index=0)
    with pytest.raises(CandidateInvariantViolation, match="disagree"):
        ResultAggregator.assemble(results, output, FDRSummary(0.05, 0.0), method="m", mode="single")


def test_missing_best_is_a_defect() -> None:
    results = _results()
    results["F1"].candidate_best = None
    with pytest.raises(CandidateInvariantViolation, match="without a selected candidate"):
        ResultAggregator.assemble(
            results, _output(results), FDRSummary(0.05, 0.0), method="m", mode="single"
        )
