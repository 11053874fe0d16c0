"""
Tests for the running instability accumulator.

Covers:
- MAPE against the reference prediction, aligned by subject identifier
- Success/failure accounting and the failure ceiling
- Classification instability
- Calibration percentile bands
"""

import numpy as np
import pandas as pd
import pytest
from scoreval.stability.accumulator import (
    SUMMARY_COLUMNS,
    InstabilityAccumulator,
    IterationRecord,
)

IDS = ["a", "b", "c", "d"]


@pytest.fixture
def reference():
    return {"m": pd.Series([0.1, 0.2, 0.3, 0.4], index=IDS)}


def _record(iteration, preds=None, failures=None, curves=None):
    return IterationRecord(
        iteration=iteration,
        seed=iteration,
        predictions=preds or {},
        failures=failures or {},
        curves=curves or {},
    )


class TestMape:
    def test_identical_predictions_have_zero_instability(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        for i in range(1, 4):
            acc.update(_record(i, {"m": reference["m"].copy()}))
        result = acc.finalize(n_requested=3)

        row = result.summary.iloc[0]
        assert row["instability_index"] == 0.0
        assert row["max_mape"] == 0.0
        assert row["mean_sd"] == pytest.approx(0.0, abs=1e-6)
        assert result.successes() == {"m": 3}

    def test_mape_is_mean_absolute_deviation(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        acc.update(_record(1, {"m": reference["m"] + 0.2}))
        acc.update(_record(2, {"m": reference["m"] - 0.1}))
        result = acc.finalize(n_requested=2)

        subjects = result.subjects
        np.testing.assert_allclose(subjects["mape"], 0.15, atol=1e-12)
        np.testing.assert_allclose(
            subjects["mean_prediction"], reference["m"].to_numpy() + 0.05, atol=1e-12
        )
        assert result.instability_index()["m"] == pytest.approx(0.15)

    def test_alignment_by_identifier_not_position(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        shuffled = reference["m"].iloc[[3, 1, 0, 2]]
        acc.update(_record(1, {"m": shuffled}))
        result = acc.finalize(n_requested=1)
        assert result.summary.iloc[0]["instability_index"] == 0.0
        assert list(result.subjects["subject_id"]) == IDS

    def test_missing_subject_rejected(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        with pytest.raises(ValueError, match="missing 1 reference subjects"):
            acc.update(_record(1, {"m": reference["m"].drop("c")}))

    def test_reference_must_cover_cohort(self, reference):
        with pytest.raises(ValueError, match="missing"):
            InstabilityAccumulator([*IDS, "e"], reference)

    def test_duplicate_subject_ids(self, reference):
        with pytest.raises(ValueError, match="unique"):
            InstabilityAccumulator(["a", "a", "b", "c"], reference)

    def test_duplicate_iteration_rejected(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        acc.update(_record(1, {"m": reference["m"]}))
        with pytest.raises(ValueError, match="already aggregated"):
            acc.update(_record(1, {"m": reference["m"]}))


class TestFailures:
    def test_failures_counted_by_reason(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        acc.update(_record(1, {"m": reference["m"]}))
        acc.update(_record(2, failures={"m": "perfect separation"}))
        acc.update(_record(3, failures={"m": "perfect separation"}))
        acc.update(_record(4, {"m": reference["m"]}))
        acc.update(_record(5))
        result = acc.finalize(n_requested=5, max_failure_frac=0.8)

        row = result.summary.iloc[0]
        assert row["n_success"] == 2
        assert row["n_failed"] == 3
        assert row["n_success"] + row["n_failed"] == row["n_completed"]
        assert row["failure_reasons"] == "missing: 1; perfect separation: 2"
        assert row["available"]

    def test_failure_ceiling_makes_model_unavailable(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        acc.update(_record(1, {"m": reference["m"] + 0.05}))
        for i in range(2, 5):
            acc.update(_record(i, failures={"m": "timeout"}))
        result = acc.finalize(n_requested=4, max_failure_frac=0.5)

        row = result.summary.iloc[0]
        assert not row["available"]
        assert "exceeds ceiling" in row["diagnostic"]
        assert np.isnan(row["instability_index"])
        assert result.subjects["mape"].isna().all()

    def test_every_iteration_failed(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        acc.update(_record(1, failures={"m": "timeout"}))
        row = acc.finalize(n_requested=1, max_failure_frac=1.0).summary.iloc[0]
        assert not row["available"]
        assert row["diagnostic"] == "every iteration failed"

    def test_reference_failures_listed(self, reference):
        acc = InstabilityAccumulator(IDS, reference)
        acc.update(_record(1, {"m": reference["m"]}))
        result = acc.finalize(n_requested=1, reference_failures={"broken": "rank-deficient"})

        assert list(result.summary.columns) == SUMMARY_COLUMNS
        broken = result.summary.set_index("model").loc["broken"]
        assert broken["n_success"] == 0
        assert broken["diagnostic"] == "reference fit failed: rank-deficient"
        assert result.reference_failures == {"broken": "rank-deficient"}

    def test_record_failed_property(self):
        assert _record(1, failures={"m": "x"}).failed
        assert not _record(1, {"m": pd.Series(dtype=float)}, {"n": "x"}).failed


def test_classification_instability(reference):
    acc = InstabilityAccumulator(IDS, reference, classification_threshold=0.25)
    # Subject b crosses the threshold in one of two iterations
    acc.update(_record(1, {"m": pd.Series([0.1, 0.3, 0.3, 0.4], index=IDS)}))
    acc.update(_record(2, {"m": reference["m"]}))
    result = acc.finalize(n_requested=2)

    np.testing.assert_allclose(result.subjects["classification_instability"], [0, 0.5, 0, 0])
    assert result.summary.iloc[0]["classification_instability"] == pytest.approx(0.125)


def test_calibration_bands(reference):
    grid = np.array([0.1, 0.2, 0.3])
    acc = InstabilityAccumulator(IDS, reference, curve_grid=grid)
    for i, shift in enumerate([0.0, 0.1, 0.2], start=1):
        curve = np.array([0.1 + shift, 0.2 + shift, np.nan])
        acc.update(_record(i, {"m": reference["m"]}, curves={"m": curve}))
    bands = acc.finalize(n_requested=3).calibration_bands

    assert list(bands.columns) == ["model", "predicted", "lower", "median", "upper", "n_curves"]
    np.testing.assert_allclose(bands["median"].iloc[:2], [0.2, 0.3])
    assert (bands["lower"].iloc[:2] < bands["median"].iloc[:2]).all()
    assert np.isnan(bands["median"].iloc[2])
    assert list(bands["n_curves"]) == [3, 3, 0]


def test_no_bands_without_grid(reference):
    acc = InstabilityAccumulator(IDS, reference)
    acc.update(_record(1, {"m": reference["m"]}, curves={"m": np.array([0.1])}))
    assert acc.finalize(n_requested=1).calibration_bands.empty
