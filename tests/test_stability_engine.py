"""
Tests for the bootstrap instability engine.

Covers:
- End-to-end runs on a synthetic cohort
- Reproducibility from the base seed, in-process and with worker threads
- Per-model failure isolation and success accounting
- Early stop (deadline, stop request) with partial results
- Cooperative per-iteration timeout
"""

import warnings

import numpy as np
import pandas as pd
import pytest
from scoreval.data.imputation import PMMImputer
from scoreval.models.fitting import FitFailure, fit_model
from scoreval.models.specs import ModelSpec, Term, default_model_specs
from scoreval.stability.engine import (
    TIMEOUT_REASON,
    fit_reference_models,
    run_iteration,
    run_stability_analysis,
)


def flaky_fitter(spec, sample, **kwargs):
    """Fails on every fourth resampled iteration."""
    if sample.iteration > 0 and sample.iteration % 4 == 0:
        raise FitFailure(spec.name, "injected failure")
    return fit_model(spec, sample, **kwargs)


def broken_fitter(spec, sample, **kwargs):
    """Always fails for the model named 'broken'."""
    if spec.name == "broken":
        raise FitFailure(spec.name, "rank-deficient design")
    return fit_model(spec, sample, **kwargs)


class TestRunIteration:
    def test_predictions_indexed_by_subject(self, small_cohort, score_spec):
        record = run_iteration(1, 123, small_cohort, [score_spec])

        preds = record.predictions["score alone"]
        assert list(preds.index) == list(small_cohort.subject_ids)
        assert preds.between(0, 1).all()
        assert not record.failures
        assert record.elapsed > 0

    def test_same_seed_same_record(self, small_cohort, score_spec):
        a = run_iteration(3, 99, small_cohort, [score_spec])
        b = run_iteration(3, 99, small_cohort, [score_spec])
        pd.testing.assert_series_equal(a.predictions["score alone"], b.predictions["score alone"])

    def test_curve_on_grid(self, small_cohort, score_spec):
        grid = np.linspace(0, 1, 11)
        record = run_iteration(1, 5, small_cohort, [score_spec], curve_grid=grid)
        assert record.curves["score alone"].shape == (11,)

    def test_failure_isolated_to_model(self, small_cohort, score_spec):
        broken = ModelSpec(name="broken", terms=(Term("age"),))
        record = run_iteration(1, 5, small_cohort, [score_spec, broken], fitter=broken_fitter)
        assert record.failures == {"broken": "rank-deficient design"}
        assert "score alone" in record.predictions
        assert not record.failed

    def test_time_budget_exceeded(self, small_cohort, score_spec, score_age_spec):
        record = run_iteration(1, 5, small_cohort, [score_spec, score_age_spec], time_budget=0.0)
        assert record.predictions == {}
        assert record.failures == {
            "score alone": TIMEOUT_REASON,
            "score + age": TIMEOUT_REASON,
        }
        assert record.failed

    def test_imputes_fitting_sample(self, incomplete_cohort, score_spec):
        imputer = PMMImputer(targets=("score",), auxiliary=("age", "outcome"))
        cohort = imputer.impute_cohort(incomplete_cohort, seed=0)
        record = run_iteration(1, 11, cohort, [score_spec], imputer=imputer)
        assert record.predictions["score alone"].notna().all()


def test_fit_reference_models_reports_failures(small_cohort, score_spec):
    broken = ModelSpec(name="broken", terms=(Term("age"),))
    fits, failures = fit_reference_models(small_cohort, [score_spec, broken], broken_fitter)
    assert list(fits) == ["score alone"]
    assert failures == {"broken": "rank-deficient design"}


class TestRunStabilityAnalysis:
    def test_end_to_end(self, reference_cohort, score_spec):
        result = run_stability_analysis(reference_cohort, [score_spec], n_boot=50, seed=0)

        row = result.summary.iloc[0]
        assert result.n_requested == 50
        assert result.n_completed == 50
        assert not result.aborted
        assert row["n_success"] == 50
        assert row["n_failed"] == 0
        assert row["available"]
        assert 0 < row["instability_index"] < 0.05
        assert len(result.subjects) == len(reference_cohort)
        assert not result.calibration_bands.empty

    def test_reproducible(self, small_cohort, score_spec):
        a = run_stability_analysis(small_cohort, [score_spec], n_boot=8, seed=17)
        b = run_stability_analysis(small_cohort, [score_spec], n_boot=8, seed=17)
        pd.testing.assert_frame_equal(a.summary, b.summary)
        pd.testing.assert_frame_equal(a.subjects, b.subjects)

    def test_seed_changes_result(self, small_cohort, score_spec):
        a = run_stability_analysis(small_cohort, [score_spec], n_boot=8, seed=1)
        b = run_stability_analysis(small_cohort, [score_spec], n_boot=8, seed=2)
        assert a.instability_index()["score alone"] != b.instability_index()["score alone"]

    def test_threads_match_sequential(self, small_cohort, score_spec):
        sequential = run_stability_analysis(small_cohort, [score_spec], n_boot=6, seed=3)
        threaded = run_stability_analysis(
            small_cohort, [score_spec], n_boot=6, seed=3, n_jobs=2, backend="threading"
        )
        assert threaded.n_completed == 6
        np.testing.assert_allclose(
            threaded.subjects["mape"].to_numpy(), sequential.subjects["mape"].to_numpy()
        )

    def test_threads_leave_warning_filters_untouched(self, small_cohort):
        filters_before = list(warnings.filters)
        showwarning_before = warnings.showwarning

        result = run_stability_analysis(
            small_cohort, default_model_specs(), n_boot=20, seed=0, n_jobs=4, backend="threading"
        )

        assert warnings.filters == filters_before
        assert warnings.showwarning is showwarning_before
        assert result.n_completed == 20
        assert set(result.summary["model"]) == {s.name for s in default_model_specs()}

    def test_failure_accounting(self, small_cohort, score_spec):
        result = run_stability_analysis(
            small_cohort, [score_spec], n_boot=50, seed=0, fitter=flaky_fitter
        )
        row = result.summary.iloc[0]
        assert row["n_success"] == 50 - 12
        assert row["n_failed"] == 12
        assert row["failure_reasons"] == "injected failure: 12"
        assert row["available"]
        assert result.successes() == {"score alone": 38}

    def test_reference_failure_drops_model(self, small_cohort, score_spec):
        broken = ModelSpec(name="broken", terms=(Term("age"),))
        result = run_stability_analysis(
            small_cohort, [score_spec, broken], n_boot=4, seed=0, fitter=broken_fitter
        )
        summary = result.summary.set_index("model")
        assert summary.loc["score alone", "n_success"] == 4
        assert not summary.loc["broken", "available"]
        assert summary.loc["broken", "diagnostic"] == (
            "reference fit failed: rank-deficient design"
        )
        assert set(result.subjects["model"]) == {"score alone"}

    def test_precomputed_reference(self, small_cohort, score_spec):
        fits, _ = fit_reference_models(small_cohort, [score_spec])
        reference = {"score alone": fits["score alone"].predict_proba(small_cohort.frame)}
        reference = {k: pd.Series(v, index=small_cohort.subject_ids) for k, v in reference.items()}
        missing = ModelSpec(name="score + age", terms=(Term("score"), Term("age")))
        result = run_stability_analysis(
            small_cohort,
            [score_spec, missing],
            n_boot=3,
            reference=reference,
            reference_failures={"score + age": "perfect separation"},
        )
        summary = result.summary.set_index("model")
        assert summary.loc["score + age", "diagnostic"] == "reference fit failed: perfect separation"
        np.testing.assert_allclose(
            result.subjects["reference_prediction"], reference["score alone"].to_numpy()
        )

    def test_stop_request_returns_partial_result(self, small_cohort, score_spec):
        calls = []

        def should_stop():
            calls.append(1)
            return len(calls) >= 5

        result = run_stability_analysis(
            small_cohort, [score_spec], n_boot=20, seed=0, should_stop=should_stop
        )
        assert result.aborted
        assert result.n_completed == 5
        assert result.n_requested == 20
        assert result.summary.iloc[0]["n_success"] == 5

    def test_deadline_returns_partial_result(self, small_cohort, score_spec):
        result = run_stability_analysis(
            small_cohort, [score_spec], n_boot=10, seed=0, deadline=0.0
        )
        assert result.aborted
        assert result.n_completed == 1

    def test_iteration_timeout(self, small_cohort, score_spec):
        result = run_stability_analysis(
            small_cohort, [score_spec], n_boot=3, seed=0, iteration_timeout=0.0
        )
        row = result.summary.iloc[0]
        assert row["n_success"] == 0
        assert row["failure_reasons"] == "timeout: 3"
        assert not row["available"]

    def test_classification_threshold(self, small_cohort, score_spec):
        result = run_stability_analysis(
            small_cohort, [score_spec], n_boot=5, seed=0, classification_threshold=0.2
        )
        assert "classification_instability" in result.subjects.columns
        assert 0.0 <= result.summary.iloc[0]["classification_instability"] <= 1.0

    def test_rejects_fitting_sample(self, small_cohort, score_spec):
        with pytest.raises(TypeError, match="ReferenceCohort"):
            run_stability_analysis(small_cohort.as_fitting_sample(), [score_spec], n_boot=2)

    def test_rejects_zero_iterations(self, small_cohort, score_spec):
        with pytest.raises(ValueError, match="n_boot"):
            run_stability_analysis(small_cohort, [score_spec], n_boot=0)
