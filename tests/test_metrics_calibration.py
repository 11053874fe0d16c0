"""
Tests for calibration metrics.
"""

import numpy as np
import pandas as pd
import pytest
from scoreval.metrics.calibration import (
    calibration_errors,
    calibration_in_the_large,
    calibration_intercept_slope,
    curve_on_grid,
    evaluate_calibration,
    observed_expected_ratio,
    smoothed_calibration_curve,
)
from scoreval.metrics.discrimination import DegenerateMetricWarning
from scoreval.models.fitting import fit_model
from scoreval.models.predict import predict_risk


@pytest.fixture
def calibrated():
    """Outcomes drawn from the predicted probabilities themselves."""
    rng = np.random.default_rng(7)
    p = rng.uniform(0.05, 0.6, size=20000)
    y = rng.binomial(1, p)
    return y, p


def test_well_calibrated_predictions(calibrated):
    y, p = calibrated
    intercept, slope = calibration_intercept_slope(y, p)
    assert abs(intercept) < 0.15
    assert slope == pytest.approx(1.0, abs=0.1)
    assert observed_expected_ratio(y, p) == pytest.approx(1.0, abs=0.05)
    assert abs(calibration_in_the_large(y, p)) < 0.08


def test_overconfident_predictions_have_slope_below_one(calibrated):
    y, p = calibrated
    lp = np.log(p / (1 - p))
    too_extreme = 1 / (1 + np.exp(-2 * lp))
    _, slope = calibration_intercept_slope(y, too_extreme)
    assert slope < 0.7


def test_apparent_calibration_of_fitted_model(reference_cohort, score_spec):
    model = fit_model(score_spec, reference_cohort.as_fitting_sample())
    p = predict_risk(model, reference_cohort)
    y = reference_cohort.outcome

    intercept, slope = calibration_intercept_slope(y, p)
    assert intercept == pytest.approx(0.0, abs=0.02)
    assert slope == pytest.approx(1.0, abs=0.02)
    assert observed_expected_ratio(y, p) == pytest.approx(1.0, abs=1e-4)


def test_constant_predictions_are_degenerate():
    y = np.array([0, 1, 0, 1])
    with pytest.warns(DegenerateMetricWarning):
        intercept, slope = calibration_intercept_slope(y, np.full(4, 0.4))
    assert np.isnan(intercept) and np.isnan(slope)
    assert smoothed_calibration_curve(y, np.full(4, 0.4)).empty


def test_smoothed_curve(calibrated):
    y, p = calibrated
    curve = smoothed_calibration_curve(y[:2000], p[:2000])
    assert list(curve.columns) == ["predicted", "observed"]
    assert curve["predicted"].is_monotonic_increasing
    assert curve["observed"].between(0, 1).all()


def test_curve_on_grid_nan_outside_support():
    curve = pd.DataFrame({"predicted": [0.2, 0.4], "observed": [0.1, 0.5]})
    values = curve_on_grid(curve, np.array([0.0, 0.2, 0.3, 0.4, 0.9]))
    assert np.isnan(values[0]) and np.isnan(values[-1])
    np.testing.assert_allclose(values[1:4], [0.1, 0.3, 0.5])


def test_calibration_errors():
    curve = pd.DataFrame({"predicted": [0.1, 0.5], "observed": [0.2, 0.6]})
    errors = calibration_errors(np.array([0.1, 0.3, 0.5]), curve)
    assert errors["ici"] == pytest.approx(0.1)
    assert errors["emax"] == pytest.approx(0.1)
    assert set(errors) == {"ici", "e50", "e90", "emax"}


def test_calibration_errors_empty_curve():
    errors = calibration_errors(np.array([0.1]), pd.DataFrame(columns=["predicted", "observed"]))
    assert all(np.isnan(v) for v in errors.values())


def test_evaluate_calibration(calibrated):
    y, p = calibrated
    result, curve = evaluate_calibration(y[:3000], p[:3000])
    assert not curve.empty
    assert result.ici < 0.05
    assert 0.0 < result.brier < 0.25
    assert set(result.to_dict()) == {
        "intercept",
        "slope",
        "citl",
        "oe_ratio",
        "brier",
        "ici",
        "e50",
        "e90",
        "emax",
    }
