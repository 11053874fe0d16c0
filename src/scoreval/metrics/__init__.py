"""Metrics module for model validation."""

from scoreval.metrics.calibration import (
    CalibrationResult,
    calibration_errors,
    calibration_in_the_large,
    calibration_intercept_slope,
    curve_on_grid,
    evaluate_calibration,
    observed_expected_ratio,
    smoothed_calibration_curve,
)
from scoreval.metrics.dca import (
    compute_dca_summary,
    generate_dca_thresholds,
    net_benefit,
    net_benefit_table,
    net_benefit_treat_all,
    net_benefit_wide,
)
from scoreval.metrics.discrimination import (
    DegenerateMetricWarning,
    DiscriminationResult,
    brier_score,
    c_statistic,
    hanley_mcneil_se,
)

__all__ = [
    # Discrimination
    "c_statistic",
    "hanley_mcneil_se",
    "brier_score",
    "DiscriminationResult",
    "DegenerateMetricWarning",
    # Calibration
    "CalibrationResult",
    "evaluate_calibration",
    "calibration_intercept_slope",
    "calibration_in_the_large",
    "observed_expected_ratio",
    "smoothed_calibration_curve",
    "curve_on_grid",
    "calibration_errors",
    # Decision Curve Analysis
    "net_benefit",
    "net_benefit_treat_all",
    "net_benefit_table",
    "net_benefit_wide",
    "generate_dca_thresholds",
    "compute_dca_summary",
]
