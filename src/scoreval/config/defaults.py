"""
Default configuration values.

Single source of truth for default parameter values used by the schema
and by the loader's starting dictionary.
"""

from typing import Any

# Bootstrap instability
DEFAULT_N_BOOT = 200
DEFAULT_MAX_FAILURE_FRAC = 0.5

# Spline knots: primary nonlinear variant and linearity probes
DEFAULT_SPLINE_KNOTS = 5
DEFAULT_LINEARITY_KNOTS = 3

# Valid execution backends for bootstrap iterations
VALID_BACKENDS = ["loky", "threading", "sequential"]

DEFAULT_DATA_CONFIG: dict[str, Any] = {
    "infile": None,
    "id_col": "subject_id",
    "outcome_col": "outcome",
    "predictors": ["score"],
}

DEFAULT_IMPUTATION_CONFIG: dict[str, Any] = {
    "targets": None,  # None = every predictor with missing values
    "auxiliary": [],
    "n_donors": 5,
    "min_observed": 10,
    "max_missing_frac": 0.05,
    "seed": 0,
}

DEFAULT_BOOTSTRAP_CONFIG: dict[str, Any] = {
    "n_boot": DEFAULT_N_BOOT,
    "seed": 0,
    "n_jobs": 1,
    "backend": "loky",
    "iteration_timeout": None,
    "deadline": None,
    "max_failure_frac": DEFAULT_MAX_FAILURE_FRAC,
    "progress_every": 25,
    "classification_threshold": None,
}

DEFAULT_CALIBRATION_CONFIG: dict[str, Any] = {
    "lowess_frac": 2.0 / 3.0,
    "curve_points": 101,
}

DEFAULT_DCA_CONFIG: dict[str, Any] = {
    "threshold_min": 0.0,
    "threshold_max": 0.99,
    "threshold_step": 0.01,
    "max_threshold": 0.99,
    "extreme_thresholds": "exclude",
}

DEFAULT_LINEARITY_CONFIG: dict[str, Any] = {
    "variables": [],
    "knots": DEFAULT_LINEARITY_KNOTS,
}

DEFAULT_FIT_CONFIG: dict[str, Any] = {
    "max_iter": 100,
    "tol": 1e-8,
}

DEFAULT_OUTPUT_CONFIG: dict[str, Any] = {
    "outdir": "results",
    "save_subject_predictions": True,
}
