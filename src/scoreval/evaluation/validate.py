"""
End-to-end external validation of a risk score.

Control flow:
1. Load and check the reference cohort
2. Single-pass imputation of the reference cohort
3. Fit every model on the reference cohort (iteration 0)
4. Discrimination, calibration, net benefit, model comparisons and
   linearity probes on the reference predictions
5. Bootstrap instability (resample, impute, refit, score the reference)
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from scoreval.config.schema import ValidationConfig
from scoreval.config.validation import ConfigurationError, validate_validation_config
from scoreval.data.cohort import ReferenceCohort
from scoreval.data.imputation import PMMImputer
from scoreval.data.io import missingness_summary, read_cohort_csv
from scoreval.metrics.calibration import evaluate_calibration
from scoreval.metrics.dca import compute_dca_summary, generate_dca_thresholds, net_benefit_table
from scoreval.metrics.discrimination import c_statistic
from scoreval.models.comparison import compare_models, linearity_test
from scoreval.models.fitting import FittedModel, fit_model
from scoreval.models.predict import score_reference
from scoreval.stability.accumulator import StabilityResult
from scoreval.stability.engine import (
    default_curve_grid,
    fit_reference_models,
    run_stability_analysis,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """
    All outputs of one validation run.

    Tables are keyed by model name and, where per subject, by the subject
    identifier column of the cohort.
    """

    cohort_summary: dict
    missingness: pd.DataFrame
    fits: dict[str, FittedModel]
    fit_failures: dict[str, str]
    predictions: pd.DataFrame
    discrimination: pd.DataFrame
    calibration: pd.DataFrame
    calibration_curves: pd.DataFrame
    comparisons: pd.DataFrame
    linearity: pd.DataFrame
    net_benefit: pd.DataFrame
    dca_summary: pd.DataFrame
    coefficients: pd.DataFrame
    stability: StabilityResult | None = None
    settings: dict = field(default_factory=dict)

    def iteration_counts(self) -> dict[str, dict]:
        """Requested vs successful bootstrap iterations per model."""
        if self.stability is None:
            return {}
        summary = self.stability.summary
        return {
            row.model: {
                "requested": int(row.n_requested),
                "completed": int(row.n_completed),
                "succeeded": int(row.n_success),
                "failed": int(row.n_failed),
                "available": bool(row.available),
                "diagnostic": row.diagnostic,
            }
            for row in summary.itertuples(index=False)
        }

    def summary(self) -> dict:
        """JSON-ready run summary."""
        out = {
            "cohort": self.cohort_summary,
            "models": {},
            "fit_failures": self.fit_failures,
            "settings": self.settings,
        }
        if self.fits:
            disc = self.discrimination.set_index("model")
            cal = self.calibration.set_index("model")
        for name in self.fits:
            out["models"][name] = {
                "c_statistic": disc.loc[name, "c_statistic"],
                "c_statistic_ci": [disc.loc[name, "ci_lower"], disc.loc[name, "ci_upper"]],
                "calibration_intercept": cal.loc[name, "intercept"],
                "calibration_slope": cal.loc[name, "slope"],
                "brier": cal.loc[name, "brier"],
                "aic": self.fits[name].aic,
            }
        if self.stability is not None:
            counts = self.iteration_counts()
            index = self.stability.instability_index()
            out["bootstrap"] = {
                "requested": self.stability.n_requested,
                "completed": self.stability.n_completed,
                "aborted": self.stability.aborted,
                "per_model": {
                    name: {**counts[name], "instability_index": index[name]} for name in counts
                },
            }
        return out


def _load_cohort(config: ValidationConfig) -> ReferenceCohort:
    if config.data.infile is None:
        raise ConfigurationError("data.infile is required when no cohort is supplied")
    extra = [c for c in config.imputation.auxiliary if c not in config.data.predictors]
    return read_cohort_csv(
        config.data.infile,
        predictors=list(config.data.predictors),
        id_col=config.data.id_col,
        outcome_col=config.data.outcome_col,
        extra_cols=extra,
    )


def build_imputer(config: ValidationConfig, cohort: ReferenceCohort) -> PMMImputer | None:
    """
    Imputer for the configured targets.

    Without explicit targets, every predictor with missing values in the
    raw cohort is imputed. Returns None when there is nothing to impute.
    """
    targets = config.imputation.targets
    if targets is None:
        targets = [p for p in cohort.predictors if cohort.raw_frame[p].isna().any()]
    if not targets:
        return None
    return PMMImputer(
        targets=tuple(targets),
        auxiliary=tuple(config.auxiliary_columns()),
        n_donors=config.imputation.n_donors,
        min_observed=config.imputation.min_observed,
        max_missing_frac=config.imputation.max_missing_frac,
    )


def evaluate_reference_predictions(
    y: np.ndarray,
    predictions: dict[str, np.ndarray],
    lowess_frac: float,
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Discrimination, calibration and calibration curves per model."""
    disc_rows, cal_rows, curves = [], [], []
    for name, p in predictions.items():
        disc_rows.append({"model": name, **c_statistic(y, p).to_dict()})
        cal, curve = evaluate_calibration(y, p, frac=lowess_frac)
        cal_rows.append({"model": name, **cal.to_dict()})
        curves.append(curve.assign(model=name)[["model", "predicted", "observed"]])
    curve_table = (
        pd.concat(curves, ignore_index=True)
        if curves
        else pd.DataFrame(columns=["model", "predicted", "observed"])
    )
    return pd.DataFrame(disc_rows), pd.DataFrame(cal_rows), curve_table


def run_validation(
    config: ValidationConfig,
    cohort: ReferenceCohort | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> ValidationReport:
    """
    Run the full validation protocol.

    Args:
        config: Validated run configuration
        cohort: Reference cohort; loaded from ``config.data.infile`` if None
        should_stop: Optional callable polled between bootstrap iterations

    Returns:
        ValidationReport

    Raises:
        ConfigurationError: Invalid configuration (before any iteration)
        DataInsufficiency: Too few observed rows to impute a predictor
    """
    validate_validation_config(config)
    dca_cfg = config.dca
    thresholds = generate_dca_thresholds(
        dca_cfg.threshold_min, dca_cfg.threshold_max, dca_cfg.threshold_step
    )
    specs = config.model_specs()

    if cohort is None:
        cohort = _load_cohort(config)
    logger.info(
        f"Reference cohort: n={len(cohort)}, events={int(cohort.outcome.sum())}, "
        f"prevalence={cohort.prevalence:.4f}"
    )
    missingness = missingness_summary(cohort.raw_frame, list(cohort.predictors))

    imputer = build_imputer(config, cohort)
    if imputer is not None:
        cohort = imputer.impute_cohort(cohort, seed=config.imputation.seed)

    fit_kwargs = {"max_iter": config.fit.max_iter, "tol": config.fit.tol}
    fits, fit_failures = fit_reference_models(cohort, specs, fit_model, fit_kwargs)
    for name, model in fits.items():
        logger.info(
            f"Fitted '{name}' ({model.spec.formula}): {model.n_iter} IRLS iterations, "
            f"AIC={model.aic:.2f}"
        )

    reference = {name: score_reference(model, cohort) for name, model in fits.items()}
    y = cohort.outcome
    pred_arrays = {name: preds.to_numpy() for name, preds in reference.items()}

    discrimination, calibration, curves = evaluate_reference_predictions(
        y, pred_arrays, config.calibration.lowess_frac
    )

    comparisons = compare_models(fits, [tuple(p) for p in config.comparisons] or None)

    sample = cohort.as_fitting_sample()
    linearity = pd.DataFrame(
        [
            linearity_test(
                sample,
                var,
                knots=config.linearity.knots,
                adjust=[p for p in cohort.predictors if p != var],
                max_iter=config.fit.max_iter,
            )
            for var in config.linearity.variables
        ],
        columns=["variable", "knots", "lr_stat", "df", "p_value", "error"],
    )

    nb_table = net_benefit_table(
        y,
        pred_arrays,
        thresholds,
        max_threshold=dca_cfg.max_threshold,
        extreme=dca_cfg.extreme_thresholds,
    )
    dca_summary = compute_dca_summary(nb_table)

    coefficients = (
        pd.concat([m.coefficient_table() for m in fits.values()], ignore_index=True)
        if fits
        else pd.DataFrame()
    )

    predictions = pd.DataFrame(
        {cohort.id_col: cohort.subject_ids, cohort.outcome_col: y}
        | {name: preds.to_numpy() for name, preds in reference.items()}
    )

    boot = config.bootstrap
    stability = run_stability_analysis(
        cohort,
        specs,
        n_boot=boot.n_boot,
        seed=boot.seed,
        imputer=imputer,
        fitter=fit_model,
        fit_kwargs=fit_kwargs,
        reference=reference,
        reference_failures=fit_failures,
        n_jobs=boot.n_jobs,
        backend=boot.backend,
        iteration_timeout=boot.iteration_timeout,
        deadline=boot.deadline,
        should_stop=should_stop,
        max_failure_frac=boot.max_failure_frac,
        classification_threshold=boot.classification_threshold,
        curve_grid=default_curve_grid(config.calibration.curve_points),
        lowess_frac=config.calibration.lowess_frac,
        progress_every=boot.progress_every,
    )
    return ValidationReport(
        cohort_summary={
            "n": len(cohort),
            "n_events": int(y.sum()),
            "prevalence": cohort.prevalence,
            "predictors": list(cohort.predictors),
            "imputed": list(imputer.targets) if imputer is not None else [],
        },
        missingness=missingness,
        fits=fits,
        fit_failures=fit_failures,
        predictions=predictions,
        discrimination=discrimination,
        calibration=calibration,
        calibration_curves=curves,
        comparisons=comparisons,
        linearity=linearity,
        net_benefit=nb_table,
        dca_summary=dca_summary,
        coefficients=coefficients,
        stability=stability,
        settings=config.model_dump(mode="json"),
    )
