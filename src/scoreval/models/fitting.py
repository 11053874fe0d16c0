"""
Logistic regression fitting for model specifications.

Fits a binomial GLM by iteratively reweighted least squares (statsmodels)
on a FittingSample. Spline knots are estimated on the fitting rows and
frozen in the returned FittedModel so predictions on any other rows use the
identical basis expansion.

Degenerate fits raise FitFailure instead of returning a model:
- single-class outcome or rank-deficient design
- perfect or quasi-complete separation
- IRLS non-convergence or non-finite estimates

statsmodels warnings are recorded only on the main thread, since
``warnings.catch_warnings`` swaps process-wide state. Under a thread pool the
decision rests on the convergence flag, the fitted values and the finite
checks, all of which are local to the fit.
"""

import logging
import threading
import warnings
from contextlib import nullcontext
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.api as sm
from numpy.linalg import LinAlgError
from scipy import stats
from scipy.special import expit
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning,
    PerfectSeparationError,
    PerfectSeparationWarning,
)

from scoreval.data.cohort import FittingSample
from scoreval.models.specs import ModelSpec, design_matrix, estimate_knots

logger = logging.getLogger(__name__)

# Fitted probabilities this close to 0/1 on correctly classified rows indicate separation
SEPARATION_EPS = 1e-10


class FitFailure(RuntimeError):
    """Raised when a model cannot be fit to a sample (separation, collinearity, non-convergence)."""

    def __init__(self, model_name: str, reason: str):
        super().__init__(f"{model_name}: {reason}")
        self.model_name = model_name
        self.reason = reason

    def __reduce__(self):
        return (self.__class__, (self.model_name, self.reason))


@dataclass(frozen=True)
class FittedModel:
    """Output of fitting one ModelSpec on one sample.

    Attributes:
        spec: Model specification
        params: Coefficients indexed by design column
        bse: Standard errors indexed by design column
        knots: Frozen spline knots per variable
        llf: Log-likelihood at the estimates
        aic: Akaike information criterion
        n_obs: Number of fitting rows
        n_events: Number of events among fitting rows
        n_iter: IRLS iterations used
        converged: IRLS convergence flag
    """

    spec: ModelSpec
    params: pd.Series
    bse: pd.Series
    knots: dict[str, np.ndarray] = field(default_factory=dict)
    llf: float = np.nan
    aic: float = np.nan
    n_obs: int = 0
    n_events: int = 0
    n_iter: int = 0
    converged: bool = True

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def columns(self) -> list[str]:
        return list(self.params.index)

    @property
    def df_model(self) -> int:
        """Number of estimated coefficients excluding the intercept."""
        return len(self.params) - 1

    def design(self, df: pd.DataFrame) -> pd.DataFrame:
        """Design matrix for new rows using the frozen basis."""
        X = design_matrix(df, self.spec, self.knots)
        return X[self.columns]

    def linear_predictor(self, df: pd.DataFrame) -> np.ndarray:
        X = self.design(df).to_numpy(dtype=float)
        if not np.isfinite(X).all():
            raise ValueError(
                f"Model '{self.name}' cannot score rows with missing predictor values; "
                "impute before predicting"
            )
        return X @ self.params.to_numpy(dtype=float)

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        """Predicted probability of the outcome for each row of ``df``."""
        return expit(self.linear_predictor(df))

    def coefficient_table(self, alpha: float = 0.05) -> pd.DataFrame:
        """
        Coefficient estimates with Wald confidence intervals.

        Returns:
            DataFrame with columns: model, term, estimate, se, z, p_value,
            odds_ratio, or_lower, or_upper
        """
        z_crit = stats.norm.ppf(1 - alpha / 2)
        est = self.params.to_numpy(dtype=float)
        se = self.bse.to_numpy(dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            z = est / se
        return pd.DataFrame(
            {
                "model": self.name,
                "term": self.columns,
                "estimate": est,
                "se": se,
                "z": z,
                "p_value": 2 * stats.norm.sf(np.abs(z)),
                "odds_ratio": np.exp(est),
                "or_lower": np.exp(est - z_crit * se),
                "or_upper": np.exp(est + z_crit * se),
            }
        )


def _check_separation(mu: np.ndarray, y: np.ndarray) -> bool:
    """True if some rows are predicted with certainty and correctly."""
    certain_pos = (mu > 1 - SEPARATION_EPS) & (y == 1)
    certain_neg = (mu < SEPARATION_EPS) & (y == 0)
    return bool(certain_pos.any() or certain_neg.any())


def fit_model(
    spec: ModelSpec,
    sample: FittingSample,
    max_iter: int = 100,
    tol: float = 1e-8,
) -> FittedModel:
    """
    Fit a logistic regression for ``spec`` on ``sample``.

    Args:
        spec: Model specification
        sample: Fitting sample (predictors fully observed)
        max_iter: Maximum IRLS iterations
        tol: IRLS convergence tolerance on the deviance

    Returns:
        FittedModel with frozen spline knots

    Raises:
        TypeError: If ``sample`` is not a FittingSample
        FitFailure: If the fit is degenerate (see module docstring)
    """
    if not isinstance(sample, FittingSample):
        raise TypeError(
            f"fit_model requires a FittingSample, got {type(sample).__name__}; "
            "use ReferenceCohort.as_fitting_sample() for the reference fit"
        )

    df = sample.frame
    missing_vars = [v for v in spec.variables if v not in df.columns]
    if missing_vars:
        raise KeyError(f"Model '{spec.name}' needs columns absent from the sample: {missing_vars}")
    if df[spec.variables].isna().any().any():
        raise FitFailure(spec.name, "missing predictor values in fitting sample")

    y = sample.outcome
    if len(np.unique(y)) < 2:
        raise FitFailure(spec.name, "outcome has a single class")

    knots = estimate_knots(df, spec)
    try:
        X = design_matrix(df, spec, knots)
    except ValueError as e:
        raise FitFailure(spec.name, str(e)) from e

    X_arr = X.to_numpy(dtype=float)
    if np.linalg.matrix_rank(X_arr) < X_arr.shape[1]:
        raise FitFailure(spec.name, "rank-deficient design matrix (collinearity)")

    capture = threading.current_thread() is threading.main_thread()
    caught: list[warnings.WarningMessage] = []
    with warnings.catch_warnings(record=True) if capture else nullcontext() as recorded:
        if capture:
            warnings.simplefilter("always")
        try:
            res = sm.GLM(y, X, family=sm.families.Binomial()).fit(maxiter=max_iter, tol=tol)
        except (PerfectSeparationError, LinAlgError, FloatingPointError, ValueError) as e:
            raise FitFailure(spec.name, f"{type(e).__name__}: {e}") from e
    if capture:
        caught = recorded

    for w in caught:
        if issubclass(w.category, PerfectSeparationWarning):
            raise FitFailure(spec.name, "perfect separation")
        if issubclass(w.category, ConvergenceWarning):
            raise FitFailure(spec.name, f"IRLS did not converge: {w.message}")

    converged = bool(getattr(res, "converged", True))
    if not converged:
        raise FitFailure(spec.name, f"IRLS did not converge in {max_iter} iterations")

    params = pd.Series(np.asarray(res.params, dtype=float), index=X.columns)
    bse = pd.Series(np.asarray(res.bse, dtype=float), index=X.columns)
    if not (np.isfinite(params).all() and np.isfinite(bse).all()):
        raise FitFailure(spec.name, "non-finite coefficient estimates")

    if _check_separation(np.asarray(res.fittedvalues, dtype=float), y):
        raise FitFailure(spec.name, "quasi-complete separation")

    fit_history = getattr(res, "fit_history", {}) or {}
    return FittedModel(
        spec=spec,
        params=params,
        bse=bse,
        knots=knots,
        llf=float(res.llf),
        aic=float(res.aic),
        n_obs=int(len(y)),
        n_events=int(y.sum()),
        n_iter=int(fit_history.get("iteration", 0)),
        converged=converged,
    )
