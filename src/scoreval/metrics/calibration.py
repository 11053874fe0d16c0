"""
Calibration of predicted risks.

This module provides:
- Calibration intercept and slope (logistic recalibration on the logit scale)
- Calibration-in-the-large (intercept with logit(p) as an offset)
- Observed/expected ratio
- Smoothed (LOWESS) calibration curve and the error summaries derived from
  it: ICI, E50, E90, Emax

All functions are pure functions of the (outcome, prediction) pair.

References:
    Van Calster et al. (2016). A calibration hierarchy for risk models was
    defined: from utopia to empirical data. J Clin Epidemiol, 74:167-176.
    Austin & Steyerberg (2019). The Integrated Calibration Index (ICI) and
    related metrics for quantifying the calibration of logistic regression
    models. Stat Med, 38(21):4051-4065.
"""

import logging
import warnings
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.special import logit
from sklearn.linear_model import LogisticRegression
from statsmodels.nonparametric.smoothers_lowess import lowess

from scoreval.metrics.discrimination import DegenerateMetricWarning, brier_score

logger = logging.getLogger(__name__)

EPS = 1e-7

# Default LOWESS span, matching the conventional 2/3 smoother span
DEFAULT_LOWESS_FRAC = 2.0 / 3.0


@dataclass(frozen=True)
class CalibrationResult:
    """Calibration summary for one model."""

    intercept: float
    slope: float
    citl: float
    oe_ratio: float
    brier: float
    ici: float
    e50: float
    e90: float
    emax: float

    def to_dict(self) -> dict:
        return asdict(self)


def _clean(y_true: np.ndarray, p: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    y = np.asarray(y_true).astype(float)
    p = np.asarray(p).astype(float)
    if len(y) != len(p):
        raise ValueError(f"Length mismatch: y_true={len(y)}, y_pred={len(p)}")
    mask = np.isfinite(p) & np.isfinite(y)
    return y[mask].astype(int), p[mask]


def _logit(p: np.ndarray) -> np.ndarray:
    return logit(np.clip(p, EPS, 1 - EPS))


def calibration_intercept_slope(y_true: np.ndarray, p: np.ndarray) -> tuple[float, float]:
    """
    Compute calibration intercept and slope using logistic regression on the logit scale.

    - Intercept ~0 indicates no systematic over/under-estimation
    - Slope ~1 indicates predictions are neither too extreme nor too modest

    Args:
        y_true: True binary labels (0/1)
        p: Predicted probabilities

    Returns:
        (intercept, slope) tuple, NaN if undefined
    """
    y, p = _clean(y_true, p)

    if len(np.unique(y)) < 2 or len(np.unique(p)) < 2:
        warnings.warn(
            "Calibration slope undefined (single outcome class or constant predictions). "
            "Returning NaN.",
            DegenerateMetricWarning,
            stacklevel=2,
        )
        return np.nan, np.nan

    lr = LogisticRegression(penalty=None, solver="lbfgs", max_iter=1000)
    lr.fit(_logit(p).reshape(-1, 1), y)
    return float(lr.intercept_[0]), float(lr.coef_[0][0])


def calibration_in_the_large(y_true: np.ndarray, p: np.ndarray) -> float:
    """
    Calibration-in-the-large: intercept of a logistic model with logit(p) as offset.

    Returns:
        Intercept (0 means the mean predicted risk matches the event rate),
        NaN if the outcome has a single class
    """
    y, p = _clean(y_true, p)
    if len(np.unique(y)) < 2:
        return np.nan
    res = sm.GLM(
        y,
        np.ones((len(y), 1)),
        family=sm.families.Binomial(),
        offset=_logit(p),
    ).fit()
    return float(np.asarray(res.params)[0])


def observed_expected_ratio(y_true: np.ndarray, p: np.ndarray) -> float:
    """Observed event rate divided by mean predicted risk."""
    y, p = _clean(y_true, p)
    expected = float(np.mean(p)) if len(p) else np.nan
    if not expected:
        return np.nan
    return float(np.mean(y)) / expected


def smoothed_calibration_curve(
    y_true: np.ndarray,
    p: np.ndarray,
    frac: float = DEFAULT_LOWESS_FRAC,
) -> pd.DataFrame:
    """
    LOWESS curve of observed outcome against predicted probability.

    Args:
        y_true: Binary outcomes
        p: Predicted probabilities
        frac: LOWESS span

    Returns:
        DataFrame with columns ``predicted`` and ``observed`` sorted by
        predicted probability, one row per distinct prediction. Empty if
        fewer than two distinct predictions.
    """
    y, p = _clean(y_true, p)
    if len(np.unique(p)) < 2:
        return pd.DataFrame(columns=["predicted", "observed"], dtype=float)

    fitted = lowess(y, p, frac=frac, it=0, return_sorted=True)
    curve = pd.DataFrame({"predicted": fitted[:, 0], "observed": fitted[:, 1]})
    curve = curve.groupby("predicted", as_index=False)["observed"].mean()
    curve["observed"] = curve["observed"].clip(0.0, 1.0)
    return curve


def curve_on_grid(curve: pd.DataFrame, grid: np.ndarray) -> np.ndarray:
    """
    Interpolate a calibration curve onto a fixed probability grid.

    Grid points outside the curve's predicted range are NaN, so curves from
    different samples are only compared where each has support.
    """
    grid = np.asarray(grid, dtype=float)
    if curve.empty:
        return np.full(len(grid), np.nan)
    x = curve["predicted"].to_numpy()
    return np.interp(grid, x, curve["observed"].to_numpy(), left=np.nan, right=np.nan)


def calibration_errors(p: np.ndarray, curve: pd.DataFrame) -> dict[str, float]:
    """
    ICI, E50, E90 and Emax from a smoothed calibration curve.

    Args:
        p: Predicted probabilities the curve was fit on
        curve: Output of smoothed_calibration_curve

    Returns:
        Dict with keys ici, e50, e90, emax (NaN if the curve is empty)
    """
    keys = ("ici", "e50", "e90", "emax")
    p = np.asarray(p, dtype=float)
    p = p[np.isfinite(p)]
    if curve.empty or len(p) == 0:
        return dict.fromkeys(keys, np.nan)
    smoothed = np.interp(p, curve["predicted"].to_numpy(), curve["observed"].to_numpy())
    diff = np.abs(smoothed - p)
    return {
        "ici": float(np.mean(diff)),
        "e50": float(np.median(diff)),
        "e90": float(np.quantile(diff, 0.9)),
        "emax": float(np.max(diff)),
    }


def evaluate_calibration(
    y_true: np.ndarray,
    p: np.ndarray,
    frac: float = DEFAULT_LOWESS_FRAC,
) -> tuple[CalibrationResult, pd.DataFrame]:
    """
    Full calibration assessment for one model.

    Args:
        y_true: Binary outcomes
        p: Predicted probabilities
        frac: LOWESS span for the smoothed curve

    Returns:
        (CalibrationResult, smoothed curve DataFrame)
    """
    y, p = _clean(y_true, p)
    intercept, slope = calibration_intercept_slope(y, p)
    curve = smoothed_calibration_curve(y, p, frac=frac)
    errors = calibration_errors(p, curve)
    result = CalibrationResult(
        intercept=intercept,
        slope=slope,
        citl=calibration_in_the_large(y, p),
        oe_ratio=observed_expected_ratio(y, p),
        brier=brier_score(y, p),
        **errors,
    )
    return result, curve
