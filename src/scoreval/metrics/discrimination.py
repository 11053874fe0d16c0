"""
Discrimination metrics for binary risk predictions.

This module computes:
- c-statistic (area under the ROC curve) with a closed-form confidence
  interval from the Hanley-McNeil variance
- Brier score (overall accuracy, shared with calibration reporting)

The c-statistic is the probability that a randomly chosen event subject has
a higher predicted risk than a randomly chosen non-event subject, with ties
counting one half. It depends on ranks only.

References:
    - Hanley & McNeil (1982). The meaning and use of the area under a ROC curve.
      Radiology, 143(1):29-36.
"""

import warnings
from dataclasses import asdict, dataclass

import numpy as np
from scipy import stats
from sklearn.metrics import brier_score_loss, roc_auc_score


class DegenerateMetricWarning(UserWarning):
    """Metric is undefined for the given input (single class or constant predictions)."""

    pass


@dataclass(frozen=True)
class DiscriminationResult:
    """c-statistic with its closed-form confidence interval."""

    c_statistic: float
    se: float
    ci_lower: float
    ci_upper: float
    n_events: int
    n_nonevents: int

    def to_dict(self) -> dict:
        return asdict(self)


def _degenerate_reason(y: np.ndarray, p: np.ndarray) -> str | None:
    if len(np.unique(y)) < 2:
        return f"outcome has a single class {np.unique(y).tolist()}"
    if len(np.unique(p)) < 2:
        return "all predictions are tied"
    return None


def hanley_mcneil_se(auc: float, n_events: int, n_nonevents: int) -> float:
    """
    Standard error of the AUC (Hanley & McNeil 1982).

    Args:
        auc: Area under the ROC curve
        n_events: Number of events
        n_nonevents: Number of non-events

    Returns:
        Standard error, or NaN if either group is empty
    """
    if n_events < 1 or n_nonevents < 1 or not np.isfinite(auc):
        return np.nan
    q1 = auc / (2.0 - auc)
    q2 = 2.0 * auc**2 / (1.0 + auc)
    var = (
        auc * (1.0 - auc)
        + (n_events - 1) * (q1 - auc**2)
        + (n_nonevents - 1) * (q2 - auc**2)
    ) / (n_events * n_nonevents)
    return float(np.sqrt(max(var, 0.0)))


def c_statistic(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    alpha: float = 0.05,
) -> DiscriminationResult:
    """
    c-statistic with a closed-form (1 - alpha) confidence interval.

    Args:
        y_true: Binary outcomes (0/1)
        y_pred: Predicted probabilities (any monotone score works)
        alpha: Significance level (default 0.05 for a 95% CI)

    Returns:
        DiscriminationResult. All fields except counts are NaN when the
        metric is undefined (single outcome class or all predictions tied).

    Warns:
        DegenerateMetricWarning if the metric is undefined

    Examples:
        >>> y = np.array([0, 0, 1, 1])
        >>> p = np.array([0.1, 0.4, 0.35, 0.8])
        >>> c_statistic(y, p).c_statistic
        0.75
    """
    y = np.asarray(y_true).astype(int)
    p = np.asarray(y_pred).astype(float)
    if len(y) != len(p):
        raise ValueError(f"Length mismatch: y_true={len(y)}, y_pred={len(p)}")

    n_events = int((y == 1).sum())
    n_nonevents = int((y == 0).sum())

    reason = _degenerate_reason(y, p)
    if reason is not None:
        warnings.warn(
            f"c-statistic undefined: {reason}. Returning NaN.",
            DegenerateMetricWarning,
            stacklevel=2,
        )
        return DiscriminationResult(np.nan, np.nan, np.nan, np.nan, n_events, n_nonevents)

    auc = float(roc_auc_score(y, p))
    se = hanley_mcneil_se(auc, n_events, n_nonevents)
    z = stats.norm.ppf(1 - alpha / 2)
    lower = float(np.clip(auc - z * se, 0.0, 1.0))
    upper = float(np.clip(auc + z * se, 0.0, 1.0))
    return DiscriminationResult(auc, se, lower, upper, n_events, n_nonevents)


def brier_score(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Brier score (mean squared error of predicted probabilities).

    Returns:
        Brier score in [0, 1], or NaN for empty input
    """
    y = np.asarray(y_true).astype(int)
    p = np.asarray(y_pred).astype(float)
    if len(y) == 0:
        return np.nan
    return float(brier_score_loss(y, p))
