"""
Decision Curve Analysis (DCA) for clinical utility assessment.

Implements net benefit calculations for one or more models against the
treat-all and treat-none strategies across a grid of threshold
probabilities.

Net Benefit = (TP/n) - (FP/n) * (pt / (1 - pt))

The odds term grows without bound as pt approaches 1, so thresholds above a
configurable upper bound are either excluded from the table or kept with a
NaN net benefit and an explicit ``flagged`` marker.

Reference:
    Vickers AJ, Elkin EB (2006). Decision curve analysis: a novel method
    for evaluating prediction models. Med Decis Making, 26(6):565-574.
"""

import logging
from typing import Dict, Literal

import numpy as np
import pandas as pd

from scoreval.config.validation import ConfigurationError
from scoreval.data.schema import TREAT_ALL, TREAT_NONE

logger = logging.getLogger(__name__)

ExtremeHandling = Literal["exclude", "flag"]


# =============================================================================
# Core DCA Computations
# =============================================================================


def net_benefit(
    y_true: np.ndarray,
    y_pred_prob: np.ndarray,
    threshold: float,
) -> float:
    """
    Compute net benefit at a single threshold.

    A subject is predicted positive when its probability is >= threshold.

    Args:
        y_true: Binary labels (0/1)
        y_pred_prob: Predicted probabilities
        threshold: Threshold probability (0 <= t < 1)

    Returns:
        Net benefit value (can be negative), NaN if t is outside [0, 1)
    """
    tp, fp = treatment_counts(y_true, y_pred_prob, threshold)
    return net_benefit_from_counts(tp, fp, len(y_true), float(threshold))


def treatment_counts(
    y_true: np.ndarray, y_pred_prob: np.ndarray, threshold: float
) -> tuple[int, int]:
    """True and false positives among subjects with probability >= threshold."""
    treat = np.asarray(y_pred_prob, dtype=float) >= threshold
    y = np.asarray(y_true).astype(int)
    return int((treat & (y == 1)).sum()), int((treat & (y == 0)).sum())


def net_benefit_from_counts(tp: int, fp: int, n: int, threshold: float) -> float:
    """Net benefit from treated-subject counts; NaN outside [0, 1) or for n == 0."""
    if threshold < 0.0 or threshold >= 1.0 or n == 0:
        return np.nan
    odds = threshold / (1.0 - threshold)
    return (tp / n) - (fp / n) * odds


def net_benefit_treat_all(
    prevalence: float,
    threshold: float,
) -> float:
    """
    Compute net benefit of the "treat all" strategy.

    NB_all = prevalence - (1 - prevalence) * (threshold / (1 - threshold))

    Args:
        prevalence: Observed prevalence (proportion of positive cases)
        threshold: Threshold probability (0 <= t < 1)

    Returns:
        Net benefit of treating all patients (equals prevalence at t=0)
    """
    if threshold < 0.0 or threshold >= 1.0:
        return np.nan

    odds = threshold / (1.0 - threshold)
    return prevalence - (1.0 - prevalence) * odds


def generate_dca_thresholds(
    min_thr: float = 0.0,
    max_thr: float = 0.99,
    step: float = 0.01,
) -> np.ndarray:
    """
    Generate an evenly spaced threshold grid.

    Args:
        min_thr: First threshold (>= 0)
        max_thr: Last threshold (<= 1)
        step: Spacing (> 0)

    Returns:
        Array of thresholds from min_thr to max_thr inclusive

    Raises:
        ConfigurationError: If the bounds or step are invalid
    """
    min_thr, max_thr, step = float(min_thr), float(max_thr), float(step)
    if not (0.0 <= min_thr <= 1.0 and 0.0 <= max_thr <= 1.0):
        raise ConfigurationError(
            f"Threshold bounds must lie in [0, 1], got [{min_thr}, {max_thr}]"
        )
    if min_thr > max_thr:
        raise ConfigurationError(f"threshold_min ({min_thr}) > threshold_max ({max_thr})")
    if step <= 0.0:
        raise ConfigurationError(f"threshold_step must be > 0, got {step}")

    n = int(np.floor((max_thr - min_thr) / step + 1e-9)) + 1
    return np.round(min_thr + step * np.arange(n), 10)


def net_benefit_table(
    y_true: np.ndarray,
    pred_dict: Dict[str, np.ndarray],
    thresholds: np.ndarray,
    max_threshold: float = 0.99,
    extreme: ExtremeHandling = "exclude",
) -> pd.DataFrame:
    """
    Net benefit of each model and both reference strategies over a threshold grid.

    Args:
        y_true: True binary labels
        pred_dict: Model name -> predicted probabilities
        thresholds: Threshold grid
        max_threshold: Largest threshold evaluated (must be < 1)
        extreme: What to do with thresholds above ``max_threshold``:
            "exclude" drops them, "flag" keeps them with NaN net benefit
            and ``flagged=True``

    Returns:
        Long DataFrame with columns: threshold, model, net_benefit, tp, fp,
        n_treat, flagged. Models include "treat_none" and "treat_all".

    Raises:
        ConfigurationError: If ``max_threshold`` is not in (0, 1) or
            ``extreme`` is unknown
    """
    if not 0.0 < float(max_threshold) < 1.0:
        raise ConfigurationError(f"max_threshold must be in (0, 1), got {max_threshold}")
    if extreme not in ("exclude", "flag"):
        raise ConfigurationError(f"extreme must be 'exclude' or 'flag', got '{extreme}'")

    y = np.asarray(y_true).astype(int)
    n = len(y)
    prev = float(np.mean(y)) if n else np.nan
    preds = {name: np.asarray(p, dtype=float) for name, p in pred_dict.items()}

    thresholds = np.asarray(thresholds, dtype=float)
    too_high = thresholds > max_threshold
    if too_high.any():
        logger.info(
            f"{int(too_high.sum())} threshold(s) above {max_threshold} "
            f"{'excluded' if extreme == 'exclude' else 'flagged'} from net benefit table"
        )

    rows = []
    for t in thresholds:
        t = float(t)
        flagged = t > max_threshold
        if flagged and extreme == "exclude":
            continue

        rows.append(_row(t, TREAT_NONE, 0.0, 0, 0, flagged))
        nb_all = np.nan if flagged else net_benefit_treat_all(prev, t)
        rows.append(_row(t, TREAT_ALL, nb_all, int(y.sum()), int(n - y.sum()), flagged))

        for model_name, p in preds.items():
            tp, fp = treatment_counts(y, p, t)
            nb = np.nan if flagged else net_benefit_from_counts(tp, fp, n, t)
            rows.append(_row(t, model_name, nb, tp, fp, flagged))

    columns = ["threshold", "model", "net_benefit", "tp", "fp", "n_treat", "flagged"]
    return pd.DataFrame(rows, columns=columns)


def _row(t: float, model: str, nb: float, tp: int, fp: int, flagged: bool) -> dict:
    return {
        "threshold": t,
        "model": model,
        "net_benefit": float(nb),
        "tp": tp,
        "fp": fp,
        "n_treat": tp + fp,
        "flagged": bool(flagged),
    }


def net_benefit_wide(table: pd.DataFrame) -> pd.DataFrame:
    """Pivot a long net benefit table to threshold x strategy."""
    if table.empty:
        return pd.DataFrame()
    wide = table.pivot(index="threshold", columns="model", values="net_benefit")
    wide.columns.name = None
    return wide.reset_index()


# =============================================================================
# DCA Summary
# =============================================================================


def compute_dca_summary(table: pd.DataFrame) -> pd.DataFrame:
    """
    Per-model clinical utility ranges.

    For each model, reports the threshold range where it beats treat-all,
    where it beats treat-none (positive net benefit), and where it beats
    both. Flagged thresholds are ignored.

    Args:
        table: Output of net_benefit_table()

    Returns:
        DataFrame with columns: model, beats_all_from, beats_all_to,
        beats_none_from, beats_none_to, useful_from, useful_to, integrated_nb
    """
    columns = [
        "model",
        "beats_all_from",
        "beats_all_to",
        "beats_none_from",
        "beats_none_to",
        "useful_from",
        "useful_to",
        "integrated_nb",
    ]
    if table.empty:
        return pd.DataFrame(columns=columns)

    valid = table[~table["flagged"]]
    nb_all = valid[valid["model"] == TREAT_ALL].set_index("threshold")["net_benefit"]

    rows = []
    for model_name, df in valid.groupby("model", sort=False):
        if model_name in (TREAT_ALL, TREAT_NONE):
            continue
        nb = df.set_index("threshold")["net_benefit"]
        beats_all = nb > nb_all.reindex(nb.index)
        beats_none = nb > 0
        useful = beats_all & beats_none

        def _range(mask):
            hits = nb.index[mask.to_numpy()]
            if len(hits) == 0:
                return np.nan, np.nan
            return float(hits.min()), float(hits.max())

        all_from, all_to = _range(beats_all)
        none_from, none_to = _range(beats_none)
        use_from, use_to = _range(useful)
        integrated = np.nan
        if len(nb) > 1:
            integrated = float(np.trapezoid(nb.to_numpy(), nb.index.to_numpy()))
        rows.append(
            {
                "model": model_name,
                "beats_all_from": all_from,
                "beats_all_to": all_to,
                "beats_none_from": none_from,
                "beats_none_to": none_to,
                "useful_from": use_from,
                "useful_to": use_to,
                "integrated_nb": integrated,
            }
        )
    return pd.DataFrame(rows, columns=columns)
