"""
Likelihood-ratio comparisons between nested models.

Two uses:
- Added value: does a richer model (e.g. score + age) improve fit over a
  nested one (score alone)?
- Linearity probes: does a restricted cubic spline of a predictor improve
  fit over its linear term?
"""

import logging
from collections.abc import Sequence
from itertools import permutations

import numpy as np
import pandas as pd
from scipy import stats

from scoreval.data.cohort import FittingSample
from scoreval.models.fitting import FitFailure, FittedModel, fit_model
from scoreval.models.specs import ModelSpec, Term

logger = logging.getLogger(__name__)


def is_nested(reduced: FittedModel, full: FittedModel) -> bool:
    """True if the reduced model's design columns are a strict subset of the full model's."""
    return set(reduced.columns) < set(full.columns)


def likelihood_ratio_test(reduced: FittedModel, full: FittedModel) -> dict:
    """
    Likelihood-ratio test of a reduced model nested in a full model.

    Args:
        reduced: Fitted reduced model
        full: Fitted full model on the same rows

    Returns:
        Dict with keys: reduced, full, lr_stat, df, p_value, aic_reduced, aic_full

    Raises:
        ValueError: If the models are not nested or were fit on different n
    """
    if not is_nested(reduced, full):
        raise ValueError(f"'{reduced.name}' is not nested in '{full.name}'")
    if reduced.n_obs != full.n_obs:
        raise ValueError(
            f"Models fit on different samples (n={reduced.n_obs} vs n={full.n_obs})"
        )

    lr = max(2.0 * (full.llf - reduced.llf), 0.0)
    df = len(full.columns) - len(reduced.columns)
    return {
        "reduced": reduced.name,
        "full": full.name,
        "lr_stat": float(lr),
        "df": int(df),
        "p_value": float(stats.chi2.sf(lr, df)),
        "aic_reduced": reduced.aic,
        "aic_full": full.aic,
    }


def nested_pairs(fits: dict[str, FittedModel]) -> list[tuple[str, str]]:
    """All (reduced, full) name pairs where the first is nested in the second."""
    return [(a, b) for a, b in permutations(fits, 2) if is_nested(fits[a], fits[b])]


def compare_models(
    fits: dict[str, FittedModel],
    pairs: Sequence[tuple[str, str]] | None = None,
) -> pd.DataFrame:
    """
    Likelihood-ratio table for model pairs.

    Args:
        fits: Reference fits by model name
        pairs: (reduced, full) pairs; default: every nested pair

    Returns:
        DataFrame with one row per pair (see likelihood_ratio_test)
    """
    pairs = list(pairs) if pairs else nested_pairs(fits)
    rows = []
    for reduced, full in pairs:
        if reduced not in fits or full not in fits:
            logger.warning(f"Skipping comparison {reduced} vs {full}: model not fitted")
            continue
        rows.append(likelihood_ratio_test(fits[reduced], fits[full]))
    columns = ["reduced", "full", "lr_stat", "df", "p_value", "aic_reduced", "aic_full"]
    return pd.DataFrame(rows, columns=columns)


def linearity_test(
    sample: FittingSample,
    variable: str,
    knots: int = 3,
    adjust: Sequence[str] = (),
    max_iter: int = 100,
) -> dict:
    """
    Test whether a predictor's effect departs from linearity.

    Fits ``y ~ variable + adjust`` and ``y ~ rcs(variable, knots) + adjust``
    and compares them with a likelihood-ratio test.

    Args:
        sample: Complete fitting sample
        variable: Predictor to probe
        knots: Spline knots for the probe
        adjust: Other linear terms kept in both models
        max_iter: IRLS iterations

    Returns:
        Dict with keys: variable, knots, lr_stat, df, p_value, error
    """
    others = tuple(Term(v) for v in adjust if v != variable)
    linear = ModelSpec(name=f"{variable} linear", terms=(Term(variable), *others))
    spline = ModelSpec(name=f"{variable} rcs{knots}", terms=(Term(variable, "rcs", knots), *others))
    try:
        fit_linear = fit_model(linear, sample, max_iter=max_iter)
        fit_spline = fit_model(spline, sample, max_iter=max_iter)
    except FitFailure as e:
        logger.warning(f"Linearity probe for '{variable}' failed: {e}")
        return {
            "variable": variable,
            "knots": knots,
            "lr_stat": np.nan,
            "df": 0,
            "p_value": np.nan,
            "error": e.reason,
        }

    result = likelihood_ratio_test(fit_linear, fit_spline)
    return {
        "variable": variable,
        "knots": knots,
        "lr_stat": result["lr_stat"],
        "df": result["df"],
        "p_value": result["p_value"],
        "error": None,
    }
