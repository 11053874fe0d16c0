"""
Single imputation by predictive mean matching (PMM).

For each target column:
1. Fit a linear model of the target on auxiliary columns using rows where
   the target is observed.
2. Refit the same model on a bootstrap draw of the observed rows and use it
   to predict the incomplete rows (parameter uncertainty).
3. For each incomplete row, pick one donor at random among the ``n_donors``
   observed rows whose fitted value is closest, and copy the donor's
   observed value.

Imputed values are always values that occur in the data, so integer scores
stay integers. Each call draws from the generator it is given; nothing is
cached between calls, so bootstrap iterations impute independently.
"""

import logging
import warnings
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from scoreval.data.cohort import FittingSample, ReferenceCohort
from scoreval.data.schema import MAX_MISSING_FRAC, MIN_OBSERVED_ROWS

logger = logging.getLogger(__name__)


class DataInsufficiency(ValueError):
    """Raised when too few observed values exist to fit an imputation model."""

    pass


class MissingnessWarning(UserWarning):
    """Warning for missingness above the single-imputation ceiling."""

    pass


def _auxiliary_design(df: pd.DataFrame, auxiliary: Sequence[str]) -> np.ndarray:
    """Auxiliary design matrix with column-median fill for incomplete auxiliaries."""
    cols = []
    for col in auxiliary:
        values = pd.to_numeric(df[col], errors="coerce").astype(float)
        if values.isna().all():
            logger.debug(f"Auxiliary column '{col}' is entirely missing; dropped")
            continue
        if values.isna().any():
            values = values.fillna(values.median())
        cols.append(values.to_numpy())
    if not cols:
        return np.zeros((len(df), 0))
    return np.column_stack(cols)


def _fit_predict(X_fit: np.ndarray, y_fit: np.ndarray, X_new: np.ndarray) -> np.ndarray:
    if X_fit.shape[1] == 0:
        return np.full(X_new.shape[0], float(np.mean(y_fit)))
    lm = LinearRegression().fit(X_fit, y_fit)
    return lm.predict(X_new)


def impute_pmm(
    df: pd.DataFrame,
    target: str,
    auxiliary: Sequence[str],
    rng: np.random.Generator,
    n_donors: int = 5,
    min_observed: int = MIN_OBSERVED_ROWS,
    max_missing_frac: float = MAX_MISSING_FRAC,
) -> pd.DataFrame:
    """
    Impute one column by predictive mean matching.

    Args:
        df: Input frame (not modified)
        target: Column to impute
        auxiliary: Columns used to predict the target (outcome included by caller)
        rng: Random generator owned by the caller
        n_donors: Size of the donor pool per incomplete row
        min_observed: Minimum observed rows required
        max_missing_frac: Missing fraction above which a MissingnessWarning is emitted

    Returns:
        The input frame itself when ``target`` has no missing values,
        otherwise a copy with ``target`` fully populated

    Raises:
        DataInsufficiency: If fewer than ``min_observed`` rows observe the target
        ValueError: If ``n_donors`` < 1

    Warns:
        MissingnessWarning if the missing fraction exceeds ``max_missing_frac``
    """
    if n_donors < 1:
        raise ValueError(f"n_donors must be >= 1, got {n_donors}")

    mis = df[target].isna().to_numpy()
    n_mis = int(mis.sum())
    if n_mis == 0:
        return df

    obs = ~mis
    n_obs = int(obs.sum())
    if n_obs < min_observed:
        raise DataInsufficiency(
            f"Cannot impute '{target}': {n_obs} observed rows (need >= {min_observed})"
        )

    frac = n_mis / len(df)
    if frac > max_missing_frac:
        msg = (
            f"'{target}' is {frac:.1%} missing, above the {max_missing_frac:.0%} ceiling "
            "for single imputation"
        )
        logger.warning(msg)
        warnings.warn(msg, MissingnessWarning, stacklevel=2)

    aux = [c for c in auxiliary if c != target]
    X = _auxiliary_design(df, aux)
    y_obs = df.loc[obs, target].to_numpy(dtype=float)
    X_obs, X_mis = X[obs], X[mis]

    yhat_obs = _fit_predict(X_obs, y_obs, X_obs)
    boot = rng.integers(0, n_obs, size=n_obs)
    yhat_mis = _fit_predict(X_obs[boot], y_obs[boot], X_mis)

    k = min(int(n_donors), n_obs)
    dist = np.abs(yhat_mis[:, None] - yhat_obs[None, :])
    pool = np.argpartition(dist, k - 1, axis=1)[:, :k]
    picks = pool[np.arange(n_mis), rng.integers(0, k, size=n_mis)]

    out = df.copy()
    out.loc[mis, target] = y_obs[picks]
    return out


@dataclass(frozen=True)
class PMMImputer:
    """
    Seedable single-imputation step applied to cohorts and fitting samples.

    Attributes:
        targets: Columns to impute, in order
        auxiliary: Auxiliary columns (outcome included) used for matching
        n_donors: Donor pool size
        min_observed: Minimum observed rows per target
        max_missing_frac: Missingness ceiling for single imputation
    """

    targets: tuple[str, ...] = field(default_factory=tuple)
    auxiliary: tuple[str, ...] = field(default_factory=tuple)
    n_donors: int = 5
    min_observed: int = MIN_OBSERVED_ROWS
    max_missing_frac: float = MAX_MISSING_FRAC

    def __post_init__(self):
        object.__setattr__(self, "targets", tuple(self.targets))
        object.__setattr__(self, "auxiliary", tuple(self.auxiliary))

    def impute(self, df: pd.DataFrame, rng: np.random.Generator) -> pd.DataFrame:
        """Impute every target column; a frame with nothing missing is returned unchanged."""
        out = df
        for target in self.targets:
            out = impute_pmm(
                out,
                target,
                self.auxiliary,
                rng,
                n_donors=self.n_donors,
                min_observed=self.min_observed,
                max_missing_frac=self.max_missing_frac,
            )
        return out

    def impute_cohort(self, cohort: ReferenceCohort, seed: int) -> ReferenceCohort:
        """Single pass over the reference cohort; the raw frame is kept for resampling."""
        rng = np.random.default_rng(seed)
        imputed = self.impute(cohort.frame, rng)
        if imputed is cohort.frame:
            return cohort
        n_filled = int(cohort.frame[list(self.targets)].isna().sum().sum())
        logger.info(f"Imputed {n_filled} missing values in {list(self.targets)} (PMM)")
        return cohort.with_imputed(imputed)

    def impute_sample(self, sample: FittingSample, rng: np.random.Generator) -> FittingSample:
        """Impute a bootstrap fitting sample."""
        imputed = self.impute(sample.frame, rng)
        if imputed is sample.frame:
            return sample
        return sample.replace_frame(imputed)
