"""
Data I/O utilities for scoreval.

Reads a validation cohort from CSV with schema validation, dtype coercion,
and missingness reporting.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from scoreval.data.cohort import ReferenceCohort
from scoreval.data.schema import ID_COL, OUTCOME_COL, VALID_OUTCOME_VALUES

logger = logging.getLogger(__name__)


def missingness_summary(df: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """
    Per-column missingness table.

    Args:
        df: Input frame
        columns: Columns to summarise

    Returns:
        DataFrame with columns: column, n_missing, frac_missing
    """
    n = len(df)
    rows = []
    for col in columns:
        n_missing = int(df[col].isna().sum())
        rows.append(
            {
                "column": col,
                "n_missing": n_missing,
                "frac_missing": n_missing / n if n else np.nan,
            }
        )
    return pd.DataFrame(rows, columns=["column", "n_missing", "frac_missing"])


def _coerce_outcome(series: pd.Series, outcome_col: str) -> pd.Series:
    if series.isna().any():
        raise ValueError(
            f"Outcome column '{outcome_col}' has {int(series.isna().sum())} missing values"
        )
    if series.dtype == bool:
        return series.astype(int)
    values = pd.to_numeric(series, errors="coerce")
    if values.isna().any():
        raise ValueError(f"Outcome column '{outcome_col}' must be numeric 0/1 or boolean")
    observed = set(np.unique(values.to_numpy()).tolist())
    if not observed <= VALID_OUTCOME_VALUES:
        raise ValueError(
            f"Outcome column '{outcome_col}' must be binary (0/1), found values {sorted(observed)}"
        )
    return values.astype(int)


def cohort_from_frame(
    df: pd.DataFrame,
    *,
    predictors: list[str],
    id_col: str = ID_COL,
    outcome_col: str = OUTCOME_COL,
    extra_cols: list[str] | None = None,
) -> ReferenceCohort:
    """
    Validate a frame and wrap it as a ReferenceCohort.

    Args:
        df: Input frame
        predictors: Predictor columns (numeric, missing values allowed)
        id_col: Subject identifier column
        outcome_col: Binary outcome column
        extra_cols: Additional columns to carry (e.g. auxiliary imputation variables)

    Returns:
        ReferenceCohort (raw frame == frame until imputation)

    Raises:
        ValueError: On missing columns, duplicate identifiers, non-binary
            outcome or non-numeric predictors
    """
    extra_cols = [c for c in (extra_cols or []) if c not in predictors]
    required = [id_col, outcome_col, *predictors, *extra_cols]
    missing_cols = [c for c in required if c not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    # Keep column order stable: id, outcome, predictors, extras
    out = df[list(dict.fromkeys(required))].reset_index(drop=True)

    if out[id_col].isna().any():
        raise ValueError(f"Identifier column '{id_col}' has missing values")
    if out[id_col].duplicated().any():
        dupes = out.loc[out[id_col].duplicated(), id_col].head(5).tolist()
        raise ValueError(f"Identifier column '{id_col}' has duplicates, e.g. {dupes}")

    out[outcome_col] = _coerce_outcome(out[outcome_col], outcome_col)

    for col in [*predictors, *extra_cols]:
        if not pd.api.types.is_numeric_dtype(out[col]):
            coerced = pd.to_numeric(out[col], errors="coerce")
            n_bad = int(coerced.isna().sum() - out[col].isna().sum())
            if n_bad > 0:
                raise ValueError(f"Predictor '{col}' has {n_bad} non-numeric values")
            out[col] = coerced
        out[col] = out[col].astype(float)

    return ReferenceCohort(
        frame=out,
        id_col=id_col,
        outcome_col=outcome_col,
        predictors=tuple(predictors),
    )


def read_cohort_csv(
    filepath: str | Path,
    *,
    predictors: list[str],
    id_col: str = ID_COL,
    outcome_col: str = OUTCOME_COL,
    extra_cols: list[str] | None = None,
) -> ReferenceCohort:
    """
    Read a validation cohort from CSV.

    Args:
        filepath: Path to CSV file
        predictors: Predictor columns
        id_col: Subject identifier column
        outcome_col: Binary outcome column
        extra_cols: Additional columns to load (auxiliary imputation variables)

    Returns:
        ReferenceCohort

    Raises:
        FileNotFoundError: If filepath does not exist
        ValueError: If the schema is invalid

    Example:
        >>> cohort = read_cohort_csv("data/cohort.csv", predictors=["score"])
        >>> cohort.prevalence  # doctest: +SKIP
        0.2
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Cohort file not found: {filepath}")

    df = pd.read_csv(filepath, low_memory=False)
    logger.info(f"Loaded {len(df):,} rows x {df.shape[1]} columns from {filepath}")

    cohort = cohort_from_frame(
        df,
        predictors=predictors,
        id_col=id_col,
        outcome_col=outcome_col,
        extra_cols=extra_cols,
    )

    n_events = int(cohort.outcome.sum())
    logger.info(
        f"Cohort: n={len(cohort):,}, events={n_events:,} "
        f"(prevalence {cohort.prevalence:.3f})"
    )
    summary = missingness_summary(cohort.frame, list(predictors) + list(extra_cols or []))
    for row in summary.itertuples(index=False):
        if row.n_missing > 0:
            logger.info(f"  {row.column}: {row.n_missing} missing ({row.frac_missing:.1%})")

    return cohort
