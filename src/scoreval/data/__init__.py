"""Data loading, cohort handles and imputation."""

from scoreval.data.cohort import FittingSample, ReferenceCohort, draw_fitting_sample
from scoreval.data.imputation import (
    DataInsufficiency,
    MissingnessWarning,
    PMMImputer,
    impute_pmm,
)
from scoreval.data.io import cohort_from_frame, missingness_summary, read_cohort_csv
from scoreval.data.schema import (
    AGE_COL,
    ID_COL,
    OUTCOME_COL,
    SCORE_COL,
    TREAT_ALL,
    TREAT_NONE,
)

__all__ = [
    "ReferenceCohort",
    "FittingSample",
    "draw_fitting_sample",
    "PMMImputer",
    "impute_pmm",
    "DataInsufficiency",
    "MissingnessWarning",
    "read_cohort_csv",
    "cohort_from_frame",
    "missingness_summary",
    "ID_COL",
    "OUTCOME_COL",
    "SCORE_COL",
    "AGE_COL",
    "TREAT_ALL",
    "TREAT_NONE",
]
