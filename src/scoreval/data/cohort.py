"""
Typed dataset handles.

Two roles exist for a dataset during validation:

- ReferenceCohort: the fixed cohort every model is scored on. Holds the
  complete (imputed) frame used for scoring and the raw frame that
  bootstrap samples are drawn from.
- FittingSample: an ephemeral sample used only to fit models. Carries the
  iteration index it was drawn for (0 = unresampled reference pass).

Keeping them as distinct types means a model can only be fit on a
FittingSample and scored on a ReferenceCohort.
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class ReferenceCohort:
    """Fixed scoring cohort.

    Attributes:
        frame: Scoring frame (predictors fully observed after imputation)
        id_col: Subject identifier column
        outcome_col: Binary outcome column
        predictors: Ordered predictor column names
        raw_frame: Pre-imputation frame used as the resampling source.
            Defaults to ``frame`` when the cohort had nothing to impute.
    """

    frame: pd.DataFrame
    id_col: str
    outcome_col: str
    predictors: tuple[str, ...]
    raw_frame: pd.DataFrame | None = field(default=None, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "predictors", tuple(self.predictors))
        missing = [
            c for c in (self.id_col, self.outcome_col, *self.predictors) if c not in self.frame
        ]
        if missing:
            raise ValueError(f"Reference cohort is missing columns: {missing}")
        if self.frame[self.id_col].duplicated().any():
            raise ValueError(f"Subject identifiers in '{self.id_col}' must be unique")
        if self.raw_frame is None:
            object.__setattr__(self, "raw_frame", self.frame)
        elif len(self.raw_frame) != len(self.frame):
            raise ValueError(
                f"raw_frame has {len(self.raw_frame)} rows but frame has {len(self.frame)}"
            )

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def subject_ids(self) -> np.ndarray:
        return self.frame[self.id_col].to_numpy()

    @property
    def outcome(self) -> np.ndarray:
        return self.frame[self.outcome_col].to_numpy().astype(int)

    @property
    def prevalence(self) -> float:
        return float(np.mean(self.outcome)) if len(self) else float("nan")

    def with_imputed(self, imputed: pd.DataFrame) -> "ReferenceCohort":
        """Return a cohort scoring on ``imputed`` while resampling from the raw rows."""
        if not imputed[self.id_col].equals(self.frame[self.id_col]):
            raise ValueError("Imputed frame must preserve subject order and identifiers")
        return ReferenceCohort(
            frame=imputed,
            id_col=self.id_col,
            outcome_col=self.outcome_col,
            predictors=self.predictors,
            raw_frame=self.raw_frame,
        )

    def as_fitting_sample(self) -> "FittingSample":
        """Unresampled fitting sample (iteration 0) over the complete frame."""
        return FittingSample(
            frame=self.frame,
            outcome_col=self.outcome_col,
            predictors=self.predictors,
            iteration=0,
        )


@dataclass(frozen=True)
class FittingSample:
    """Sample used only for fitting models.

    Attributes:
        frame: Rows used for fitting (may contain repeated subjects)
        outcome_col: Binary outcome column
        predictors: Ordered predictor column names
        iteration: Bootstrap iteration that produced the sample
    """

    frame: pd.DataFrame
    outcome_col: str
    predictors: tuple[str, ...]
    iteration: int = 0

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def outcome(self) -> np.ndarray:
        return self.frame[self.outcome_col].to_numpy().astype(int)

    def replace_frame(self, frame: pd.DataFrame) -> "FittingSample":
        """Same sample metadata over a new frame (e.g. after imputation)."""
        return FittingSample(
            frame=frame,
            outcome_col=self.outcome_col,
            predictors=self.predictors,
            iteration=self.iteration,
        )


def draw_fitting_sample(
    cohort: ReferenceCohort,
    rng: np.random.Generator,
    iteration: int,
    size: int | None = None,
) -> FittingSample:
    """
    Draw a bootstrap fitting sample from the cohort's raw rows.

    Rows are sampled with replacement. The result carries a fresh
    0..n-1 index so that repeated subjects do not collide; it never
    indexes back into the reference cohort.

    Args:
        cohort: Reference cohort to resample
        rng: Generator owned by this iteration
        iteration: Iteration index recorded on the sample
        size: Sample size (default: cohort size)

    Returns:
        FittingSample of ``size`` rows, missing values still present
    """
    n = len(cohort)
    size = n if size is None else int(size)
    if n == 0:
        raise ValueError("Cannot resample an empty cohort")
    idx = rng.integers(0, n, size=size)
    frame = cohort.raw_frame.iloc[idx].reset_index(drop=True)
    return FittingSample(
        frame=frame,
        outcome_col=cohort.outcome_col,
        predictors=cohort.predictors,
        iteration=iteration,
    )
