"""
Configuration schema for the scoreval pipeline.

Defines Pydantic models for every validation parameter. Defaults come from
scoreval.config.defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from scoreval.config.defaults import (
    DEFAULT_LINEARITY_KNOTS,
    DEFAULT_MAX_FAILURE_FRAC,
    DEFAULT_N_BOOT,
    DEFAULT_SPLINE_KNOTS,
)
from scoreval.models.specs import ModelSpec, Term

# ============================================================================
# Data Configuration
# ============================================================================


class DataConfig(BaseModel):
    """Input cohort location and schema."""

    infile: Path | None = None
    id_col: str = "subject_id"
    outcome_col: str = "outcome"
    predictors: list[str] = Field(default_factory=lambda: ["score"], min_length=1)


class ImputationConfig(BaseModel):
    """Predictive mean matching single imputation.

    The outcome is always added to the auxiliary variables.
    """

    targets: list[str] | None = None
    auxiliary: list[str] = Field(default_factory=list)
    n_donors: int = Field(default=5, ge=1)
    min_observed: int = Field(default=10, ge=1)
    max_missing_frac: float = Field(default=0.05, ge=0.0, le=1.0)
    seed: int = Field(default=0, ge=0)


# ============================================================================
# Model Specifications
# ============================================================================


class TermConfig(BaseModel):
    """One predictor term of a model."""

    variable: str
    transform: Literal["linear", "rcs"] = "linear"
    knots: int = Field(default=DEFAULT_SPLINE_KNOTS, ge=3, le=7)


class ModelConfig(BaseModel):
    """Named model formula."""

    name: str
    terms: list[TermConfig] = Field(min_length=1)

    def to_spec(self) -> ModelSpec:
        return ModelSpec(
            name=self.name,
            terms=tuple(Term(t.variable, t.transform, t.knots) for t in self.terms),
        )


class LinearityConfig(BaseModel):
    """Linearity probes (linear vs restricted cubic spline)."""

    variables: list[str] = Field(default_factory=list)
    knots: int = Field(default=DEFAULT_LINEARITY_KNOTS, ge=3, le=7)


# ============================================================================
# Bootstrap Instability
# ============================================================================


class BootstrapConfig(BaseModel):
    """Bootstrap instability engine settings.

    ``n_boot`` counts resampled iterations; the unresampled reference pass
    (iteration 0) is always run in addition.
    """

    n_boot: int = Field(default=DEFAULT_N_BOOT, ge=1)
    seed: int = Field(default=0, ge=0)
    n_jobs: int = 1
    backend: Literal["loky", "threading", "sequential"] = "loky"
    iteration_timeout: float | None = Field(default=None, gt=0.0)
    deadline: float | None = Field(default=None, gt=0.0)
    max_failure_frac: float = Field(default=DEFAULT_MAX_FAILURE_FRAC, ge=0.0, le=1.0)
    progress_every: int = Field(default=25, ge=1)
    classification_threshold: float | None = Field(default=None, gt=0.0, lt=1.0)

    @model_validator(mode="after")
    def validate_n_jobs(self):
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero (use -1 for all cores)")
        return self


# ============================================================================
# Evaluation Configuration
# ============================================================================


class CalibrationConfig(BaseModel):
    """Smoothed calibration curve settings."""

    lowess_frac: float = Field(default=2.0 / 3.0, gt=0.0, le=1.0)
    curve_points: int = Field(default=101, ge=2)


class DCAConfig(BaseModel):
    """Decision curve analysis threshold grid."""

    threshold_min: float = Field(default=0.0, ge=0.0, le=1.0)
    threshold_max: float = Field(default=0.99, ge=0.0, le=1.0)
    threshold_step: float = Field(default=0.01, gt=0.0)
    max_threshold: float = Field(default=0.99, gt=0.0, lt=1.0)
    extreme_thresholds: Literal["exclude", "flag"] = "exclude"

    @model_validator(mode="after")
    def validate_grid(self):
        if self.threshold_min > self.threshold_max:
            raise ValueError(
                f"threshold_min ({self.threshold_min}) > threshold_max ({self.threshold_max})"
            )
        return self


class FitConfig(BaseModel):
    """IRLS settings for logistic regression."""

    max_iter: int = Field(default=100, ge=1)
    tol: float = Field(default=1e-8, gt=0.0)


class OutputConfig(BaseModel):
    """Configuration for output file generation."""

    model_config = ConfigDict(extra="forbid")

    outdir: Path = Field(default=Path("results"))
    save_subject_predictions: bool = True


# ============================================================================
# Root Configuration
# ============================================================================


class ValidationConfig(BaseModel):
    """Complete configuration for one validation run."""

    model_config = ConfigDict(extra="forbid")

    data: DataConfig = Field(default_factory=DataConfig)
    imputation: ImputationConfig = Field(default_factory=ImputationConfig)
    models: list[ModelConfig] = Field(default_factory=list)
    comparisons: list[tuple[str, str]] = Field(default_factory=list)
    linearity: LinearityConfig = Field(default_factory=LinearityConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)
    dca: DCAConfig = Field(default_factory=DCAConfig)
    fit: FitConfig = Field(default_factory=FitConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def model_specs(self) -> list[ModelSpec]:
        """Declared model specs; defaults to the first predictor alone."""
        if self.models:
            return [m.to_spec() for m in self.models]
        first = self.data.predictors[0]
        return [ModelSpec(name=f"{first} alone", terms=(Term(first),))]

    def auxiliary_columns(self) -> list[str]:
        """Auxiliary imputation columns with the outcome appended."""
        aux = list(self.imputation.auxiliary)
        if self.data.outcome_col not in aux:
            aux.append(self.data.outcome_col)
        return aux
