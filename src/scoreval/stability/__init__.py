"""Bootstrap instability of model predictions."""

from scoreval.stability.accumulator import (
    InstabilityAccumulator,
    IterationRecord,
    StabilityResult,
)
from scoreval.stability.engine import (
    default_curve_grid,
    fit_reference_models,
    run_iteration,
    run_stability_analysis,
)

__all__ = [
    "IterationRecord",
    "InstabilityAccumulator",
    "StabilityResult",
    "run_iteration",
    "run_stability_analysis",
    "fit_reference_models",
    "default_curve_grid",
]
