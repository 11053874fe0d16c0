"""Evaluation module: validation orchestration and report output."""

from scoreval.evaluation.report import OutputDirectories, ReportWriter, write_report
from scoreval.evaluation.validate import (
    ValidationReport,
    build_imputer,
    evaluate_reference_predictions,
    run_validation,
)

__all__ = [
    "ValidationReport",
    "run_validation",
    "build_imputer",
    "evaluate_reference_predictions",
    "OutputDirectories",
    "ReportWriter",
    "write_report",
]
