"""
ReportWriter: output directory layout and serialization of validation results.

Layout under the output root:
    summary.json                     run summary, requested vs completed iterations
    config_resolved.yaml             configuration actually used (CLI only)
    performance/                     discrimination, calibration, coefficients
    comparisons/                     likelihood-ratio and linearity tests
    dca/                             net benefit (long and wide) and summary
    stability/                       instability summary, subjects, bands
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from scoreval.evaluation.validate import ValidationReport
from scoreval.metrics.dca import net_benefit_wide
from scoreval.utils.serialization import save_json, save_table

logger = logging.getLogger(__name__)


@dataclass
class OutputDirectories:
    """
    Structured output directory paths.

    Attributes:
        root: Base output directory
        performance: Reference discrimination and calibration tables
        comparisons: Model comparison and linearity tables
        dca: Decision curve analysis tables
        stability: Bootstrap instability tables
    """

    root: Path
    performance: Path
    comparisons: Path
    dca: Path
    stability: Path

    @classmethod
    def create(cls, root: str | Path) -> "OutputDirectories":
        root = Path(root)
        dirs = cls(
            root=root,
            performance=root / "performance",
            comparisons=root / "comparisons",
            dca=root / "dca",
            stability=root / "stability",
        )
        for path in (dirs.root, dirs.performance, dirs.comparisons, dirs.dca, dirs.stability):
            path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created output structure at: {root}")
        return dirs


class ReportWriter:
    """High-level API for writing a ValidationReport to disk."""

    def __init__(self, output_dirs: OutputDirectories):
        self.dirs = output_dirs
        self.written: list[Path] = []

    def _save(self, df: pd.DataFrame, directory: Path, filename: str) -> Path:
        path = save_table(df, directory / filename)
        self.written.append(path)
        return path

    def save_performance(self, report: ValidationReport) -> None:
        d = self.dirs.performance
        self._save(report.discrimination, d, "discrimination.csv")
        self._save(report.calibration, d, "calibration.csv")
        self._save(report.calibration_curves, d, "calibration_curves.csv")
        self._save(report.coefficients, d, "coefficients.csv")
        self._save(report.missingness, d, "missingness.csv")
        logger.info(f"Saved performance tables: {d}")

    def save_comparisons(self, report: ValidationReport) -> None:
        d = self.dirs.comparisons
        self._save(report.comparisons, d, "likelihood_ratio.csv")
        self._save(report.linearity, d, "linearity.csv")
        logger.info(f"Saved comparison tables: {d}")

    def save_dca(self, report: ValidationReport) -> None:
        d = self.dirs.dca
        self._save(report.net_benefit, d, "net_benefit.csv")
        if not report.net_benefit.empty:
            self._save(net_benefit_wide(report.net_benefit), d, "net_benefit_wide.csv")
        self._save(report.dca_summary, d, "dca_summary.csv")
        logger.info(f"Saved net benefit tables: {d}")

    def save_stability(self, report: ValidationReport, save_subjects: bool = True) -> None:
        if report.stability is None:
            return
        d = self.dirs.stability
        self._save(report.stability.summary, d, "instability_summary.csv")
        self._save(report.stability.calibration_bands, d, "calibration_bands.csv")
        if save_subjects:
            self._save(report.stability.subjects, d, "subject_instability.csv")
            self._save(report.predictions, d, "reference_predictions.csv")
        logger.info(f"Saved instability tables: {d}")

    def save_summary(self, report: ValidationReport) -> Path:
        path = self.dirs.root / "summary.json"
        save_json(report.summary(), path)
        self.written.append(path)
        logger.info(f"Saved run summary: {path}")
        return path


def write_report(
    report: ValidationReport,
    outdir: str | Path,
    save_subject_predictions: bool = True,
) -> list[Path]:
    """
    Write every table of a validation report plus ``summary.json``.

    Args:
        report: Output of run_validation
        outdir: Output root directory
        save_subject_predictions: Also write per-subject tables

    Returns:
        List of written file paths
    """
    writer = ReportWriter(OutputDirectories.create(outdir))
    writer.save_performance(report)
    writer.save_comparisons(report)
    writer.save_dca(report)
    writer.save_stability(report, save_subjects=save_subject_predictions)
    writer.save_summary(report)
    return writer.written
