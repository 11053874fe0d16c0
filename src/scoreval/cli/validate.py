"""
CLI implementation for the validate command.

Loads configuration, runs the validation protocol and writes the report.
"""

import warnings
from pathlib import Path
from typing import Any

from scoreval.config.loader import load_validation_config, save_config
from scoreval.config.validation import ConfigValidationWarning, validate_validation_config
from scoreval.evaluation.report import write_report
from scoreval.evaluation.validate import ValidationReport, run_validation
from scoreval.utils.logging import level_from_verbosity, log_section, setup_logger

# CLI option -> config key
CLI_TO_CONFIG = {
    "infile": "data.infile",
    "outdir": "output.outdir",
    "n_boot": "bootstrap.n_boot",
    "n_jobs": "bootstrap.n_jobs",
    "seed": "bootstrap.seed",
}


def _cli_overrides(cli_args: dict[str, Any] | None) -> list[str]:
    overrides = []
    for key, value in (cli_args or {}).items():
        if value is None or key not in CLI_TO_CONFIG:
            continue
        if key in ("infile", "outdir"):
            value = Path(value).resolve()
        overrides.append(f"{CLI_TO_CONFIG[key]}={value}")
    return overrides


def run_validate(
    config_file: str | None = None,
    cli_args: dict[str, Any] | None = None,
    overrides: list[str] | None = None,
    log_file: str | None = None,
    verbose: int = 0,
) -> ValidationReport:
    """
    Run validation with the config system.

    Args:
        config_file: Path to YAML config file (optional)
        cli_args: Dictionary of CLI arguments (optional)
        overrides: List of config overrides (optional)
        log_file: Optional log file path
        verbose: Verbosity level (0=INFO, 1=DEBUG)

    Returns:
        ValidationReport
    """
    logger = setup_logger(
        "scoreval",
        level=level_from_verbosity(verbose),
        log_file=Path(log_file) if log_file else None,
    )

    log_section(logger, "scoreval: Risk Score Validation")

    # CLI options take precedence over explicit overrides of the same key
    all_overrides = list(overrides or []) + _cli_overrides(cli_args)

    logger.info("Loading configuration...")
    config = load_validation_config(config_file=config_file, overrides=all_overrides)

    logger.info("Validating configuration...")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConfigValidationWarning)
        validate_validation_config(config)
    for w in caught:
        logger.warning(str(w.message))

    outdir = Path(config.output.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    config_path = save_config(config, outdir / "config_resolved.yaml")
    logger.info(f"Saved resolved config to: {config_path}")

    specs = config.model_specs()
    logger.info(f"Input: {config.data.infile}")
    logger.info(f"Models: {', '.join(s.name for s in specs)}")
    logger.info(
        f"Bootstrap: {config.bootstrap.n_boot} iterations (seed {config.bootstrap.seed}, "
        f"n_jobs={config.bootstrap.n_jobs})"
    )

    log_section(logger, "Reference evaluation")
    report = run_validation(config)

    log_section(logger, "Results")
    for row in report.discrimination.itertuples(index=False):
        logger.info(
            f"{row.model}: c-statistic={row.c_statistic:.3f} "
            f"(95% CI {row.ci_lower:.3f}-{row.ci_upper:.3f})"
        )
    for row in report.calibration.itertuples(index=False):
        logger.info(
            f"{row.model}: calibration intercept={row.intercept:.3f}, slope={row.slope:.3f}"
        )
    for name, counts in report.iteration_counts().items():
        logger.info(
            f"{name}: {counts['succeeded']}/{counts['requested']} bootstrap iterations succeeded"
            + (f" ({counts['diagnostic']})" if counts["diagnostic"] else "")
        )

    written = write_report(
        report, outdir, save_subject_predictions=config.output.save_subject_predictions
    )
    logger.info(f"Wrote {len(written)} files to {outdir}")
    log_section(logger, "Done")
    return report
