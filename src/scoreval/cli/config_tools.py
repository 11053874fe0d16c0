"""
Configuration checking.

Command:
- scoreval check-config: Load, validate and report on a config file
"""

import warnings
from pathlib import Path

from scoreval.config.loader import load_validation_config
from scoreval.config.validation import (
    ConfigurationError,
    ConfigValidationWarning,
    validate_validation_config,
)
from scoreval.metrics.dca import generate_dca_thresholds
from scoreval.utils.logging import level_from_verbosity, setup_logger


def check_config_file(
    config_file: Path,
    overrides: list[str] | None = None,
    strict: bool = False,
) -> tuple[bool, list[str], list[str]]:
    """
    Validate a config file.

    Args:
        config_file: Path to config file
        overrides: Dot-notation overrides applied before validation
        strict: Treat warnings as errors

    Returns:
        (is_valid, errors, warnings)
    """
    errors: list[str] = []
    messages: list[str] = []

    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConfigValidationWarning)
            config = load_validation_config(config_file=config_file, overrides=overrides)
            validate_validation_config(config)
            dca = config.dca
            generate_dca_thresholds(dca.threshold_min, dca.threshold_max, dca.threshold_step)
        messages = [
            str(w.message) for w in caught if issubclass(w.category, ConfigValidationWarning)
        ]
    except (ConfigurationError, ValueError) as e:
        errors.append(str(e))

    is_valid = not errors and not (strict and messages)
    return is_valid, errors, messages


def run_check_config(
    config_file: Path,
    overrides: list[str] | None = None,
    strict: bool = False,
    verbose: int = 0,
) -> bool:
    """
    Run the check-config command.

    Args:
        config_file: Path to config file
        overrides: Dot-notation overrides
        strict: Treat warnings as errors
        verbose: Verbosity level

    Returns:
        True if the configuration is valid
    """
    logger = setup_logger("scoreval", level=level_from_verbosity(verbose))
    logger.info(f"Validating config: {config_file}")

    is_valid, errors, messages = check_config_file(config_file, overrides, strict)

    print("\n" + "=" * 80)
    print(f"Validation Report: {Path(config_file).name}")
    print("=" * 80)

    if errors:
        print(f"\nERRORS ({len(errors)}):")
        for err in errors:
            print(f"  - {err}")

    if messages:
        print(f"\nWARNINGS ({len(messages)}):")
        for msg in messages:
            print(f"  - {msg}")

    if is_valid:
        print("\n[OK] Config is valid")
    else:
        print("\n[FAIL] Config is invalid")
        if strict and messages and not errors:
            print("  (strict mode: warnings treated as errors)")

    print("=" * 80)
    return is_valid
