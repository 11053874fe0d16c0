"""
Configuration validation and safety checks.

Cross-field checks that a schema alone cannot express: model terms must
refer to declared predictors, comparison pairs must refer to declared
models, and the net-benefit grid must be usable. All checks run before any
bootstrap iteration.
"""

import warnings

from scoreval.config.schema import ValidationConfig


class ConfigurationError(ValueError):
    """Raised when configuration is invalid; fatal before any iteration runs."""

    pass


class ConfigValidationWarning(UserWarning):
    """Warning for potential configuration issues."""

    pass


def validate_validation_config(config: ValidationConfig) -> None:
    """
    Validate a run configuration.

    Args:
        config: ValidationConfig instance

    Raises:
        ConfigurationError: Listing every problem found

    Warns:
        ConfigValidationWarning for settings that are legal but questionable
    """
    issues = []
    predictors = set(config.data.predictors)
    specs = config.model_specs()

    if config.data.outcome_col in predictors:
        issues.append(f"Outcome '{config.data.outcome_col}' is also listed as a predictor")
    if config.data.id_col in predictors:
        issues.append(f"Identifier '{config.data.id_col}' is also listed as a predictor")

    names = [s.name for s in specs]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        issues.append(f"Duplicate model names: {dupes}")

    for spec in specs:
        unknown = [v for v in spec.variables if v not in predictors]
        if unknown:
            issues.append(f"Model '{spec.name}' uses undeclared predictors {unknown}")

    for reduced, full in config.comparisons:
        for name in (reduced, full):
            if name not in names:
                issues.append(f"Comparison refers to unknown model '{name}'")
        if reduced == full:
            issues.append(f"Comparison of '{reduced}' with itself")

    targets = config.imputation.targets or []
    unknown_targets = [t for t in targets if t not in predictors]
    if unknown_targets:
        issues.append(f"Imputation targets are not predictors: {unknown_targets}")

    unknown_probes = [v for v in config.linearity.variables if v not in predictors]
    if unknown_probes:
        issues.append(f"Linearity probes refer to undeclared predictors {unknown_probes}")

    dca = config.dca
    if dca.threshold_min > dca.threshold_max:
        issues.append(
            f"dca.threshold_min ({dca.threshold_min}) > dca.threshold_max ({dca.threshold_max})"
        )
    if dca.threshold_step > max(dca.threshold_max - dca.threshold_min, 0.0) and (
        dca.threshold_max > dca.threshold_min
    ):
        issues.append(
            f"dca.threshold_step ({dca.threshold_step}) exceeds the grid width "
            f"({dca.threshold_max - dca.threshold_min})"
        )
    if dca.threshold_min > dca.max_threshold:
        issues.append(
            f"Every threshold is above dca.max_threshold ({dca.max_threshold}); "
            "no net benefit can be computed"
        )

    if issues:
        raise ConfigurationError(
            "Invalid configuration:\n" + "\n".join(f"  - {msg}" for msg in issues)
        )

    if config.bootstrap.n_boot < 50:
        warnings.warn(
            f"bootstrap.n_boot={config.bootstrap.n_boot} is small; "
            "instability estimates will be noisy",
            ConfigValidationWarning,
            stacklevel=2,
        )
    if dca.threshold_max > dca.max_threshold and dca.extreme_thresholds == "flag":
        warnings.warn(
            f"Thresholds above {dca.max_threshold} will be flagged with NaN net benefit",
            ConfigValidationWarning,
            stacklevel=2,
        )
