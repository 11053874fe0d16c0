"""Configuration management for scoreval."""

from scoreval.config.defaults import (
    DEFAULT_LINEARITY_KNOTS,
    DEFAULT_N_BOOT,
    DEFAULT_SPLINE_KNOTS,
    VALID_BACKENDS,
)
from scoreval.config.loader import apply_overrides, load_validation_config, save_config
from scoreval.config.schema import (
    BootstrapConfig,
    CalibrationConfig,
    DCAConfig,
    ModelConfig,
    ValidationConfig,
)
from scoreval.config.validation import (
    ConfigurationError,
    ConfigValidationWarning,
    validate_validation_config,
)

__all__ = [
    "DEFAULT_N_BOOT",
    "DEFAULT_SPLINE_KNOTS",
    "DEFAULT_LINEARITY_KNOTS",
    "VALID_BACKENDS",
    "load_validation_config",
    "apply_overrides",
    "save_config",
    "ValidationConfig",
    "BootstrapConfig",
    "CalibrationConfig",
    "DCAConfig",
    "ModelConfig",
    "ConfigurationError",
    "ConfigValidationWarning",
    "validate_validation_config",
]
