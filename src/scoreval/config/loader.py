"""
Configuration loading and merging logic.

Supports:
1. Loading from YAML files (with ``_base`` inheritance)
2. CLI argument overrides (dot-notation: e.g., bootstrap.n_boot=500)
3. Validation and resolution
"""

import copy
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from scoreval.config.defaults import (
    DEFAULT_BOOTSTRAP_CONFIG,
    DEFAULT_CALIBRATION_CONFIG,
    DEFAULT_DATA_CONFIG,
    DEFAULT_DCA_CONFIG,
    DEFAULT_FIT_CONFIG,
    DEFAULT_IMPUTATION_CONFIG,
    DEFAULT_LINEARITY_CONFIG,
    DEFAULT_OUTPUT_CONFIG,
)
from scoreval.config.schema import ValidationConfig
from scoreval.config.validation import ConfigurationError

# Keys that should always be lists
LIST_KEYS = {
    "predictors",
    "auxiliary",
    "targets",
    "variables",
}

# Keys that should always be strings (not parsed as int/float)
STRING_KEYS = {
    "id_col",
    "outcome_col",
}

# Keys holding paths resolved relative to the config file
PATH_KEYS = {
    "infile",
    "outdir",
}


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overlay* into *base* (overlay wins on leaf conflicts).

    Returns a new dict; neither input is mutated.
    """
    merged = base.copy()
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_yaml(file_path: str | Path) -> dict[str, Any]:
    """Load configuration from YAML file.

    Supports a ``_base`` key: if present, the referenced YAML file is loaded
    first and the current file's values are deep-merged on top. The ``_base``
    path is resolved relative to the directory containing *file_path*.
    """
    file_path = Path(file_path).resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path) as f:
        config_dict = yaml.safe_load(f) or {}

    base_ref = config_dict.pop("_base", None)
    if base_ref is not None:
        base_path = (file_path.parent / base_ref).resolve()
        base_dict = load_yaml(base_path)
        config_dict = _deep_merge(base_dict, config_dict)

    return config_dict


def resolve_paths_relative_to_config(
    config_dict: dict[str, Any], config_file: Path
) -> dict[str, Any]:
    """
    Resolve relative paths in a config dict against the config file directory.

    Only keys listed in PATH_KEYS (at top level or one section down) are touched.
    """
    config_dir = Path(config_file).resolve().parent
    resolved = copy.deepcopy(config_dict)

    def _resolve(value: Any) -> Any:
        if isinstance(value, str) and value:
            path = Path(value)
            if not path.is_absolute():
                return str(config_dir / path)
        return value

    for key, val in resolved.items():
        if key in PATH_KEYS:
            resolved[key] = _resolve(val)
        elif isinstance(val, dict):
            for nested_key, nested_val in val.items():
                if nested_key in PATH_KEYS:
                    val[nested_key] = _resolve(nested_val)

    return resolved


def apply_overrides(config_dict: dict[str, Any], overrides: list[str]) -> dict[str, Any]:
    """
    Apply CLI overrides to config dictionary.

    Supports dot-notation for nested keys:
        bootstrap.n_boot=500 -> config_dict['bootstrap']['n_boot'] = 500
        dca.extreme_thresholds=flag -> config_dict['dca']['extreme_thresholds'] = 'flag'

    Args:
        config_dict: Base configuration dictionary
        overrides: List of "key=value" or "nested.key=value" strings

    Returns:
        Updated config dictionary
    """
    for override in overrides:
        if "=" not in override:
            raise ValueError(f"Invalid override format: {override}. Expected 'key=value'")

        key_path, value_str = override.split("=", 1)
        keys = key_path.split(".")

        target = config_dict
        for key in keys[:-1]:
            if key not in target or not isinstance(target[key], dict):
                target[key] = {}
            target = target[key]

        final_key = keys[-1]
        value = _parse_value(
            value_str,
            force_list=final_key in LIST_KEYS,
            force_string=final_key in STRING_KEYS,
        )
        target[final_key] = value

    return config_dict


def _parse_scalar(v: str) -> Any:
    try:
        return int(v)
    except ValueError:
        pass
    try:
        return float(v)
    except ValueError:
        pass
    return v


def _parse_value(value_str: str, force_list: bool = False, force_string: bool = False) -> Any:
    """
    Parse string value to appropriate Python type.

    Args:
        value_str: String to parse
        force_list: If True, always return a list (for comma-separated or single values)
        force_string: If True, always return a string (skip int/float parsing)
    """
    if force_string:
        return value_str

    lowered = value_str.lower()
    if lowered in ("true", "yes"):
        return [True] if force_list else True
    if lowered in ("false", "no"):
        return [False] if force_list else False
    if lowered in ("none", "null"):
        return None

    if "," in value_str or force_list:
        return [_parse_scalar(v.strip()) for v in value_str.split(",") if v.strip()]

    return _parse_scalar(value_str)


def _default_config_dict() -> dict[str, Any]:
    return {
        "data": copy.deepcopy(DEFAULT_DATA_CONFIG),
        "imputation": copy.deepcopy(DEFAULT_IMPUTATION_CONFIG),
        "models": [],
        "comparisons": [],
        "linearity": copy.deepcopy(DEFAULT_LINEARITY_CONFIG),
        "bootstrap": copy.deepcopy(DEFAULT_BOOTSTRAP_CONFIG),
        "calibration": copy.deepcopy(DEFAULT_CALIBRATION_CONFIG),
        "dca": copy.deepcopy(DEFAULT_DCA_CONFIG),
        "fit": copy.deepcopy(DEFAULT_FIT_CONFIG),
        "output": copy.deepcopy(DEFAULT_OUTPUT_CONFIG),
    }


def load_validation_config(
    config_file: str | Path | None = None,
    overrides: list[str] | None = None,
) -> ValidationConfig:
    """
    Load validation configuration from file and CLI overrides.

    Args:
        config_file: Path to YAML config file (optional)
        overrides: List of CLI overrides in "key=value" format (optional)

    Returns:
        Validated ValidationConfig instance

    Raises:
        ConfigurationError: If the merged configuration fails schema validation
    """
    config_dict = _default_config_dict()

    if config_file is not None:
        config_file_path = Path(config_file)
        file_config = load_yaml(config_file_path)
        file_config = resolve_paths_relative_to_config(file_config, config_file_path)
        config_dict = _deep_merge(config_dict, file_config)

    if overrides:
        config_dict = apply_overrides(config_dict, overrides)

    try:
        return ValidationConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid validation configuration:\n{e}") from e


def save_config(config: ValidationConfig, output_path: str | Path) -> Path:
    """Save the resolved configuration as YAML."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, sort_keys=False)
    return output_path
