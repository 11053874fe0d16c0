"""
Tests for configuration system.
"""

import warnings

import pytest
import yaml
from scoreval.config.defaults import DEFAULT_BOOTSTRAP_CONFIG, DEFAULT_DCA_CONFIG
from scoreval.config.loader import (
    _parse_value,
    apply_overrides,
    load_validation_config,
    load_yaml,
    save_config,
)
from scoreval.config.schema import BootstrapConfig, DCAConfig, ValidationConfig
from scoreval.config.validation import (
    ConfigurationError,
    ConfigValidationWarning,
    validate_validation_config,
)


def test_bootstrap_config_defaults():
    """Test that BootstrapConfig uses correct defaults."""
    config = BootstrapConfig(**DEFAULT_BOOTSTRAP_CONFIG)

    assert config.n_boot == 200
    assert config.seed == 0
    assert config.n_jobs == 1
    assert config.backend == "loky"
    assert config.max_failure_frac == 0.5
    assert config.iteration_timeout is None


def test_dca_config_defaults():
    config = DCAConfig(**DEFAULT_DCA_CONFIG)
    assert config.threshold_max == 0.99
    assert config.extreme_thresholds == "exclude"


def test_default_model_is_first_predictor_alone():
    config = ValidationConfig()
    specs = config.model_specs()
    assert [s.name for s in specs] == ["score alone"]
    assert config.auxiliary_columns() == ["outcome"]


def test_apply_overrides_nested():
    """Test applying nested CLI overrides."""
    config_dict = {"bootstrap": {"n_boot": 200, "seed": 0}, "dca": {"max_threshold": 0.99}}
    overrides = ["bootstrap.n_boot=500", "dca.max_threshold=0.95"]

    result = apply_overrides(config_dict, overrides)

    assert result["bootstrap"]["n_boot"] == 500
    assert result["bootstrap"]["seed"] == 0  # Unchanged
    assert result["dca"]["max_threshold"] == 0.95


def test_apply_overrides_list():
    """Test list parsing in overrides."""
    result = apply_overrides({"data": {}}, ["data.predictors=score,age", "imputation.targets=age"])

    assert result["data"]["predictors"] == ["score", "age"]
    assert result["imputation"]["targets"] == ["age"]


def test_apply_overrides_invalid_format():
    with pytest.raises(ValueError, match="key=value"):
        apply_overrides({}, ["bootstrap.n_boot"])


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("Yes", True),
        ("false", False),
        ("no", False),
        ("none", None),
        ("null", None),
        ("1", 1),
        ("0", 0),
        ("0.25", 0.25),
        ("loky", "loky"),
    ],
)
def test_parse_value(raw, expected):
    assert _parse_value(raw) == expected
    assert type(_parse_value(raw)) is type(expected)


def test_string_keys_not_coerced():
    result = apply_overrides({"data": {}}, ["data.id_col=123"])
    assert result["data"]["id_col"] == "123"


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_validation_config()
        assert config.bootstrap.n_boot == 200
        assert config.data.predictors == ["score"]

    def test_yaml_with_relative_paths(self, tmp_path):
        cfg = tmp_path / "run.yaml"
        cfg.write_text(
            yaml.safe_dump(
                {
                    "data": {"infile": "cohort.csv", "predictors": ["score", "age"]},
                    "bootstrap": {"n_boot": 100},
                    "output": {"outdir": "out"},
                }
            )
        )
        config = load_validation_config(cfg)

        assert config.data.infile == tmp_path.resolve() / "cohort.csv"
        assert config.output.outdir == tmp_path.resolve() / "out"
        assert config.bootstrap.n_boot == 100
        assert config.bootstrap.seed == 0  # default kept

    def test_base_inheritance(self, tmp_path):
        (tmp_path / "base.yaml").write_text(
            yaml.safe_dump({"bootstrap": {"n_boot": 100, "seed": 7}})
        )
        child = tmp_path / "child.yaml"
        child.write_text(yaml.safe_dump({"_base": "base.yaml", "bootstrap": {"n_boot": 300}}))

        merged = load_yaml(child)
        assert merged == {"bootstrap": {"n_boot": 300, "seed": 7}}

    def test_overrides_win_over_file(self, tmp_path):
        cfg = tmp_path / "run.yaml"
        cfg.write_text(yaml.safe_dump({"bootstrap": {"n_boot": 100}}))
        config = load_validation_config(cfg, overrides=["bootstrap.n_boot=60"])
        assert config.bootstrap.n_boot == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_validation_config(tmp_path / "nope.yaml")

    @pytest.mark.parametrize(
        "override",
        [
            "bootstrap.n_boot=0",
            "bootstrap.n_jobs=0",
            "bootstrap.backend=dask",
            "dca.max_threshold=1.0",
            "dca.extreme_thresholds=clip",
            "unknown_section.key=1",
        ],
    )
    def test_schema_errors_raise_configuration_error(self, override):
        with pytest.raises(ConfigurationError):
            load_validation_config(overrides=[override])

    def test_save_roundtrip(self, tmp_path):
        config = load_validation_config(overrides=["bootstrap.n_boot=75"])
        path = save_config(config, tmp_path / "resolved.yaml")
        reloaded = load_validation_config(path)
        assert reloaded.bootstrap.n_boot == 75


class TestCrossFieldValidation:
    def _config(self, **kwargs):
        raw = {
            "data": {"predictors": ["score", "age"]},
            "models": [
                {"name": "score alone", "terms": [{"variable": "score"}]},
                {"name": "score + age", "terms": [{"variable": "score"}, {"variable": "age"}]},
            ],
        }
        raw.update(kwargs)
        return ValidationConfig(**raw)

    def test_valid(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConfigValidationWarning)
            validate_validation_config(self._config())

    def test_undeclared_predictor(self):
        config = self._config(
            models=[{"name": "bmi", "terms": [{"variable": "bmi"}]}],
        )
        with pytest.raises(ConfigurationError, match="undeclared predictors"):
            validate_validation_config(config)

    def test_unknown_comparison(self):
        config = self._config(comparisons=[["score alone", "missing"]])
        with pytest.raises(ConfigurationError, match="unknown model 'missing'"):
            validate_validation_config(config)

    def test_self_comparison(self):
        config = self._config(comparisons=[["score alone", "score alone"]])
        with pytest.raises(ConfigurationError, match="with itself"):
            validate_validation_config(config)

    def test_duplicate_model_names(self):
        config = self._config(
            models=[
                {"name": "m", "terms": [{"variable": "score"}]},
                {"name": "m", "terms": [{"variable": "age"}]},
            ]
        )
        with pytest.raises(ConfigurationError, match="Duplicate"):
            validate_validation_config(config)

    def test_outcome_as_predictor(self):
        config = self._config(data={"predictors": ["score", "outcome"]})
        with pytest.raises(ConfigurationError, match="also listed as a predictor"):
            validate_validation_config(config)

    def test_all_issues_reported_together(self):
        config = self._config(
            comparisons=[["a", "b"]],
            linearity={"variables": ["bmi"]},
            imputation={"targets": ["bmi"]},
        )
        with pytest.raises(ConfigurationError) as exc:
            validate_validation_config(config)
        message = str(exc.value)
        assert "unknown model 'a'" in message
        assert "Linearity probes" in message
        assert "Imputation targets" in message

    def test_step_wider_than_grid(self):
        config = self._config(
            dca={"threshold_min": 0.1, "threshold_max": 0.2, "threshold_step": 0.5}
        )
        with pytest.raises(ConfigurationError, match="grid width"):
            validate_validation_config(config)

    def test_grid_entirely_above_ceiling(self):
        config = self._config(
            dca={"threshold_min": 0.995, "threshold_max": 1.0, "max_threshold": 0.99}
        )
        with pytest.raises(ConfigurationError, match="max_threshold"):
            validate_validation_config(config)

    def test_small_n_boot_warns(self):
        with pytest.warns(ConfigValidationWarning, match="n_boot"):
            validate_validation_config(self._config(bootstrap={"n_boot": 10}))

    def test_flagged_thresholds_warn(self):
        config = self._config(
            dca={"threshold_max": 1.0, "max_threshold": 0.99, "extreme_thresholds": "flag"}
        )
        with pytest.warns(ConfigValidationWarning, match="flagged"):
            validate_validation_config(config)
