"""Tests for run configuration loading and validation."""

import math
from pathlib import Path

import pytest
import yaml

from configs.config import RunConfig
from configs.config_loader import ConfigLoader
from utils.exceptions import ConfigurationError


@pytest.fixture
def config_dict():
    return {
        "run_name": "housing",
        "output_dir": "outputs/housing",
        "shards": ["shards/a.csv", "shards/b.csv"],
        "formula": "price ~ rooms + area",
        "epoch_budget": 50,
        "learning_rate": 0.01,
        "epsilon": "1e-4",
    }


def write_yaml(path, payload):
    with open(path, "w") as f:
        yaml.safe_dump(payload, f)
    return path


class TestConfigLoader:

    def test_load_resolves_relative_paths(self, tmp_path, config_dict):
        path = write_yaml(tmp_path / "run.yaml", config_dict)

        config = ConfigLoader.load_run_config(path)

        assert config.run_name == "housing"
        assert config.shards == [str(tmp_path / "shards/a.csv"), str(tmp_path / "shards/b.csv")]
        assert config.output_dir == tmp_path / "outputs/housing"
        assert config.run_dir == tmp_path / "outputs/housing" / "train_files"

    def test_defaults_and_numeric_coercion(self, config_dict):
        config = ConfigLoader.create_run_config(config_dict)

        assert config.epsilon == pytest.approx(1e-4)
        assert config.model == "linear"
        assert config.optimizer == "gradient_descent"
        assert config.reader == "csv"
        assert config.retain_snapshots is False
        assert config.init_strategy == "uniform"
        assert config.seed == 42

    def test_absolute_shard_paths_kept(self, tmp_path, config_dict):
        config_dict["shards"] = ["/data/a.csv"]
        config = ConfigLoader.create_run_config(config_dict, base_dir=tmp_path)
        assert config.shards == ["/data/a.csv"]

    def test_missing_key(self, config_dict):
        del config_dict["formula"]
        with pytest.raises(ConfigurationError, match="formula"):
            ConfigLoader.create_run_config(config_dict)

    def test_shards_must_be_a_list(self, config_dict):
        config_dict["shards"] = "shards/a.csv"
        with pytest.raises(ConfigurationError, match="list"):
            ConfigLoader.create_run_config(config_dict)

    def test_bad_number(self, config_dict):
        config_dict["learning_rate"] = "fast"
        with pytest.raises(ConfigurationError, match="Error creating config"):
            ConfigLoader.create_run_config(config_dict)

    def test_unparsable_formula_rejected_on_load(self, tmp_path, config_dict):
        config_dict["formula"] = "price rooms"
        path = write_yaml(tmp_path / "run.yaml", config_dict)
        with pytest.raises(ConfigurationError, match="Formula"):
            ConfigLoader.load_run_config(path)

    def test_retain_snapshots_must_be_boolean(self, config_dict):
        config_dict["retain_snapshots"] = "false"
        with pytest.raises(ConfigurationError, match="retain_snapshots"):
            ConfigLoader.create_run_config(config_dict)

        config_dict["retain_snapshots"] = True
        assert ConfigLoader.create_run_config(config_dict).retain_snapshots is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigLoader.load_yaml(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("shards: [a.csv\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigLoader.load_yaml(path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            ConfigLoader.load_yaml(path)

    def test_example_config_loads(self):
        example = Path(__file__).resolve().parent.parent / "configs" / "experiment.yaml"
        config = ConfigLoader.load_run_config(example)
        assert len(config.shards) == 3
        assert config.formula == "price ~ rooms + area"


class TestRunConfigValidation:

    def make(self, **overrides):
        params = dict(shards=["a.csv", "b.csv"], formula="y ~ x", epoch_budget=10,
                      learning_rate=0.1, epsilon=0.01)
        params.update(overrides)
        return RunConfig(**params)

    def test_valid(self):
        self.make().validate()

    @pytest.mark.parametrize("overrides, message", [
        ({"shards": []}, "must not be empty"),
        ({"shards": ["a.csv", "a.csv"]}, "duplicates"),
        ({"epoch_budget": 0}, "epoch_budget"),
        ({"epoch_budget": -3}, "epoch_budget"),
        ({"epoch_budget": 2.5}, "epoch_budget"),
        ({"learning_rate": 0.0}, "learning_rate"),
        ({"learning_rate": math.nan}, "learning_rate"),
        ({"epsilon": math.inf}, "epsilon"),
        ({"init_strategy": "normal"}, "init_strategy"),
        ({"formula": "y ~ a ~ b"}, "Formula"),
        ({"retain_snapshots": "false"}, "retain_snapshots"),
    ])
    def test_invalid(self, overrides, message):
        with pytest.raises(ConfigurationError, match=message):
            self.make(**overrides).validate()
