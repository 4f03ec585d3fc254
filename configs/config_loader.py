"""Configuration loader for YAML files."""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional

from .config import RunConfig
from utils.exceptions import ConfigurationError


class ConfigLoader:
    """Loads and validates run configuration from YAML files."""

    @staticmethod
    def load_yaml(config_path: Path) -> Dict[str, Any]:
        """Load YAML configuration file.

        Args:
            config_path: Path to YAML file

        Returns:
            Configuration dictionary

        Raises:
            ConfigurationError: If file not found or invalid YAML
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {str(e)}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"Config file {config_path} must hold a mapping")

        return config

    @staticmethod
    def create_run_config(
        config_dict: Dict[str, Any],
        base_dir: Optional[Path] = None
    ) -> RunConfig:
        """Create RunConfig from dictionary.

        Args:
            config_dict: Configuration dictionary
            base_dir: Directory that relative shard and output paths refer to

        Returns:
            Validated RunConfig instance

        Raises:
            ConfigurationError: If required keys are missing or values invalid
        """
        try:
            shards = config_dict['shards']
            if isinstance(shards, str) or not isinstance(shards, (list, tuple)):
                raise ConfigurationError("'shards' must be a list of paths")

            output_dir = Path(config_dict.get('output_dir', 'outputs'))
            if base_dir is not None:
                shards = [str(ConfigLoader._resolve(base_dir, s)) for s in shards]
                output_dir = ConfigLoader._resolve(base_dir, output_dir)

            # YAML 1.1 reads '1e-4' as a string, so coerce numbers explicitly
            run_config = RunConfig(
                run_name=str(config_dict.get('run_name', 'run')),
                shards=[str(s) for s in shards],
                formula=config_dict['formula'],
                epoch_budget=int(config_dict['epoch_budget']),
                learning_rate=float(config_dict['learning_rate']),
                epsilon=float(config_dict['epsilon']),
                model=config_dict.get('model', 'linear'),
                optimizer=config_dict.get('optimizer', 'gradient_descent'),
                reader=config_dict.get('reader', 'csv'),
                retain_snapshots=config_dict.get('retain_snapshots', False),
                init_strategy=config_dict.get('init_strategy', 'uniform'),
                seed=int(config_dict.get('seed', 42)),
                output_dir=output_dir
            )

        except ConfigurationError:
            raise
        except KeyError as e:
            raise ConfigurationError(f"Missing required config key: {str(e)}") from e
        except Exception as e:
            raise ConfigurationError(f"Error creating config: {str(e)}") from e

        run_config.validate()
        return run_config

    @staticmethod
    def load_run_config(config_path: Path) -> RunConfig:
        """Load run configuration from YAML file.

        Relative shard paths and output directory are resolved against the
        directory of the YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            RunConfig instance
        """
        config_path = Path(config_path)
        config_dict = ConfigLoader.load_yaml(config_path)
        return ConfigLoader.create_run_config(config_dict, base_dir=config_path.parent)

    @staticmethod
    def _resolve(base_dir: Path, path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else Path(base_dir) / path
