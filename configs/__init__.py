"""Configuration module for the fedrounds system.

This module defines the run configuration dataclass and its YAML loader.
"""

from .config import RunConfig, INIT_STRATEGIES
from .config_loader import ConfigLoader

__all__ = [
    'RunConfig',
    'INIT_STRATEGIES',
    'ConfigLoader'
]
