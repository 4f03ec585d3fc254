"""Models module for the fedrounds system.

This module implements the model families that shards optimize locally.
"""

from .base import ShardModel, ModelRegistry
from .linear_model import LinearModel, LogisticModel

__all__ = [
    'ShardModel',
    'ModelRegistry',
    'LinearModel',
    'LogisticModel'
]
