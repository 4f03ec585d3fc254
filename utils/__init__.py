"""Utility module for the fedrounds system.

This module provides common utilities, exceptions, and logging functionality.
"""

from .exceptions import (
    FedRoundsError,
    ConfigurationError,
    StorageError,
    DataError,
    TrainingError
)
from .logging_utils import setup_logger, get_logger

__all__ = [
    'FedRoundsError',
    'ConfigurationError',
    'StorageError',
    'DataError',
    'TrainingError',
    'setup_logger',
    'get_logger'
]
