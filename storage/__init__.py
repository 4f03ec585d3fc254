"""Storage module for the fedrounds system.

This module persists the run registry, the shared model state and the
per-round snapshots in a durable key-value store.
"""

from .state_store import StateStore
from .records import (
    REGISTRY_KEY,
    MODEL_KEY,
    snapshot_key,
    RegistryRecord,
    ModelRecord,
    ShardEntry,
    SnapshotRecord
)

__all__ = [
    'StateStore',
    'REGISTRY_KEY',
    'MODEL_KEY',
    'snapshot_key',
    'RegistryRecord',
    'ModelRecord',
    'ShardEntry',
    'SnapshotRecord'
]
