"""Training module for the fedrounds system.

This module manages local shard optimization, federated aggregation, the
stopping policy, and round coordination over a persisted run directory.
"""

from .optimizers import OptimizerRegistry
from .local_trainer import ShardProcessor, ShardUpdate
from .aggregator import FedAvgAggregator
from .convergence import StoppingPolicy, StopDecision
from .orchestrator import (
    RunHandle,
    RoundOutcome,
    RunStatus,
    RoundCoordinator,
    initialize,
    advance,
    status,
    train,
    dispose
)

__all__ = [
    'OptimizerRegistry',
    'ShardProcessor',
    'ShardUpdate',
    'FedAvgAggregator',
    'StoppingPolicy',
    'StopDecision',
    'RunHandle',
    'RoundOutcome',
    'RunStatus',
    'RoundCoordinator',
    'initialize',
    'advance',
    'status',
    'train',
    'dispose'
]
