"""Federated aggregation of shard deltas using FedAvg."""

import numpy as np
from typing import List, Sequence

from utils.exceptions import TrainingError
from utils.logging_utils import get_logger

logger = get_logger(__name__)


class FedAvgAggregator:
    """Aggregates shard updates using Federated Averaging.

    Every shard counts equally: the global delta is the elementwise
    arithmetic mean of the shard deltas.
    """

    def aggregate(self, deltas: List[Sequence[float]]) -> np.ndarray:
        """Average shard deltas.

        Args:
            deltas: One delta vector per shard

        Returns:
            Global delta vector

        Raises:
            TrainingError: If no deltas are given or dimensions differ
        """
        if not deltas:
            raise TrainingError("No shard deltas provided for aggregation")

        reference_dim = len(deltas[0])
        for i, delta in enumerate(deltas[1:], 1):
            if len(delta) != reference_dim:
                raise TrainingError(
                    f"Delta dimension mismatch: delta 0 has {reference_dim} entries, "
                    f"delta {i} has {len(delta)}"
                )

        stacked = np.asarray(deltas, dtype=np.float64)
        logger.debug(f"Aggregating deltas from {len(deltas)} shards")

        return stacked.mean(axis=0)

    def average_loss(self, losses: List[float]) -> float:
        """Average shard losses.

        Args:
            losses: One final local loss per shard

        Returns:
            Mean loss
        """
        if not losses:
            raise TrainingError("No shard losses provided for aggregation")
        return float(np.mean(losses))

    def apply(self, parameters: Sequence[float], delta: np.ndarray) -> List[float]:
        """Add a global delta to the parameters.

        Raises:
            TrainingError: If dimensions differ
        """
        if len(parameters) != len(delta):
            raise TrainingError(
                f"Parameter dimension {len(parameters)} does not match "
                f"delta dimension {len(delta)}"
            )
        return (np.asarray(parameters, dtype=np.float64) + delta).tolist()
