"""Shard processor running local optimization on one shard's data."""

import math
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import torch

from models.base import ModelRegistry
from .optimizers import OptimizerRegistry
from utils.exceptions import TrainingError
from utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class ShardUpdate:
    """Result of local optimization on one shard.

    Attributes:
        delta: Cumulative parameter change over all local steps
        loss: Loss at the final local iterate
    """
    delta: List[float]
    loss: float


class ShardProcessor:
    """Runs a fixed number of local optimizer steps from global parameters.

    Every call builds a fresh parameter tensor and optimizer, so the result
    depends only on the arguments. Re-running a shard after a crash gives the
    same update.
    """

    def __init__(self, model: str, optimizer: str):
        """Initialize the shard processor.

        Args:
            model: Model family tag
            optimizer: Optimizer tag

        Raises:
            ConfigurationError: If either tag is not registered
        """
        self.model_name = model
        self.optimizer_name = optimizer
        self.model = ModelRegistry.create(model)
        self.optimizer_factory = OptimizerRegistry.get(optimizer)

        logger.debug(f"ShardProcessor initialized: model={model}, optimizer={optimizer}")

    def process(
        self,
        parameters: Sequence[float],
        X: np.ndarray,
        y: np.ndarray,
        learning_rate: float,
        steps: int
    ) -> ShardUpdate:
        """Run local optimization on one shard.

        Args:
            parameters: Global parameters to start from
            X: Design matrix (n, p)
            y: Response vector (n,)
            learning_rate: Local step size
            steps: Number of local optimizer steps

        Returns:
            ShardUpdate with the cumulative delta and the final loss

        Raises:
            TrainingError: If dimensions disagree or the loss is not finite
        """
        if steps < 1:
            raise TrainingError(f"steps must be at least 1, got {steps}")

        start = torch.tensor(list(parameters), dtype=torch.float64)
        X_t = torch.as_tensor(X, dtype=torch.float64)
        y_t = torch.as_tensor(y, dtype=torch.float64)

        if X_t.ndim != 2 or X_t.shape[1] != start.shape[0]:
            raise TrainingError(
                f"Design matrix shape {tuple(X_t.shape)} does not match "
                f"parameter dimension {start.shape[0]}"
            )

        params = start.clone().requires_grad_(True)
        optimizer = self.optimizer_factory([params], learning_rate)

        for step in range(steps):
            optimizer.zero_grad()
            loss = self.model.loss(params, X_t, y_t)
            if not torch.isfinite(loss):
                raise TrainingError(f"Non-finite loss at local step {step + 1}")
            loss.backward()
            optimizer.step()

        with torch.no_grad():
            final_loss = self.model.loss(params, X_t, y_t).item()
            delta = (params - start).tolist()

        if not math.isfinite(final_loss):
            raise TrainingError(f"Non-finite loss after {steps} local steps")

        return ShardUpdate(delta=delta, loss=final_loss)
