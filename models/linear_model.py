"""Generalized linear model families."""

import torch
import torch.nn.functional as F

from .base import ShardModel, ModelRegistry


@ModelRegistry.register('linear')
class LinearModel(ShardModel):
    """Linear regression with mean squared error loss."""
    
    def predict(self, params: torch.Tensor, X: torch.Tensor) -> torch.Tensor:
        return X @ params
    
    def loss(self, params: torch.Tensor, X: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        residuals = self.predict(params, X) - y
        return torch.mean(residuals ** 2)


@ModelRegistry.register('logistic')
class LogisticModel(ShardModel):
    """Logistic regression with binary cross-entropy loss.
    
    The response must hold 0/1 labels; predictions are probabilities.
    """
    
    def predict(self, params: torch.Tensor, X: torch.Tensor) -> torch.Tensor:
        return torch.sigmoid(X @ params)
    
    def loss(self, params: torch.Tensor, X: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        return F.binary_cross_entropy_with_logits(X @ params, y)
