"""Model family interface and tag registry."""

from abc import ABC, abstractmethod
from typing import Dict, List

import torch

from utils.exceptions import ConfigurationError


class ShardModel(ABC):
    """Abstract base class for model families trained on shards.
    
    A model family only defines the loss of a parameter vector on a design
    matrix. It carries no state, so the same instance can evaluate any shard.
    """
    
    @abstractmethod
    def predict(self, params: torch.Tensor, X: torch.Tensor) -> torch.Tensor:
        """Compute predictions.
        
        Args:
            params: Parameter vector (p,)
            X: Design matrix (n, p)
            
        Returns:
            Predictions (n,)
        """
        pass
    
    @abstractmethod
    def loss(self, params: torch.Tensor, X: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
        """Compute the scalar training loss.
        
        Args:
            params: Parameter vector (p,)
            X: Design matrix (n, p)
            y: Response vector (n,)
            
        Returns:
            Scalar loss tensor
        """
        pass


class ModelRegistry:
    """Registry for model families keyed by tag."""
    
    _registry: Dict[str, type] = {}
    
    @classmethod
    def register(cls, name: str):
        """Decorator to register a model family.
        
        Args:
            name: Tag to register the model under
            
        Example:
            @ModelRegistry.register('linear')
            class LinearModel(ShardModel):
                ...
        """
        def decorator(model_class):
            cls._registry[name] = model_class
            return model_class
        return decorator
    
    @classmethod
    def get(cls, name: str) -> type:
        """Get a registered model class.
        
        Raises:
            ConfigurationError: If the tag is not registered
        """
        if name not in cls._registry:
            raise ConfigurationError(
                f"Model '{name}' not found. "
                f"Available models: {cls.list_models()}"
            )
        return cls._registry[name]
    
    @classmethod
    def create(cls, name: str) -> ShardModel:
        return cls.get(name)()
    
    @classmethod
    def list_models(cls) -> List[str]:
        return sorted(cls._registry.keys())
