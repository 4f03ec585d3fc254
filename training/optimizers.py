"""Local optimizer registry."""

from typing import Callable, Dict, List

import torch

from utils.exceptions import ConfigurationError

OptimizerFactory = Callable[[List[torch.Tensor], float], torch.optim.Optimizer]


class OptimizerRegistry:
    """Registry of optimizer factories keyed by tag.

    A factory takes the parameter tensors and a learning rate and returns a
    fresh ``torch.optim.Optimizer``.
    """

    _registry: Dict[str, OptimizerFactory] = {}

    @classmethod
    def register(cls, name: str):
        """Decorator to register an optimizer factory.

        Args:
            name: Tag to register the factory under
        """
        def decorator(factory):
            cls._registry[name] = factory
            return factory
        return decorator

    @classmethod
    def get(cls, name: str) -> OptimizerFactory:
        """Get a registered optimizer factory.

        Raises:
            ConfigurationError: If the tag is not registered
        """
        if name not in cls._registry:
            raise ConfigurationError(
                f"Optimizer '{name}' not found. "
                f"Available optimizers: {cls.list_optimizers()}"
            )
        return cls._registry[name]

    @classmethod
    def list_optimizers(cls) -> List[str]:
        return sorted(cls._registry.keys())


@OptimizerRegistry.register('gradient_descent')
def gradient_descent(params: List[torch.Tensor], learning_rate: float) -> torch.optim.Optimizer:
    return torch.optim.SGD(params, lr=learning_rate)


@OptimizerRegistry.register('momentum')
def momentum(params: List[torch.Tensor], learning_rate: float) -> torch.optim.Optimizer:
    return torch.optim.SGD(params, lr=learning_rate, momentum=0.9)


@OptimizerRegistry.register('adam')
def adam(params: List[torch.Tensor], learning_rate: float) -> torch.optim.Optimizer:
    return torch.optim.Adam(params, lr=learning_rate)
