"""Tests for the shard processor, aggregator, optimizers and stopping policy."""

import math

import numpy as np
import pytest

from models.base import ModelRegistry
from training.aggregator import FedAvgAggregator
from training.convergence import StoppingPolicy
from training.local_trainer import ShardProcessor
from training.optimizers import OptimizerRegistry
from utils.exceptions import ConfigurationError, TrainingError


class TestShardProcessor:

    def test_single_gradient_step_matches_closed_form(self):
        # loss = (x*b - y)^2, gradient = 2x(x*b - y)
        processor = ShardProcessor("linear", "gradient_descent")
        X = np.array([[2.0]])
        y = np.array([4.0])

        update = processor.process([0.5], X, y, learning_rate=0.1, steps=1)

        expected_b = 0.5 - 0.1 * 2 * 2.0 * (2.0 * 0.5 - 4.0)
        assert update.delta == pytest.approx([expected_b - 0.5], abs=1e-12)
        assert update.loss == pytest.approx((2.0 * expected_b - 4.0) ** 2, abs=1e-12)

    def test_delta_is_cumulative_over_steps(self):
        processor = ShardProcessor("linear", "gradient_descent")
        X = np.array([[1.0], [1.0]])
        y = np.array([1.0, 1.0])

        # b_{k+1} = b_k + 2 * lr * (1 - b_k)
        b = 0.0
        for _ in range(3):
            b = b + 2 * 0.1 * (1 - b)

        update = processor.process([0.0], X, y, learning_rate=0.1, steps=3)

        assert update.delta == pytest.approx([b], abs=1e-12)
        assert update.loss == pytest.approx((b - 1) ** 2, abs=1e-12)

    @pytest.mark.parametrize("optimizer", ["gradient_descent", "momentum", "adam"])
    def test_processing_is_pure(self, optimizer):
        processor = ShardProcessor("linear", optimizer)
        rng = np.random.default_rng(3)
        X = rng.normal(size=(10, 3))
        y = rng.normal(size=10)

        first = processor.process([0.1, 0.2, 0.3], X, y, learning_rate=0.05, steps=4)
        second = processor.process([0.1, 0.2, 0.3], X, y, learning_rate=0.05, steps=4)

        assert first == second

    def test_logistic_loss_at_origin(self):
        processor = ShardProcessor("logistic", "gradient_descent")
        X = np.array([[1.0, 0.0], [1.0, 1.0]])
        y = np.array([0.0, 1.0])

        update = processor.process([0.0, 0.0], X, y, learning_rate=1e-12, steps=1)

        assert update.loss == pytest.approx(math.log(2), abs=1e-9)

    def test_dimension_mismatch(self):
        processor = ShardProcessor("linear", "gradient_descent")
        with pytest.raises(TrainingError, match="does not match"):
            processor.process([0.0, 0.0], np.ones((3, 1)), np.ones(3), learning_rate=0.1, steps=1)

    def test_non_finite_loss(self):
        processor = ShardProcessor("linear", "gradient_descent")
        with pytest.raises(TrainingError, match="Non-finite"):
            processor.process([1.0], np.array([[1e200]]), np.array([0.0]), learning_rate=0.1, steps=1)

    def test_unknown_tags(self):
        with pytest.raises(ConfigurationError, match="Model 'tree'"):
            ShardProcessor("tree", "gradient_descent")
        with pytest.raises(ConfigurationError, match="Optimizer 'lbfgs'"):
            ShardProcessor("linear", "lbfgs")

    def test_registries_list_tags(self):
        assert ModelRegistry.list_models() == ["linear", "logistic"]
        assert OptimizerRegistry.list_optimizers() == ["adam", "gradient_descent", "momentum"]


class TestFedAvgAggregator:

    def test_elementwise_mean(self):
        aggregator = FedAvgAggregator()
        deltas = [[0.1, -2.0, 3.3], [0.2, 4.0, -1.1], [0.6, 1.0, 0.5]]

        result = aggregator.aggregate(deltas)

        expected = [(0.1 + 0.2 + 0.6) / 3, (-2.0 + 4.0 + 1.0) / 3, (3.3 - 1.1 + 0.5) / 3]
        np.testing.assert_allclose(result, expected, rtol=0, atol=1e-9)

    def test_apply_and_average_loss(self):
        aggregator = FedAvgAggregator()
        assert aggregator.apply([1.0, 2.0], np.array([0.5, -0.5])) == [1.5, 1.5]
        assert aggregator.average_loss([1.0, 2.0, 6.0]) == pytest.approx(3.0)

    def test_dimension_mismatch(self):
        aggregator = FedAvgAggregator()
        with pytest.raises(TrainingError, match="Delta dimension mismatch"):
            aggregator.aggregate([[1.0, 2.0], [1.0]])
        with pytest.raises(TrainingError, match="does not match"):
            aggregator.apply([1.0], np.array([1.0, 2.0]))

    def test_empty_input(self):
        aggregator = FedAvgAggregator()
        with pytest.raises(TrainingError):
            aggregator.aggregate([])
        with pytest.raises(TrainingError):
            aggregator.average_loss([])


class TestStoppingPolicy:

    def test_first_round_never_stops(self):
        policy = StoppingPolicy(epoch_budget=1, epsilon=10.0)
        decision = policy.evaluate(iteration=0, steps_per_round=5, old_loss=0.0, new_loss=3.0)
        assert not decision.stop

    def test_budget_exhaustion(self):
        policy = StoppingPolicy(epoch_budget=10, epsilon=-1e9)
        assert not policy.evaluate(7, 2, old_loss=2.0, new_loss=1.0).stop

        decision = policy.evaluate(8, 2, old_loss=2.0, new_loss=1.0)
        assert decision.stop
        assert decision.budget_exhausted
        assert not decision.stalled

    def test_stalled_improvement(self):
        policy = StoppingPolicy(epoch_budget=100, epsilon=0.05)
        assert not policy.evaluate(3, 1, old_loss=1.0, new_loss=0.9).stop

        decision = policy.evaluate(3, 1, old_loss=1.0, new_loss=0.96)
        assert decision.stalled
        assert not decision.diverged

    def test_regression_counts_as_stalled(self):
        policy = StoppingPolicy(epoch_budget=100, epsilon=0.0)
        decision = policy.evaluate(3, 1, old_loss=1.0, new_loss=1.5)
        assert decision.stop
        assert decision.stalled
        assert decision.diverged

    def test_zero_previous_loss(self):
        assert StoppingPolicy.relative_improvement(0.0, 0.0) == 0.0
        assert StoppingPolicy.relative_improvement(0.0, 1.0) == float("-inf")
        assert StoppingPolicy.relative_improvement(4.0, 3.0) == pytest.approx(0.25)
