"""Stopping policy evaluated at each aggregation barrier."""

from dataclasses import dataclass

from utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class StopDecision:
    """Outcome of the stopping policy for one completed round.

    Attributes:
        budget_exhausted: The next round would reach the epoch budget
        stalled: Relative loss improvement is at or below epsilon
        diverged: The loss got worse; always implies ``stalled``
    """
    budget_exhausted: bool = False
    stalled: bool = False
    diverged: bool = False

    @property
    def stop(self) -> bool:
        return self.budget_exhausted or self.stalled


class StoppingPolicy:
    """Budget exhaustion OR relative improvement below epsilon."""

    def __init__(self, epoch_budget: int, epsilon: float):
        self.epoch_budget = epoch_budget
        self.epsilon = epsilon

    def evaluate(
        self,
        iteration: int,
        steps_per_round: int,
        old_loss: float,
        new_loss: float
    ) -> StopDecision:
        """Decide whether training stops after the current round.

        The first completed round (``iteration == 0``) has no previous loss
        and never stops training.

        Args:
            iteration: Iteration counter before this round is counted
            steps_per_round: Local steps performed this round
            old_loss: Average loss of the previous round
            new_loss: Average loss of this round

        Returns:
            StopDecision
        """
        if iteration <= 0:
            return StopDecision()

        decision = StopDecision(
            budget_exhausted=iteration + steps_per_round >= self.epoch_budget
        )

        # A regressed loss gives a negative improvement, which also
        # satisfies the epsilon test
        improvement = self.relative_improvement(old_loss, new_loss)
        decision.stalled = improvement <= self.epsilon
        decision.diverged = new_loss > old_loss

        logger.debug(
            f"Stopping policy: improvement={improvement:.6g}, "
            f"epsilon={self.epsilon}, budget_exhausted={decision.budget_exhausted}"
        )

        return decision

    @staticmethod
    def relative_improvement(old_loss: float, new_loss: float) -> float:
        """Compute ``(old_loss - new_loss) / old_loss``.

        A previous loss of exactly zero cannot improve; it yields 0.0 (or
        ``-inf`` if the loss grew).
        """
        if old_loss == 0:
            return 0.0 if new_loss <= 0 else float('-inf')
        return (old_loss - new_loss) / old_loss
