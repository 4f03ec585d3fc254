"""Configuration dataclasses for the fedrounds system."""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from data.schema import FormulaSchema
from utils.exceptions import ConfigurationError

INIT_STRATEGIES = ('uniform', 'zeros')


@dataclass
class RunConfig:
    """Configuration for one federated training run.

    Attributes:
        run_name: Name of the run
        shards: Shard identifiers (file paths), one per data holder
        formula: Formula selecting response and features ('y ~ x1 + x2')
        epoch_budget: Maximum cumulative local steps
        learning_rate: Step size of the local optimizer
        epsilon: Stop when relative loss improvement falls to this value
        model: Model family tag ('linear', 'logistic')
        optimizer: Local optimizer tag ('gradient_descent', 'momentum', 'adam')
        reader: Shard reader tag ('csv', 'tsv', 'json')
        retain_snapshots: Keep every round's snapshot after aggregation
        init_strategy: Parameter initialization ('uniform', 'zeros')
        seed: Random seed for parameter initialization
        output_dir: Directory holding the run state
    """
    shards: List[str]
    formula: str
    epoch_budget: int
    learning_rate: float
    epsilon: float
    run_name: str = "run"
    model: str = "linear"
    optimizer: str = "gradient_descent"
    reader: str = "csv"
    retain_snapshots: bool = False
    init_strategy: str = "uniform"
    seed: int = 42
    output_dir: Path = field(default_factory=lambda: Path("outputs"))

    @property
    def run_dir(self) -> Path:
        """Directory holding the registry, model and snapshot records."""
        return Path(self.output_dir) / "train_files"

    def validate(self):
        """Validate field values.

        Raises:
            ConfigurationError: If any value is invalid
        """
        if not self.shards:
            raise ConfigurationError("Shard list must not be empty")
        FormulaSchema.parse(self.formula)
        if len(set(self.shards)) != len(self.shards):
            duplicates = sorted({s for s in self.shards if self.shards.count(s) > 1})
            raise ConfigurationError(f"Shard list contains duplicates: {duplicates}")
        if isinstance(self.epoch_budget, bool) or not isinstance(self.epoch_budget, int) \
                or self.epoch_budget <= 0:
            raise ConfigurationError(
                f"epoch_budget must be a positive integer, got {self.epoch_budget!r}"
            )
        if not math.isfinite(self.learning_rate) or self.learning_rate <= 0:
            raise ConfigurationError(
                f"learning_rate must be positive, got {self.learning_rate!r}"
            )
        if not math.isfinite(self.epsilon):
            raise ConfigurationError(f"epsilon must be finite, got {self.epsilon!r}")
        if not isinstance(self.retain_snapshots, bool):
            raise ConfigurationError(
                f"retain_snapshots must be true or false, got {self.retain_snapshots!r}"
            )
        if self.init_strategy not in INIT_STRATEGIES:
            raise ConfigurationError(
                f"Unknown init_strategy '{self.init_strategy}'. "
                f"Available: {list(INIT_STRATEGIES)}"
            )
