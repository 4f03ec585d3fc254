"""Record types persisted in a run directory."""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional

from utils.exceptions import StorageError

REGISTRY_KEY = 'registry'
MODEL_KEY = 'model'


def snapshot_key(iteration: int) -> str:
    """Get the record key of the snapshot started at an iteration."""
    return f"iter{iteration}"


def _require(record: Dict[str, Any], fields: Iterable[str], name: str):
    missing = [f for f in fields if f not in record]
    if missing:
        raise StorageError(f"Record '{name}' is missing fields: {missing}")


@dataclass
class RegistryRecord:
    """Run configuration; only ``iteration`` changes after initialization.

    Attributes:
        shards: Shard identifiers (file paths)
        model: Model family tag
        optimizer: Local optimizer tag
        reader: Shard reader tag
        formula: Formula selecting response and features
        epoch_budget: Maximum cumulative local steps
        learning_rate: Local step size
        epsilon: Relative loss improvement threshold
        retain_snapshots: Keep each round's snapshot after aggregation
        init_strategy: How parameters are drawn at first shard contact
        seed: Seed for parameter initialization
        iteration: Cumulative local steps of all completed rounds
    """
    shards: List[str]
    model: str
    optimizer: str
    reader: str
    formula: str
    epoch_budget: int
    learning_rate: float
    epsilon: float
    retain_snapshots: bool = False
    init_strategy: str = 'uniform'
    seed: int = 42
    iteration: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'RegistryRecord':
        _require(
            record,
            ['shards', 'model', 'optimizer', 'reader', 'formula',
             'epoch_budget', 'learning_rate', 'epsilon', 'iteration'],
            REGISTRY_KEY
        )
        return cls(
            shards=list(record['shards']),
            model=record['model'],
            optimizer=record['optimizer'],
            reader=record['reader'],
            formula=record['formula'],
            epoch_budget=int(record['epoch_budget']),
            learning_rate=float(record['learning_rate']),
            epsilon=float(record['epsilon']),
            retain_snapshots=bool(record.get('retain_snapshots', False)),
            init_strategy=record.get('init_strategy', 'uniform'),
            seed=int(record.get('seed', 42)),
            iteration=int(record['iteration'])
        )


@dataclass
class ModelRecord:
    """Globally shared model state.

    Attributes:
        parameters: Parameter vector, None until the first shard is touched
        features: Design matrix column names matching ``parameters``
        average_loss: Mean shard loss of the last completed round
        done: Terminal convergence flag
    """
    parameters: Optional[List[float]] = None
    features: Optional[List[str]] = None
    average_loss: float = 0.0
    done: bool = False

    @property
    def initialized(self) -> bool:
        return self.parameters is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'ModelRecord':
        _require(record, ['average_loss', 'done'], MODEL_KEY)
        parameters = record.get('parameters')
        features = record.get('features')
        return cls(
            parameters=[float(p) for p in parameters] if parameters is not None else None,
            features=list(features) if features is not None else None,
            average_loss=float(record['average_loss']),
            done=bool(record['done'])
        )


@dataclass
class ShardEntry:
    """Result of local optimization on one shard."""
    delta: List[float]
    loss: float


@dataclass
class SnapshotRecord:
    """Per-round ledger of recorded shard results.

    Attributes:
        iteration: Iteration counter when the round started
        entries: Shard results keyed by shard identifier
        steps_per_round: Local steps every shard of this round runs
    """
    iteration: int
    entries: Dict[str, ShardEntry] = field(default_factory=dict)
    steps_per_round: Optional[int] = None

    @property
    def key(self) -> str:
        return snapshot_key(self.iteration)

    def is_complete(self, shards: Iterable[str]) -> bool:
        """Check whether every shard has an entry."""
        return all(shard in self.entries for shard in shards)

    def pending(self, shards: Iterable[str]) -> List[str]:
        """Get shards without an entry, in registry order."""
        return [shard for shard in shards if shard not in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'iteration': self.iteration,
            'steps_per_round': self.steps_per_round,
            'entries': {
                shard: {'delta': entry.delta, 'loss': entry.loss}
                for shard, entry in self.entries.items()
            }
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'SnapshotRecord':
        _require(record, ['iteration', 'entries'], 'snapshot')
        try:
            entries = {
                shard: ShardEntry(
                    delta=[float(d) for d in entry['delta']],
                    loss=float(entry['loss'])
                )
                for shard, entry in record['entries'].items()
            }
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(
                f"Corrupt snapshot for iteration {record['iteration']}: {e}"
            ) from e
        steps = record.get('steps_per_round')
        return cls(
            iteration=int(record['iteration']),
            entries=entries,
            steps_per_round=int(steps) if steps is not None else None
        )
