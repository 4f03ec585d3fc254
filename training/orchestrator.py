"""Round coordinator for synchronous federated training over file shards.

A run directory holds three kinds of records: the registry (run
configuration plus the iteration counter), the model (shared parameters,
average loss, terminal flag) and one snapshot per open round. Each call to
:func:`advance` either records results for reachable shards or, once every
shard has reported, aggregates the round:

    INITIALIZING -> ROUND_BUILDING (resumable) -> ROUND_AGGREGATING
                 -> ROUND_BUILDING | CONVERGED

Progress is durable after every shard, so an interrupted call resumes where
it stopped. The aggregation writes model, registry and snapshot deletion in
one commit.

Only one process may advance a run directory at a time. Concurrent callers
race on the record writes; use a lock file or a single-writer discipline.
"""

import shutil
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from configs.config import RunConfig
from data.schema import FormulaSchema
from data.shard_reader import ReaderRegistry
from models.base import ModelRegistry
from storage.records import (
    REGISTRY_KEY,
    MODEL_KEY,
    snapshot_key,
    RegistryRecord,
    ModelRecord,
    ShardEntry,
    SnapshotRecord
)
from storage.state_store import StateStore
from .aggregator import FedAvgAggregator
from .convergence import StoppingPolicy
from .local_trainer import ShardProcessor
from .optimizers import OptimizerRegistry
from utils.exceptions import ConfigurationError, StorageError, TrainingError
from utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunHandle:
    """Reference to the persisted state of one run."""
    root: Path

    def __post_init__(self):
        object.__setattr__(self, 'root', Path(self.root))


@dataclass
class RoundOutcome:
    """Result of one :func:`advance` call.

    Attributes:
        progressed: A shard was recorded or a round was aggregated
        completed_round: This call aggregated a round
        converged: The model is in its terminal state
        iteration: Iteration counter after the call
        average_loss: Average loss of the last completed round
        recorded_shards: Shards recorded by this call
        pending_shards: Shards still missing from the open round
        diverged: The aggregated round's loss was worse than the previous one
    """
    progressed: bool
    completed_round: bool
    converged: bool
    iteration: int
    average_loss: float
    recorded_shards: List[str] = field(default_factory=list)
    pending_shards: List[str] = field(default_factory=list)
    diverged: bool = False


@dataclass
class RunStatus:
    """Snapshot of a run's global state."""
    iteration: int
    average_loss: float
    done: bool
    parameters: Optional[List[float]] = None
    features: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'iteration': self.iteration,
            'average_loss': self.average_loss,
            'done': self.done,
            'parameters': self.parameters,
            'features': self.features
        }


class RoundCoordinator:
    """Drives training rounds against one run directory.

    The registry's model, optimizer and reader tags and its formula are
    resolved once when the coordinator is built; the iteration counter and
    the model are re-read on every call.
    """

    def __init__(self, handle: RunHandle):
        """Open a run for round advancement.

        Args:
            handle: Handle returned by :func:`initialize`

        Raises:
            StorageError: If the run's records are missing or corrupt
            ConfigurationError: If the registry names unknown tags
        """
        self.handle = handle
        self.store = StateStore(handle.root)

        registry = self._load_registry()
        self.shards = list(registry.shards)
        self.schema = FormulaSchema.parse(registry.formula)
        self.reader = ReaderRegistry.create(registry.reader)
        self.processor = ShardProcessor(registry.model, registry.optimizer)
        self.aggregator = FedAvgAggregator()
        self.policy = StoppingPolicy(registry.epoch_budget, registry.epsilon)

    def advance(self, steps_per_round: int = 1, verbose: bool = False) -> RoundOutcome:
        """Execute one step of the round state machine.

        Args:
            steps_per_round: Local optimizer steps per shard per round
            verbose: Log progress at INFO instead of DEBUG

        Returns:
            RoundOutcome describing what the call did

        Raises:
            ConfigurationError: If steps_per_round is invalid
            StorageError: If persisted records are unreadable
            DataError: If a reachable shard fails to load
            TrainingError: If local optimization fails
        """
        if isinstance(steps_per_round, bool) or not isinstance(steps_per_round, int) \
                or steps_per_round < 1:
            raise ConfigurationError(
                f"steps_per_round must be a positive integer, got {steps_per_round!r}"
            )

        log = logger.info if verbose else logger.debug

        registry = self._load_registry()
        model = self._load_model()

        if model.done:
            log("Nothing to do. Model is already converged.")
            return RoundOutcome(
                progressed=False,
                completed_round=False,
                converged=True,
                iteration=registry.iteration,
                average_loss=model.average_loss
            )

        snapshot = self._open_snapshot(registry, steps_per_round, log)

        if snapshot.is_complete(self.shards):
            return self._aggregate(registry, model, snapshot, log)

        return self._record_shards(registry, model, snapshot, log)

    def status(self) -> RunStatus:
        """Get the current global state."""
        registry = self._load_registry()
        model = self._load_model()
        return RunStatus(
            iteration=registry.iteration,
            average_loss=model.average_loss,
            done=model.done,
            parameters=model.parameters,
            features=model.features
        )

    def _open_snapshot(self, registry: RegistryRecord, steps_per_round: int, log) -> SnapshotRecord:
        """Resume the snapshot of the current round or start a new one."""
        key = snapshot_key(registry.iteration)
        record = self.store.get(key)

        if record is None:
            log(f"Entering iteration {registry.iteration}")
            snapshot = SnapshotRecord(
                iteration=registry.iteration,
                steps_per_round=steps_per_round
            )
            self.store.put(key, snapshot.to_dict())
            return snapshot

        snapshot = self._parse(SnapshotRecord, record, key)
        if snapshot.steps_per_round is None:
            snapshot.steps_per_round = steps_per_round
        elif snapshot.steps_per_round != steps_per_round:
            raise ConfigurationError(
                f"Round at iteration {registry.iteration} was started with "
                f"steps_per_round={snapshot.steps_per_round}, got {steps_per_round}"
            )

        log(
            f"Resuming iteration {registry.iteration}: "
            f"{len(snapshot.entries)}/{len(self.shards)} shards recorded"
        )
        return snapshot

    def _record_shards(
        self,
        registry: RegistryRecord,
        model: ModelRecord,
        snapshot: SnapshotRecord,
        log
    ) -> RoundOutcome:
        """Run local optimization on every reachable shard still missing."""
        recorded = []

        for shard in snapshot.pending(self.shards):
            if not self.reader.is_reachable(shard):
                log(f"\tShard {shard} unreachable, deferring")
                continue

            log(f"\tProcessing {shard}")

            frame = self.reader.read(shard)
            model = self._ensure_initialized(registry, model, frame, shard)
            X, y = self.schema.design_matrix(frame, model.features, source=shard)

            try:
                update = self.processor.process(
                    model.parameters, X, y,
                    learning_rate=registry.learning_rate,
                    steps=snapshot.steps_per_round
                )
            except TrainingError as e:
                raise TrainingError(f"Shard {shard}: {e}") from e

            snapshot.entries[shard] = ShardEntry(delta=update.delta, loss=update.loss)
            self.store.put(snapshot.key, snapshot.to_dict())
            recorded.append(shard)

            log(f"\t  loss={update.loss:.6g}")

        return RoundOutcome(
            progressed=bool(recorded),
            completed_round=False,
            converged=False,
            iteration=registry.iteration,
            average_loss=model.average_loss,
            recorded_shards=recorded,
            pending_shards=snapshot.pending(self.shards)
        )

    def _ensure_initialized(
        self,
        registry: RegistryRecord,
        model: ModelRecord,
        frame,
        shard: str
    ) -> ModelRecord:
        """Fix the parameter dimension and draw initial parameters once."""
        if model.initialized:
            return model

        features = self.schema.resolve(frame, source=shard)
        # Nothing is stored unless this shard yields a usable design matrix
        self.schema.design_matrix(frame, features, source=shard)

        if registry.init_strategy == 'zeros':
            parameters = [0.0] * len(features)
        else:
            rng = np.random.default_rng(registry.seed)
            parameters = rng.uniform(size=len(features)).tolist()

        initialized = replace(model, parameters=parameters, features=features)

        if not self.store.compare_and_swap(MODEL_KEY, model.to_dict(), initialized.to_dict()):
            # Another call initialized the model first; use its starting point
            current = self._load_model()
            if not current.initialized:
                raise StorageError(
                    f"Model record changed during initialization in {self.handle.root}"
                )
            return current

        logger.info(f"Initialized {len(parameters)} parameters: {features}")
        return initialized

    def _aggregate(
        self,
        registry: RegistryRecord,
        model: ModelRecord,
        snapshot: SnapshotRecord,
        log
    ) -> RoundOutcome:
        """Average the round's shard results and advance the global state."""
        if not model.initialized:
            raise StorageError(
                f"Snapshot {snapshot.key} is complete but the model has no parameters"
            )

        entries = [snapshot.entries[shard] for shard in self.shards]

        delta = self.aggregator.aggregate([entry.delta for entry in entries])
        parameters = self.aggregator.apply(model.parameters, delta)
        new_loss = self.aggregator.average_loss([entry.loss for entry in entries])

        log(f"  >> Calculate new parameters which give a loss of {new_loss:.6g}")

        steps = snapshot.steps_per_round
        decision = self.policy.evaluate(registry.iteration, steps, model.average_loss, new_loss)

        updated_model = replace(
            model,
            parameters=parameters,
            average_loss=new_loss,
            done=decision.stop
        )
        updated_registry = replace(registry, iteration=registry.iteration + steps)

        deletes = []
        if registry.retain_snapshots:
            log(f"  >> Keeping {snapshot.key}")
        else:
            log(f"  >> Removing {snapshot.key}")
            deletes.append(snapshot.key)

        self.store.commit(
            {
                MODEL_KEY: updated_model.to_dict(),
                REGISTRY_KEY: updated_registry.to_dict()
            },
            deletes
        )

        if decision.stop:
            if decision.diverged:
                logger.warning(
                    f"Loss increased from {model.average_loss:.6g} to {new_loss:.6g}; "
                    f"stopping at iteration {updated_registry.iteration}"
                )
            reason = 'epoch budget exhausted' if decision.budget_exhausted \
                else 'loss improvement below epsilon'
            logger.info(f"Converged at iteration {updated_registry.iteration}: {reason}")

        return RoundOutcome(
            progressed=True,
            completed_round=True,
            converged=decision.stop,
            iteration=updated_registry.iteration,
            average_loss=new_loss,
            diverged=decision.diverged
        )

    def _load_registry(self) -> RegistryRecord:
        record = self.store.get(REGISTRY_KEY)
        if record is None:
            raise StorageError(f"No registry found in {self.handle.root}")
        return self._parse(RegistryRecord, record, REGISTRY_KEY)

    def _load_model(self) -> ModelRecord:
        record = self.store.get(MODEL_KEY)
        if record is None:
            raise StorageError(f"No model found in {self.handle.root}")
        return self._parse(ModelRecord, record, MODEL_KEY)

    def _parse(self, record_class, record: Dict[str, Any], key: str):
        try:
            return record_class.from_dict(record)
        except (TypeError, ValueError, AttributeError) as e:
            raise StorageError(
                f"Corrupt record '{key}' at {self.store.path_for(key)}: {e}"
            ) from e


def initialize(config: RunConfig, overwrite: bool = False) -> RunHandle:
    """Create the registry and model records of a new run.

    Args:
        config: Run configuration
        overwrite: Discard any state already stored in the run directory

    Returns:
        Handle of the new run

    Raises:
        ConfigurationError: If the config is invalid, names an unknown tag, or
            the run directory holds state and overwrite is False
    """
    config.validate()
    ModelRegistry.get(config.model)
    OptimizerRegistry.get(config.optimizer)
    ReaderRegistry.get(config.reader)

    run_dir = config.run_dir

    if overwrite:
        if run_dir.exists():
            logger.info(f"Overwriting existing run state in {run_dir}")
            shutil.rmtree(run_dir)
        else:
            logger.warning(f"Nothing to overwrite, {run_dir} does not exist.")
    elif run_dir.exists():
        # Opening the store would replay a pending commit log, so only list files
        existing = sorted(p.stem for p in run_dir.glob('*.json'))
        if existing:
            raise ConfigurationError(
                f"{run_dir} already contains run state {existing}. "
                f"Remove it first or set overwrite=True."
            )

    store = StateStore(run_dir, create=True)

    registry = RegistryRecord(
        shards=list(config.shards),
        model=config.model,
        optimizer=config.optimizer,
        reader=config.reader,
        formula=config.formula,
        epoch_budget=config.epoch_budget,
        learning_rate=config.learning_rate,
        epsilon=config.epsilon,
        retain_snapshots=config.retain_snapshots,
        init_strategy=config.init_strategy,
        seed=config.seed,
        iteration=0
    )
    store.commit({
        REGISTRY_KEY: registry.to_dict(),
        MODEL_KEY: ModelRecord().to_dict()
    })

    logger.info(
        f"Initialized run '{config.run_name}' in {run_dir}: "
        f"{len(config.shards)} shards, model={config.model}, "
        f"optimizer={config.optimizer}"
    )

    return RunHandle(run_dir)


def advance(
    handle: RunHandle,
    steps_per_round: int = 1,
    verbose: bool = False
) -> RoundOutcome:
    """Advance a run by one step of the round state machine.

    Once the run has converged the call returns immediately without
    touching any record.
    """
    return RoundCoordinator(handle).advance(steps_per_round=steps_per_round, verbose=verbose)


def status(handle: RunHandle) -> RunStatus:
    """Get the iteration counter, average loss and terminal flag of a run."""
    return RoundCoordinator(handle).status()


def train(
    handle: RunHandle,
    steps_per_round: int = 1,
    max_calls: Optional[int] = None,
    verbose: bool = False
) -> List[RoundOutcome]:
    """Call :func:`advance` repeatedly.

    Stops when the run converges, when a call makes no progress (every
    pending shard is unreachable), or after ``max_calls`` calls.

    Returns:
        Outcome of every call, in order
    """
    coordinator = RoundCoordinator(handle)
    outcomes = []

    while max_calls is None or len(outcomes) < max_calls:
        outcome = coordinator.advance(steps_per_round=steps_per_round, verbose=verbose)
        outcomes.append(outcome)

        if outcome.converged or not outcome.progressed:
            break

    if not outcomes:
        return outcomes

    completed = sum(1 for o in outcomes if o.completed_round)
    logger.info(
        f"Training stopped after {len(outcomes)} calls, {completed} completed rounds "
        f"(iteration={outcomes[-1].iteration}, converged={outcomes[-1].converged})"
    )

    return outcomes


def dispose(handle: RunHandle):
    """Delete every record of a run.

    Raises:
        StorageError: If the run directory cannot be removed
    """
    try:
        shutil.rmtree(handle.root)
    except FileNotFoundError:
        logger.warning(f"Nothing to dispose, {handle.root} does not exist.")
        return
    except OSError as e:
        raise StorageError(f"Cannot remove run directory {handle.root}: {e}") from e

    logger.info(f"Disposed run state in {handle.root}")
