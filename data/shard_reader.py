"""Shard readers: reachability probes and table loading."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List

import pandas as pd

from utils.exceptions import ConfigurationError, DataError
from utils.logging_utils import get_logger

logger = get_logger(__name__)


class ShardReader(ABC):
    """Abstract base class for loading a shard's local table.

    A shard is identified by a file path. A shard whose file is absent is
    treated as temporarily unreachable rather than broken.
    """

    def is_reachable(self, shard: str) -> bool:
        """Probe whether a shard can be read right now.

        Args:
            shard: Shard identifier

        Returns:
            True if the shard's file is present
        """
        return Path(shard).is_file()

    def read(self, shard: str) -> pd.DataFrame:
        """Load a shard's table.

        Args:
            shard: Shard identifier

        Returns:
            Shard data as a DataFrame

        Raises:
            DataError: If the shard cannot be loaded or is empty
        """
        try:
            frame = self._load(Path(shard))
        except DataError:
            raise
        except Exception as e:
            raise DataError(f"Failed to load shard {shard}: {e}") from e

        if frame.empty:
            raise DataError(f"Shard {shard} contains no rows")

        logger.debug(f"Loaded shard {shard}: {len(frame)} rows, {len(frame.columns)} columns")
        return frame

    @abstractmethod
    def _load(self, path: Path) -> pd.DataFrame:
        pass


class ReaderRegistry:
    """Registry for shard reader implementations keyed by tag."""

    _registry: Dict[str, type] = {}

    @classmethod
    def register(cls, name: str):
        """Decorator to register a reader class.

        Args:
            name: Tag to register the reader under
        """
        def decorator(reader_class):
            cls._registry[name] = reader_class
            return reader_class
        return decorator

    @classmethod
    def get(cls, name: str) -> type:
        """Get a registered reader class.

        Raises:
            ConfigurationError: If the tag is not registered
        """
        if name not in cls._registry:
            raise ConfigurationError(
                f"Reader '{name}' not found. "
                f"Available readers: {cls.list_readers()}"
            )
        return cls._registry[name]

    @classmethod
    def create(cls, name: str) -> ShardReader:
        return cls.get(name)()

    @classmethod
    def list_readers(cls) -> List[str]:
        return sorted(cls._registry.keys())


@ReaderRegistry.register('csv')
class CSVShardReader(ShardReader):
    """Comma separated shard files."""

    def _load(self, path: Path) -> pd.DataFrame:
        return pd.read_csv(path)


@ReaderRegistry.register('tsv')
class TSVShardReader(ShardReader):
    """Tab separated shard files."""

    def _load(self, path: Path) -> pd.DataFrame:
        return pd.read_csv(path, sep='\t')


@ReaderRegistry.register('json')
class JSONShardReader(ShardReader):
    """JSON shard files holding a list of records."""

    def _load(self, path: Path) -> pd.DataFrame:
        return pd.read_json(path, orient='records')
