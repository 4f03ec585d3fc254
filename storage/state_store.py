"""Durable key-value store backing a training run directory.

Records are JSON documents stored as ``<key>.json`` inside the run directory.
Single writes are atomic (temp file, fsync, rename). Multi-record updates go
through :meth:`StateStore.commit`, which writes a write-ahead log first so a
crash between the individual writes is repaired the next time the store is
opened.

The store assumes a single coordinating process. Two processes advancing the
same run directory race on the read-modify-write cycles and need external
mutual exclusion.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from utils.exceptions import StorageError
from utils.logging_utils import get_logger

logger = get_logger(__name__)

COMMIT_LOG_KEY = '_commit'


class StateStore:
    """JSON record store with atomic writes, CAS and batched commits."""

    def __init__(self, root: Path, create: bool = False):
        """Open a store rooted at a run directory.

        Args:
            root: Run directory holding the records
            create: Create the directory when it does not exist

        Raises:
            StorageError: If the directory is missing and create is False
        """
        self.root = Path(root)

        if create:
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Cannot create run directory {self.root}: {e}") from e
        elif not self.root.is_dir():
            raise StorageError(f"Run directory not found: {self.root}")

        self._recover()

    def path_for(self, key: str) -> Path:
        """Get the file path of a record key."""
        return self.root / f"{key}.json"

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def keys(self) -> List[str]:
        """List stored record keys, excluding the commit log."""
        return sorted(
            path.stem for path in self.root.glob('*.json')
            if path.stem != COMMIT_LOG_KEY
        )

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Read a record.

        Args:
            key: Record key

        Returns:
            Record dictionary, or None if the record does not exist

        Raises:
            StorageError: If the record cannot be read or parsed
        """
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, 'r') as f:
                record = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt record '{key}' at {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read record '{key}' at {path}: {e}") from e

        if not isinstance(record, dict):
            raise StorageError(
                f"Corrupt record '{key}' at {path}: expected an object, "
                f"got {type(record).__name__}"
            )

        return record

    def put(self, key: str, record: Dict[str, Any]):
        """Write a record atomically.

        Args:
            key: Record key
            record: JSON-serializable dictionary

        Raises:
            StorageError: If the write fails
        """
        self._atomic_write(self.path_for(key), record)
        logger.debug(f"Stored record '{key}'")

    def delete(self, key: str):
        """Delete a record; deleting a missing record is a no-op."""
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Cannot delete record '{key}' at {path}: {e}") from e
        logger.debug(f"Deleted record '{key}'")

    def compare_and_swap(
        self,
        key: str,
        expected: Optional[Dict[str, Any]],
        new: Dict[str, Any]
    ) -> bool:
        """Replace a record only if it still equals the expected value.

        Args:
            key: Record key
            expected: Record value the caller last read (None for absent)
            new: Replacement record

        Returns:
            True if the record was replaced, False if it had changed
        """
        current = self.get(key)
        if current != expected:
            logger.debug(f"Compare-and-swap on '{key}' lost: record changed")
            return False

        self.put(key, new)
        return True

    def commit(
        self,
        puts: Dict[str, Dict[str, Any]],
        deletes: Iterable[str] = ()
    ):
        """Apply several writes and deletes as one durable transaction.

        The batch is logged to ``_commit.json`` before it is applied, and the
        log is removed once every operation has landed. A leftover log is
        replayed when the store is next opened.

        Args:
            puts: Records to write, keyed by record key
            deletes: Record keys to delete
        """
        batch = {'puts': puts, 'deletes': list(deletes)}
        self._atomic_write(self.path_for(COMMIT_LOG_KEY), batch)
        self._apply(batch)
        self.delete(COMMIT_LOG_KEY)
        logger.debug(
            f"Committed {len(batch['puts'])} writes and "
            f"{len(batch['deletes'])} deletes"
        )

    def _apply(self, batch: Dict[str, Any]):
        for key, record in batch['puts'].items():
            self.put(key, record)
        for key in batch['deletes']:
            self.delete(key)

    def _recover(self):
        """Replay a commit log left behind by an interrupted commit."""
        batch = self.get(COMMIT_LOG_KEY)
        if batch is None:
            return

        if 'puts' not in batch or 'deletes' not in batch:
            raise StorageError(
                f"Corrupt commit log at {self.path_for(COMMIT_LOG_KEY)}"
            )

        logger.warning(
            f"Replaying interrupted commit in {self.root} "
            f"({len(batch['puts'])} writes, {len(batch['deletes'])} deletes)"
        )
        self._apply(batch)
        self.delete(COMMIT_LOG_KEY)

    def _atomic_write(self, path: Path, record: Dict[str, Any]):
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(path.parent), prefix=f".{path.stem}.", suffix='.tmp'
            )
            try:
                with os.fdopen(fd, 'w') as f:
                    json.dump(record, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot write record to {path}: {e}") from e
