"""Shard partitioner for simulating independently held data sources."""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional

from utils.exceptions import DataError
from utils.logging_utils import get_logger

logger = get_logger(__name__)

_WRITERS = {
    'csv': ('csv', lambda frame, path: frame.to_csv(path, index=False)),
    'tsv': ('tsv', lambda frame, path: frame.to_csv(path, sep='\t', index=False)),
    'json': ('json', lambda frame, path: frame.to_json(path, orient='records')),
}


class ShardPartitioner:
    """Splits one table into shard tables for a simulated federation.

    Supports two partitioning strategies:
    - iid: Shuffled rows dealt into equally sized shards
    - quantity: Shuffled rows split into shards of varying size
    """

    def __init__(
        self,
        num_shards: int,
        strategy: str = 'iid',
        seed: Optional[int] = None,
        min_samples: int = 1
    ):
        """Initialize the partitioner.

        Args:
            num_shards: Number of shards to create
            strategy: Partitioning strategy ('iid', 'quantity')
            seed: Seed for the row shuffle and shard sizes
            min_samples: Minimum rows per shard
        """
        if num_shards < 1:
            raise DataError(f"num_shards must be positive, got {num_shards}")
        if strategy not in ('iid', 'quantity'):
            raise DataError(f"Unknown partitioning strategy: {strategy}")

        self.num_shards = num_shards
        self.strategy = strategy
        self.min_samples = max(1, min_samples)
        self.rng = np.random.default_rng(seed)

        logger.info(f"Initialized partitioner: {num_shards} shards, strategy={strategy}")

    def partition(self, frame: pd.DataFrame) -> Dict[int, pd.DataFrame]:
        """Partition a table into shard tables.

        Args:
            frame: Complete table to partition

        Returns:
            Dictionary mapping shard index to its rows

        Raises:
            DataError: If the table is too small for the requested shards
        """
        n_samples = len(frame)
        if n_samples < self.num_shards * self.min_samples:
            raise DataError(
                f"Cannot split {n_samples} rows into {self.num_shards} shards "
                f"of at least {self.min_samples} rows"
            )

        if self.strategy == 'iid':
            sizes = self._iid_sizes(n_samples)
        else:
            sizes = self._quantity_sizes(n_samples)

        indices = self.rng.permutation(n_samples)

        partitions = {}
        start_idx = 0
        for shard_id, size in enumerate(sizes):
            end_idx = start_idx + size
            partitions[shard_id] = frame.iloc[np.sort(indices[start_idx:end_idx])].reset_index(drop=True)
            logger.info(f"Shard {shard_id}: {size} rows")
            start_idx = end_idx

        return partitions

    def _iid_sizes(self, n_samples: int) -> List[int]:
        base, remainder = divmod(n_samples, self.num_shards)
        return [base + (1 if i < remainder else 0) for i in range(self.num_shards)]

    def _quantity_sizes(self, n_samples: int) -> List[int]:
        # Exponential proportions give a few large shards and many small ones
        proportions = self.rng.exponential(scale=1.0, size=self.num_shards)
        proportions = proportions / proportions.sum()

        spare = n_samples - self.num_shards * self.min_samples
        sizes = (proportions * spare).astype(int) + self.min_samples

        # Rounding leftovers go to the largest shard
        sizes[int(np.argmax(sizes))] += n_samples - int(sizes.sum())

        return [int(s) for s in sizes]

    def write(
        self,
        frame: pd.DataFrame,
        output_dir: Path,
        fmt: str = 'csv',
        prefix: str = 'shard'
    ) -> List[Path]:
        """Partition a table and write one file per shard.

        Args:
            frame: Complete table to partition
            output_dir: Directory for the shard files
            fmt: File format ('csv', 'tsv', 'json')
            prefix: File name prefix

        Returns:
            Paths of the written shard files, in shard order
        """
        if fmt not in _WRITERS:
            raise DataError(f"Unknown shard format: {fmt}. Available: {sorted(_WRITERS)}")

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        suffix, writer = _WRITERS[fmt]
        partitions = self.partition(frame)
        paths = []
        for shard_id, shard_frame in partitions.items():
            path = output_dir / f"{prefix}_{shard_id}.{suffix}"
            writer(shard_frame, path)
            paths.append(path)

        self.generate_statistics(partitions, paths, output_dir)
        logger.info(f"Wrote {len(paths)} shards to {output_dir}")

        return paths

    def generate_statistics(
        self,
        partitions: Dict[int, pd.DataFrame],
        paths: List[Path],
        output_dir: Path
    ) -> pd.DataFrame:
        """Write a summary table of the shard files.

        Args:
            partitions: Shard tables keyed by shard index
            paths: Shard file paths, in shard order
            output_dir: Directory to save statistics

        Returns:
            DataFrame with one row per shard
        """
        stats = []
        for (shard_id, shard_frame), path in zip(partitions.items(), paths):
            stats.append({
                'shard_id': int(shard_id),
                'path': str(path),
                'num_rows': int(len(shard_frame)),
            })

        stats_df = pd.DataFrame(stats)
        stats_df.to_csv(Path(output_dir) / 'partition_statistics.csv', index=False)

        return stats_df
