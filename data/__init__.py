"""Data module for the fedrounds system.

This module handles shard reading, formula schemas, and shard partitioning.
"""

from .shard_reader import ShardReader, ReaderRegistry, CSVShardReader, TSVShardReader, JSONShardReader
from .schema import FormulaSchema, INTERCEPT
from .partitioner import ShardPartitioner

__all__ = [
    'ShardReader',
    'ReaderRegistry',
    'CSVShardReader',
    'TSVShardReader',
    'JSONShardReader',
    'FormulaSchema',
    'INTERCEPT',
    'ShardPartitioner'
]
