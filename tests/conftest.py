"""
Shared pytest fixtures for fedrounds tests.
"""

import pandas as pd
import pytest

from configs.config import RunConfig


@pytest.fixture
def shard_dir(tmp_path):
    """Directory for shard files"""
    path = tmp_path / "shards"
    path.mkdir()
    return path


@pytest.fixture
def make_shards(shard_dir):
    """Write one CSV per row list and return the shard paths"""
    def _make(tables, prefix="shard"):
        paths = []
        for i, rows in enumerate(tables):
            path = shard_dir / f"{prefix}_{i}.csv"
            pd.DataFrame(rows).to_csv(path, index=False)
            paths.append(str(path))
        return paths
    return _make


@pytest.fixture
def make_config(tmp_path):
    """Build a RunConfig writing into a temporary output directory"""
    def _make(shards, **overrides):
        params = dict(
            run_name="test",
            shards=list(shards),
            formula="y ~ x - 1",
            epoch_budget=100,
            learning_rate=0.1,
            epsilon=-1e9,
            init_strategy="zeros",
            output_dir=tmp_path / "output",
        )
        params.update(overrides)
        return RunConfig(**params)
    return _make


@pytest.fixture
def three_point_shards(make_shards):
    """Three single-sample shards on the line y = 2x"""
    return make_shards([
        [{"x": 1.0, "y": 2.0}],
        [{"x": 2.0, "y": 4.0}],
        [{"x": 3.0, "y": 6.0}],
    ])
