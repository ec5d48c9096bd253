"""Unit tests for chunked and parallel execution."""

from __future__ import annotations

import time

import numpy as np
import pytest

from pycaline.compute.batch_processor import BatchProcessor
from pycaline.compute.parallel import ParallelExecutor, partition
from pycaline.core.engine import DispersionEngine
from pycaline.core.models import (
    CARBON_MONOXIDE,
    EvaluationTimeoutError,
    Link,
    ModelConfig,
    Receptor,
    Terrain,
)
from pycaline.data.meteorology import MeteorologyTable


def _make_table(n: int) -> MeteorologyTable:
    records = [
        (None, 1.5 + 0.25 * i, (170.0 + 13.0 * i) % 360.0, "ABCDEF"[i % 6], 300.0 + 50.0 * i)
        for i in range(n)
    ]
    return MeteorologyTable.from_records(records, site_class="rural")


def _make_engine(config: ModelConfig) -> DispersionEngine:
    links = [
        Link(-400.0, 0.0, 400.0, 0.0, 24.0, 1500.0, 4.0),
        Link(0.0, -300.0, 0.0, 300.0, 15.0, 600.0, 6.0),
    ]
    receptors = [Receptor(x, y) for x in (-150.0, 60.0, 220.0) for y in (-80.0, 40.0, 120.0)]
    return DispersionEngine(links, receptors, Terrain(0.3), CARBON_MONOXIDE, config=config)


def test_partition_even_split():
    assert partition(10, num_chunks=3) == [(0, 4), (4, 8), (8, 10)]


def test_partition_chunk_size_wins():
    assert partition(10, num_chunks=2, chunk_size=3) == [(0, 3), (3, 6), (6, 9), (9, 10)]


def test_partition_more_chunks_than_rows():
    assert partition(2, num_chunks=8) == [(0, 1), (1, 2)]
    assert partition(0, num_chunks=4) == []


def test_strategy_selection():
    processor = BatchProcessor(num_workers=4)
    assert processor.select_strategy(10, 10, 10) == 'sequential'
    assert processor.select_strategy(1000, 1000, 100) == 'parallel'
    assert processor.select_strategy(10**6, 10**3, 1) == 'sequential'
    assert BatchProcessor(num_workers=1).select_strategy(1000, 1000, 100) == 'sequential'


def test_unknown_strategy_rejected():
    engine = _make_engine(ModelConfig())
    with pytest.raises(ValueError):
        engine.evaluate(_make_table(2), strategy="gpu")


def test_chunked_sequential_matches_single_chunk():
    table = _make_table(7)
    whole = _make_engine(ModelConfig()).evaluate(table, strategy="sequential")
    chunked = _make_engine(ModelConfig(chunk_size=2)).evaluate(table, strategy="sequential")
    np.testing.assert_array_equal(whole.values, chunked.values)


def test_parallel_matches_sequential():
    table = _make_table(6)
    config = ModelConfig(num_workers=2)
    sequential = _make_engine(config).evaluate(table, strategy="sequential")
    parallel = _make_engine(config).evaluate(table, strategy="parallel")
    np.testing.assert_array_equal(sequential.values, parallel.values)


def test_sequential_timeout():
    def slow(item):
        time.sleep(0.05)
        return item

    with pytest.raises(EvaluationTimeoutError):
        ParallelExecutor.run_sequential(slow, [1, 2, 3], timeout=0.01)


def test_sequential_without_timeout_returns_in_order():
    assert ParallelExecutor.run_sequential(lambda i: i * 2, [3, 1, 2], None) == [6, 2, 4]


def test_map_single_item_runs_in_process():
    executor = ParallelExecutor(num_workers=4)
    assert executor.map(lambda i: i + 1, [41]) == [42]
    assert executor.map(lambda i: i, []) == []
