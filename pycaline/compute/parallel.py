"""ParallelExecutor: data-parallel evaluation over the conditions axis.

The conditions axis is split into contiguous chunks. Each chunk is
evaluated by a top-level worker function over read-only inputs and
returns its start row together with its block of results, so assembling
the matrix does not depend on the order in which workers finish.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import numpy as np

from pycaline.core.models import EvaluationTimeoutError
from pycaline.physics.plume import PlumeKernel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ChunkTask:
    """One contiguous run of conditions to evaluate at every receptor."""
    start: int
    kernel: PlumeKernel
    wind_speed: np.ndarray
    wind_bearing: np.ndarray
    stability: np.ndarray
    mixing_height: np.ndarray
    rx: np.ndarray
    ry: np.ndarray
    rz: np.ndarray


def run_chunk_worker(task: ChunkTask) -> tuple[int, np.ndarray]:
    """Worker function for one chunk; runs in a child process or in-process.

    Returns
    -------
    tuple[int, np.ndarray]
        (start row, block of shape (chunk rows, receptors)).
    """
    block = task.kernel.evaluate_block(
        task.wind_speed, task.wind_bearing, task.stability, task.mixing_height,
        task.rx, task.ry, task.rz,
    )
    return task.start, block


def partition(n_rows: int, num_chunks: int | None = None,
              chunk_size: int | None = None) -> list[tuple[int, int]]:
    """Split ``range(n_rows)`` into contiguous (start, stop) chunks.

    ``chunk_size`` wins when given; otherwise rows are spread as evenly as
    possible over ``num_chunks`` chunks.
    """
    if n_rows <= 0:
        return []
    if chunk_size is None:
        num_chunks = max(1, min(num_chunks or 1, n_rows))
        chunk_size = -(-n_rows // num_chunks)
    return [(s, min(s + chunk_size, n_rows)) for s in range(0, n_rows, chunk_size)]


class ParallelExecutor:
    """Runs chunk tasks sequentially or in a multiprocessing pool.

    Parameters
    ----------
    num_workers : int or None
        Number of parallel workers. Defaults to ``os.cpu_count()``.
    """

    def __init__(self, num_workers: int | None = None) -> None:
        self.num_workers = num_workers or os.cpu_count() or 1

    def map(
        self,
        func: Callable[[Any], Any],
        work_items: Sequence[Any],
        timeout: float | None = None,
    ) -> list[Any]:
        """Apply *func* to every work item, results in input order.

        Parameters
        ----------
        func : callable
            A picklable top-level function.
        work_items : sequence
            Picklable arguments, one per call.
        timeout : float or None
            Wall-clock bound (s) for the whole batch.

        Raises
        ------
        EvaluationTimeoutError
            If the batch does not finish within *timeout*; in-flight work
            is discarded.
        """
        if not work_items:
            return []

        # For a single item or single worker, skip multiprocessing overhead
        if len(work_items) == 1 or self.num_workers <= 1:
            return self.run_sequential(func, work_items, timeout)

        ctx = mp.get_context("spawn")
        effective_workers = min(self.num_workers, len(work_items))

        logger.info(
            "Running %d chunks with %d workers", len(work_items), effective_workers,
        )

        with ctx.Pool(processes=effective_workers) as pool:
            pending = pool.map_async(func, work_items)
            try:
                results = pending.get(timeout)
            except mp.TimeoutError:
                raise EvaluationTimeoutError(
                    f"Batch of {len(work_items)} chunks exceeded {timeout} s"
                ) from None

        return list(results)

    @staticmethod
    def run_sequential(
        func: Callable[[Any], Any],
        work_items: Sequence[Any],
        timeout: float | None,
    ) -> list[Any]:
        """Fallback: run all items in-process, checking the deadline between items."""
        deadline = None if timeout is None else time.monotonic() + timeout
        results = []
        for item in work_items:
            results.append(func(item))
            if deadline is not None and time.monotonic() > deadline:
                raise EvaluationTimeoutError(
                    f"Batch of {len(work_items)} chunks exceeded {timeout} s"
                )
        return results
