"""Batch processor for the (conditions x receptors) evaluation.

Selects between in-process and multiprocessing execution from the size
of the problem, partitions the conditions axis into chunks and assembles
the dense result matrix.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from pycaline.compute.parallel import ChunkTask, ParallelExecutor, run_chunk_worker, partition
from pycaline.physics.plume import PlumeKernel

logger = logging.getLogger(__name__)

# Element-receptor-condition evaluations below which a pool is not worth
# its start-up cost
PARALLEL_THRESHOLD = 5_000_000


class BatchProcessor:
    """Evaluates a plume kernel over many conditions and receptors.

    Parameters
    ----------
    num_workers : int | None
        Number of parallel workers for multiprocessing.
    chunk_size : int | None
        Conditions per chunk; ``None`` spreads rows evenly over workers.
    """

    def __init__(
        self,
        num_workers: Optional[int] = None,
        chunk_size: Optional[int] = None,
    ):
        self.parallel_executor = ParallelExecutor(num_workers=num_workers)
        self.chunk_size = chunk_size

    def select_strategy(
        self,
        num_elements: int,
        num_receptors: int,
        num_conditions: int,
    ) -> str:
        """Select 'sequential' or 'parallel' from the problem size."""
        total_operations = num_elements * num_receptors * num_conditions
        if (
            total_operations < PARALLEL_THRESHOLD
            or self.parallel_executor.num_workers <= 1
            or num_conditions < 2
        ):
            return 'sequential'
        return 'parallel'

    def process(
        self,
        kernel: PlumeKernel,
        wind_speed: np.ndarray,
        wind_bearing: np.ndarray,
        stability: np.ndarray,
        mixing_height: np.ndarray,
        rx: np.ndarray,
        ry: np.ndarray,
        rz: np.ndarray,
        strategy: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> np.ndarray:
        """Evaluate every condition at every receptor.

        Parameters
        ----------
        strategy : str | None
            Force 'sequential' or 'parallel', or None for auto-selection.
        timeout : float | None
            Wall-clock bound (s) for the batch.

        Returns
        -------
        np.ndarray
            Shape (len(wind_speed), len(rx)) in g/m3.
        """
        n_cond, n_rec = len(wind_speed), len(rx)
        if strategy is None:
            strategy = self.select_strategy(kernel.num_elements, n_rec, n_cond)

        if strategy == 'sequential':
            chunks = partition(n_cond, num_chunks=1, chunk_size=self.chunk_size)
        elif strategy == 'parallel':
            chunks = partition(
                n_cond,
                num_chunks=self.parallel_executor.num_workers,
                chunk_size=self.chunk_size,
            )
        else:
            raise ValueError(f"Unknown strategy: {strategy}")

        logger.info(
            "Evaluating %d conditions x %d receptors (%d elements) in %d chunks, "
            "strategy: %s",
            n_cond, n_rec, kernel.num_elements, len(chunks), strategy,
        )

        tasks = [
            ChunkTask(
                start=start,
                kernel=kernel,
                wind_speed=wind_speed[start:stop],
                wind_bearing=wind_bearing[start:stop],
                stability=stability[start:stop],
                mixing_height=mixing_height[start:stop],
                rx=rx, ry=ry, rz=rz,
            )
            for start, stop in chunks
        ]

        if strategy == 'sequential':
            results = self.parallel_executor.run_sequential(
                run_chunk_worker, tasks, timeout,
            )
        else:
            results = self.parallel_executor.map(run_chunk_worker, tasks, timeout=timeout)

        matrix = np.zeros((n_cond, n_rec), dtype=np.float64)
        for start, block in results:
            matrix[start:start + block.shape[0]] = block
            logger.debug("Assembled rows %d-%d", start, start + block.shape[0] - 1)
        return matrix
