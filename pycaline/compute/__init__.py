"""Chunked execution of the dispersion kernel."""

from pycaline.compute.batch_processor import BatchProcessor
from pycaline.compute.parallel import ParallelExecutor, partition

__all__ = [
    'BatchProcessor',
    'ParallelExecutor',
    'partition',
]
