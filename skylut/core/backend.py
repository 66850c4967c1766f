"""
Work distribution for Skylut precomputation.

Every precomputation pass writes each output texel independently, so a pass
is split along the outermost table axis into work groups that run serially or
on a thread pool. NumPy releases the GIL inside its array kernels, which is
where the passes spend their time.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ComputeBackend:
    """
    Dispatches a per-slice kernel over a table extent.

    Work groups have a fixed size, so the last group may reach past the
    extent; those indices are skipped rather than clamped so that edge
    slices are never written twice.
    """

    def __init__(self, workers: Optional[int] = 1, group_size: int = 4):
        """
        Initialize compute backend.

        Args:
            workers: Number of threads, 1 for serial execution, None for one per CPU
            group_size: Number of slices per work group
        """
        if workers is None:
            workers = os.cpu_count() or 1
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if group_size < 1:
            raise ValueError(f"group_size must be >= 1, got {group_size}")
        self.workers = workers
        self.group_size = group_size

    @property
    def name(self) -> str:
        """Get backend name."""
        if self.workers == 1:
            return "NumPy (serial)"
        return f"NumPy ({self.workers} threads)"

    def _run_group(self, group: int, extent: int, kernel: Callable[[int], None]) -> int:
        start = group * self.group_size
        done = 0
        for index in range(start, start + self.group_size):
            if index >= extent:
                continue
            kernel(index)
            done += 1
        return done

    def dispatch(self, extent: int, kernel: Callable[[int], None]) -> int:
        """
        Run kernel(index) for every index in range(extent).

        Returns only once every index has completed, and re-raises the first
        kernel exception.

        Returns:
            Number of kernel invocations
        """
        groups = -(-extent // self.group_size)
        if self.workers == 1 or groups <= 1:
            return sum(self._run_group(g, extent, kernel) for g in range(groups))

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._run_group, g, extent, kernel) for g in range(groups)]
            return sum(future.result() for future in futures)


# Global backend instance (can be changed at runtime)
_backend = None


def get_backend() -> ComputeBackend:
    """Get or create the default compute backend."""
    global _backend
    if _backend is None:
        _backend = ComputeBackend()
    return _backend


def set_backend(workers: Optional[int] = 1, group_size: int = 4) -> ComputeBackend:
    """Replace the default compute backend."""
    global _backend
    _backend = ComputeBackend(workers=workers, group_size=group_size)
    logger.debug("Compute backend set to %s", _backend.name)
    return _backend
