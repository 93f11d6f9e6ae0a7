"""Bounded worker pool for data-parallel loops over index ranges."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple, TypeVar

T = TypeVar("T")

MIN_BLOCK_SIZE = 4096


class LocalExecutor:
    """Fixed-size thread pool running blocking fan-out/fan-in loops.

    numpy releases the GIL inside vectorised kernels, so splitting a document
    range into blocks and handing them to threads gives real parallelism for
    buffer additions and per-block metric evaluation.
    """

    def __init__(self, thread_count: Optional[int] = None, min_block_size: int = MIN_BLOCK_SIZE):
        if thread_count is None or thread_count <= 0:
            thread_count = os.cpu_count() or 1
        self.thread_count = thread_count
        self.min_block_size = max(1, min_block_size)
        self._pool: Optional[ThreadPoolExecutor] = None

    def _get_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.thread_count)
        return self._pool

    def split_range(self, begin: int, end: int) -> List[Tuple[int, int]]:
        """Cut ``[begin, end)`` into at most ``thread_count`` contiguous blocks."""
        size = end - begin
        if size <= 0:
            return []
        block_count = min(self.thread_count, max(1, size // self.min_block_size))
        block_size = -(-size // block_count)
        return [(start, min(start + block_size, end)) for start in range(begin, end, block_size)]

    def map_blocks(self, begin: int, end: int, func: Callable[[int, int], T]) -> List[T]:
        """Run ``func(block_begin, block_end)`` over blocks of the range, in block order."""
        blocks = self.split_range(begin, end)
        if len(blocks) <= 1 or self.thread_count == 1:
            return [func(block_begin, block_end) for block_begin, block_end in blocks]
        futures = [self._get_pool().submit(func, block_begin, block_end) for block_begin, block_end in blocks]
        return [future.result() for future in futures]

    def parallel_for(self, begin: int, end: int, func: Callable[[int, int], None]) -> None:
        self.map_blocks(begin, end, func)

    def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> "LocalExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


def resolve_executor(executor: Optional[LocalExecutor]) -> LocalExecutor:
    """Return ``executor`` or a single-threaded one for callers that pass none."""
    if executor is None:
        return LocalExecutor(thread_count=1)
    return executor
