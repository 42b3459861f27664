"""Bounded thread pool for classification cycles.

Inference must never stall sensor ingestion, and a slow or stuck classifier
must not pile up work either.  ``WorkerPool.try_submit`` therefore refuses
new work while ``max_in_flight`` tasks are outstanding instead of queueing
it; the caller simply skips that cycle.

Usage::

    pool = WorkerPool(max_workers=1, max_in_flight=1)
    future = pool.try_submit(run_cycle, snapshots, now_ns)
    if future is None:
        ...  # previous cycle still running
    pool.shutdown()
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_MAX_WORKERS = 1


class WorkerPool:
    """Fixed-size thread pool with an in-flight cap and lightweight metrics.

    Parameters
    ----------
    max_workers:
        Number of worker threads.
    max_in_flight:
        Submitted-but-unfinished tasks allowed at once; defaults to
        *max_workers* so nothing ever waits in the executor queue.
    thread_name_prefix:
        Prefix for worker-thread names (aids debugging / profiling).
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_in_flight: int | None = None,
        thread_name_prefix: str = "mgauss-worker",
    ) -> None:
        self._max_workers = max(1, int(max_workers))
        self._max_in_flight = max(1, int(max_in_flight or self._max_workers))
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=thread_name_prefix,
        )
        self._in_flight = 0
        self._total_tasks = 0
        self._skipped_tasks = 0
        self._failed_tasks = 0
        self._total_run_s = 0.0
        self._lock = threading.Lock()
        self._alive = True

    # -- Public API -----------------------------------------------------------

    def try_submit(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> Future[R] | None:
        """Submit *fn* unless the in-flight cap is reached; ``None`` means skipped."""
        with self._lock:
            if not self._alive:
                raise RuntimeError("WorkerPool is shut down")
            if self._in_flight >= self._max_in_flight:
                self._skipped_tasks += 1
                return None
            self._in_flight += 1
            self._total_tasks += 1
        try:
            future = self._executor.submit(self._timed, fn, *args, **kwargs)
        except RuntimeError:
            with self._lock:
                self._in_flight -= 1
            raise
        future.add_done_callback(self._task_done)
        return future

    def _timed(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        t0 = time.monotonic()
        try:
            return fn(*args, **kwargs)
        finally:
            elapsed = time.monotonic() - t0
            # Free the slot before the future resolves.
            with self._lock:
                self._total_run_s += elapsed
                self._in_flight -= 1

    def _task_done(self, future: Future[Any]) -> None:
        if future.cancelled():
            # Never reached _timed, so the slot is still held.
            with self._lock:
                self._in_flight -= 1
            return
        exc = future.exception()
        if exc is not None:
            with self._lock:
                self._failed_tasks += 1
            LOGGER.warning("WorkerPool task failed", exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the pool.  Safe to call multiple times."""
        with self._lock:
            self._alive = False
        self._executor.shutdown(wait=wait, cancel_futures=True)

    # -- Observability --------------------------------------------------------

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "max_workers": self._max_workers,
                "max_in_flight": self._max_in_flight,
                "in_flight": self._in_flight,
                "total_tasks": self._total_tasks,
                "skipped_tasks": self._skipped_tasks,
                "failed_tasks": self._failed_tasks,
                "total_run_s": round(self._total_run_s, 4),
                "alive": self._alive,
            }
