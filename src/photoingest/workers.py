"""Offloading of the blocking pipeline from the event loop.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> upload / promote / delete

Each job stays single-threaded inside its worker. Requests beyond the
semaphore limit wait up to ``queue_timeout`` seconds, then fail with
``BusyError`` (HTTP 503).
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

from photoingest.errors import BusyError

if TYPE_CHECKING:
    from collections.abc import Callable

    from photoingest.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcessingPool:
    """Bounded worker pool shared by the upload, promotion and deletion routes."""

    def __init__(self, settings: Settings) -> None:
        self._capacity = settings.max_concurrent
        self._queue_timeout = settings.queue_timeout
        self._semaphore = asyncio.Semaphore(self._capacity)
        self._executor = ThreadPoolExecutor(
            max_workers=self._capacity,
            thread_name_prefix="photoingest",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def _acquire(self, job: str) -> None:
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._queue_timeout)
        except TimeoutError as exc:
            logger.warning(
                "Rejected %s: all %d workers busy for %.1fs",
                job,
                self._capacity,
                self._queue_timeout,
            )
            raise BusyError("Server busy, try again later") from exc
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on a worker thread once a slot is free.

        Exceptions raised by ``func`` propagate unchanged.

        Raises:
            BusyError: No slot became free within ``queue_timeout`` seconds.
        """
        job = getattr(func, "__qualname__", repr(func))
        await self._acquire(job)

        with self._counter_lock:
            self._active_count += 1
        started = time.perf_counter()
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._semaphore.release()
            with self._counter_lock:
                self._active_count -= 1
            logger.debug("%s finished in %.3fs", job, time.perf_counter() - started)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active_count(self) -> int:
        """Number of currently running jobs."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a worker."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Wait for running jobs, then stop the worker threads."""
        self._executor.shutdown(wait=True)
