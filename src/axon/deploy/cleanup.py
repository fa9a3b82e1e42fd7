"""Supervised background cleanup after a traffic switch.

Once traffic has moved to a new release, retiring the old one is no longer
on the critical path. Such work is submitted to a ``CleanupSupervisor``; it
runs on a small thread pool, every failure is logged and collected, and the
CLI joins the supervisor before exiting so no task is silently dropped.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from axon.lib.logging_config import get_logger

logger = get_logger(__name__)


class CleanupSupervisor:
    """Thread pool for fire-and-forget cleanup tasks with an error channel.

    Args:
        max_workers: Number of worker threads

    Example:
        >>> with CleanupSupervisor() as supervisor:
        ...     supervisor.submit("drain", drain_old_containers)
        >>> supervisor.errors
        []
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="axon-cleanup"
        )
        self._lock = threading.Lock()
        self._futures: list[Future[None]] = []
        self._errors: list[str] = []
        self._closed = False

    @property
    def errors(self) -> list[str]:
        """Errors recorded so far, one line per failed task."""
        with self._lock:
            return list(self._errors)

    def submit(
        self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> Future[None]:
        """Run ``fn`` in the background.

        Args:
            name: Task name used in logs and error records
            fn: Callable to run
            *args: Positional arguments for ``fn``
            **kwargs: Keyword arguments for ``fn``

        Raises:
            RuntimeError: If the supervisor has already been joined
        """
        if self._closed:
            raise RuntimeError("CleanupSupervisor has been shut down")
        future = self._pool.submit(self._run, name, fn, *args, **kwargs)
        with self._lock:
            self._futures.append(future)
        return future

    def _run(
        self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> None:
        logger.debug("Cleanup task '%s' started", name)
        try:
            fn(*args, **kwargs)
        except Exception as e:  # noqa: BLE001
            logger.warning("Cleanup task '%s' failed: %s", name, e)
            with self._lock:
                self._errors.append(f"{name}: {e}")
            return
        logger.debug("Cleanup task '%s' finished", name)

    def join(self) -> list[str]:
        """Wait for every submitted task and stop the pool.

        Returns:
            Errors recorded by failed tasks
        """
        self._closed = True
        self._pool.shutdown(wait=True)
        return self.errors

    def __enter__(self) -> CleanupSupervisor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.join()
