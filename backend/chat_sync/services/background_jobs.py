"""Bounded worker pool for remote sync jobs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from threading import Lock
from time import monotonic, perf_counter
from typing import Any

from chat_sync.services.notifications import Notifier

logger = logging.getLogger(__name__)


class BackgroundJobs:
    """Runs network-bound jobs off the caller's thread and tracks them for shutdown."""

    def __init__(self, max_workers: int = 3, *, notifier: Notifier | None = None) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="chat-remote")
        self._notifier = notifier
        self._pending: set[Future] = set()
        self._lock = Lock()
        self._closed = False

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future | None:
        """Queue a job; returns ``None`` once the pool is shut down."""

        with self._lock:
            if self._closed:
                logger.warning("chat_sync.job_rejected job=%s reason=shutdown", name)
                return None
            future = self._executor.submit(self._run, name, fn, *args, **kwargs)
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no job is queued or running; False if the timeout elapsed first."""

        deadline = None if timeout is None else monotonic() + timeout
        while True:
            with self._lock:
                pending = set(self._pending)
            if not pending:
                return True
            remaining = None if deadline is None else deadline - monotonic()
            if remaining is not None and remaining <= 0:
                return False
            wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)

    def shutdown(self, *, wait_for_jobs: bool = False) -> None:
        """Stop accepting jobs; queued jobs are cancelled and running ones are not awaited by default."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait_for_jobs, cancel_futures=True)

    def _run(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        started = perf_counter()
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            logger.exception(
                "chat_sync.job_failed job=%s elapsed_ms=%.2f",
                name,
                (perf_counter() - started) * 1000.0,
            )
            if self._notifier is not None:
                self._notifier.error(exc)
            raise
        logger.debug("chat_sync.job_timing job=%s elapsed_ms=%.2f", name, (perf_counter() - started) * 1000.0)
        return result

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
