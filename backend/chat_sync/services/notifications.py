"""Deliver engine callbacks on one designated notification context."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from chat_sync.schemas.message import MessageRead

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], Any]
MessageCallback = Callable[[MessageRead], None]
ErrorCallback = Callable[[BaseException], None]


class Notifier:
    """Marshals received/status-changed/error callbacks away from worker threads.

    A host UI passes its own ``dispatch`` (for example ``loop.call_soon_threadsafe``);
    otherwise callbacks run in order on a single dedicated thread.
    """

    def __init__(self, dispatch: Dispatch | None = None) -> None:
        self._executor: ThreadPoolExecutor | None = None
        if dispatch is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chat-notify")
            dispatch = self._executor.submit
        self._dispatch = dispatch
        self.on_message_received: MessageCallback | None = None
        self.on_message_status_changed: MessageCallback | None = None
        self.on_error: ErrorCallback | None = None

    def message_received(self, message: MessageRead) -> None:
        self._emit("message_received", self.on_message_received, message)

    def message_status_changed(self, message: MessageRead) -> None:
        self._emit("message_status_changed", self.on_message_status_changed, message)

    def error(self, exc: BaseException) -> None:
        self._emit("error", self.on_error, exc)

    def flush(self, timeout: float | None = None) -> None:
        """Wait until callbacks queued so far have run (default context only)."""

        if self._executor is not None:
            self._executor.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _emit(self, event: str, callback: Callable[[Any], None] | None, payload: Any) -> None:
        if callback is None:
            return

        def invoke() -> None:
            try:
                callback(payload)
            except Exception:
                logger.exception("chat_sync.callback_failed event=%s", event)

        try:
            self._dispatch(invoke)
        except RuntimeError:
            # Dispatch after shutdown.
            logger.warning("chat_sync.callback_dropped event=%s", event)
