"""Single-flight request latch polled by hat and reporter blocks."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from errors import classify_exception
from interfaces import ErrorCallback

log = logging.getLogger("senses.latch")

Job = Callable[[], None]
Dispatch = Callable[[Job], None]


def spawn_daemon(job: Job) -> None:
    threading.Thread(target=job, daemon=True).start()


class ResultLatch:
    """Turns slow external calls into a pollable "last result" cell per channel.

    A submit while the channel is pending is dropped, not queued: the host
    polls again on the next tick. Results only ever surface through
    :meth:`result`; failures leave the cell empty and are never raised.
    """

    def __init__(
        self,
        dispatch: Optional[Dispatch] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._dispatch = dispatch or spawn_daemon
        self._on_error = on_error
        self._lock = threading.Lock()
        self._fetchers: dict[str, Callable[[Any], Any]] = {}
        self._pending: dict[str, bool] = {}
        self._results: dict[str, Any] = {}

    def register_channel(self, channel: str, fetch: Callable[[Any], Any]) -> None:
        with self._lock:
            self._fetchers[channel] = fetch
            self._pending.setdefault(channel, False)
            self._results.setdefault(channel, None)

    def is_pending(self, channel: str) -> bool:
        return self._pending.get(channel, False)

    def result(self, channel: str) -> Any:
        return self._results.get(channel)

    def submit(self, channel: str, value: Any) -> bool:
        """Start a call on ``channel``; returns False when it was dropped."""
        with self._lock:
            fetch = self._fetchers.get(channel)
            if fetch is None:
                raise KeyError(f"unknown channel: {channel}")
            if self._pending[channel]:
                log.debug("Dropping submit on busy channel %s", channel)
                return False
            self._pending[channel] = True
            self._results[channel] = None

        try:
            self._dispatch(lambda: self._run(channel, fetch, value))
        except Exception as exc:
            self._complete(channel, None, exc)
        return True

    def _run(self, channel: str, fetch: Callable[[Any], Any], value: Any) -> None:
        try:
            payload = fetch(value)
        except Exception as exc:
            self._complete(channel, None, exc)
            return
        self._complete(channel, payload, None)

    def _complete(self, channel: str, payload: Any, exc: Optional[BaseException]) -> None:
        with self._lock:
            if exc is None:
                self._results[channel] = payload
            self._pending[channel] = False
        if exc is not None:
            error = classify_exception(exc)
            log.warning("Call on channel %s failed [%s]: %s", channel, error.code, error.message)
            if self._on_error:
                self._on_error(error.code, error.message)
