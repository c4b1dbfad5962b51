"""Cancellable delayed callbacks on the asyncio event loop."""

from __future__ import annotations

import asyncio
from typing import Callable


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Debouncer:
    """
    Runs `callback` once `delay` seconds pass without another `trigger()`.

    Each trigger cancels the outstanding timer and starts a new one. Without a
    running event loop the call stays pending until `flush()`.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.delay = delay
        self._callback = callback
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    def trigger(self) -> None:
        self._cancel_timer()
        self._pending = True
        loop = self._loop or _running_loop()
        if loop is None:
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        self._cancel_timer()
        self._pending = False

    def flush(self) -> None:
        if self._pending:
            self._cancel_timer()
            self._fire()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._pending = False
        self._callback()
