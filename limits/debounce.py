"""Debouncer -- cancellable, superseding tasks for type-ahead style inputs.

Scheduling again invalidates the previous handle: a pending timer is
cancelled outright, while an in-flight call keeps running but its result
is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class TaskHandle:
    """Handle on one debounced invocation."""

    def __init__(self) -> None:
        self._task: asyncio.Task | None = None
        self._started = False
        self._invalidated = False

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    @property
    def started(self) -> bool:
        return self._started

    def invalidate(self) -> None:
        """Discard this invocation; cancel it if it has not started yet."""
        self._invalidated = True
        if self._task is not None and not self._started:
            self._task.cancel()

    async def wait(self) -> Any:
        """Result of the invocation, or None if it was invalidated or cancelled."""
        if self._task is None:
            return None
        try:
            result = await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise
        except Exception:
            if self._invalidated:
                return None
            raise
        return None if self._invalidated else result


class Debouncer:
    """Runs only the most recent of a burst of calls, after `delay_ms` of quiet."""

    def __init__(self, delay_ms: int = 300) -> None:
        self._delay_ms = delay_ms
        self._current: TaskHandle | None = None

    @property
    def current(self) -> TaskHandle | None:
        return self._current

    def schedule(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> TaskHandle:
        if self._current is not None:
            self._current.invalidate()

        handle = TaskHandle()

        async def runner() -> Any:
            await asyncio.sleep(self._delay_ms / 1000)
            handle._started = True
            return await fn(*args)

        handle._task = asyncio.create_task(runner())
        handle._task.add_done_callback(_log_failure)
        self._current = handle
        return handle

    def cancel(self) -> None:
        if self._current is not None:
            self._current.invalidate()
            self._current = None


def _log_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Debounced call failed: %s", exc)
