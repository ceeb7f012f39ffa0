"""Per-turn cancellation token raced against awaited provider calls."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Awaitable, Optional, TypeVar

from .logger import LOGGER

T = TypeVar("T")


class TurnCancelled(Exception):
    """The user aborted the turn; partial progress must be discarded."""

    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message)


class CancellationToken:
    """Cooperative abort signal for one user turn.

    ``cancel()`` may be called from any thread (Streamlit callbacks, API
    handlers); awaiting code observes it at :meth:`check` points and inside
    :meth:`race`.
    """

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._flag.is_set()

    def cancel(self) -> None:
        if self._flag.is_set():
            return
        self._flag.set()
        LOGGER.info("Cancellation requested")
        loop, event = self._loop, self._event
        if loop is None or event is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    def check(self) -> None:
        if self._flag.is_set():
            raise TurnCancelled()

    def _async_event(self) -> asyncio.Event:
        if self._event is None:
            self._loop = asyncio.get_running_loop()
            self._event = asyncio.Event()
            # cancel() may have run before the event existed
            if self._flag.is_set():
                self._event.set()
        return self._event

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token trips first.

        On a trip the pending call is cancelled and :class:`TurnCancelled`
        is raised, even if the call would have completed.
        """
        if self._flag.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TurnCancelled()
        task: "asyncio.Future[Any]" = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._async_event().wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()

        if waiter in done or self._flag.is_set():
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                task.exception()
            raise TurnCancelled()
        return task.result()


__all__ = ["CancellationToken", "TurnCancelled"]
