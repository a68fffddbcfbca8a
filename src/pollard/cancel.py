"""
Cooperative cancellation for research runs.

A CancelToken is a thread-safe, one-way flag. Tokens form a tree: cancelling
a parent cancels every child derived from it, never the other way round.
Hunters poll ``cancelled`` (or call ``raise_if_cancelled()``) between units
of work, and wrap anything that may block in ``await token.race(...)`` so
cancellation interrupts it.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, TypeVar

from pollard.exceptions import HuntCancelledError

T = TypeVar("T")


class CancelToken:
    """Permanent, non-blocking cancellation handle."""

    def __init__(self, parent: CancelToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._parent: CancelToken | None = None
        self.reason: str | None = None
        if parent is not None:
            self._parent = parent
            parent.add_callback(self._on_parent_cancelled)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def child(self) -> CancelToken:
        """Derive a token that is cancelled whenever this one is."""
        return CancelToken(parent=self)

    def _on_parent_cancelled(self) -> None:
        parent = self._parent
        self.cancel(parent.reason if parent is not None else None)

    def detach(self) -> None:
        """Stop following the parent. The parent keeps no reference afterwards."""
        with self._lock:
            parent, self._parent = self._parent, None
        if parent is not None:
            parent.remove_callback(self._on_parent_cancelled)

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel this token and its children.

        Returns:
            True if this call performed the cancellation, False if the token
            was already cancelled.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        self.detach()
        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> bool:
        """Unregister a pending callback. Returns False if it was not registered."""
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                return False
            return True

    def _error(self) -> HuntCancelledError:
        return HuntCancelledError(
            "run cancelled", context={"reason": self.reason} if self.reason else None
        )

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise self._error()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._event.is_set():
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        def _schedule_wake() -> None:
            # cancel() may be called from another thread, or after this loop closed
            if not loop.is_closed():
                loop.call_soon_threadsafe(_wake)

        self.add_callback(_schedule_wake)
        try:
            await waiter
        finally:
            self.remove_callback(_schedule_wake)

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        On cancellation the pending work is cancelled and awaited.

        Raises:
            HuntCancelledError: If the token is, or becomes, cancelled before
                the work finishes.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise self._error()
        work = asyncio.ensure_future(awaitable)
        cancelled = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({work, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            cancelled.cancel()

        if work in done:
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise self._error()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"CancelToken({state})"
