"""
Event journal subscriber.

Subscriber.send() must not block, but writing to the EventStore is async.
EventJournal bridges the two: send() enqueues, and a background task drains
the queue into the store in arrival order.
"""

from __future__ import annotations

import asyncio

from pollard.exceptions import JournalError
from pollard.journal.event_store import EventStore
from pollard.logging import get_logger
from pollard.research.events import RunEvent

logger = get_logger(__name__)


class EventJournal:
    """Records every event it receives into an EventStore.

    Usage:
        journal = EventJournal(store)
        await journal.start()
        coordinator.set_subscriber(journal)
        ...
        await journal.close()
    """

    def __init__(self, store: EventStore) -> None:
        self.store = store
        self.written = 0
        self._queue: asyncio.Queue[RunEvent | None] = asyncio.Queue()
        self._writer: asyncio.Task[None] | None = None
        self._closed = False

    async def start(self) -> None:
        """Initialize the store and start the writer task."""
        if self._writer is not None:
            return
        await self.store.init()
        self._writer = asyncio.create_task(self._drain(), name="pollard-event-journal")

    def send(self, event: RunEvent) -> None:
        if self._closed:
            raise JournalError("journal is closed", context={"kind": event.kind.value})
        self._queue.put_nowait(event)

    async def flush(self) -> None:
        """Wait until every event sent so far has been written."""
        await self._queue.join()

    async def close(self) -> None:
        """Write all pending events, then close the store."""
        if self._closed:
            return
        self._closed = True
        if self._writer is not None:
            self._queue.put_nowait(None)
            await self._writer
            self._writer = None
        await self.store.close()

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                await self.store.append(event)
                self.written += 1
            except Exception:
                # keep draining after a failed write
                logger.exception("Failed to journal event", kind=event.kind.value)
            finally:
                self._queue.task_done()
