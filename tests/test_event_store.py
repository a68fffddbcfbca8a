"""
Tests for the event store and event journal.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import orjson
import pytest

from pollard.exceptions import JournalError
from pollard.journal import EventJournal, EventStore
from pollard.research.events import (
    EventKind,
    HunterCompleted,
    HunterError,
    HunterStarted,
    HunterUpdate,
    RunCancelled,
    RunCompleted,
    RunStarted,
)
from pollard.types import Finding


@pytest.fixture
async def event_store(temp_dir: Path) -> EventStore:
    """Create an initialized event store for testing."""
    store = EventStore(temp_dir / "journal")
    await store.init()
    yield store
    await store.close()


def run_events(run_id: str = "run_1") -> list:
    """A complete single-hunter run."""
    finding = Finding(
        id="finding_1",
        title="Tokio 2.0",
        summary="summary",
        source="https://example.com",
        source_type="h1",
        relevance=0.6,
    )
    return [
        RunStarted(run_id, "proj", ("h1", "h2")),
        HunterStarted(run_id, "h1"),
        HunterUpdate(run_id, "h1", "platform", (finding,)),
        HunterCompleted(run_id, "h1", 1),
        HunterError(run_id, "h2", "hunter not found: h2"),
        RunCompleted(run_id, 1, timedelta(seconds=2)),
    ]


class TestEventStoreAppendAndGet:
    """Test append and get operations."""

    @pytest.mark.asyncio
    async def test_append_and_get(self, event_store: EventStore) -> None:
        event = HunterCompleted("run_1", "h1", 3)

        stored = await event_store.append(event)
        retrieved = await event_store.get(stored.event_id)

        assert stored.event_id.startswith("evt_")
        assert retrieved is not None
        assert retrieved.event == event
        assert retrieved.recorded_at == stored.recorded_at

    @pytest.mark.asyncio
    async def test_get_nonexistent_returns_none(self, event_store: EventStore) -> None:
        assert await event_store.get("evt_missing") is None

    @pytest.mark.asyncio
    async def test_jsonl_format(self, event_store: EventStore) -> None:
        await event_store.append(RunCancelled("run_1", "new run started"))

        lines = event_store.jsonl_path.read_bytes().splitlines()
        assert len(lines) == 1
        record = orjson.loads(lines[0])
        assert set(record) == {"event_id", "recorded_at", "event"}
        assert record["event"] == {
            "kind": "run_cancelled",
            "run_id": "run_1",
            "reason": "new run started",
        }

    @pytest.mark.asyncio
    async def test_uninitialized_store_raises(self, temp_dir: Path) -> None:
        store = EventStore(temp_dir / "never")
        with pytest.raises(JournalError):
            await store.append(RunCancelled("run_1", "x"))


class TestEventStoreQuery:
    """Test filtered queries."""

    @pytest.mark.asyncio
    async def test_query_preserves_append_order(self, event_store: EventStore) -> None:
        events = run_events()
        for event in events:
            await event_store.append(event)

        stored = await event_store.query(run_id="run_1")

        assert [s.event for s in stored] == events
        assert await event_store.count() == 6

    @pytest.mark.asyncio
    async def test_query_by_kind_and_hunter(self, event_store: EventStore) -> None:
        for event in run_events("run_1") + run_events("run_2"):
            await event_store.append(event)

        errors = await event_store.query(kind=EventKind.HUNTER_ERROR)
        h1_in_run_2 = await event_store.query(run_id="run_2", hunter_name="h1")

        assert [s.event.run_id for s in errors] == ["run_1", "run_2"]
        assert [s.event.kind for s in h1_in_run_2] == [
            EventKind.HUNTER_STARTED,
            EventKind.HUNTER_UPDATE,
            EventKind.HUNTER_COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_run_ids_and_counts(self, event_store: EventStore) -> None:
        for event in run_events("run_b") + run_events("run_a"):
            await event_store.append(event)

        assert await event_store.run_ids() == ["run_b", "run_a"]
        counts = await event_store.count_by_kind(run_id="run_a")
        assert counts[EventKind.RUN_STARTED] == 1
        assert EventKind.RUN_CANCELLED not in counts
        assert sum((await event_store.count_by_kind()).values()) == 12

    @pytest.mark.asyncio
    async def test_reopen_keeps_events(self, temp_dir: Path) -> None:
        store = EventStore(temp_dir / "journal")
        await store.init()
        await store.append(RunStarted("run_1", "proj"))
        await store.close()

        reopened = EventStore(temp_dir / "journal")
        await reopened.init()
        try:
            assert await reopened.count() == 1
            (stored,) = await reopened.query()
            assert stored.event == RunStarted("run_1", "proj")
        finally:
            await reopened.close()


class TestEventJournal:
    """Test the queue-backed journal subscriber."""

    @pytest.mark.asyncio
    async def test_send_then_close_writes_everything(self, temp_dir: Path) -> None:
        journal = EventJournal(EventStore(temp_dir / "journal"))
        await journal.start()

        events = run_events()
        for event in events:
            journal.send(event)
        await journal.close()

        assert journal.written == len(events)
        store = EventStore(temp_dir / "journal")
        await store.init()
        try:
            assert [s.event for s in await store.query()] == events
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_flush_waits_for_pending_writes(self, temp_dir: Path) -> None:
        journal = EventJournal(EventStore(temp_dir / "journal"))
        await journal.start()

        journal.send(RunStarted("run_1", "proj"))
        await journal.flush()

        assert journal.written == 1
        assert await journal.store.count() == 1
        await journal.close()

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self, temp_dir: Path) -> None:
        journal = EventJournal(EventStore(temp_dir / "journal"))
        await journal.start()
        await journal.close()

        with pytest.raises(JournalError):
            journal.send(RunCancelled("run_1", "late"))

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, temp_dir: Path) -> None:
        journal = EventJournal(EventStore(temp_dir / "journal"))
        await journal.start()
        await journal.close()
        await journal.close()
