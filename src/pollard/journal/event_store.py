"""
Event store for research run events.

Append-only journal of every RunEvent a coordinator emits, so a run can be
audited or replayed after the fact. Uses JSONL for full event storage and
SQLite for fast indexed queries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import orjson

from pollard.exceptions import JournalError
from pollard.logging import get_logger
from pollard.research.events import (
    EventKind,
    RunEvent,
    event_from_dict,
    event_to_dict,
    hunter_name_of,
)
from pollard.types import generate_id, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredEvent:
    """An event as recorded in the journal."""

    event_id: str
    recorded_at: datetime
    event: RunEvent


class EventStore:
    """Immutable log of run events.

    Every event gets recorded with:
    - Full JSON in append-only JSONL file
    - Index fields in SQLite for fast queries
    """

    def __init__(self, output_dir: str | Path) -> None:
        """Initialize event store.

        Args:
            output_dir: Directory holding events.jsonl and events.db.
        """
        self.output_dir = Path(output_dir)
        self.jsonl_path = self.output_dir / "events.jsonl"
        self.db_path = self.output_dir / "events.db"
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Create files and tables."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id TEXT NOT NULL UNIQUE,
                run_id TEXT NOT NULL,
                ts TEXT NOT NULL,
                kind TEXT NOT NULL,
                hunter_name TEXT,
                topic_key TEXT,
                jsonl_offset INTEGER NOT NULL
            )
        """)

        await self._db.execute("CREATE INDEX IF NOT EXISTS idx_run_id ON events(run_id)")
        await self._db.execute("CREATE INDEX IF NOT EXISTS idx_kind ON events(kind)")
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_hunter_name ON events(hunter_name)"
        )

        await self._db.commit()

        logger.debug("Event store initialized", output_dir=str(self.output_dir))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise JournalError(
                "EventStore not initialized. Call init() first.",
                context={"output_dir": str(self.output_dir)},
            )
        return self._db

    async def append(self, event: RunEvent) -> StoredEvent:
        """Append an event to the journal.

        Args:
            event: The event to store.

        Returns:
            The stored record, with its assigned id and timestamp.
        """
        db = self._require_db()

        stored = StoredEvent(event_id=generate_id("evt"), recorded_at=utc_now(), event=event)
        line = orjson.dumps(self._stored_to_dict(stored)) + b"\n"

        jsonl_offset = self.jsonl_path.stat().st_size if self.jsonl_path.exists() else 0
        with open(self.jsonl_path, "ab") as f:
            f.write(line)

        await db.execute(
            """
            INSERT INTO events (
                event_id, run_id, ts, kind, hunter_name, topic_key, jsonl_offset
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                stored.event_id,
                event.run_id,
                stored.recorded_at.isoformat(),
                event.kind.value,
                hunter_name_of(event),
                getattr(event, "topic_key", None),
                jsonl_offset,
            ),
        )
        await db.commit()

        logger.debug("Appended event", event_id=stored.event_id, kind=event.kind.value)
        return stored

    async def get(self, event_id: str) -> StoredEvent | None:
        """Retrieve an event by id, or None if it was never recorded."""
        db = self._require_db()

        async with db.execute(
            "SELECT jsonl_offset FROM events WHERE event_id = ?", (event_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            return None
        return self._read_at_offset(row["jsonl_offset"])

    async def query(
        self,
        run_id: str | None = None,
        kind: EventKind | None = None,
        hunter_name: str | None = None,
    ) -> list[StoredEvent]:
        """Query events with filters, in append order.

        Args:
            run_id: Filter by run.
            kind: Filter by event kind.
            hunter_name: Filter by hunter (run-level events never match).

        Returns:
            List of matching events.
        """
        db = self._require_db()

        conditions = []
        params: list[Any] = []

        if run_id:
            conditions.append("run_id = ?")
            params.append(run_id)
        if kind:
            conditions.append("kind = ?")
            params.append(kind.value)
        if hunter_name:
            conditions.append("hunter_name = ?")
            params.append(hunter_name)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        sql = f"SELECT jsonl_offset FROM events WHERE {where_clause} ORDER BY seq ASC"

        async with db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()

        events = []
        for row in rows:
            stored = self._read_at_offset(row["jsonl_offset"])
            if stored:
                events.append(stored)
        return events

    async def run_ids(self) -> list[str]:
        """Return every journaled run id, oldest first."""
        db = self._require_db()
        async with db.execute(
            "SELECT run_id FROM events GROUP BY run_id ORDER BY MIN(seq) ASC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def count_by_kind(self, run_id: str | None = None) -> dict[EventKind, int]:
        """Count events by kind, optionally for one run."""
        db = self._require_db()

        if run_id:
            sql = "SELECT kind, COUNT(*) FROM events WHERE run_id = ? GROUP BY kind"
            params: tuple[Any, ...] = (run_id,)
        else:
            sql = "SELECT kind, COUNT(*) FROM events GROUP BY kind"
            params = ()

        async with db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()

        result: dict[EventKind, int] = {}
        for row in rows:
            try:
                result[EventKind(row[0])] = row[1]
            except ValueError:
                # Written by a newer version
                pass
        return result

    async def count(self) -> int:
        """Get total count of events."""
        db = self._require_db()
        async with db.execute("SELECT COUNT(*) FROM events") as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0

    def _read_at_offset(self, offset: int) -> StoredEvent | None:
        if not self.jsonl_path.exists():
            return None

        try:
            with open(self.jsonl_path, "rb") as f:
                f.seek(offset)
                line = f.readline()
            if not line:
                return None
            return self._dict_to_stored(orjson.loads(line))
        except (orjson.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Failed to read event at offset", offset=offset, error=str(e))
            return None

    def _stored_to_dict(self, stored: StoredEvent) -> dict[str, Any]:
        return {
            "event_id": stored.event_id,
            "recorded_at": stored.recorded_at.isoformat(),
            "event": event_to_dict(stored.event),
        }

    def _dict_to_stored(self, data: dict[str, Any]) -> StoredEvent:
        return StoredEvent(
            event_id=data["event_id"],
            recorded_at=datetime.fromisoformat(data["recorded_at"]),
            event=event_from_dict(data["event"]),
        )
