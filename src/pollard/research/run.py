"""
Research run identity and state.

A Run is one coordinated execution of several hunters for a project. Its
run_id is the race-prevention key: updates and events carry it, and anything
tagged with another run's id is stale. Every read and write goes through a
single per-run lock, so a Run may be inspected from any thread while its
hunter tasks are still writing to it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
from datetime import datetime, timedelta

from pollard.cancel import CancelToken
from pollard.logging import get_logger
from pollard.types import HunterState, HunterStatus, Update, generate_id, utc_now

logger = get_logger(__name__)


def _resolve(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


class Run:
    """A single research execution with stable identity.

    Attributes:
        run_id: Unique, immutable identifier (``run_<uuid7>``).
        project_id: The project this run researches.
        started_at: Creation time.
        token: Cancellation handle, child of the caller-supplied parent.
    """

    def __init__(self, run_id: str, project_id: str, token: CancelToken) -> None:
        self._run_id = run_id
        self.project_id = project_id
        self.started_at: datetime = utc_now()
        self.token = token

        self._lock = threading.RLock()
        self._hunters: dict[str, HunterStatus] = {}
        self._updates: list[Update] = []
        self._done_at: datetime | None = None
        self._waiters: list[asyncio.Future[None]] = []

    @classmethod
    def create(cls, project_id: str, parent: CancelToken | None = None) -> Run:
        """Create a run with a fresh id and a token derived from ``parent``."""
        token = parent.child() if parent is not None else CancelToken()
        return cls(run_id=generate_id("run"), project_id=project_id, token=token)

    @property
    def run_id(self) -> str:
        return self._run_id

    def __repr__(self) -> str:
        return f"Run(run_id={self._run_id!r}, project_id={self.project_id!r})"

    # ------------------------------------------------------------------
    # Hunter state machine
    # ------------------------------------------------------------------

    def register_hunter(self, name: str) -> None:
        """Track a hunter in this run. Re-registering keeps the existing status."""
        with self._lock:
            self._hunters.setdefault(name, HunterStatus(name=name))

    def start_hunter(self, name: str) -> None:
        """Mark a pending hunter as running."""
        with self._lock:
            status = self._hunters.get(name)
            if status is None or status.status is not HunterState.PENDING:
                return
            self._hunters[name] = dataclasses.replace(
                status, status=HunterState.RUNNING, started_at=utc_now()
            )

    def complete_hunter(self, name: str, findings_count: int) -> None:
        """Mark a hunter complete with the number of findings it reported."""
        with self._lock:
            status = self._hunters.get(name)
            if status is None or status.status.is_terminal:
                return
            self._hunters[name] = dataclasses.replace(
                status,
                status=HunterState.COMPLETE,
                finished_at=utc_now(),
                findings=findings_count,
            )

    def error_hunter(self, name: str, err: BaseException | str) -> None:
        """Mark a hunter as failed."""
        with self._lock:
            status = self._hunters.get(name)
            if status is None or status.status.is_terminal:
                return
            self._hunters[name] = dataclasses.replace(
                status,
                status=HunterState.ERROR,
                finished_at=utc_now(),
                error=str(err),
            )

    def cancel_hunter(self, name: str) -> None:
        """Mark a hunter that stopped because its run was cancelled."""
        with self._lock:
            status = self._hunters.get(name)
            if status is None or status.status.is_terminal:
                return
            self._hunters[name] = dataclasses.replace(
                status, status=HunterState.CANCELLED, finished_at=utc_now()
            )

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def add_update(self, update: Update) -> bool:
        """Record a topic-scoped update from a hunter.

        Updates tagged with another run's id are dropped.

        Returns:
            True if the update was appended.
        """
        with self._lock:
            if update.run_id != self._run_id:
                logger.debug(
                    "Dropped stale update",
                    update_run_id=update.run_id,
                    hunter=update.hunter_name,
                )
                return False
            self._updates.append(dataclasses.replace(update, timestamp=utc_now()))
            return True

    def get_updates_for_topic(self, topic_key: str) -> list[Update]:
        with self._lock:
            return [u for u in self._updates if u.topic_key == topic_key]

    def get_all_updates(self) -> list[Update]:
        with self._lock:
            return list(self._updates)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_hunter_statuses(self) -> dict[str, HunterStatus]:
        """Return a snapshot of every hunter's status.

        HunterStatus is frozen, so the copied dict is safe to read after the
        lock is released.
        """
        with self._lock:
            return dict(self._hunters)

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for h in self._hunters.values() if h.status is HunterState.RUNNING)

    def is_complete(self) -> bool:
        """True once at least one hunter is registered and all have finished."""
        with self._lock:
            if not self._hunters:
                return False
            return all(h.status.is_terminal for h in self._hunters.values())

    def total_findings(self) -> int:
        """Sum of the counts hunters reported on completion.

        This is deliberately not the number of Update entries: a hunter may
        batch many findings under one count or report none as updates.
        """
        with self._lock:
            return sum(h.findings for h in self._hunters.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel(self, reason: str | None = None) -> None:
        self.token.cancel(reason)

    def is_cancelled(self) -> bool:
        return self.token.cancelled

    def mark_done(self) -> None:
        """Record completion and wake every wait() caller. Safe from any thread."""
        with self._lock:
            if self._done_at is None:
                self._done_at = utc_now()
            waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            loop = waiter.get_loop()
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve, waiter)

    @property
    def is_done(self) -> bool:
        with self._lock:
            return self._done_at is not None

    @property
    def done_at(self) -> datetime | None:
        with self._lock:
            return self._done_at

    def duration(self) -> timedelta:
        """Elapsed time: fixed once the run is done, wall clock before that."""
        with self._lock:
            end = self._done_at or utc_now()
            return end - self.started_at

    async def wait(self) -> None:
        """Suspend until mark_done() has been called."""
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        with self._lock:
            if self._done_at is not None:
                return
            self._waiters.append(waiter)
        try:
            await waiter
        finally:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
