"""
Core types for Pollard research runs.

This module defines the data structures shared by runs, hunters and events:
- HunterState enum for per-hunter execution state
- Frozen dataclasses for findings, updates, topics and hunter status snapshots
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from uuid6 import uuid7

GENERAL_TOPIC = "general"


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run", "finding", "evt")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class HunterState(str, Enum):
    """Execution state of one hunter within a run.

    Transitions only move forward: PENDING -> RUNNING -> COMPLETE | ERROR | CANCELLED.
    CANCELLED marks a hunter that stopped because its run was cancelled; it
    is not an error and no HunterError is emitted for it.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (HunterState.COMPLETE, HunterState.ERROR, HunterState.CANCELLED)


@dataclass(frozen=True)
class HunterStatus:
    """Snapshot of a single hunter's progress within a run."""

    name: str
    status: HunterState = HunterState.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    findings: int = 0
    error: str | None = None  # only set in ERROR state


@dataclass(frozen=True)
class Finding:
    """One piece of gathered information.

    The id is stable so later views (interview suggestions, exports) can
    refer back to the insight it came from.
    """

    id: str
    title: str
    summary: str
    source: str  # URL or reference
    source_type: str  # hackernews, github, arxiv, ...
    relevance: float  # 0.0 to 1.0
    tags: tuple[str, ...] = field(default_factory=tuple)
    collected_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not 0.0 <= self.relevance <= 1.0:
            raise ValueError(f"relevance must be within [0, 1], got {self.relevance}")


@dataclass(frozen=True)
class Update:
    """A batch of findings from one hunter, scoped to one topic.

    The timestamp is assigned by the Run when the update is accepted; any
    value supplied by the caller is overwritten.
    """

    run_id: str
    hunter_name: str
    topic_key: str
    findings: tuple[Finding, ...] = field(default_factory=tuple)
    timestamp: datetime | None = None


@dataclass(frozen=True)
class TopicConfig:
    """Groups search queries under a caller-defined topic key."""

    key: str
    queries: tuple[str, ...] = field(default_factory=tuple)
