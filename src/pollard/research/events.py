"""
Run lifecycle events.

Seven event kinds form a closed union, ``RunEvent``. Every event carries the
run_id of the run that produced it. For one run, RunStarted precedes every
Hunter* event, and RunCompleted/RunCancelled follow every Hunter* event
already emitted. A superseded run's RunCancelled is always emitted before its
replacement's RunStarted.

Consumers implement ``Subscriber``. Events from an abandoned run keep
arriving after it has been superseded; wrap a consumer in
``CurrentRunFilter`` to drop them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Protocol, Union, runtime_checkable

from pollard.logging import get_logger
from pollard.types import Finding

logger = get_logger(__name__)


class EventKind(str, Enum):
    """Discriminator for RunEvent members."""

    RUN_STARTED = "run_started"
    HUNTER_STARTED = "hunter_started"
    HUNTER_UPDATE = "hunter_update"
    HUNTER_COMPLETED = "hunter_completed"
    HUNTER_ERROR = "hunter_error"
    RUN_COMPLETED = "run_completed"
    RUN_CANCELLED = "run_cancelled"


@dataclass(frozen=True)
class RunStarted:
    kind: ClassVar[EventKind] = EventKind.RUN_STARTED

    run_id: str
    project_id: str
    hunters: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class HunterStarted:
    kind: ClassVar[EventKind] = EventKind.HUNTER_STARTED

    run_id: str
    hunter_name: str


@dataclass(frozen=True)
class HunterUpdate:
    kind: ClassVar[EventKind] = EventKind.HUNTER_UPDATE

    run_id: str
    hunter_name: str
    topic_key: str
    findings: tuple[Finding, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class HunterCompleted:
    kind: ClassVar[EventKind] = EventKind.HUNTER_COMPLETED

    run_id: str
    hunter_name: str
    finding_count: int


@dataclass(frozen=True)
class HunterError:
    kind: ClassVar[EventKind] = EventKind.HUNTER_ERROR

    run_id: str
    hunter_name: str
    error: str


@dataclass(frozen=True)
class RunCompleted:
    kind: ClassVar[EventKind] = EventKind.RUN_COMPLETED

    run_id: str
    total_findings: int
    duration: timedelta


@dataclass(frozen=True)
class RunCancelled:
    kind: ClassVar[EventKind] = EventKind.RUN_CANCELLED

    run_id: str
    reason: str


RunEvent = Union[
    RunStarted,
    HunterStarted,
    HunterUpdate,
    HunterCompleted,
    HunterError,
    RunCompleted,
    RunCancelled,
]

EVENT_TYPES: dict[EventKind, type[RunEvent]] = {
    RunStarted.kind: RunStarted,
    HunterStarted.kind: HunterStarted,
    HunterUpdate.kind: HunterUpdate,
    HunterCompleted.kind: HunterCompleted,
    HunterError.kind: HunterError,
    RunCompleted.kind: RunCompleted,
    RunCancelled.kind: RunCancelled,
}


def hunter_name_of(event: RunEvent) -> str | None:
    """Return the hunter an event refers to, or None for run-level events."""
    return getattr(event, "hunter_name", None)


@runtime_checkable
class Subscriber(Protocol):
    """Single consumer of coordinator events.

    send() is called synchronously from the coordinator's event loop and
    must not block.
    """

    def send(self, event: RunEvent) -> None: ...


class CurrentRunFilter:
    """Forwards only events belonging to the most recently started run.

    The run id is taken from the last RunStarted seen. Until one arrives,
    every event is dropped.
    """

    def __init__(self, inner: Subscriber) -> None:
        self.inner = inner
        self.current_run_id: str | None = None
        self.dropped = 0

    def accept(self, event: RunEvent) -> bool:
        if isinstance(event, RunStarted):
            self.current_run_id = event.run_id
            return True
        return event.run_id == self.current_run_id

    def send(self, event: RunEvent) -> None:
        if self.accept(event):
            self.inner.send(event)
        else:
            self.dropped += 1
            logger.debug("Dropped stale event", kind=event.kind.value, event_run_id=event.run_id)


class FanOut:
    """Broadcasts each event to several subscribers in registration order.

    A subscriber that raises is logged and skipped; the rest still receive
    the event.
    """

    def __init__(self, *subscribers: Subscriber) -> None:
        self.subscribers: list[Subscriber] = list(subscribers)

    def add(self, subscriber: Subscriber) -> None:
        self.subscribers.append(subscriber)

    def send(self, event: RunEvent) -> None:
        for subscriber in self.subscribers:
            try:
                subscriber.send(event)
            except Exception:
                logger.exception(
                    "Subscriber failed",
                    subscriber=type(subscriber).__name__,
                    kind=event.kind.value,
                )


class EventCollector:
    """Subscriber that keeps every event in memory, in arrival order."""

    def __init__(self) -> None:
        self.events: list[RunEvent] = []

    def send(self, event: RunEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> list[RunEvent]:
        return [e for e in self.events if e.kind is kind]

    def for_run(self, run_id: str) -> list[RunEvent]:
        return [e for e in self.events if e.run_id == run_id]


# ----------------------------------------------------------------------
# Serialization
# ----------------------------------------------------------------------


def _finding_to_dict(finding: Finding) -> dict[str, Any]:
    return {
        "id": finding.id,
        "title": finding.title,
        "summary": finding.summary,
        "source": finding.source,
        "source_type": finding.source_type,
        "relevance": finding.relevance,
        "tags": list(finding.tags),
        "collected_at": finding.collected_at.isoformat(),
    }


def _finding_from_dict(data: dict[str, Any]) -> Finding:
    return Finding(
        id=data["id"],
        title=data["title"],
        summary=data["summary"],
        source=data["source"],
        source_type=data["source_type"],
        relevance=data["relevance"],
        tags=tuple(data.get("tags", [])),
        collected_at=datetime.fromisoformat(data["collected_at"]),
    )


def event_to_dict(event: RunEvent) -> dict[str, Any]:
    """Convert an event to a JSON-compatible dict tagged with its kind."""
    data: dict[str, Any] = {"kind": event.kind.value, "run_id": event.run_id}

    match event:
        case RunStarted(project_id=project_id, hunters=hunters):
            data["project_id"] = project_id
            data["hunters"] = list(hunters)
        case HunterStarted(hunter_name=hunter_name):
            data["hunter_name"] = hunter_name
        case HunterUpdate(hunter_name=hunter_name, topic_key=topic_key, findings=findings):
            data["hunter_name"] = hunter_name
            data["topic_key"] = topic_key
            data["findings"] = [_finding_to_dict(f) for f in findings]
        case HunterCompleted(hunter_name=hunter_name, finding_count=finding_count):
            data["hunter_name"] = hunter_name
            data["finding_count"] = finding_count
        case HunterError(hunter_name=hunter_name, error=error):
            data["hunter_name"] = hunter_name
            data["error"] = error
        case RunCompleted(total_findings=total_findings, duration=duration):
            data["total_findings"] = total_findings
            data["duration_seconds"] = duration.total_seconds()
        case RunCancelled(reason=reason):
            data["reason"] = reason

    return data


def event_from_dict(data: dict[str, Any]) -> RunEvent:
    """Rebuild an event from ``event_to_dict`` output.

    Raises:
        ValueError: If the kind is unknown.
    """
    kind = EventKind(data["kind"])
    run_id = data["run_id"]

    if kind is EventKind.RUN_STARTED:
        return RunStarted(run_id, data["project_id"], tuple(data.get("hunters", [])))
    if kind is EventKind.HUNTER_STARTED:
        return HunterStarted(run_id, data["hunter_name"])
    if kind is EventKind.HUNTER_UPDATE:
        return HunterUpdate(
            run_id,
            data["hunter_name"],
            data["topic_key"],
            tuple(_finding_from_dict(f) for f in data.get("findings", [])),
        )
    if kind is EventKind.HUNTER_COMPLETED:
        return HunterCompleted(run_id, data["hunter_name"], data["finding_count"])
    if kind is EventKind.HUNTER_ERROR:
        return HunterError(run_id, data["hunter_name"], data["error"])
    if kind is EventKind.RUN_COMPLETED:
        return RunCompleted(
            run_id, data["total_findings"], timedelta(seconds=data["duration_seconds"])
        )
    return RunCancelled(run_id, data["reason"])
