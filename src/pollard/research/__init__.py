"""
Research run coordination.

This package implements the run engine:
- Run identity and per-hunter state (run.py)
- Lifecycle events and subscribers (events.py)
- Topic/query routing (topics.py)
- The coordinator that fans hunters out and aggregates their findings
"""

from pollard.research.coordinator import Coordinator, CoordinatorConfig
from pollard.research.events import (
    CurrentRunFilter,
    EventCollector,
    EventKind,
    FanOut,
    HunterCompleted,
    HunterError,
    HunterStarted,
    HunterUpdate,
    RunCancelled,
    RunCompleted,
    RunEvent,
    RunStarted,
    Subscriber,
)
from pollard.research.run import Run

__all__ = [
    "Coordinator",
    "CoordinatorConfig",
    "CurrentRunFilter",
    "EventCollector",
    "EventKind",
    "FanOut",
    "HunterCompleted",
    "HunterError",
    "HunterStarted",
    "HunterUpdate",
    "Run",
    "RunCancelled",
    "RunCompleted",
    "RunEvent",
    "RunStarted",
    "Subscriber",
]
