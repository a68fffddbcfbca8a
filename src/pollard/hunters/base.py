"""
Hunter interface and registry.

A hunter is a pluggable research agent. The coordinator resolves hunters by
name, hands each one the run's cancel token and a HuntConfig, and only looks
at the aggregate counts (plus optional topic-aware items) it returns.

Hunters must observe the token promptly and must not share mutable state
with other hunters: several of them run concurrently within one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Protocol, runtime_checkable

from pollard.cancel import CancelToken
from pollard.types import utc_now

HuntMode = Literal["quick", "balanced", "deep"]


@dataclass(frozen=True)
class HuntConfig:
    """Parameters for a single hunt."""

    queries: tuple[str, ...]
    max_results: int = 10  # per query
    mode: HuntMode = "balanced"
    min_points: int = 0  # engagement floor for sources that have one


@dataclass(frozen=True)
class HuntedItem:
    """One source found by a topic-aware hunter, tagged with its query."""

    query: str
    title: str
    url: str
    summary: str = ""
    score: float = 0.0  # 0.0 to 1.0
    tags: tuple[str, ...] = field(default_factory=tuple)


@dataclass
class HuntResult:
    """Outcome of a hunt.

    ``insights_created`` is the count the coordinator reports as the
    hunter's findings; ``items`` is optional detail.
    """

    hunter_name: str
    sources_collected: int = 0
    insights_created: int = 0
    items: list[HuntedItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return not self.errors

    def __str__(self) -> str:
        end = self.completed_at or utc_now()
        seconds = (end - self.started_at).total_seconds()
        return (
            f"{self.hunter_name}: {self.sources_collected} sources, "
            f"{self.insights_created} insights in {seconds:.1f}s"
        )


@runtime_checkable
class Hunter(Protocol):
    """A research agent the coordinator can dispatch."""

    name: str

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult: ...


class HunterRegistry:
    """Name -> hunter lookup."""

    def __init__(self, hunters: list[Hunter] | None = None) -> None:
        self._hunters: dict[str, Hunter] = {}
        for hunter in hunters or []:
            self.register(hunter)

    def register(self, hunter: Hunter) -> None:
        """Add a hunter, replacing any hunter already registered under its name."""
        self._hunters[hunter.name] = hunter

    def get(self, name: str) -> Hunter | None:
        return self._hunters.get(name)

    def names(self) -> list[str]:
        return sorted(self._hunters)

    def __contains__(self, name: object) -> bool:
        return name in self._hunters

    def __len__(self) -> int:
        return len(self._hunters)


def default_registry() -> HunterRegistry:
    """Registry with every built-in hunter, configured from settings."""
    from pollard.hunters.hackernews import HackerNewsHunter

    return HunterRegistry([HackerNewsHunter.from_settings()])
