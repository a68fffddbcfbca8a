"""
Pytest configuration and fixtures for Pollard tests.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from pollard.cancel import CancelToken
from pollard.config import Settings, clear_settings_cache
from pollard.hunters.base import HuntConfig, HuntedItem, HunterRegistry, HuntResult
from pollard.research.coordinator import Coordinator
from pollard.research.events import EventCollector


class StaticHunter:
    """Hunter that returns a fixed result and records its configs."""

    def __init__(
        self,
        name: str,
        sources: int = 1,
        insights: int = 1,
        items: list[HuntedItem] | None = None,
    ) -> None:
        self.name = name
        self.sources = sources
        self.insights = insights
        self.items = items or []
        self.calls: list[HuntConfig] = []

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult:
        self.calls.append(config)
        await asyncio.sleep(0)
        return HuntResult(
            hunter_name=self.name,
            sources_collected=self.sources,
            insights_created=self.insights,
            items=list(self.items),
        )


class FailingHunter:
    """Hunter whose hunt always raises."""

    def __init__(self, name: str, error: Exception | None = None) -> None:
        self.name = name
        self.error = error or RuntimeError("api unavailable")

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult:
        await asyncio.sleep(0)
        raise self.error


class GatedHunter:
    """Hunter that blocks until its gate opens or the run is cancelled."""

    def __init__(self, name: str, insights: int = 2) -> None:
        self.name = name
        self.insights = insights
        self.gate = asyncio.Event()
        self.started = asyncio.Event()

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult:
        self.started.set()
        await token.race(self.gate.wait())
        return HuntResult(
            hunter_name=self.name,
            sources_collected=self.insights,
            insights_created=self.insights,
        )


class MalformedHunter:
    """Hunter whose result cannot be turned into findings."""

    def __init__(self, name: str) -> None:
        self.name = name

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult:
        await asyncio.sleep(0)
        return HuntResult(
            hunter_name=self.name,
            sources_collected=1,
            insights_created=1,
            items=[{"title": "not a HuntedItem"}],  # type: ignore[list-item]
        )


class StubbornHunter:
    """Hunter that ignores its token and fails once the run is cancelled."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult:
        self.started.set()
        await self.release.wait()
        raise ConnectionResetError("connection dropped")


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def collector() -> EventCollector:
    """Provide an in-memory event subscriber."""
    return EventCollector()


@pytest.fixture
def registry() -> HunterRegistry:
    """Provide a registry with two well-behaved hunters and one failing hunter."""
    return HunterRegistry(
        [
            StaticHunter("alpha", sources=3, insights=3),
            StaticHunter("beta", sources=5, insights=4),
            FailingHunter("broken"),
        ]
    )


@pytest.fixture
def coordinator(registry: HunterRegistry, collector: EventCollector) -> Coordinator:
    """Provide a coordinator wired to the test registry and collector."""
    coord = Coordinator(registry=registry)
    coord.set_subscriber(collector)
    return coord


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "POLLARD_LOG_LEVEL": "DEBUG",
        "POLLARD_OUTPUT_DIR": "test_output",
        "POLLARD_MAX_RESULTS": "25",
        "POLLARD_HUNT_MODE": "deep",
        "POLLARD_DEFAULT_HUNTERS": "hackernews-trendwatcher, github-scout",
        "POLLARD_HN_MIN_POINTS": "10",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide a Settings instance with output under temp_dir."""
    with patch.dict(os.environ, {"POLLARD_OUTPUT_DIR": str(temp_dir / "output")}):
        clear_settings_cache()
        from pollard.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
