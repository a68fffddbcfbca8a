"""
HackerNews hunter.

Searches the HN Algolia API for stories matching each query, deduplicates
them across queries and reports every story at or above the points
threshold as an insight tagged with the query that found it.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from pollard.cancel import CancelToken
from pollard.config import Settings, get_settings
from pollard.exceptions import HuntError
from pollard.hunters.base import HuntConfig, HuntedItem, HuntResult
from pollard.logging import get_logger
from pollard.types import utc_now

logger = get_logger(__name__)

HACKERNEWS_NAME = "hackernews-trendwatcher"
HN_SEARCH_URL = "https://hn.algolia.com/api/v1/search"
HN_ITEM_URL = "https://news.ycombinator.com/item?id="

# Points at which a story scores full relevance (log scale below that)
FULL_RELEVANCE_POINTS = 1000
STORY_TEXT_EXCERPT = 280


class RateLimiter:
    """Sliding-window rate limiter for the Algolia API."""

    def __init__(self, max_requests: int, period: float) -> None:
        self.max_requests = max_requests
        self.period = period
        self._timestamps: list[float] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request can be made within rate limits."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()

            self._timestamps = [ts for ts in self._timestamps if now - ts < self.period]

            if len(self._timestamps) >= self.max_requests:
                sleep_time = self.period - (now - self._timestamps[0])
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                self._timestamps = self._timestamps[1:]

            self._timestamps.append(loop.time())


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def relevance_for_points(points: int) -> float:
    """Map story points onto [0, 1] on a log scale."""
    if points <= 0:
        return 0.0
    return min(1.0, math.log10(points + 1) / math.log10(FULL_RELEVANCE_POINTS + 1))


class HackerNewsHunter:
    """Finds trending HackerNews discussions for each query."""

    name = HACKERNEWS_NAME

    def __init__(
        self,
        min_points: int = 0,
        requests_per_minute: int = 60,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the hunter.

        Args:
            min_points: Stories below this many points are counted as
                sources but not reported as insights.
            requests_per_minute: Algolia request budget.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests inject a mock).
        """
        self.min_points = min_points
        self.timeout = timeout
        self._transport = transport
        self._rate_limiter = RateLimiter(requests_per_minute, 60.0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> HackerNewsHunter:
        settings = settings or get_settings()
        return cls(
            min_points=settings.HN_MIN_POINTS,
            requests_per_minute=settings.HN_REQUESTS_PER_MINUTE,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def hunt(self, token: CancelToken, config: HuntConfig) -> HuntResult:
        """Search every query, stopping early if the run is cancelled.

        Raises:
            HuntCancelledError: If the token is cancelled, including while
                waiting on the rate limiter, a retry backoff or a request.
            HuntError: If every search failed.
        """
        result = HuntResult(hunter_name=self.name)
        min_points = max(self.min_points, config.min_points)
        seen: set[str] = set()

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            for query in config.queries:
                await token.race(self._rate_limiter.acquire())

                try:
                    hits = await token.race(self._search(client, query, config.max_results))
                except httpx.HTTPError as e:
                    logger.warning("HackerNews search failed", query=query, error=str(e))
                    result.errors.append(f"search {query!r}: {e}")
                    continue

                for hit in hits:
                    object_id = str(hit.get("objectID", ""))
                    if not object_id or object_id in seen:
                        continue
                    seen.add(object_id)
                    result.sources_collected += 1

                    points = int(hit.get("points") or 0)
                    if points < min_points:
                        continue
                    result.insights_created += 1
                    result.items.append(self._to_item(query, hit, config.mode == "deep"))

        result.completed_at = utc_now()

        if config.queries and len(result.errors) == len(config.queries):
            raise HuntError(
                "all HackerNews searches failed",
                context={"hunter": self.name, "queries": len(config.queries)},
            )

        logger.debug("HackerNews hunt finished", summary=str(result))
        return result

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _search(
        self, client: httpx.AsyncClient, query: str, hits_per_page: int
    ) -> list[dict[str, Any]]:
        response = await client.get(
            HN_SEARCH_URL,
            params={"query": query, "tags": "story", "hitsPerPage": hits_per_page},
        )
        response.raise_for_status()
        return response.json().get("hits", [])

    def _to_item(self, query: str, hit: dict[str, Any], include_text: bool) -> HuntedItem:
        object_id = str(hit["objectID"])
        points = int(hit.get("points") or 0)
        comments = int(hit.get("num_comments") or 0)

        summary = f"{points} points, {comments} comments by {hit.get('author') or 'unknown'}"
        story_text = hit.get("story_text") or ""
        if include_text and story_text:
            summary = f"{summary}. {story_text[:STORY_TEXT_EXCERPT]}"

        return HuntedItem(
            query=query,
            title=hit.get("title") or "(untitled)",
            url=hit.get("url") or f"{HN_ITEM_URL}{object_id}",
            summary=summary,
            score=relevance_for_points(points),
            tags=("hackernews",),
        )
