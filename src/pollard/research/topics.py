"""
Topic and query mapping.

Callers group search queries under topic keys (usually interview questions
such as "platform" or "auth"). Hunters only see a flat query list; the
reverse map built here routes their results back to a topic.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from pollard.exceptions import ConfigurationError
from pollard.hunters.base import HuntedItem, HuntResult
from pollard.types import GENERAL_TOPIC, Finding, TopicConfig, generate_id, utc_now

# Relevance given to the single summary finding of a hunter that does not
# return individual items.
SUMMARY_RELEVANCE = 0.7


def flatten_topics(topics: Iterable[TopicConfig]) -> tuple[list[str], dict[str, str]]:
    """Flatten topics into one query list plus a query -> topic key map.

    Queries keep the caller's order. When the same query appears under two
    topics, the first topic wins the mapping.
    """
    queries: list[str] = []
    query_map: dict[str, str] = {}
    for topic in topics:
        for query in topic.queries:
            queries.append(query)
            query_map.setdefault(query, topic.key)
    return queries, query_map


def default_topic(query_map: dict[str, str]) -> str:
    """Topic used for results that cannot be attributed to a query."""
    return next(iter(query_map.values()), GENERAL_TOPIC)


def build_topic_findings(
    hunter_name: str,
    result: HuntResult,
    query_map: dict[str, str],
) -> dict[str, list[Finding]]:
    """Convert a hunt result into findings grouped by topic key.

    Topic-aware results (``result.items``) are routed by their query. A
    result with only aggregate counts produces one summary finding attributed
    to the first mapped topic, and nothing at all if no sources were
    collected. Group order follows first appearance.
    """
    grouped: dict[str, list[Finding]] = {}

    if result.items:
        for item in result.items:
            topic_key = query_map.get(item.query, GENERAL_TOPIC)
            grouped.setdefault(topic_key, []).append(finding_from_item(hunter_name, item))
        return grouped

    if result.sources_collected > 0:
        grouped[default_topic(query_map)] = [summary_finding(hunter_name, result)]

    return grouped


def _clamp_score(score: float) -> float:
    """Clamp to [0, 1]; NaN and infinities score 0."""
    if not math.isfinite(score):
        return 0.0
    return min(max(score, 0.0), 1.0)


def finding_from_item(hunter_name: str, item: HuntedItem) -> Finding:
    return Finding(
        id=generate_id("finding"),
        title=item.title,
        summary=item.summary,
        source=item.url,
        source_type=hunter_name,
        relevance=_clamp_score(item.score),
        tags=item.tags,
        collected_at=utc_now(),
    )


def summary_finding(hunter_name: str, result: HuntResult) -> Finding:
    return Finding(
        id=generate_id("finding"),
        title=f"{hunter_name} results",
        summary=(
            f"Found {result.sources_collected} sources "
            f"with {result.insights_created} insights"
        ),
        source=hunter_name,
        source_type=hunter_name,
        relevance=SUMMARY_RELEVANCE,
        collected_at=utc_now(),
    )


def parse_topic_option(option: str) -> TopicConfig:
    """Parse ``key=query one;query two`` into a TopicConfig.

    Raises:
        ConfigurationError: If the key or every query is empty.
    """
    key, sep, raw_queries = option.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ConfigurationError("topic must look like key=query[;query...]", context={"topic": option})

    queries = tuple(q.strip() for q in raw_queries.split(";") if q.strip())
    if not queries:
        raise ConfigurationError("topic has no queries", context={"topic": option})

    return TopicConfig(key=key, queries=queries)


def topics_from_options(options: Sequence[str]) -> list[TopicConfig]:
    return [parse_topic_option(o) for o in options]
