"""
Hunter package.

Research agents the coordinator dispatches by name:
- Hunter protocol, HuntConfig/HuntResult and HunterRegistry (base.py)
- HackerNewsHunter: trending discussions from the HN Algolia API
"""

from pollard.hunters.base import (
    HuntConfig,
    HuntedItem,
    Hunter,
    HunterRegistry,
    HuntMode,
    HuntResult,
    default_registry,
)
from pollard.hunters.hackernews import HackerNewsHunter

__all__ = [
    "HackerNewsHunter",
    "HuntConfig",
    "HuntMode",
    "HuntResult",
    "HuntedItem",
    "Hunter",
    "HunterRegistry",
    "default_registry",
]
