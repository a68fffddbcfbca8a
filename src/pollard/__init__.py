"""
Pollard research coordination.

Fans research queries out to parallel hunters, tracks each run by a stable
identity and streams run-scoped findings to a single subscriber.
"""

__version__ = "0.1.0"
