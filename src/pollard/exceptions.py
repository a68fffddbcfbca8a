"""
Custom exception hierarchy for Pollard.

All exceptions inherit from PollardError, which provides optional context
for structured error handling and logging.

None of these are fatal to a research run: the coordinator converts hunter
failures into HunterError events and keeps sibling hunters running.
"""

from __future__ import annotations

from typing import Any


class PollardError(Exception):
    """Base exception for all Pollard errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(PollardError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Malformed --topic option on the command line
        - Unknown hunt mode
    """

    pass


class HunterNotFoundError(PollardError):
    """Raised when a hunter name is not present in the registry.

    The string form is exactly the message reported in HunterError events,
    so no context is attached.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"hunter not found: {name}")
        self.name = name


class HuntError(PollardError):
    """Raised by a hunter when its collection fails.

    Context should include:
        - hunter: Name of the failing hunter
        - query: The query being searched, if any
        - status_code: HTTP status code if applicable
    """

    pass


class HuntCancelledError(PollardError):
    """Raised by a hunter that observed its run's cancellation."""

    pass


class CoordinatorError(PollardError):
    """Raised when the coordinator is used incorrectly.

    Context should include:
        - project_id: The project the run was requested for
    """

    pass


class JournalError(PollardError):
    """Raised when the event journal is used before init() or after close()."""

    pass
