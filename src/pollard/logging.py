"""
Structured logging for Pollard research runs.

Log calls take arbitrary keyword fields:

    logger.info("Hunter complete", sources=12, insights=4)

Fields set with ``log_context()`` (run_id, project, hunter) are merged into
every record emitted inside the block. The console gets a rich rendering with
the short run id and hunter in front of the message; an optional log file
gets one JSON object per line.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, MutableMapping

import orjson
from rich.console import Console, ConsoleRenderable
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER = "pollard"
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")

_CONTEXT_KEYS = ("run_id", "project", "hunter")
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

_context: ContextVar[Mapping[str, str]] = ContextVar(
    "pollard_log_context", default=MappingProxyType({})
)


@contextmanager
def log_context(
    run_id: str | None = None,
    project: str | None = None,
    hunter: str | None = None,
) -> Iterator[None]:
    """Attach run fields to every record logged inside the block.

    Nested blocks add to the enclosing fields. asyncio tasks copy the
    context they are created in, so a hunter task's fields stay in that task.
    """
    added = {
        key: value
        for key, value in (("run_id", run_id), ("project", project), ("hunter", hunter))
        if value is not None
    }
    token = _context.set(MappingProxyType({**_context.get(), **added}))
    try:
        yield
    finally:
        _context.reset(token)


def current_context() -> dict[str, str]:
    return dict(_context.get())


def short_run_id(run_id: str) -> str:
    """Last 8 characters of the uuid part of ``run_<uuid7>``."""
    return run_id.rpartition("_")[2][-8:]


class ContextLogger(logging.LoggerAdapter):
    """Moves keyword fields and the current log context into ``record.fields``."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        fields: dict[str, Any] = current_context()
        fields.update(kwargs.pop("extra", None) or {})
        for key in [k for k in kwargs if k not in _LOGGING_KWARGS]:
            fields[key] = kwargs.pop(key)
        kwargs["extra"] = {"fields": fields}
        return msg, kwargs


class JSONFormatter(logging.Formatter):
    """One JSON object per record, fields flattened into the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(getattr(record, "fields", {}))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


class ContextRichHandler(RichHandler):
    """Rich console handler that shows run context and fields inline."""

    def render_message(self, record: logging.LogRecord, message: str) -> ConsoleRenderable:
        rendered = super().render_message(record, message)
        fields: dict[str, Any] = getattr(record, "fields", {})
        if not fields or not isinstance(rendered, Text):
            return rendered

        line = Text()
        if run_id := fields.get("run_id"):
            line.append(f"{short_run_id(run_id)} ", style="dim cyan")
        if hunter := fields.get("hunter"):
            line.append(f"{hunter} ", style="magenta")
        line.append_text(rendered)

        extras = " ".join(f"{k}={v}" for k, v in fields.items() if k not in _CONTEXT_KEYS)
        if extras:
            line.append(f"  {extras}", style="dim")
        return line


_console: Console | None = None
_configured = False


def get_console() -> Console:
    """Console used for log output (stderr, so stdout stays clean for tables)."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the ``pollard`` logger tree.

    Args:
        log_level: Level for the console handler and the logger itself.
        log_file: Optional JSON Lines log file; always records DEBUG and up.
        console_output: Whether to log to the rich console.
    """
    global _configured

    level = logging.getLevelName(log_level.upper())
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(level)

    if console_output:
        console_handler = ContextRichHandler(
            console=get_console(),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setLevel(level)
        root.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Context-aware logger under the ``pollard`` tree."""
    if not _configured:
        setup_logging()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
