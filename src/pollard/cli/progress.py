"""Rich progress display for research runs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pollard.research.events import (
    HunterCompleted,
    HunterError,
    HunterStarted,
    HunterUpdate,
    RunCancelled,
    RunCompleted,
    RunEvent,
    RunStarted,
)


@dataclass
class HunterRow:
    """Display state for one hunter."""

    name: str
    status: str = "pending"  # pending, running, complete, error, cancelled
    detail: str = ""
    findings: int = 0
    started_at: float | None = None
    completed_at: float | None = None

    @property
    def duration_str(self) -> str:
        """Get formatted duration string."""
        if self.started_at is None:
            return ""
        d = (self.completed_at or time.time()) - self.started_at
        if d < 60:
            return f"{d:.0f}s"
        return f"{int(d // 60)}m {int(d % 60)}s"


class RunProgress:
    """Live hunter table for one research run.

    Acts as a subscriber. It follows the run of the most recent RunStarted
    and ignores events from any other run.
    """

    STATUS_ICONS = {
        "pending": "[dim]...[/dim]",
        "running": "[yellow]...[/yellow]",
        "complete": "[green]OK[/green]",
        "error": "[red]ERR[/red]",
        "cancelled": "[dim]--[/dim]",
    }

    def __init__(self, console: Console, project_id: str) -> None:
        self.console = console
        self.project_id = project_id
        self.started_at = time.time()

        self.run_id: str | None = None
        self.hunters: dict[str, HunterRow] = {}
        self.updates = 0
        self.total_findings: int | None = None
        self.cancel_reason: str | None = None

        self._live: Live | None = None

    @property
    def is_finished(self) -> bool:
        return self.total_findings is not None or self.cancel_reason is not None

    def send(self, event: RunEvent) -> None:
        if isinstance(event, RunStarted):
            self.run_id = event.run_id
            self.hunters = {name: HunterRow(name=name) for name in event.hunters}
            self.updates = 0
            self.total_findings = None
            self.cancel_reason = None
        elif event.run_id != self.run_id:
            return

        match event:
            case HunterStarted(hunter_name=name):
                row = self._row(name)
                row.status = "running"
                row.started_at = time.time()
            case HunterUpdate(hunter_name=name, topic_key=topic, findings=findings):
                self.updates += 1
                self._row(name).detail = f"{len(findings)} finding(s) for {topic}"
            case HunterCompleted(hunter_name=name, finding_count=count):
                row = self._row(name)
                row.status = "complete"
                row.findings = count
                row.completed_at = time.time()
            case HunterError(hunter_name=name, error=error):
                row = self._row(name)
                row.status = "error"
                row.detail = error
                row.completed_at = time.time()
            case RunCompleted(total_findings=total):
                self.total_findings = total
            case RunCancelled(reason=reason):
                self.cancel_reason = reason
                for row in self.hunters.values():
                    if row.status in ("pending", "running"):
                        row.status = "cancelled"
                        row.completed_at = time.time() if row.started_at else None

        self.refresh()

    def _row(self, name: str) -> HunterRow:
        return self.hunters.setdefault(name, HunterRow(name=name))

    def _build_display(self) -> Panel:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Status", width=4)
        table.add_column("Hunter", width=26)
        table.add_column("Findings", width=8, justify="right")
        table.add_column("Detail", style="dim")
        table.add_column("Time", width=8, justify="right", style="dim")

        styles = {"running": "bold yellow", "complete": "green", "error": "red"}
        for row in self.hunters.values():
            detail = row.detail[:45] + "..." if len(row.detail) > 45 else row.detail
            table.add_row(
                self.STATUS_ICONS.get(row.status, ""),
                Text(row.name, style=styles.get(row.status, "dim")),
                str(row.findings) if row.status == "complete" else "",
                detail,
                row.duration_str,
            )

        footer = Text()
        footer.append("Updates: ", style="dim")
        footer.append(str(self.updates), style="cyan")
        footer.append("  |  ", style="dim")
        footer.append("Elapsed: ", style="dim")
        footer.append(f"{time.time() - self.started_at:.0f}s", style="cyan")

        if self.cancel_reason is not None:
            title = f"[bold red]{self.project_id} research cancelled: {self.cancel_reason}[/bold red]"
            border_style = "red"
        elif self.total_findings is not None:
            title = (
                f"[bold green]{self.project_id} research complete "
                f"({self.total_findings} findings)[/bold green]"
            )
            border_style = "green"
        else:
            title = f"[bold cyan]Researching {self.project_id}...[/bold cyan]"
            border_style = "cyan"

        return Panel(Group(table, Text(""), footer), title=title, border_style=border_style)

    def refresh(self) -> None:
        if self._live:
            self._live.update(self._build_display())

    def __enter__(self) -> RunProgress:
        """Start the live display."""
        self._live = Live(
            self._build_display(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
            auto_refresh=True,
            get_renderable=self._build_display,
        )
        self._live.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the live display."""
        if self._live:
            self._live.update(self._build_display())
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None
