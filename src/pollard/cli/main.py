"""
CLI for Pollard research runs.

Commands:
    pollard research PROJECT - Run hunters for a project and summarize findings
    pollard events DIR - List journaled run events
    pollard hunters - List available hunters
    pollard config - Show current configuration
    pollard version - Print version
"""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pollard import __version__
from pollard.cli.progress import RunProgress
from pollard.config import Settings, clear_settings_cache, get_settings
from pollard.exceptions import ConfigurationError
from pollard.hunters.base import HunterRegistry, default_registry
from pollard.journal import EventJournal, EventStore, StoredEvent
from pollard.logging import setup_logging
from pollard.research.coordinator import Coordinator, CoordinatorConfig
from pollard.research.events import EventKind, FanOut, event_to_dict
from pollard.research.run import Run
from pollard.research.topics import topics_from_options
from pollard.types import HunterState, TopicConfig

app = typer.Typer(
    name="pollard",
    help="Pollard - parallel research hunters for project planning",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

INTERRUPT_REASON = "interrupted"


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValueError:
        return None


async def run_research(
    coordinator: Coordinator,
    project_id: str,
    hunter_names: list[str],
    topics: list[TopicConfig],
    subscribers: FanOut,
    journal: EventJournal | None = None,
) -> Run:
    """Run one research run to completion.

    SIGINT cancels the run instead of killing the process; the run still
    finishes once its hunters notice the cancellation.
    """
    if journal is not None:
        await journal.start()
        subscribers.add(journal)
    coordinator.set_subscriber(subscribers)

    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, coordinator.cancel_active_run, INTERRUPT_REASON)

    try:
        run = coordinator.start_run(project_id, hunter_names, topics)
        await run.wait()
    finally:
        with suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        coordinator.set_subscriber(None)
        if journal is not None:
            await journal.close()

    return run


def _print_findings(run: Run, topics: list[TopicConfig]) -> None:
    updates = run.get_all_updates()
    if not updates:
        console.print("[yellow]No findings collected.[/yellow]")
        return

    topic_order = [t.key for t in topics]
    topic_order += sorted({u.topic_key for u in updates} - set(topic_order))

    for topic_key in topic_order:
        topic_updates = run.get_updates_for_topic(topic_key)
        if not topic_updates:
            continue
        table = Table(title=f"Topic: {topic_key}", show_header=True)
        table.add_column("Relevance", justify="right", width=9)
        table.add_column("Title", style="bold")
        table.add_column("Source", style="dim")
        table.add_column("Hunter", style="magenta")

        findings = [(u.hunter_name, f) for u in topic_updates for f in u.findings]
        findings.sort(key=lambda pair: pair[1].relevance, reverse=True)
        for hunter_name, finding in findings:
            table.add_row(f"{finding.relevance:.2f}", finding.title, finding.source, hunter_name)
        console.print(table)


@app.command()
def research(
    project: Annotated[str, typer.Argument(help="Project identifier")],
    hunter: Annotated[
        Optional[list[str]],
        typer.Option("--hunter", "-H", help="Hunter to run (repeatable)"),
    ] = None,
    topic: Annotated[
        Optional[list[str]],
        typer.Option("--topic", "-t", help="Topic as key=query one;query two (repeatable)"),
    ] = None,
    mode: Annotated[
        Optional[str],
        typer.Option("--mode", "-m", help="Hunt mode: quick, balanced or deep"),
    ] = None,
    max_results: Annotated[
        Optional[int],
        typer.Option("--max-results", "-n", help="Results per query"),
    ] = None,
    journal_dir: Annotated[
        Optional[Path],
        typer.Option("--journal-dir", "-j", help="Event journal directory"),
    ] = None,
    no_journal: Annotated[
        bool,
        typer.Option("--no-journal", help="Do not record events"),
    ] = False,
) -> None:
    """Run research hunters for a project.

    Hunters run in parallel; findings are grouped under the given topics.
    """
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'pollard config' to see what's wrong."
        )
        raise typer.Exit(1)

    settings.ensure_directories()
    setup_logging(settings.LOG_LEVEL, log_file=settings.OUTPUT_DIR / "pollard.log", console_output=False)

    try:
        topics = topics_from_options(topic or [])
    except ConfigurationError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)
    if not topics:
        topics = [TopicConfig(key=project, queries=(project,))]

    effective_mode = mode or settings.HUNT_MODE
    if effective_mode not in ("quick", "balanced", "deep"):
        error_console.print(f"[red]Error:[/red] unknown mode {effective_mode!r}")
        raise typer.Exit(2)

    hunter_names = hunter or settings.default_hunters
    coordinator = Coordinator(
        registry=default_registry(),
        config=CoordinatorConfig(
            max_results=max_results or settings.MAX_RESULTS,
            mode=effective_mode,  # type: ignore[arg-type]
        ),
    )

    journal = None
    if not no_journal:
        journal = EventJournal(EventStore(journal_dir or settings.journal_dir()))

    console.print()
    console.print(
        Panel(
            f"[bold]Project:[/bold] {project}\n"
            f"[bold]Hunters:[/bold] {', '.join(hunter_names)}\n"
            f"[bold]Topics:[/bold] {', '.join(t.key for t in topics)}\n"
            f"[bold]Mode:[/bold] {effective_mode}",
            title="[bold cyan]Pollard Research[/bold cyan]",
            border_style="cyan",
        )
    )

    with RunProgress(console, project) as progress:
        run = asyncio.run(
            run_research(coordinator, project, hunter_names, topics, FanOut(progress), journal)
        )

    console.print()
    _print_findings(run, topics)

    failed = {
        name: status.error
        for name, status in run.get_hunter_statuses().items()
        if status.status is HunterState.ERROR
    }
    for name, error in failed.items():
        error_console.print(f"[red]{name}:[/red] {error}")

    if journal is not None:
        console.print(f"\n[dim]Events journaled to:[/dim] {journal.store.output_dir}")
    console.print(f"[dim]Run ID:[/dim] {run.run_id}")

    if run.is_cancelled():
        raise typer.Exit(130)
    if failed and len(failed) == len(hunter_names):
        raise typer.Exit(1)


async def _load_events(
    journal_dir: Path, run_id: str | None, kind: EventKind | None
) -> list[StoredEvent]:
    store = EventStore(journal_dir)
    await store.init()
    try:
        return await store.query(run_id=run_id, kind=kind)
    finally:
        await store.close()


@app.command()
def events(
    journal_dir: Annotated[Path, typer.Argument(help="Event journal directory")],
    run_id: Annotated[
        Optional[str],
        typer.Option("--run-id", "-r", help="Only events of this run"),
    ] = None,
    kind: Annotated[
        Optional[str],
        typer.Option("--kind", "-k", help="Only events of this kind"),
    ] = None,
) -> None:
    """List journaled run events."""
    if not (journal_dir / "events.db").exists():
        error_console.print(f"[red]Error:[/red] no event journal in {journal_dir}")
        raise typer.Exit(1)

    try:
        event_kind = EventKind(kind) if kind else None
    except ValueError:
        choices = ", ".join(k.value for k in EventKind)
        error_console.print(f"[red]Error:[/red] unknown kind {kind!r} (choose from {choices})")
        raise typer.Exit(2)

    stored_events = asyncio.run(_load_events(journal_dir, run_id, event_kind))

    table = Table(title="Run Events", show_header=True)
    table.add_column("Recorded", style="dim")
    table.add_column("Run", style="cyan")
    table.add_column("Kind", style="bold")
    table.add_column("Detail")

    for stored in stored_events:
        data = event_to_dict(stored.event)
        detail = ", ".join(
            f"{k}={v}" for k, v in data.items() if k not in ("kind", "run_id", "findings")
        )
        table.add_row(
            stored.recorded_at.strftime("%H:%M:%S"),
            stored.event.run_id[-8:],
            data["kind"],
            detail,
        )

    console.print(table)
    console.print(f"[dim]{len(stored_events)} event(s)[/dim]")


@app.command()
def hunters() -> None:
    """List available hunters."""
    registry: HunterRegistry = default_registry()
    for name in registry.names():
        console.print(f"- {name}")


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Pollard Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Check POLLARD_* environment variables and your .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"pollard version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
