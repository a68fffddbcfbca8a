"""
Research run coordinator.

Owns at most one active Run. Starting a run supersedes the current one:
its token is cancelled and RunCancelled is emitted before the new run's
RunStarted. Each named hunter runs as its own asyncio task; the run is
marked done and RunCompleted emitted once every task has joined.

Superseded runs are not stopped forcibly. Their hunter tasks keep writing
into the abandoned Run object and keep emitting events tagged with the old
run_id, which subscribers discard as stale. A hunter that stops because
its run was cancelled ends in the CANCELLED state and emits no HunterError;
the cancellation is reported once, as RunCancelled.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pollard.cancel import CancelToken
from pollard.exceptions import CoordinatorError, HuntCancelledError, HunterNotFoundError
from pollard.hunters.base import HuntConfig, HunterRegistry, HuntMode, default_registry
from pollard.logging import get_logger, log_context
from pollard.research.events import (
    HunterCompleted,
    HunterError,
    HunterStarted,
    HunterUpdate,
    RunCancelled,
    RunCompleted,
    RunEvent,
    RunStarted,
    Subscriber,
)
from pollard.research.run import Run
from pollard.research.topics import build_topic_findings, flatten_topics
from pollard.types import HunterStatus, TopicConfig, Update

logger = get_logger(__name__)

NEW_RUN_REASON = "new run started"


@dataclass
class CoordinatorConfig:
    """Hunt parameters passed to every hunter of a run."""

    max_results: int = 10
    mode: HuntMode = "balanced"


def _describe(err: BaseException) -> str:
    return str(err) or type(err).__name__


class Coordinator:
    """Starts, cancels and observes research runs.

    Accessors never suspend and return empty or zero values while no run is
    active. All state is guarded by one lock; events are delivered to the
    single registered subscriber, or dropped if there is none.
    """

    def __init__(
        self,
        registry: HunterRegistry | None = None,
        config: CoordinatorConfig | None = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.config = config or CoordinatorConfig()

        self._lock = threading.RLock()
        self._active_run: Run | None = None
        self._subscriber: Subscriber | None = None
        # asyncio keeps only weak references to tasks
        self._tasks: set[asyncio.Task[None]] = set()

    def set_subscriber(self, subscriber: Subscriber | None) -> None:
        """Attach the event consumer, replacing any previous one."""
        with self._lock:
            self._subscriber = subscriber

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start_run(
        self,
        project_id: str,
        hunter_names: Sequence[str],
        topics: Iterable[TopicConfig] = (),
        parent: CancelToken | None = None,
    ) -> Run:
        """Begin a new research run and return it without waiting.

        Any active run is cancelled first. Must be called from a running
        event loop; hunters execute as tasks on that loop.

        Args:
            project_id: Project the run belongs to.
            hunter_names: Hunters to dispatch, resolved through the registry.
            topics: Query groups; results are routed back to these keys.
            parent: Optional token whose cancellation also cancels the run.

        Returns:
            The new, now active, Run.

        Raises:
            CoordinatorError: If no event loop is running.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise CoordinatorError(
                "start_run requires a running event loop",
                context={"project_id": project_id},
            ) from e

        names = tuple(dict.fromkeys(hunter_names))
        topic_list = list(topics)

        with self._lock:
            previous = self._active_run
            if previous is not None:
                previous.cancel(NEW_RUN_REASON)
                logger.info("Superseding research run", run_id=previous.run_id)
                self._emit(RunCancelled(run_id=previous.run_id, reason=NEW_RUN_REASON))

            run = Run.create(project_id, parent)
            for name in names:
                run.register_hunter(name)
            self._active_run = run

            logger.info(
                "Research run started",
                run_id=run.run_id,
                project=project_id,
                hunters=list(names),
                topics=[t.key for t in topic_list],
            )
            self._emit(RunStarted(run_id=run.run_id, project_id=project_id, hunters=names))

        task = loop.create_task(
            self._execute_run(run, names, topic_list),
            name=f"pollard-run-{run.run_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run

    def cancel_active_run(self, reason: str) -> bool:
        """Cancel the active run, if any.

        Returns:
            True if a run was cancelled. Nothing is emitted when idle.
        """
        with self._lock:
            run = self._active_run
            if run is None:
                return False
            run.cancel(reason)
            self._active_run = None
            logger.info("Research run cancelled", run_id=run.run_id, reason=reason)
            self._emit(RunCancelled(run_id=run.run_id, reason=reason))
        return True

    async def wait_idle(self) -> None:
        """Wait for every dispatched run, including superseded ones, to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute_run(
        self,
        run: Run,
        hunter_names: tuple[str, ...],
        topics: list[TopicConfig],
    ) -> None:
        with log_context(run_id=run.run_id, project=run.project_id):
            queries, query_map = flatten_topics(topics)
            try:
                outcomes = await asyncio.gather(
                    *(self._execute_hunter(run, name, queries, query_map) for name in hunter_names),
                    return_exceptions=True,
                )
            finally:
                # Also reached when the dispatch task itself is torn down
                run.mark_done()
                run.token.detach()

            for name, outcome in zip(hunter_names, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(
                    outcome, asyncio.CancelledError
                ):
                    logger.error("Hunter task crashed", hunter=name, error=_describe(outcome))

            total = run.total_findings()
            duration = run.duration()
            logger.info(
                "Research run complete",
                total_findings=total,
                duration_seconds=round(duration.total_seconds(), 3),
                superseded=run.is_cancelled(),
            )
            self._emit(RunCompleted(run_id=run.run_id, total_findings=total, duration=duration))

    async def _execute_hunter(
        self,
        run: Run,
        name: str,
        queries: list[str],
        query_map: dict[str, str],
    ) -> None:
        with log_context(hunter=name):
            hunter = self.registry.get(name)
            if hunter is None:
                err = HunterNotFoundError(name)
                run.error_hunter(name, err)
                logger.warning("Hunter not registered")
                self._emit(HunterError(run_id=run.run_id, hunter_name=name, error=str(err)))
                return

            if run.is_cancelled():
                logger.debug("Run cancelled before hunter started")
                return

            run.start_hunter(name)
            logger.debug("Hunter started", queries=len(queries))
            self._emit(HunterStarted(run_id=run.run_id, hunter_name=name))

            config = HuntConfig(
                queries=tuple(queries),
                max_results=self.config.max_results,
                mode=self.config.mode,
            )
            try:
                result = await hunter.hunt(run.token, config)
                grouped = build_topic_findings(name, result, query_map)
                finding_count = int(result.insights_created)
            except asyncio.CancelledError:
                run.cancel_hunter(name)
                raise
            except Exception as e:
                if isinstance(e, HuntCancelledError) or run.is_cancelled():
                    # Reported once, as RunCancelled
                    run.cancel_hunter(name)
                    logger.debug("Hunter stopped by cancellation", error=_describe(e))
                    return
                run.error_hunter(name, _describe(e))
                logger.warning("Hunter failed", error=_describe(e))
                self._emit(HunterError(run_id=run.run_id, hunter_name=name, error=_describe(e)))
                return

            for topic_key, findings in grouped.items():
                batch = tuple(findings)
                run.add_update(
                    Update(run_id=run.run_id, hunter_name=name, topic_key=topic_key, findings=batch)
                )
                self._emit(
                    HunterUpdate(
                        run_id=run.run_id,
                        hunter_name=name,
                        topic_key=topic_key,
                        findings=batch,
                    )
                )

            run.complete_hunter(name, finding_count)
            logger.debug(
                "Hunter complete",
                sources=result.sources_collected,
                insights=finding_count,
                topics=list(grouped),
            )
            self._emit(
                HunterCompleted(
                    run_id=run.run_id,
                    hunter_name=name,
                    finding_count=finding_count,
                )
            )

    def _emit(self, event: RunEvent) -> None:
        with self._lock:
            subscriber = self._subscriber
        if subscriber is None:
            return
        try:
            subscriber.send(event)
        except Exception:
            logger.exception("Subscriber failed", kind=event.kind.value)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_active_run(self) -> Run | None:
        with self._lock:
            return self._active_run

    def is_run_active(self, run_id: str) -> bool:
        """True only if ``run_id`` is the current active run's id."""
        with self._lock:
            return self._active_run is not None and self._active_run.run_id == run_id

    def get_updates_for_topic(self, topic_key: str) -> list[Update]:
        with self._lock:
            if self._active_run is None:
                return []
            return self._active_run.get_updates_for_topic(topic_key)

    def get_hunter_statuses(self) -> dict[str, HunterStatus]:
        with self._lock:
            if self._active_run is None:
                return {}
            return self._active_run.get_hunter_statuses()

    def running_hunter_count(self) -> int:
        with self._lock:
            if self._active_run is None:
                return 0
            return self._active_run.running_count()

    def total_findings(self) -> int:
        with self._lock:
            if self._active_run is None:
                return 0
            return self._active_run.total_findings()
