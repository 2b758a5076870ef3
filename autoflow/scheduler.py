"""Cron scheduler for workflows with ``trigger_cron`` nodes.

The scheduler polls the store for enabled workflows and keeps the next fire
time of every cron trigger node, computed with croniter in the node's
timezone. A trigger seen for the first time is scheduled from "now", so
enabling a workflow never fires it retroactively.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple, TYPE_CHECKING
from zoneinfo import ZoneInfo

from croniter import croniter

from autoflow.core.graph import NodeType
from autoflow.core.state import TriggerKind, WorkflowRun
from autoflow.utils.config import Settings
from autoflow.utils.ids import utc_now

if TYPE_CHECKING:
    from autoflow.backends.base import RunStore
    from autoflow.core.executor import WorkflowEngine
    from autoflow.core.graph import Workflow

logger = logging.getLogger(__name__)


@dataclass
class CronSchedule:
    """Next fire time of one cron trigger node."""

    cron_expr: str
    timezone: str
    next_fire: datetime

    def advance(self, now: datetime) -> None:
        self.next_fire = next_fire_time(self.cron_expr, self.timezone, now)


def next_fire_time(cron_expr: str, tz_name: Optional[str], after: datetime) -> datetime:
    """Next time ``cron_expr`` fires strictly after ``after``.

    Raises:
        ValueError: If the cron expression is invalid
        KeyError: If the timezone is unknown
    """
    tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    return croniter(cron_expr, after.astimezone(tz)).get_next(datetime)


class CronScheduler:
    """Fire workflows on their cron triggers.

    Example:
        >>> scheduler = CronScheduler(engine, store)
        >>> scheduler.start()
        >>> ...
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        store: "RunStore",
        settings: Optional[Settings] = None,
    ):
        """Initialize scheduler.

        Args:
            engine: Engine used to run due workflows
            store: Source of enabled workflows
            settings: Poll interval (defaults to ``Settings()``)
        """
        settings = settings or Settings()
        self.engine = engine
        self.store = store
        self.poll_interval = settings.cron_poll_interval
        self._schedules: Dict[Tuple[str, str], CronSchedule] = {}
        self._invalid: Set[Tuple[str, str, str, str]] = set()
        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    async def tick(self, now: Optional[datetime] = None) -> List["asyncio.Task[Optional[WorkflowRun]]"]:
        """Start a run for every workflow with a due cron trigger.

        A workflow fires at most once per tick even if several of its cron
        triggers are due. Runs are started as background tasks, so a slow
        run never delays other workflows or the next tick.

        Args:
            now: Current time (defaults to the wall clock, UTC)

        Returns:
            Tasks for the runs started during this tick
        """
        now = now or utc_now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        try:
            workflows = await self.store.load_enabled_workflows()
        except Exception:
            logger.exception("Failed to load workflows for cron tick")
            return []

        seen: Set[Tuple[str, str]] = set()
        started: List["asyncio.Task[Optional[WorkflowRun]]"] = []

        for workflow in workflows:
            if not workflow.enabled:
                continue

            due = False
            for node in workflow.nodes_of_type(NodeType.TRIGGER_CRON):
                key = (workflow.id, node.id)
                seen.add(key)
                if self._check(key, node.config.cron_expr, node.config.timezone or "", now):
                    due = True

            if due:
                logger.info('Cron fired workflow "%s" (%s)', workflow.name, workflow.id)
                task = asyncio.create_task(self._run_safely(workflow))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                started.append(task)

        for key in list(self._schedules):
            if key not in seen:
                del self._schedules[key]

        return started

    async def _run_safely(self, workflow: "Workflow") -> Optional[WorkflowRun]:
        try:
            return await self.engine.run_workflow(workflow, trigger=TriggerKind.CRON)
        except Exception:
            logger.exception("Failed to execute workflow %s", workflow.id)
            return None

    async def wait_idle(self) -> None:
        """Wait until every run started by a tick has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _check(self, key: Tuple[str, str], cron_expr: str, tz_name: str, now: datetime) -> bool:
        """Return True if the trigger is due, advancing its schedule when it is."""
        schedule = self._schedules.get(key)
        if schedule is not None and (schedule.cron_expr, schedule.timezone) == (cron_expr, tz_name):
            if schedule.next_fire > now:
                return False
            schedule.advance(now)
            return True

        try:
            self._schedules[key] = CronSchedule(
                cron_expr=cron_expr,
                timezone=tz_name,
                next_fire=next_fire_time(cron_expr, tz_name, now),
            )
        except (ValueError, KeyError) as e:
            self._schedules.pop(key, None)
            marker = (*key, cron_expr, tz_name)
            if marker not in self._invalid:
                self._invalid.add(marker)
                logger.warning(
                    "Invalid cron trigger %s in workflow %s (%r, tz=%r): %s",
                    key[1], key[0], cron_expr, tz_name or "UTC", e,
                )
        return False

    def next_fire(self, workflow_id: str, node_id: str) -> Optional[datetime]:
        schedule = self._schedules.get((workflow_id, node_id))
        return schedule.next_fire if schedule else None

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start polling in a background task on the running loop."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop polling, then wait for runs already in flight."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.wait_idle()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Cron tick failed")
            await asyncio.sleep(self.poll_interval)

    def __repr__(self) -> str:
        return (
            f"CronScheduler(triggers={len(self._schedules)}, "
            f"in_flight={len(self._pending)}, poll_interval={self.poll_interval})"
        )
