"""Event bus for event-triggered workflows.

Producers (task APIs, schedulers, file watchers, ingest jobs) emit events
into an EventBus. The bus keeps the most recent events in a bounded ring
buffer and, in the background, runs every enabled workflow that has a
matching ``trigger_event`` node.

One EventBus is constructed at process start and passed to whatever needs
it; there is no module-level instance.
"""

import asyncio
import concurrent.futures
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Set, TYPE_CHECKING, Union

from autoflow.core.graph import NodeType, TriggerEventConfig, Workflow
from autoflow.core.state import TriggerKind, WorkflowRun
from autoflow.utils.config import Settings
from autoflow.utils.errors import ExpressionError
from autoflow.utils.expressions import evaluate, is_truthy
from autoflow.utils.ids import generate_event_id, utc_now_iso

if TYPE_CHECKING:
    from autoflow.backends.base import RunStore
    from autoflow.core.executor import WorkflowEngine

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """All event types the bus accepts."""

    TASK_CREATED = "task_created"
    TASK_CLOSED = "task_closed"
    TASK_STATUS_CHANGED = "task_status_changed"
    SIGNAL_RECEIVED = "signal_received"
    FILE_CHANGED = "file_changed"
    INGEST_ITEM = "ingest_item"


@dataclass
class Event:
    """An event flowing through the bus.

    Attributes:
        id: Unique event id (10 URL-safe characters)
        type: Event type
        timestamp: ISO timestamp assigned on emit
        source: Label of the producer
        data: Event-specific payload
        project: Project context, if any
    """

    id: str
    type: EventType
    timestamp: str
    source: str
    data: Dict[str, Any] = field(default_factory=dict)
    project: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "source": self.source,
            "data": self.data,
        }
        if self.project is not None:
            result["project"] = self.project
        return result


EventListener = Callable[[Event], None]


class EventBus:
    """Ring buffer of recent events plus fire-and-forget workflow dispatch.

    ``emit`` may be called from any thread. The ring buffer, the per-workflow
    cooldown map and the listener list are guarded by one lock. Dispatch runs
    as a task on the running event loop, or on the loop bound with
    ``bind_loop`` when ``emit`` is called from another thread.

    Example:
        >>> bus = EventBus(engine, store)
        >>> event = bus.emit("task_created", "api", {"taskId": "t-1"})
        >>> await bus.wait_idle()
        >>> bus.query_recent(limit=1)[0].id == event.id
        True
    """

    def __init__(
        self,
        engine: "WorkflowEngine",
        store: "RunStore",
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize event bus.

        Args:
            engine: Engine used to run matched workflows
            store: Source of enabled workflows
            settings: Buffer size and cooldown (defaults to ``Settings()``)
            clock: Monotonic clock in seconds, injectable for tests
            loop: Loop to dispatch on when emitting from other threads
        """
        settings = settings or Settings()
        self.engine = engine
        self.store = store
        self.buffer_size = settings.event_buffer_size
        self.cooldown_seconds = settings.event_cooldown_seconds
        self._clock = clock
        self._loop = loop

        self._lock = threading.Lock()
        self._events: Deque[Event] = deque(maxlen=self.buffer_size)
        self._last_fired: Dict[str, float] = {}
        self._listeners: List[EventListener] = []
        self._pending: Set[Union[asyncio.Future, concurrent.futures.Future]] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the loop used for dispatch when ``emit`` runs off-loop."""
        self._loop = loop

    # -------------------------------------------------------------------------
    # Emitting and querying
    # -------------------------------------------------------------------------

    def emit(
        self,
        type: Union[EventType, str],
        source: str,
        data: Optional[Dict[str, Any]] = None,
        project: Optional[str] = None,
    ) -> Event:
        """Record an event and schedule matching workflows.

        Returns immediately; dispatch failures are logged, never raised.

        Args:
            type: Event type (``EventType`` or its string value)
            source: Label of the producer
            data: Event payload
            project: Project context

        Returns:
            The stored Event with id and timestamp assigned

        Raises:
            ValueError: If ``type`` is not a known event type
        """
        event = Event(
            id=generate_event_id(),
            type=EventType(type),
            timestamp=utc_now_iso(),
            source=source,
            data=dict(data or {}),
            project=project,
        )

        with self._lock:
            self._events.append(event)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for event %s", event.id)

        self._schedule(event)
        return event

    def query_recent(
        self,
        type: Optional[Union[EventType, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Event]:
        """Return buffered events, most recent first.

        Args:
            type: Only return events of this type
            limit: Maximum number of events (ignored unless positive)
        """
        with self._lock:
            events = list(self._events)

        if type:
            wanted = type.value if isinstance(type, EventType) else str(type)
            events = [event for event in events if event.type.value == wanted]

        events.reverse()
        if limit and limit > 0:
            events = events[:limit]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on(self, listener: EventListener) -> None:
        """Register a listener called synchronously with every emitted event.

        Listeners may run on the emitting thread and must not block.
        """
        with self._lock:
            self._listeners.append(listener)

    def off(self, listener: EventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _schedule(self, event: Event) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            future: Union[asyncio.Future, concurrent.futures.Future] = running.create_task(
                self._dispatch_safely(event)
            )
        elif self._loop is not None and self._loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self._dispatch_safely(event), self._loop)
        else:
            logger.warning("No running event loop; event %s stored but not dispatched", event.id)
            return

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Any) -> None:
        with self._lock:
            self._pending.discard(future)

    async def _dispatch_safely(self, event: Event) -> None:
        try:
            await self.match_and_dispatch(event)
        except Exception:
            logger.exception("Dispatch failed for event %s", event.id)

    def _claim_cooldown(self, workflow_id: str) -> bool:
        """Mark a workflow as fired unless it fired within the cooldown window."""
        with self._lock:
            now = self._clock()
            last = self._last_fired.get(workflow_id)
            if last is not None and now - last < self.cooldown_seconds:
                return False
            self._last_fired[workflow_id] = now
            return True

    def matches(self, workflow: Workflow, config: TriggerEventConfig, event: Event) -> bool:
        """Check a trigger node's event type and optional filter against an event.

        A filter that fails to evaluate counts as no match.
        """
        if not config.event_type or config.event_type != event.type.value:
            return False
        if not config.filter:
            return True
        try:
            return is_truthy(evaluate(config.filter, {"data": event.data}))
        except ExpressionError as e:
            logger.warning("Filter expression error in workflow %s: %s", workflow.id, e)
            return False

    async def match_and_dispatch(self, event: Event) -> List[WorkflowRun]:
        """Run every enabled workflow with a trigger node matching ``event``.

        Each workflow fires at most once per cooldown window, whichever of
        its trigger nodes matched.

        Args:
            event: Event to dispatch

        Returns:
            Runs started by this event
        """
        try:
            workflows = await self.store.load_enabled_workflows()
        except Exception:
            logger.exception("Failed to load workflows for event %s", event.id)
            return []

        runs: List[WorkflowRun] = []
        for workflow in workflows:
            if not workflow.enabled:
                continue

            for node in workflow.nodes_of_type(NodeType.TRIGGER_EVENT):
                if not self.matches(workflow, node.config, event):
                    continue
                if not self._claim_cooldown(workflow.id):
                    continue

                logger.info(
                    'Event %s matched workflow "%s" (%s)',
                    event.type.value, workflow.name, workflow.id,
                )
                try:
                    run = await self.engine.run_workflow(
                        workflow,
                        trigger=TriggerKind.EVENT,
                        event_data=event.data,
                        project=event.project,
                    )
                    runs.append(run)
                except Exception:
                    logger.exception("Failed to execute workflow %s", workflow.id)

        return runs

    async def wait_idle(self) -> None:
        """Wait until every scheduled dispatch has finished."""
        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                return
            await asyncio.gather(
                *(
                    asyncio.wrap_future(f) if isinstance(f, concurrent.futures.Future) else f
                    for f in pending
                ),
                return_exceptions=True,
            )

    def reset(self) -> None:
        """Clear buffered events and cooldowns."""
        with self._lock:
            self._events.clear()
            self._last_fired.clear()

    def __repr__(self) -> str:
        return f"EventBus(events={len(self)}, buffer_size={self.buffer_size})"
