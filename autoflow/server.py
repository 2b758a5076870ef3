"""FastAPI application exposing the event bus and workflow runs.

Endpoints:
    POST /api/events                  Emit an event into the bus
    GET  /api/events                  Recent events, newest first
    GET  /api/events/stream           Server-sent stream of new events
    GET  /api/workflows/{id}          Workflow definition
    PUT  /api/workflows/{id}          Create or replace a workflow (validated)
    POST /api/workflows/{id}/run      Run a stored workflow now (validated)
    GET  /api/workflows/{id}/runs     Run history, newest first

The app is built around injected collaborators so one EventBus, engine and
store are shared by every request.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from autoflow.backends.base import RunStore
from autoflow.backends.sqlite import SQLiteStore
from autoflow.core.events import Event, EventBus, EventType
from autoflow.core.executor import WorkflowEngine
from autoflow.core.graph import Workflow, ensure_valid
from autoflow.core.state import TriggerKind
from autoflow.scheduler import CronScheduler
from autoflow.utils.config import Settings, load_env
from autoflow.utils.errors import GraphValidationError, WorkflowNotFoundError

logger = logging.getLogger(__name__)

VALID_EVENT_TYPES = [event_type.value for event_type in EventType]
DEFAULT_EVENT_LIMIT = 50
DEFAULT_RUN_LIMIT = 20


async def _json_body(request: Request, required: bool = True) -> Dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        if required:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="JSON body must be an object")
    return body


def create_app(
    bus: EventBus,
    engine: WorkflowEngine,
    store: RunStore,
    scheduler: Optional[CronScheduler] = None,
) -> FastAPI:
    """Build the HTTP application.

    Args:
        bus: Event bus receiving emitted events
        engine: Engine used for manual runs
        store: Workflow and run storage
        scheduler: Optional cron scheduler started and stopped with the app

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        bus.bind_loop(asyncio.get_running_loop())
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            await bus.wait_idle()

    app = FastAPI(
        title="Autoflow Workflow API",
        description="Emit events and run event- and cron-triggered workflows",
        version="0.1.0",
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    @app.post("/api/events", status_code=201)
    async def emit_event(request: Request):
        """Emit an event. Body: ``{type, source, data, project?}``."""
        body = await _json_body(request)

        event_type = body.get("type")
        if not event_type or event_type not in VALID_EVENT_TYPES:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid event type. Must be one of: {', '.join(VALID_EVENT_TYPES)}",
            )

        source = body.get("source")
        if not source or not isinstance(source, str):
            raise HTTPException(status_code=400, detail="source is required (string)")

        data = body.get("data")
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="data is required (object)")

        project = body.get("project")
        event = bus.emit(
            event_type,
            source,
            data,
            project=project if isinstance(project, str) else None,
        )
        logger.debug("Accepted event %s (%s) from %s", event.id, event.type.value, source)
        return {"success": True, "event": event.to_dict()}

    @app.get("/api/events")
    async def list_events(limit: int = DEFAULT_EVENT_LIMIT, type: Optional[str] = None):
        """Recent events; an unknown ``type`` is ignored rather than rejected."""
        event_type = type if type in VALID_EVENT_TYPES else None
        events = bus.query_recent(type=event_type, limit=limit)
        return {"events": [event.to_dict() for event in events], "count": len(events)}

    @app.get("/api/events/stream")
    async def stream_events(request: Request):
        """Stream newly emitted events as server-sent events."""
        loop = asyncio.get_running_loop()
        queue: "asyncio.Queue[Event]" = asyncio.Queue()

        def listener(event: Event) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        bus.on(listener)

        async def event_generator():
            try:
                while True:
                    if await request.is_disconnected():
                        break
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=1.0)
                    except asyncio.TimeoutError:
                        continue
                    yield {
                        "event": event.type.value,
                        "id": event.id,
                        "data": json.dumps(event.to_dict()),
                    }
            finally:
                bus.off(listener)

        return EventSourceResponse(event_generator())

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    @app.get("/api/workflows/{workflow_id}")
    async def get_workflow(workflow_id: str):
        workflow = await store.get_workflow(workflow_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return workflow.to_record()

    @app.put("/api/workflows/{workflow_id}")
    async def save_workflow(workflow_id: str, request: Request):
        """Create or replace a workflow after structural validation."""
        body = await _json_body(request)
        body["id"] = workflow_id

        try:
            workflow = Workflow.model_validate(body)
        except ValidationError as e:
            raise HTTPException(
                status_code=400,
                detail=[
                    {"path": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                    for error in e.errors()
                ],
            )

        try:
            ensure_valid(workflow)
        except GraphValidationError as e:
            raise HTTPException(
                status_code=400,
                detail=[{"path": issue.path, "message": issue.message} for issue in e.issues],
            )

        await store.save_workflow(workflow)
        return workflow.to_record()

    @app.post("/api/workflows/{workflow_id}/run")
    async def run_workflow(workflow_id: str, request: Request):
        """Run a workflow manually. Body: ``{dryRun?, project?, eventData?}``."""
        body = await _json_body(request, required=False)

        event_data = body.get("eventData")
        project = body.get("project")
        try:
            run = await engine.run_workflow_by_id(
                workflow_id,
                trigger=TriggerKind.MANUAL,
                dry_run=body.get("dryRun") is True,
                event_data=event_data if isinstance(event_data, dict) else None,
                project=project if isinstance(project, str) else None,
            )
        except WorkflowNotFoundError:
            raise HTTPException(status_code=404, detail="Workflow not found")
        except GraphValidationError as e:
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "Workflow has validation errors",
                    "validationErrors": [
                        {"path": issue.path, "message": issue.message} for issue in e.issues
                    ],
                },
            )
        return run.to_record()

    @app.get("/api/workflows/{workflow_id}/runs")
    async def list_runs(workflow_id: str, limit: int = DEFAULT_RUN_LIMIT):
        runs = await store.list_runs(workflow_id, limit=limit)
        return {"runs": [run.to_record() for run in runs]}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "events": len(bus),
            "scheduler": bool(scheduler and scheduler.running),
        }

    return app


def create_default_app(env_file: Optional[str] = None) -> FastAPI:
    """Build the app from environment settings with a SQLite store.

    Suitable as an ASGI factory, e.g. ``uvicorn --factory autoflow.server:create_default_app``.
    """
    load_env(env_file)
    settings = Settings.from_env()
    store = SQLiteStore(settings.database_path)
    engine = WorkflowEngine(store, settings=settings)
    bus = EventBus(engine, store, settings=settings)
    scheduler = CronScheduler(engine, store, settings=settings)
    return create_app(bus, engine, store, scheduler=scheduler)
