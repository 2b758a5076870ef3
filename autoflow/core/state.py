"""Run state for workflow execution.

This module holds the per-node and per-run result records that are persisted
after a run, and the mutable ExecutionContext passed to node executors.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, TYPE_CHECKING

from pydantic import Field

from autoflow.core.graph import CamelModel, WorkflowNode
from autoflow.utils.config import Settings

if TYPE_CHECKING:
    import httpx

    from autoflow.utils.process import ToolRunner

logger = logging.getLogger(__name__)


class NodeStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class TriggerKind(str, Enum):
    MANUAL = "manual"
    CRON = "cron"
    EVENT = "event"


class NodeExecutionResult(CamelModel):
    """Result of executing a single node.

    ``input`` and ``output`` are opaque to the engine: any JSON-like value.
    """

    node_id: str
    status: NodeStatus
    input: Optional[Any] = None
    output: Optional[Any] = None
    started_at: str
    completed_at: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None


class WorkflowRun(CamelModel):
    """A single execution run of a workflow.

    Attributes:
        id: Run id
        workflow_id: Owning workflow
        trigger: How the run was triggered
        status: Aggregate status
        started_at: ISO timestamp when the run started
        completed_at: ISO timestamp when the run finished
        duration_ms: Total duration in milliseconds
        node_results: Per-node results keyed by node id, in execution order
        error: Set only when scheduling failed (e.g. a cycle)
    """

    id: str
    workflow_id: str
    trigger: TriggerKind
    status: RunStatus
    started_at: str
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None
    node_results: Dict[str, NodeExecutionResult] = Field(default_factory=dict)
    error: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the persisted run-record shape (camelCase, Nones dropped)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "WorkflowRun":
        return cls.model_validate(record)


class CancelSignal(Protocol):
    """Anything exposing ``is_set()``: asyncio.Event, threading.Event, ..."""

    def is_set(self) -> bool:
        ...


LogSink = Callable[[str, str], None]


@dataclass
class ExecutionContext:
    """Runtime context passed to node executors during one run.

    Attributes:
        workflow_id: Workflow being executed
        run_id: Identifier of this run
        started_at: ISO timestamp of run start
        dry_run: Simulate every node without invoking external collaborators
        settings: Runtime settings (commands, timeouts, directories)
        base_url: Base URL of the orchestration HTTP API
        project: Project context for commands that need one
        nodes: Node id to node, for the whole workflow
        node_results: Results of nodes that reached a terminal state, in order
        logs: Human-readable log lines collected during the run
        log_sink: Optional callback receiving (node_id, message)
        cancel_signal: Checked once before each node
        event_data: Payload of the triggering event, if any
        tools: Runner used to invoke external command-line tools
        http: Client used for HTTP collaborators
    """

    workflow_id: str
    run_id: str
    started_at: str
    dry_run: bool = False
    settings: Settings = field(default_factory=Settings)
    base_url: Optional[str] = None
    project: Optional[str] = None
    nodes: Dict[str, WorkflowNode] = field(default_factory=dict)
    node_results: Dict[str, NodeExecutionResult] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    log_sink: Optional[LogSink] = field(default=None, repr=False)
    cancel_signal: Optional[CancelSignal] = field(default=None, repr=False)
    event_data: Optional[Dict[str, Any]] = None
    tools: Optional["ToolRunner"] = field(default=None, repr=False)
    http: Optional["httpx.AsyncClient"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.base_url is None:
            self.base_url = self.settings.base_url

    def log(self, node_id: str, message: str) -> None:
        """Record a log line for a node."""
        self.logs.append(f"[{node_id}] {message}")
        logger.debug("run=%s node=%s %s", self.run_id, node_id, message)
        if self.log_sink:
            self.log_sink(node_id, message)

    def is_cancelled(self) -> bool:
        return bool(self.cancel_signal is not None and self.cancel_signal.is_set())

    def record(self, result: NodeExecutionResult) -> None:
        self.node_results[result.node_id] = result

    def get_result(self, node_id: str) -> Optional[NodeExecutionResult]:
        return self.node_results.get(node_id)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return self.nodes.get(node_id)

    def project_dir(self, project: Optional[str] = None) -> Path:
        """Working directory for a project-scoped tool call.

        Falls back from the given project to the run's project, then to the
        process working directory.
        """
        directory = self.settings.project_dir(project or self.project)
        return directory if directory is not None else Path.cwd()
