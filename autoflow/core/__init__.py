"""Core execution engine components."""

from autoflow.core.graph import (
    NodeType,
    WorkflowNode,
    WorkflowEdge,
    Workflow,
    ensure_valid,
    topological_sort,
    validate_workflow,
)
from autoflow.core.state import (
    ExecutionContext,
    NodeExecutionResult,
    NodeStatus,
    RunStatus,
    TriggerKind,
    WorkflowRun,
)
from autoflow.core.executor import WorkflowEngine, resolve_node_input, compute_run_status
from autoflow.core.events import Event, EventBus, EventType

__all__ = [
    "NodeType",
    "WorkflowNode",
    "WorkflowEdge",
    "Workflow",
    "ensure_valid",
    "topological_sort",
    "validate_workflow",
    "ExecutionContext",
    "NodeExecutionResult",
    "NodeStatus",
    "RunStatus",
    "TriggerKind",
    "WorkflowRun",
    "WorkflowEngine",
    "resolve_node_input",
    "compute_run_status",
    "Event",
    "EventBus",
    "EventType",
]
