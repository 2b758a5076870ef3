"""
Autoflow: event- and schedule-driven workflow automation engine

Workflows are directed acyclic graphs of typed nodes: triggers, LLM
prompts, side-effecting actions (tasks, messages, shell commands, agent
spawns, browser automation), conditions and transforms. The engine runs a
workflow node by node in dependency order, routes around inactive condition
branches, and records a per-node result for every run.

Example:
    >>> from autoflow import Workflow, WorkflowEngine, MemoryStore
    >>>
    >>> workflow = Workflow.model_validate({
    ...     "id": "triage",
    ...     "name": "Triage",
    ...     "nodes": [
    ...         {"id": "start", "type": "trigger_manual", "config": {}},
    ...         {"id": "check", "type": "condition",
    ...          "config": {"expression": "input.triggered === true"}},
    ...     ],
    ...     "edges": [
    ...         {"id": "e1", "sourceNodeId": "start", "sourcePort": "trigger_out",
    ...          "targetNodeId": "check", "targetPort": "data_in"},
    ...     ],
    ... })
    >>> engine = WorkflowEngine(MemoryStore())
    >>> run = await engine.run_workflow(workflow, dry_run=True)
"""

__version__ = "0.1.0"

# Core components
from autoflow.core.graph import (
    NodeType,
    Port,
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
from autoflow.core.executor import WorkflowEngine
from autoflow.core.events import Event, EventBus, EventType

# Executors
from autoflow.utils.registry import ExecutorRegistry

# Backends
from autoflow.backends.base import RunStore
from autoflow.backends.memory import MemoryStore
from autoflow.backends.sqlite import SQLiteStore

# Scheduling
from autoflow.scheduler import CronScheduler

# Configuration and errors
from autoflow.utils.config import Settings, load_env
from autoflow.utils.errors import (
    AutoflowError,
    SchedulingError,
    CycleDetectedError,
    GraphValidationError,
    InvalidNodeTypeError,
    NodeExecutionError,
    ExpressionError,
    ToolInvocationError,
    WorkflowNotFoundError,
)

__all__ = [
    "__version__",
    "NodeType",
    "Port",
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
    "Event",
    "EventBus",
    "EventType",
    "ExecutorRegistry",
    "RunStore",
    "MemoryStore",
    "SQLiteStore",
    "CronScheduler",
    "Settings",
    "load_env",
    "AutoflowError",
    "SchedulingError",
    "CycleDetectedError",
    "GraphValidationError",
    "InvalidNodeTypeError",
    "NodeExecutionError",
    "ExpressionError",
    "ToolInvocationError",
    "WorkflowNotFoundError",
]
