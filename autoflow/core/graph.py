"""Workflow graph data structures for autoflow.

This module defines the authored workflow model (nodes, edges, typed
per-kind configuration), the topological sort used to plan a run, and the
structural validation applied before a workflow is saved.
"""

import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from autoflow.utils.errors import CycleDetectedError, GraphValidationError
from autoflow.utils.ids import utc_now_iso


class NodeType(str, Enum):
    """All node kinds a workflow can contain."""

    TRIGGER_MANUAL = "trigger_manual"
    TRIGGER_CRON = "trigger_cron"
    TRIGGER_EVENT = "trigger_event"
    LLM_PROMPT = "llm_prompt"
    ACTION_CREATE_TASK = "action_create_task"
    ACTION_SEND_MESSAGE = "action_send_message"
    ACTION_RUN_BASH = "action_run_bash"
    ACTION_SPAWN_AGENT = "action_spawn_agent"
    ACTION_BROWSER = "action_browser"
    CONDITION = "condition"
    TRANSFORM = "transform"

    @property
    def is_trigger(self) -> bool:
        return self.value.startswith("trigger_")


LLM_MODELS = ("haiku", "sonnet", "opus")
BROWSER_ACTIONS = ("navigate", "screenshot", "eval", "click", "wait")


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase wire names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Per-kind configuration
# =============================================================================


class TriggerManualConfig(CamelModel):
    description: Optional[str] = None


class TriggerCronConfig(CamelModel):
    cron_expr: str = ""
    timezone: Optional[str] = None


class TriggerEventConfig(CamelModel):
    event_type: str = ""
    filter: Optional[str] = None


class LlmPromptConfig(CamelModel):
    prompt: str = ""
    model: str = "sonnet"
    variables: Dict[str, str] = Field(default_factory=dict)
    max_tokens: Optional[int] = None
    project: Optional[str] = None


class CreateTaskConfig(CamelModel):
    title: str = ""
    description: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[int] = None
    labels: Optional[str] = None
    project: Optional[str] = None


class SendMessageConfig(CamelModel):
    recipient: str = ""
    message: str = ""


class RunCommandConfig(CamelModel):
    command: str = ""
    cwd: Optional[str] = None
    timeout: Optional[float] = None


class SpawnAgentConfig(CamelModel):
    task_id: Optional[str] = None
    task_title: Optional[str] = None
    task_description: Optional[str] = None
    model: Optional[str] = None
    project: Optional[str] = None


class BrowserConfig(CamelModel):
    action: str = "navigate"
    url: Optional[str] = None
    selector: Optional[str] = None
    js_code: Optional[str] = None
    timeout: Optional[int] = None


class ConditionConfig(CamelModel):
    expression: str = ""


class TransformConfig(CamelModel):
    function_body: str = ""


NodeConfig = Union[
    TriggerManualConfig,
    TriggerCronConfig,
    TriggerEventConfig,
    LlmPromptConfig,
    CreateTaskConfig,
    SendMessageConfig,
    RunCommandConfig,
    SpawnAgentConfig,
    BrowserConfig,
    ConditionConfig,
    TransformConfig,
]

CONFIG_MODELS: Dict[NodeType, Type[CamelModel]] = {
    NodeType.TRIGGER_MANUAL: TriggerManualConfig,
    NodeType.TRIGGER_CRON: TriggerCronConfig,
    NodeType.TRIGGER_EVENT: TriggerEventConfig,
    NodeType.LLM_PROMPT: LlmPromptConfig,
    NodeType.ACTION_CREATE_TASK: CreateTaskConfig,
    NodeType.ACTION_SEND_MESSAGE: SendMessageConfig,
    NodeType.ACTION_RUN_BASH: RunCommandConfig,
    NodeType.ACTION_SPAWN_AGENT: SpawnAgentConfig,
    NodeType.ACTION_BROWSER: BrowserConfig,
    NodeType.CONDITION: ConditionConfig,
    NodeType.TRANSFORM: TransformConfig,
}

DEFAULT_LABELS: Dict[NodeType, str] = {
    NodeType.TRIGGER_MANUAL: "Manual Trigger",
    NodeType.TRIGGER_CRON: "Cron Trigger",
    NodeType.TRIGGER_EVENT: "Event Trigger",
    NodeType.LLM_PROMPT: "LLM Prompt",
    NodeType.ACTION_CREATE_TASK: "Create Task",
    NodeType.ACTION_SEND_MESSAGE: "Send Message",
    NodeType.ACTION_RUN_BASH: "Run Command",
    NodeType.ACTION_SPAWN_AGENT: "Spawn Agent",
    NodeType.ACTION_BROWSER: "Browser Action",
    NodeType.CONDITION: "Condition",
    NodeType.TRANSFORM: "Transform",
}


# =============================================================================
# Ports, nodes, edges, workflows
# =============================================================================


class PortType(str, Enum):
    DATA = "data"
    TRIGGER = "trigger"
    CONDITION_TRUE = "condition_true"
    CONDITION_FALSE = "condition_false"


class Port(CamelModel):
    """Connection point on a node."""

    id: str
    type: PortType
    label: Optional[str] = None


def default_ports(node_type: NodeType) -> Tuple[List[Port], List[Port]]:
    """Get default (inputs, outputs) ports for a node type.

    Triggers have no inputs. Condition nodes expose a ``true`` and a
    ``false`` output; every other kind has a single data output.
    """
    if node_type.is_trigger:
        return [], [Port(id="trigger_out", type=PortType.TRIGGER, label="Trigger")]

    inputs = [Port(id="data_in", type=PortType.DATA, label="Input")]
    if node_type == NodeType.CONDITION:
        return inputs, [
            Port(id="true", type=PortType.CONDITION_TRUE, label="True"),
            Port(id="false", type=PortType.CONDITION_FALSE, label="False"),
        ]
    return inputs, [Port(id="data_out", type=PortType.DATA, label="Result")]


def branch_for_port(port: str) -> Optional[str]:
    """Map a condition output port to its branch name.

    Accepts both ``true``/``false`` and the older ``true_out``/``false_out``.
    """
    if port in ("true", "true_out"):
        return "true"
    if port in ("false", "false_out"):
        return "false"
    return None


class Position(CamelModel):
    """Canvas position. Presentation only."""

    x: float = 0.0
    y: float = 0.0


class WorkflowNode(CamelModel):
    """A node in the workflow graph.

    The raw ``config`` dict is parsed into the config model bound to the
    node's ``type``, so executors always receive a typed configuration.
    Ports and label default from the type.
    """

    id: str
    type: NodeType
    position: Position = Field(default_factory=Position)
    config: NodeConfig
    label: str = ""
    inputs: List[Port] = Field(default_factory=list)
    outputs: List[Port] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _bind_config(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            node_type = NodeType(data.get("type"))
        except ValueError:
            # Let field validation report the bad type
            return data

        data = dict(data)
        config_model = CONFIG_MODELS[node_type]
        raw = data.get("config")
        if not isinstance(raw, config_model):
            if isinstance(raw, BaseModel):
                raw = raw.model_dump(by_alias=True)
            data["config"] = config_model.model_validate(raw or {})

        inputs, outputs = default_ports(node_type)
        if data.get("inputs") is None:
            data["inputs"] = inputs
        if data.get("outputs") is None:
            data["outputs"] = outputs
        if not data.get("label"):
            data["label"] = DEFAULT_LABELS[node_type]
        return data

    @property
    def is_trigger(self) -> bool:
        return self.type.is_trigger


class WorkflowEdge(CamelModel):
    """Directed connection from a source node's port to a target node's port."""

    id: str
    source_node_id: str
    source_port: str = "data_out"
    target_node_id: str
    target_port: str = "data_in"

    def __hash__(self):
        return hash((self.source_node_id, self.source_port, self.target_node_id, self.target_port))


class Workflow(CamelModel):
    """A complete workflow definition.

    Attributes:
        id: Unique workflow id
        name: Display name
        description: Optional description
        nodes: Nodes in authoring order
        edges: Edges in authoring order
        enabled: Whether cron and event triggers may fire this workflow
        created_at: ISO timestamp of creation
        updated_at: ISO timestamp of last modification
    """

    id: str
    name: str = ""
    description: str = ""
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    enabled: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.target_node_id == node_id]

    def nodes_of_type(self, node_type: NodeType) -> List[WorkflowNode]:
        return [node for node in self.nodes if node.type == node_type]

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Scheduling
# =============================================================================


def topological_sort(
    nodes: List[WorkflowNode], edges: List[WorkflowEdge]
) -> List[WorkflowNode]:
    """Order nodes so every edge's source precedes its target.

    Kahn's algorithm. Ready nodes are seeded in node order and children are
    released in edge order, so the result is deterministic. Edges that
    reference unknown nodes are ignored here; ``validate_workflow`` reports
    them.

    Args:
        nodes: Workflow nodes
        edges: Workflow edges

    Returns:
        Nodes in execution order

    Raises:
        CycleDetectedError: If the graph contains a cycle (including a self-loop)
    """
    node_map: Dict[str, WorkflowNode] = {}
    for node in nodes:
        node_map.setdefault(node.id, node)

    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_map}
    children: Dict[str, List[str]] = {node_id: [] for node_id in node_map}

    for edge in edges:
        if edge.source_node_id not in node_map or edge.target_node_id not in node_map:
            continue
        children[edge.source_node_id].append(edge.target_node_id)
        in_degree[edge.target_node_id] += 1

    queue: Deque[str] = deque(
        node_id for node_id, degree in in_degree.items() if degree == 0
    )
    result: List[WorkflowNode] = []

    while queue:
        node_id = queue.popleft()
        result.append(node_map[node_id])

        for child_id in children[node_id]:
            in_degree[child_id] -= 1
            if in_degree[child_id] == 0:
                queue.append(child_id)

    if len(result) < len(node_map):
        stuck = [node_id for node_id, degree in in_degree.items() if degree > 0]
        raise CycleDetectedError(
            f"Workflow graph contains a cycle involving: {', '.join(stuck)}"
        )

    return result


# =============================================================================
# Validation
# =============================================================================

WORKFLOW_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")


@dataclass
class ValidationIssue:
    """Validation error with a dot-path to the offending field."""

    path: str
    message: str


@dataclass
class ValidationResult:
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)


def is_valid_workflow_id(workflow_id: str) -> bool:
    return bool(WORKFLOW_ID_PATTERN.match(workflow_id)) and 2 <= len(workflow_id) <= 64


def validate_workflow(workflow: Workflow) -> ValidationResult:
    """Check structural and per-kind config invariants of a workflow.

    Cycles are not checked here; they surface when a run is scheduled.

    Args:
        workflow: Workflow to validate

    Returns:
        ValidationResult listing every problem found
    """
    errors: List[ValidationIssue] = []

    if not workflow.id:
        errors.append(ValidationIssue("id", "Workflow ID is required"))
    elif not is_valid_workflow_id(workflow.id):
        errors.append(
            ValidationIssue(
                "id", "ID must be 2-64 characters, alphanumeric with hyphens/underscores"
            )
        )

    if not workflow.name.strip():
        errors.append(ValidationIssue("name", "Workflow name is required"))

    node_ids = set()
    for index, node in enumerate(workflow.nodes):
        prefix = f"nodes[{index}]"
        if not node.id:
            errors.append(ValidationIssue(f"{prefix}.id", "Node ID is required"))
        elif node.id in node_ids:
            errors.append(ValidationIssue(f"{prefix}.id", f"Duplicate node ID: {node.id}"))
        else:
            node_ids.add(node.id)
        errors.extend(_validate_node_config(node, f"{prefix}.config"))

    edge_ids = set()
    for index, edge in enumerate(workflow.edges):
        prefix = f"edges[{index}]"
        if not edge.id:
            errors.append(ValidationIssue(f"{prefix}.id", "Edge ID is required"))
        elif edge.id in edge_ids:
            errors.append(ValidationIssue(f"{prefix}.id", f"Duplicate edge ID: {edge.id}"))
        else:
            edge_ids.add(edge.id)

        if edge.source_node_id not in node_ids:
            errors.append(
                ValidationIssue(
                    f"{prefix}.sourceNodeId", f"Source node not found: {edge.source_node_id}"
                )
            )
        if edge.target_node_id not in node_ids:
            errors.append(
                ValidationIssue(
                    f"{prefix}.targetNodeId", f"Target node not found: {edge.target_node_id}"
                )
            )
        if not edge.source_port:
            errors.append(ValidationIssue(f"{prefix}.sourcePort", "Source port is required"))
        if not edge.target_port:
            errors.append(ValidationIssue(f"{prefix}.targetPort", "Target port is required"))
        if edge.source_node_id and edge.source_node_id == edge.target_node_id:
            errors.append(ValidationIssue(prefix, "Self-loops are not allowed"))

    return ValidationResult(valid=not errors, errors=errors)


def ensure_valid(workflow: Workflow) -> Workflow:
    """Return ``workflow`` unchanged, or raise if it fails validation.

    Raises:
        GraphValidationError: Carrying every issue found
    """
    result = validate_workflow(workflow)
    if not result.valid:
        raise GraphValidationError(result.errors)
    return workflow


def _validate_node_config(node: WorkflowNode, path: str) -> List[ValidationIssue]:
    """Validate node-type-specific configuration."""
    config = node.config
    errors: List[ValidationIssue] = []

    def require(value: Any, field_path: str, message: str) -> None:
        if not value or (isinstance(value, str) and not value.strip()):
            errors.append(ValidationIssue(field_path, message))

    if node.type == NodeType.TRIGGER_CRON:
        require(config.cron_expr, f"{path}.cronExpr", "Cron expression is required")
    elif node.type == NodeType.TRIGGER_EVENT:
        require(config.event_type, f"{path}.eventType", "Event type is required")
    elif node.type == NodeType.LLM_PROMPT:
        require(config.prompt, f"{path}.prompt", "Prompt is required")
        if config.model not in LLM_MODELS:
            errors.append(
                ValidationIssue(f"{path}.model", "Model must be haiku, sonnet, or opus")
            )
    elif node.type == NodeType.ACTION_CREATE_TASK:
        require(config.title, f"{path}.title", "Task title is required")
    elif node.type == NodeType.ACTION_SEND_MESSAGE:
        require(config.recipient, f"{path}.recipient", "Recipient is required")
        require(config.message, f"{path}.message", "Message is required")
    elif node.type == NodeType.ACTION_RUN_BASH:
        require(config.command, f"{path}.command", "Command is required")
    elif node.type == NodeType.ACTION_SPAWN_AGENT:
        if not config.task_id and not config.task_title:
            errors.append(ValidationIssue(path, "Either taskId or taskTitle is required"))
    elif node.type == NodeType.ACTION_BROWSER:
        if config.action not in BROWSER_ACTIONS:
            errors.append(
                ValidationIssue(
                    f"{path}.action",
                    f"Browser action must be one of: {', '.join(BROWSER_ACTIONS)}",
                )
            )
    elif node.type == NodeType.CONDITION:
        require(config.expression, f"{path}.expression", "Condition expression is required")
    elif node.type == NodeType.TRANSFORM:
        require(
            config.function_body, f"{path}.functionBody", "Transform function body is required"
        )

    return errors
