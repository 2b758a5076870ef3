"""Executor registry mapping each node kind to its executor.

Every ``NodeType`` is bound to exactly one executor instance. The built-ins
cover the whole enum; hosts can override a kind (for example to stub out a
collaborator) with ``register``.
"""

from typing import Dict, List, Optional, TYPE_CHECKING

from autoflow.core.graph import NodeType
from autoflow.utils.errors import InvalidNodeTypeError

if TYPE_CHECKING:
    from autoflow.nodes.base import NodeExecutor


class ExecutorRegistry:
    """Registry of node executors keyed by ``NodeType``.

    Example:
        >>> registry = ExecutorRegistry()
        >>> registry.get(NodeType.CONDITION)
        ConditionNode(types=[condition])
        >>> registry.register(NodeType.LLM_PROMPT, MyFakeLLM())
    """

    def __init__(self, register_builtins: bool = True):
        """Initialize registry.

        Args:
            register_builtins: Bind the built-in executor for every node kind
        """
        self._executors: Dict[NodeType, "NodeExecutor"] = {}
        if register_builtins:
            self._register_builtin_nodes()

    def _register_builtin_nodes(self) -> None:
        """Register built-in executors."""
        from autoflow.nodes import (
            BrowserNode,
            ConditionNode,
            CreateTaskNode,
            LLMNode,
            RunCommandNode,
            SendMessageNode,
            SpawnAgentNode,
            TransformNode,
            TriggerNode,
        )

        for executor in (
            TriggerNode(),
            LLMNode(),
            CreateTaskNode(),
            SendMessageNode(),
            RunCommandNode(),
            SpawnAgentNode(),
            BrowserNode(),
            ConditionNode(),
            TransformNode(),
        ):
            for node_type in executor.node_types:
                self._executors[node_type] = executor

    def register(self, node_type: NodeType, executor: "NodeExecutor") -> None:
        """Bind an executor to a node kind, replacing any existing one.

        Args:
            node_type: Node kind
            executor: Object with an async ``execute(node, input, context)``
        """
        self._executors[NodeType(node_type)] = executor

    def unregister(self, node_type: NodeType) -> None:
        self._executors.pop(NodeType(node_type), None)

    def get(self, node_type: NodeType) -> "NodeExecutor":
        """Get the executor for a node kind.

        Raises:
            InvalidNodeTypeError: If no executor is registered for the kind
        """
        executor = self.find(node_type)
        if executor is None:
            raise InvalidNodeTypeError(
                f"No executor for node type: {getattr(node_type, 'value', node_type)}"
            )
        return executor

    def find(self, node_type: NodeType) -> Optional["NodeExecutor"]:
        return self._executors.get(node_type)

    def has(self, node_type: NodeType) -> bool:
        return node_type in self._executors

    def missing_types(self) -> List[NodeType]:
        """Node kinds with no executor bound."""
        return [node_type for node_type in NodeType if node_type not in self._executors]

    def __repr__(self) -> str:
        return f"ExecutorRegistry(executors={len(self._executors)})"
