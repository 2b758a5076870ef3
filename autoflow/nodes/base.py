"""Base node executor protocol and implementation.

This module defines the NodeExecutor protocol that every executor
implements, along with a BaseNode class that provides the shared dry-run
switch, config typing and template helpers.

Executors are stateless: one instance serves every node of its kind, and
per-node data arrives through the ``node`` argument.
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Protocol, Tuple, Type, runtime_checkable

from autoflow.core.graph import CamelModel, NodeType, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.utils.errors import AutoflowError
from autoflow.utils.process import ToolRunner
from autoflow.utils.variables import VariableResolver


@runtime_checkable
class NodeExecutor(Protocol):
    """Protocol that all node executors must implement."""

    node_types: Tuple[NodeType, ...]

    async def execute(
        self,
        node: WorkflowNode,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        """Execute node logic and return its output.

        Args:
            node: The node being executed (typed config included)
            input: Resolved input from upstream nodes
            context: Execution context for this run

        Returns:
            The node's output (any JSON-like value)

        Raises:
            Exception: If execution fails; the engine records it on the node
        """
        ...


class BaseNode(ABC):
    """Base implementation with common functionality.

    This provides:
    - The dry-run switch (``_dry_run`` instead of ``_execute_impl``)
    - Access to the node's typed config
    - Template resolution against the run context
    - Access to the injected tool runner

    Subclasses set ``node_types`` and ``config_model`` and implement
    ``_execute_impl()`` and ``_dry_run()``.
    """

    node_types: ClassVar[Tuple[NodeType, ...]] = ()
    config_model: ClassVar[Type[CamelModel]] = CamelModel

    async def execute(
        self,
        node: WorkflowNode,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        """Execute the node, or simulate it when the run is a dry run.

        Args:
            node: The node being executed
            input: Resolved input
            context: Execution context

        Returns:
            Output of ``_execute_impl`` or ``_dry_run``
        """
        config = self.get_config(node)
        if context.dry_run:
            return await self._dry_run(node, config, input, context)
        return await self._execute_impl(node, config, input, context)

    @abstractmethod
    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: Any,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        """Subclasses implement core logic here."""
        pass

    @abstractmethod
    async def _dry_run(
        self,
        node: WorkflowNode,
        config: Any,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        """Return a descriptive placeholder without side effects."""
        pass

    def get_config(self, node: WorkflowNode) -> Any:
        config = node.config
        if not isinstance(config, self.config_model):
            raise AutoflowError(
                f"{self.__class__.__name__} expected {self.config_model.__name__} "
                f"for node '{node.id}', got {type(config).__name__}"
            )
        return config

    def resolve(self, template: Optional[str], input: Any, context: ExecutionContext) -> Optional[str]:
        """Resolve ``{{...}}`` placeholders in a config string."""
        return VariableResolver(context).resolve(template, input)

    def tools(self, context: ExecutionContext) -> ToolRunner:
        if context.tools is None:
            raise AutoflowError("No tool runner configured for this run")
        return context.tools

    def __repr__(self) -> str:
        kinds = ", ".join(t.value for t in self.node_types)
        return f"{self.__class__.__name__}(types=[{kinds}])"
