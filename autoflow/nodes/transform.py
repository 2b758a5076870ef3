"""Transform node: reshape data with a single expression."""

from typing import Any

from autoflow.core.graph import NodeType, TransformConfig, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode
from autoflow.utils.errors import NodeExecutionError, ExpressionError
from autoflow.utils.expressions import evaluate_transform


class TransformNode(BaseNode):
    """Evaluate ``functionBody`` with ``input`` in scope and return the value.

    The body is one expression, optionally written as ``return <expr>;``.
    Unlike conditions, evaluation errors fail the node.

    Example:
        >>> # config: {"functionBody": "return { title: input.title.toUpperCase() };"}
    """

    node_types = (NodeType.TRANSFORM,)
    config_model = TransformConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: TransformConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        context.log(node.id, f"Transform: {config.function_body[:80]}")
        try:
            return evaluate_transform(config.function_body, input)
        except ExpressionError as e:
            raise NodeExecutionError(node.id, str(e), e) from e

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: TransformConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        context.log(node.id, f"Transform: {config.function_body[:80]}")
        return {"dryRun": True, "functionBody": config.function_body, "input": input}
