"""Condition node for conditional branching.

This node evaluates a boolean expression against its input and reports
which branch is active. The engine routes on the ``branch`` field: nodes
wired to the other output port are skipped, and nodes on the active port
receive the condition's own input.
"""

from typing import Any, Dict

from autoflow.core.graph import ConditionConfig, NodeType, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode
from autoflow.utils.expressions import evaluate_condition


class ConditionNode(BaseNode):
    """Route a run to its ``true`` or ``false`` output.

    The expression sees the resolved input as ``input``. Any parse or
    evaluation failure counts as false; it never fails the node.

    Example:
        >>> # config: {"expression": "input.flag === true"}
        >>> # input {"flag": True} -> {"branch": "true", "value": True}
    """

    node_types = (NodeType.CONDITION,)
    config_model = ConditionConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: ConditionConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        return self._evaluate(node, config, input, context)

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: ConditionConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        # Evaluation is pure, so a dry run still routes on the real result
        return {**self._evaluate(node, config, input, context), "dryRun": True}

    def _evaluate(
        self,
        node: WorkflowNode,
        config: ConditionConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Dict[str, Any]:
        context.log(node.id, f"Condition: {config.expression}")
        value = evaluate_condition(
            config.expression, {"input": input if input is not None else ""}
        )
        branch = "true" if value else "false"
        context.log(node.id, f"Condition result: {value} -> branch: {branch}")
        return {"branch": branch, "value": value}
