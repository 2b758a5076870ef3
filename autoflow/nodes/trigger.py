"""Trigger nodes: entry points of a workflow run."""

from typing import Any, Dict

from autoflow.core.graph import CamelModel, NodeType, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode
from autoflow.utils.ids import utc_now_iso


class TriggerNode(BaseNode):
    """Executor shared by manual, cron and event triggers.

    A trigger passes through the event payload injected into its input when
    there is one, otherwise it emits a minimal "fired" marker. Triggers have
    no side effects, so a dry run differs only by the marker.
    """

    node_types = (
        NodeType.TRIGGER_MANUAL,
        NodeType.TRIGGER_CRON,
        NodeType.TRIGGER_EVENT,
    )
    config_model = CamelModel

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: Any,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        context.log(node.id, f"Trigger {node.type.value} fired")
        if isinstance(input, dict) and input:
            return input
        return self._fired()

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: Any,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        context.log(node.id, f"Trigger {node.type.value} fired (dry run)")
        if isinstance(input, dict) and input:
            return {**input, "dryRun": True}
        return {**self._fired(), "dryRun": True}

    @staticmethod
    def _fired() -> Dict[str, Any]:
        return {"triggered": True, "timestamp": utc_now_iso()}
