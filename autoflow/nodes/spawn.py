"""Spawn-agent action node.

Asks the orchestration HTTP API to start an agent session on a task by
POSTing to ``{base_url}/api/work/spawn``.
"""

from typing import Any, Dict

import httpx

from autoflow.core.graph import NodeType, SpawnAgentConfig, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode
from autoflow.utils.errors import NodeExecutionError

SPAWN_PATH = "/api/work/spawn"


class SpawnAgentNode(BaseNode):
    """Spawn an agent for an existing task id or a new task title."""

    node_types = (NodeType.ACTION_SPAWN_AGENT,)
    config_model = SpawnAgentConfig

    def __init__(self, timeout_seconds: float = 30.0):
        self.timeout_seconds = timeout_seconds

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: SpawnAgentConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        body = self.build_body(config, input, context)
        self._log(node, config, context)
        url = f"{context.base_url.rstrip('/')}{SPAWN_PATH}"

        try:
            if context.http is not None:
                response = await context.http.post(url, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise NodeExecutionError(node.id, f"Spawn request failed: {e}", e) from e

        if not response.is_success:
            raise NodeExecutionError(
                node.id, f"Spawn failed ({response.status_code}): {response.text}"
            )

        try:
            return response.json()
        except ValueError:
            return response.text

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: SpawnAgentConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        self._log(node, config, context)
        return {
            "dryRun": True,
            "taskId": config.task_id,
            "taskTitle": config.task_title,
            "model": config.model,
        }

    def build_body(
        self, config: SpawnAgentConfig, input: Any, context: ExecutionContext
    ) -> Dict[str, Any]:
        """Build the JSON body: ``taskId``, or ``taskTitle`` with optional description."""
        body: Dict[str, Any] = {}
        if config.task_id:
            body["taskId"] = self.resolve(config.task_id, input, context)
        elif config.task_title:
            body["taskTitle"] = self.resolve(config.task_title, input, context)
            if config.task_description:
                body["taskDescription"] = self.resolve(config.task_description, input, context)
        if config.model:
            body["model"] = config.model
        project = config.project or context.project
        if project:
            body["project"] = project
        return body

    @staticmethod
    def _log(node: WorkflowNode, config: SpawnAgentConfig, context: ExecutionContext) -> None:
        context.log(
            node.id,
            f"Spawn agent: task={config.task_id or config.task_title}, model={config.model}",
        )
