"""Run-command action node.

Executes an interpolated command line with ``bash -c``. This is the one
executor that deliberately goes through a shell; everything else passes an
argument vector.
"""

from typing import Any

from autoflow.core.graph import NodeType, RunCommandConfig, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode


class RunCommandNode(BaseNode):
    """Run a shell command and return its captured stdout."""

    node_types = (NodeType.ACTION_RUN_BASH,)
    config_model = RunCommandConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: RunCommandConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        command = self._command(node, config, input, context)
        cwd = config.cwd or context.project_dir()
        return await self.tools(context).run(
            context.settings.shell,
            ["-c", command],
            cwd=cwd,
            timeout=self.timeout(config, context),
        )

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: RunCommandConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        command = self._command(node, config, input, context)
        return {
            "dryRun": True,
            "command": command,
            "cwd": config.cwd,
            "timeout": self.timeout(config, context),
        }

    def _command(self, node, config, input, context) -> str:
        command = self.resolve(config.command, input, context)
        context.log(node.id, f"Run command: {command[:100]}")
        return command

    @staticmethod
    def timeout(config: RunCommandConfig, context: ExecutionContext) -> float:
        return config.timeout or context.settings.command_timeout
