"""Create-task action node."""

from typing import Any, List, Optional

from autoflow.core.graph import CreateTaskConfig, NodeType, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode


class CreateTaskNode(BaseNode):
    """Create a task with the task CLI and return its stdout.

    Title and description are templates. The CLI runs in the configured
    project's directory, else the run's project, else the current directory.

    Example:
        A node with ``{"title": "Fix: {{input.title}}", "type": "bug",
        "priority": 1}`` invokes ``jt create "Fix: ..." --type bug --priority 1``.
    """

    node_types = (NodeType.ACTION_CREATE_TASK,)
    config_model = CreateTaskConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: CreateTaskConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        title, description = self._render(node, config, input, context)
        return await self.tools(context).run(
            context.settings.task_command,
            self.build_args(title, description, config),
            cwd=context.project_dir(config.project),
            timeout=context.settings.cli_timeout,
        )

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: CreateTaskConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        title, description = self._render(node, config, input, context)
        return {
            "dryRun": True,
            "title": title,
            "description": description,
            "type": config.type,
            "priority": config.priority,
        }

    def _render(self, node, config, input, context):
        title = self.resolve(config.title, input, context)
        description = self.resolve(config.description, input, context) if config.description else None
        context.log(node.id, f'Create task: "{title}"')
        return title, description

    @staticmethod
    def build_args(title: str, description: Optional[str], config: CreateTaskConfig) -> List[str]:
        args = ["create", title]
        if config.type:
            args.extend(["--type", config.type])
        if config.priority is not None:
            args.extend(["--priority", str(config.priority)])
        if description:
            args.extend(["--description", description])
        if config.labels:
            args.extend(["--labels", config.labels])
        return args
