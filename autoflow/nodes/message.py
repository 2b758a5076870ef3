"""Send-message action node."""

from typing import Any, List

from autoflow.core.graph import NodeType, SendMessageConfig, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode


class SendMessageNode(BaseNode):
    """Send a message to a recipient through the messaging CLI.

    Every message from one workflow lands in the thread ``workflow-<id>``.
    """

    node_types = (NodeType.ACTION_SEND_MESSAGE,)
    config_model = SendMessageConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: SendMessageConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        message = self._message(node, config, input, context)
        return await self.tools(context).run(
            context.settings.message_command,
            self.build_args(context, config.recipient, message),
            timeout=context.settings.cli_timeout,
        )

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: SendMessageConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        message = self._message(node, config, input, context)
        return {"dryRun": True, "recipient": config.recipient, "message": message}

    def _message(self, node, config, input, context) -> str:
        message = self.resolve(config.message, input, context)
        context.log(node.id, f'Send message to {config.recipient}: "{message[:80]}..."')
        return message

    @staticmethod
    def build_args(context: ExecutionContext, recipient: str, message: str) -> List[str]:
        return [
            "--from",
            context.settings.message_sender,
            "--to",
            recipient,
            "--thread",
            f"workflow-{context.workflow_id}",
            message,
        ]
