"""LLM node: run a prompt through the LLM command-line tool.

The prompt template is resolved against the node's input and earlier
outputs, then handed to the CLI (``claude -p <prompt> --model <model>``)
inside the project directory. The raw text reply is the node's output.
"""

from typing import Any, List

from autoflow.core.graph import LLM_MODELS, LlmPromptConfig, NodeType, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode

DEFAULT_MODEL = "sonnet"


class LLMNode(BaseNode):
    """Send a prompt to a model via the LLM CLI and return its text."""

    node_types = (NodeType.LLM_PROMPT,)
    config_model = LlmPromptConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: LlmPromptConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        prompt = self._prompt(node, config, input, context)
        model = self._model(config)

        settings = context.settings
        return await self.tools(context).run(
            settings.llm_command,
            self.build_args(prompt, model, config),
            cwd=context.project_dir(config.project),
            timeout=settings.llm_timeout,
        )

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: LlmPromptConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        prompt = self._prompt(node, config, input, context)
        return f"[DRY RUN] Would send to {self._model(config)}: {prompt[:200]}"

    def _prompt(
        self,
        node: WorkflowNode,
        config: LlmPromptConfig,
        input: Any,
        context: ExecutionContext,
    ) -> str:
        prompt = self.resolve(config.prompt, input, context)
        context.log(node.id, f"LLM prompt ({self._model(config)}): {prompt[:100]}...")
        return prompt

    @staticmethod
    def _model(config: LlmPromptConfig) -> str:
        return config.model if config.model in LLM_MODELS else DEFAULT_MODEL

    @staticmethod
    def build_args(prompt: str, model: str, config: LlmPromptConfig) -> List[str]:
        args = ["-p", prompt, "--model", model]
        if config.max_tokens:
            # The CLI has no token cap; a single turn is the closest bound
            args.extend(["--max-turns", "1"])
        return args
