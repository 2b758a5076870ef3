"""Browser action node.

Dispatches one browser sub-action to its automation tool. Each action has
its own required field, checked before anything else so a misconfigured
node fails even in a dry run:

    navigate    url
    screenshot  (nothing)
    eval        jsCode
    click       selector
    wait        selector or timeout
"""

import time
from typing import Any, List, Optional

from autoflow.core.graph import BROWSER_ACTIONS, BrowserConfig, NodeType, WorkflowNode
from autoflow.core.state import ExecutionContext
from autoflow.nodes.base import BaseNode
from autoflow.utils.errors import NodeExecutionError


class BrowserNode(BaseNode):
    """Drive the browser automation tools."""

    node_types = (NodeType.ACTION_BROWSER,)
    config_model = BrowserConfig

    async def _execute_impl(
        self,
        node: WorkflowNode,
        config: BrowserConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        url = self._prepare(node, config, input, context)
        action = config.action
        command = context.settings.browser_commands[action]
        tools = self.tools(context)
        timeout = context.settings.cli_timeout

        if action == "screenshot":
            output = str(
                context.settings.screenshot_dir
                / f"workflow-screenshot-{int(time.time() * 1000)}.png"
            )
            await tools.run(command, ["--output", output], timeout=timeout)
            return {"screenshotPath": output}

        args = self.build_args(config, url, input, context)
        return await tools.run(command, args, timeout=timeout)

    async def _dry_run(
        self,
        node: WorkflowNode,
        config: BrowserConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Any:
        url = self._prepare(node, config, input, context)
        return {
            "dryRun": True,
            "action": config.action,
            "url": url,
            "selector": config.selector,
        }

    def _prepare(
        self,
        node: WorkflowNode,
        config: BrowserConfig,
        input: Any,
        context: ExecutionContext,
    ) -> Optional[str]:
        self.check_required(node, config)
        url = self.resolve(config.url, input, context) if config.url else None
        target = url or config.selector or config.js_code or ""
        context.log(node.id, f"Browser {config.action}: {target}")
        return url

    @staticmethod
    def check_required(node: WorkflowNode, config: BrowserConfig) -> None:
        """Fail fast when the action's required field is missing."""
        action = config.action
        if action not in BROWSER_ACTIONS:
            raise NodeExecutionError(node.id, f"Unknown browser action: {action}")
        if action == "navigate" and not config.url:
            raise NodeExecutionError(node.id, "URL required for navigate action")
        if action == "eval" and not config.js_code:
            raise NodeExecutionError(node.id, "jsCode required for eval action")
        if action == "click" and not config.selector:
            raise NodeExecutionError(node.id, "selector required for click action")
        if action == "wait" and not config.selector and not config.timeout:
            raise NodeExecutionError(node.id, "selector or timeout required for wait action")

    def build_args(
        self,
        config: BrowserConfig,
        url: Optional[str],
        input: Any,
        context: ExecutionContext,
    ) -> List[str]:
        if config.action == "navigate":
            return [url or ""]
        if config.action == "eval":
            return [self.resolve(config.js_code, input, context)]
        if config.action == "click":
            return ["--selector", config.selector]
        args: List[str] = []
        if config.selector:
            args.extend(["--selector", config.selector])
        if config.timeout:
            args.extend(["--timeout", str(config.timeout)])
        return args
