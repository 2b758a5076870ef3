"""Node executors, one per node kind."""

from autoflow.nodes.base import NodeExecutor, BaseNode
from autoflow.nodes.trigger import TriggerNode
from autoflow.nodes.llm import LLMNode
from autoflow.nodes.task import CreateTaskNode
from autoflow.nodes.message import SendMessageNode
from autoflow.nodes.command import RunCommandNode
from autoflow.nodes.spawn import SpawnAgentNode
from autoflow.nodes.browser import BrowserNode
from autoflow.nodes.condition import ConditionNode
from autoflow.nodes.transform import TransformNode

__all__ = [
    "NodeExecutor",
    "BaseNode",
    "TriggerNode",
    "LLMNode",
    "CreateTaskNode",
    "SendMessageNode",
    "RunCommandNode",
    "SpawnAgentNode",
    "BrowserNode",
    "ConditionNode",
    "TransformNode",
]
