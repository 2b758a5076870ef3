"""Utility functions and helpers."""

from autoflow.utils.config import Settings, load_env, get_config
from autoflow.utils.errors import (
    AutoflowError,
    GraphValidationError,
    SchedulingError,
    CycleDetectedError,
    NodeExecutionError,
    ExpressionError,
    ToolInvocationError,
    InvalidNodeTypeError,
    WorkflowNotFoundError,
)
from autoflow.utils.expressions import evaluate, evaluate_condition, evaluate_transform
from autoflow.utils.process import ToolRunner, SubprocessToolRunner
from autoflow.utils.variables import VariableResolver, substitute_variables

__all__ = [
    "Settings",
    "load_env",
    "get_config",
    "AutoflowError",
    "GraphValidationError",
    "SchedulingError",
    "CycleDetectedError",
    "NodeExecutionError",
    "ExpressionError",
    "ToolInvocationError",
    "InvalidNodeTypeError",
    "WorkflowNotFoundError",
    "evaluate",
    "evaluate_condition",
    "evaluate_transform",
    "ToolRunner",
    "SubprocessToolRunner",
    "VariableResolver",
    "substitute_variables",
]
