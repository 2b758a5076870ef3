"""Custom error classes for autoflow."""

from typing import Optional


class AutoflowError(Exception):
    """Base exception for all autoflow errors."""

    pass


class GraphValidationError(AutoflowError):
    """Raised when a workflow graph is structurally invalid.

    ``issues`` holds the validation issues (objects with ``path`` and
    ``message``).
    """

    def __init__(self, issues: list):
        self.issues = list(issues)
        summary = "; ".join(f"{issue.path}: {issue.message}" for issue in self.issues)
        super().__init__(f"Invalid workflow: {summary}")


class SchedulingError(AutoflowError):
    """Raised when no execution order can be computed for a workflow.

    This is the only failure that aborts a run outright.
    """

    pass


class CycleDetectedError(SchedulingError):
    """Raised when a cycle is detected in the graph."""

    pass


class NodeExecutionError(AutoflowError):
    """Raised when node execution fails."""

    def __init__(self, node_id: str, message: str, original_error: Exception = None):
        self.node_id = node_id
        self.original_error = original_error
        super().__init__(f"Node '{node_id}' execution failed: {message}")


class ExpressionError(AutoflowError):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(self, expression: str, message: str):
        self.expression = expression
        super().__init__(f"Expression '{expression}' failed: {message}")


class ToolInvocationError(AutoflowError):
    """Raised when an external tool exits non-zero or times out."""

    def __init__(
        self,
        command: str,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Command '{command}' failed: {message}")


class InvalidNodeTypeError(AutoflowError):
    """Raised when an invalid node type is encountered."""

    pass


class WorkflowNotFoundError(AutoflowError):
    """Raised when a workflow id does not exist in the store."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")
