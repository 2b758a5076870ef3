"""Variable resolution system for template strings.

This module implements textual substitution of ``{{...}}`` placeholders in
node configuration against the node's resolved input and the outputs of
nodes that already ran. It never evaluates code.

Supported placeholders, in precedence order:
- ``{{input.path}}`` / ``{{result.path}}`` - dotted path into the input
- ``{{input}}`` / ``{{result}}`` - the whole input
- ``{{node_id.output}}`` - another node's recorded output
"""

import json
import re
from typing import Any, Mapping, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from autoflow.core.state import ExecutionContext

PATTERN = re.compile(r"\{\{([^{}]*)\}\}")
INPUT_PATH = re.compile(r"^(input|result)\.([A-Za-z_][\w.]*)$")
NODE_OUTPUT = re.compile(r"^(\w[\w-]*)\.output$")


def to_substitution_string(value: Any) -> str:
    """Stringify a value for template substitution.

    Strings pass through, None becomes empty, everything else is
    serialized as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def get_path(obj: Any, path: str) -> Any:
    """Get nested value using dot notation.

    Dict keys are looked up by name and list elements by integer segment.

    Args:
        obj: Object to extract from
        path: Dot-separated path (e.g., "user.name" or "items.0")

    Returns:
        Value at path or None if any segment is missing
    """
    current = obj
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return None
        else:
            return None
        if current is None:
            return None
    return current


def _structured(value: Any) -> Any:
    """Decode JSON-encoded string input so dotted paths can reach into it."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def substitute_variables(
    template: str,
    input: Any,
    node_outputs: Mapping[str, Any],
) -> str:
    """Replace all placeholders in ``template`` in a single pass.

    Substituted text is never re-scanned, so values containing ``{{`` are
    inserted literally. Placeholders matching no form are left untouched.

    Args:
        template: Template string
        input: The node's resolved input
        node_outputs: Outputs of nodes that already produced one, by node id

    Returns:
        Resolved string
    """
    if not template:
        return template

    structured_input = None
    decoded = False

    def replacer(match: "re.Match[str]") -> str:
        nonlocal structured_input, decoded
        variable = match.group(1)

        path_match = INPUT_PATH.match(variable)
        if path_match:
            if not decoded:
                structured_input = _structured(input)
                decoded = True
            return to_substitution_string(get_path(structured_input, path_match.group(2)))

        if variable in ("input", "result"):
            return to_substitution_string(input)

        output_match = NODE_OUTPUT.match(variable)
        if output_match:
            return to_substitution_string(node_outputs.get(output_match.group(1)))

        return match.group(0)

    return PATTERN.sub(replacer, template)


class _ContextOutputs(Mapping):
    """Read-only view of recorded node outputs in an ExecutionContext."""

    def __init__(self, context: "ExecutionContext"):
        self._results = context.node_results

    def __getitem__(self, node_id: str) -> Any:
        result = self._results[node_id]
        return result.output

    def get(self, node_id: str, default: Any = None) -> Any:
        result = self._results.get(node_id)
        if result is None or result.output is None:
            return default
        return result.output

    def __iter__(self):
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)


class VariableResolver:
    """Resolve ``{{variable}}`` references against a run's context.

    Example:
        >>> resolver = VariableResolver(context)
        >>> resolver.resolve("Fix: {{input.title}} after {{fetch.output}}", input)
    """

    def __init__(self, context: "ExecutionContext"):
        """Initialize resolver with execution context.

        Args:
            context: ExecutionContext holding completed node results
        """
        self.context = context

    def resolve(self, template: Optional[str], input: Any) -> Optional[str]:
        """Resolve a template, passing None through unchanged."""
        if template is None:
            return None
        return substitute_variables(template, input, _ContextOutputs(self.context))
