"""Tests for {{...}} template substitution."""

from autoflow.core.state import NodeExecutionResult, NodeStatus
from autoflow.utils.variables import (
    VariableResolver,
    get_path,
    substitute_variables,
    to_substitution_string,
)


class TestSubstitution:
    """Tests for substitute_variables."""

    def test_input_path(self):
        result = substitute_variables("Fix: {{input.title}}", {"title": "Bug"}, {})

        assert result == "Fix: Bug"

    def test_result_is_alias_for_input(self):
        result = substitute_variables("{{result.count}} items", {"count": 3}, {})

        assert result == "3 items"

    def test_whole_input_string(self):
        assert substitute_variables("Say {{input}}", "hello", {}) == "Say hello"

    def test_whole_input_structured_is_json(self):
        result = substitute_variables("{{input}}", {"a": [1, 2]}, {})

        assert result == '{"a":[1,2]}'

    def test_json_string_input_is_decoded_for_paths(self):
        result = substitute_variables("{{input.user.name}}", '{"user": {"name": "ada"}}', {})

        assert result == "ada"

    def test_list_index_segment(self):
        result = substitute_variables("{{input.items.1}}", {"items": ["a", "b"]}, {})

        assert result == "b"

    def test_missing_path_becomes_empty(self):
        assert substitute_variables("[{{input.nope.deeper}}]", {"a": 1}, {}) == "[]"

    def test_node_output(self):
        outputs = {"fetch": {"status": "ok"}, "summarize": "done"}

        result = substitute_variables("{{summarize.output}} / {{fetch.output}}", None, outputs)

        assert result == 'done / {"status":"ok"}'

    def test_missing_node_output_becomes_empty(self):
        assert substitute_variables("x{{ghost.output}}y", None, {}) == "xy"

    def test_unknown_placeholder_left_untouched(self):
        template = "{{ something else }} and {{env.HOME}}"

        assert substitute_variables(template, {"a": 1}, {}) == template

    def test_substituted_text_is_not_rescanned(self):
        result = substitute_variables("{{input.text}}", {"text": "{{input.secret}}", "secret": "x"}, {})

        assert result == "{{input.secret}}"

    def test_empty_template(self):
        assert substitute_variables("", {"a": 1}, {}) == ""


class TestHelpers:
    """Tests for path lookup and stringification."""

    def test_get_path_stops_at_scalars(self):
        assert get_path({"a": 5}, "a.b") is None
        assert get_path({"a": [1]}, "a.x") is None

    def test_to_substitution_string(self):
        assert to_substitution_string(None) == ""
        assert to_substitution_string("plain") == "plain"
        assert to_substitution_string(True) == "true"
        assert to_substitution_string(7) == "7"


class TestVariableResolver:
    """Tests for resolving against an ExecutionContext."""

    def test_reads_recorded_outputs(self, make_context):
        context = make_context()
        context.record(
            NodeExecutionResult(
                node_id="llm",
                status=NodeStatus.SUCCESS,
                output="summary",
                started_at="2026-01-01T00:00:00.000Z",
            )
        )
        resolver = VariableResolver(context)

        assert resolver.resolve("{{llm.output}}: {{input.id}}", {"id": 4}) == "summary: 4"

    def test_none_passes_through(self, make_context):
        assert VariableResolver(make_context()).resolve(None, {"a": 1}) is None
