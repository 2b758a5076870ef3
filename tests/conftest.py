"""Pytest configuration and fixtures for autoflow tests."""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from autoflow import (
    ExecutionContext,
    ExecutorRegistry,
    MemoryStore,
    Settings,
    Workflow,
    WorkflowEngine,
)
from autoflow.utils.errors import ToolInvocationError


class FakeToolRunner:
    """Records tool invocations instead of spawning processes.

    ``responses`` maps a command name to the stdout to return, or to an
    exception to raise.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, default: str = "ok"):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def run(
        self,
        command: str,
        args: List[str],
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        self.calls.append({"command": command, "args": list(args), "cwd": cwd, "timeout": timeout})
        response = self.responses.get(command, self.default)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(command, args)
        return response

    def commands(self) -> List[str]:
        return [call["command"] for call in self.calls]


def node(node_id: str, node_type: str, **config: Any) -> Dict[str, Any]:
    """Node record in authoring (camelCase) form."""
    return {"id": node_id, "type": node_type, "config": config}


def edge(
    source: str,
    target: str,
    source_port: str = "data_out",
    target_port: str = "data_in",
    edge_id: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": edge_id or f"{source}->{target}:{source_port}",
        "sourceNodeId": source,
        "sourcePort": source_port,
        "targetNodeId": target,
        "targetPort": target_port,
    }


def build_workflow(
    nodes: List[Dict[str, Any]],
    edges: List[Dict[str, Any]] = (),
    workflow_id: str = "wf-test",
    name: str = "Test workflow",
    enabled: bool = True,
) -> Workflow:
    return Workflow.model_validate(
        {
            "id": workflow_id,
            "name": name,
            "nodes": list(nodes),
            "edges": list(edges),
            "enabled": enabled,
        }
    )


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every directory at a temporary location."""
    return Settings(
        projects_root=tmp_path / "code",
        screenshot_dir=tmp_path / "shots",
        database_path=str(tmp_path / "autoflow.db"),
    )


@pytest.fixture
def tools():
    """Recording fake tool runner."""
    return FakeToolRunner()


@pytest.fixture
def store():
    """Create an in-memory store for testing."""
    return MemoryStore()


@pytest.fixture
def registry():
    """Create a fresh executor registry."""
    return ExecutorRegistry()


@pytest.fixture
def engine(store, registry, settings, tools):
    """Engine wired to the in-memory store and fake tools."""
    return WorkflowEngine(store, registry=registry, settings=settings, tools=tools)


@pytest.fixture
def make_context(settings, tools) -> Callable[..., ExecutionContext]:
    """Factory for execution contexts used to call executors directly."""

    def factory(**overrides: Any) -> ExecutionContext:
        values: Dict[str, Any] = {
            "workflow_id": "wf-test",
            "run_id": "run-20260101000000-abcde",
            "started_at": "2026-01-01T00:00:00.000Z",
            "settings": settings,
            "tools": tools,
        }
        values.update(overrides)
        return ExecutionContext(**values)

    return factory


@pytest.fixture
def failing_tools() -> Callable[..., FakeToolRunner]:
    """Factory for a tool runner whose given command exits non-zero."""

    def factory(command: str, message: str = "boom") -> FakeToolRunner:
        return FakeToolRunner({command: ToolInvocationError(command, message, exit_code=1)})

    return factory


@pytest.fixture(name="node")
def node_fixture():
    """Builder for node records: ``node("a", "transform", functionBody="input")``."""
    return node


@pytest.fixture(name="edge")
def edge_fixture():
    """Builder for edge records: ``edge("a", "b", source_port="true")``."""
    return edge


@pytest.fixture(name="build_workflow")
def build_workflow_fixture():
    """Builder for validated Workflow models."""
    return build_workflow
