"""Tests for the per-kind node executors."""

import json
from pathlib import Path

import httpx
import pytest

from autoflow.core.graph import WorkflowNode
from autoflow.nodes import (
    BrowserNode,
    ConditionNode,
    CreateTaskNode,
    LLMNode,
    RunCommandNode,
    SendMessageNode,
    SpawnAgentNode,
    TransformNode,
    TriggerNode,
)
from autoflow.utils.errors import AutoflowError, NodeExecutionError, ToolInvocationError


@pytest.fixture
def make_node(node):
    def factory(node_id, node_type, **config):
        return WorkflowNode.model_validate(node(node_id, node_type, **config))

    return factory


class TestTriggerNode:
    """Tests for trigger executors."""

    @pytest.mark.asyncio
    async def test_fired_marker(self, make_node, make_context):
        context = make_context()

        output = await TriggerNode().execute(make_node("start", "trigger_manual"), None, context)

        assert output["triggered"] is True
        assert output["timestamp"].endswith("Z")
        assert context.logs == ["[start] Trigger trigger_manual fired"]

    @pytest.mark.asyncio
    async def test_passes_event_payload_through(self, make_node, make_context):
        payload = {"taskId": "t-1", "status": "done"}

        output = await TriggerNode().execute(
            make_node("on-event", "trigger_event", eventType="task_completed"),
            payload,
            make_context(),
        )

        assert output == payload

    @pytest.mark.asyncio
    async def test_dry_run_marks_output(self, make_node, make_context):
        output = await TriggerNode().execute(
            make_node("start", "trigger_cron", cronExpr="* * * * *"), None, make_context(dry_run=True)
        )

        assert output["dryRun"] is True
        assert output["triggered"] is True


class TestLLMNode:
    """Tests for the LLM prompt executor."""

    @pytest.mark.asyncio
    async def test_invokes_cli_with_resolved_prompt(self, make_node, make_context, tools, settings):
        tools.responses["claude"] = "A concise summary"
        llm = make_node("llm", "llm_prompt", prompt="Summarize {{input.text}}", model="haiku", project="web")

        output = await LLMNode().execute(llm, {"text": "the logs"}, make_context())

        assert output == "A concise summary"
        call = tools.calls[0]
        assert call["command"] == "claude"
        assert call["args"] == ["-p", "Summarize the logs", "--model", "haiku"]
        assert call["cwd"] == settings.projects_root / "web"
        assert call["timeout"] == settings.llm_timeout

    @pytest.mark.asyncio
    async def test_max_tokens_limits_turns(self, make_node, make_context, tools):
        llm = make_node("llm", "llm_prompt", prompt="hi", maxTokens=100)

        await LLMNode().execute(llm, None, make_context())

        assert tools.calls[0]["args"][-2:] == ["--max-turns", "1"]

    @pytest.mark.asyncio
    async def test_falls_back_to_run_project_then_cwd(self, make_node, make_context, tools, settings):
        llm = make_node("llm", "llm_prompt", prompt="hi")

        await LLMNode().execute(llm, None, make_context(project="api"))
        await LLMNode().execute(llm, None, make_context())

        assert tools.calls[0]["cwd"] == settings.projects_root / "api"
        assert tools.calls[1]["cwd"] == Path.cwd()

    @pytest.mark.asyncio
    async def test_dry_run_describes_prompt(self, make_node, make_context, tools):
        llm = make_node("llm", "llm_prompt", prompt="Review {{input}}", model="opus")

        output = await LLMNode().execute(llm, "PR 12", make_context(dry_run=True))

        assert output == "[DRY RUN] Would send to opus: Review PR 12"
        assert tools.calls == []

    @pytest.mark.asyncio
    async def test_tool_failure_propagates(self, make_node, make_context, failing_tools):
        llm = make_node("llm", "llm_prompt", prompt="hi")

        with pytest.raises(ToolInvocationError):
            await LLMNode().execute(llm, None, make_context(tools=failing_tools("claude")))

    @pytest.mark.asyncio
    async def test_missing_tool_runner(self, make_node, make_context):
        llm = make_node("llm", "llm_prompt", prompt="hi")

        with pytest.raises(AutoflowError, match="No tool runner"):
            await LLMNode().execute(llm, None, make_context(tools=None))


class TestCreateTaskNode:
    """Tests for the create-task executor."""

    @pytest.mark.asyncio
    async def test_builds_arguments(self, make_node, make_context, tools):
        task = make_node(
            "task",
            "action_create_task",
            title="Fix: {{input.title}}",
            description="Seen in {{input.where}}",
            type="bug",
            priority=1,
            labels="ui,login",
        )

        await CreateTaskNode().execute(task, {"title": "login", "where": "prod"}, make_context())

        assert tools.calls[0]["command"] == "jt"
        assert tools.calls[0]["args"] == [
            "create",
            "Fix: login",
            "--type",
            "bug",
            "--priority",
            "1",
            "--description",
            "Seen in prod",
            "--labels",
            "ui,login",
        ]

    @pytest.mark.asyncio
    async def test_minimal_arguments(self, make_node, make_context, tools):
        await CreateTaskNode().execute(make_node("task", "action_create_task", title="Chore"), None, make_context())

        assert tools.calls[0]["args"] == ["create", "Chore"]

    @pytest.mark.asyncio
    async def test_dry_run(self, make_node, make_context, tools):
        task = make_node("task", "action_create_task", title="Fix {{input.id}}", priority=2)

        output = await CreateTaskNode().execute(task, {"id": 9}, make_context(dry_run=True))

        assert output == {
            "dryRun": True,
            "title": "Fix 9",
            "description": None,
            "type": None,
            "priority": 2,
        }
        assert tools.calls == []


class TestSendMessageNode:
    """Tests for the send-message executor."""

    @pytest.mark.asyncio
    async def test_threads_by_workflow(self, make_node, make_context, tools):
        msg = make_node("msg", "action_send_message", recipient="ops", message="Done: {{input.id}}")

        await SendMessageNode().execute(msg, {"id": 3}, make_context(workflow_id="nightly"))

        assert tools.calls[0]["command"] == "am-send"
        assert tools.calls[0]["args"] == [
            "--from",
            "workflow",
            "--to",
            "ops",
            "--thread",
            "workflow-nightly",
            "Done: 3",
        ]

    @pytest.mark.asyncio
    async def test_dry_run(self, make_node, make_context, tools):
        msg = make_node("msg", "action_send_message", recipient="ops", message="hi {{input}}")

        output = await SendMessageNode().execute(msg, "there", make_context(dry_run=True))

        assert output == {"dryRun": True, "recipient": "ops", "message": "hi there"}
        assert tools.calls == []


class TestRunCommandNode:
    """Tests for the run-command executor."""

    @pytest.mark.asyncio
    async def test_runs_through_shell(self, make_node, make_context, tools):
        tools.responses["bash"] = "3 files"
        cmd = make_node("cmd", "action_run_bash", command="ls {{input.dir}} | wc -l", cwd="/srv", timeout=5)

        output = await RunCommandNode().execute(cmd, {"dir": "logs"}, make_context())

        assert output == "3 files"
        assert tools.calls[0] == {
            "command": "bash",
            "args": ["-c", "ls logs | wc -l"],
            "cwd": "/srv",
            "timeout": 5,
        }

    @pytest.mark.asyncio
    async def test_default_timeout_and_cwd(self, make_node, make_context, tools, settings):
        await RunCommandNode().execute(make_node("cmd", "action_run_bash", command="true"), None, make_context())

        assert tools.calls[0]["timeout"] == settings.command_timeout
        assert tools.calls[0]["cwd"] == Path.cwd()

    @pytest.mark.asyncio
    async def test_dry_run(self, make_node, make_context, tools, settings):
        cmd = make_node("cmd", "action_run_bash", command="rm -rf {{input}}")

        output = await RunCommandNode().execute(cmd, "/tmp/x", make_context(dry_run=True))

        assert output == {
            "dryRun": True,
            "command": "rm -rf /tmp/x",
            "cwd": None,
            "timeout": settings.command_timeout,
        }
        assert tools.calls == []


class TestSpawnAgentNode:
    """Tests for the spawn-agent executor."""

    @pytest.mark.asyncio
    async def test_posts_task_title(self, make_node, make_context):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"sessionId": "s-1"})

        spawn = make_node(
            "spawn",
            "action_spawn_agent",
            taskTitle="Investigate {{input.id}}",
            taskDescription="From {{input.source}}",
            model="opus",
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            context = make_context(http=client, base_url="http://orchestrator.test/", project="api")
            output = await SpawnAgentNode().execute(spawn, {"id": 7, "source": "alerts"}, context)

        assert output == {"sessionId": "s-1"}
        assert str(requests[0].url) == "http://orchestrator.test/api/work/spawn"
        assert json.loads(requests[0].content) == {
            "taskTitle": "Investigate 7",
            "taskDescription": "From alerts",
            "model": "opus",
            "project": "api",
        }

    def test_task_id_takes_precedence(self, make_node, make_context):
        spawn = make_node("spawn", "action_spawn_agent", taskId="{{input.id}}", taskTitle="ignored")

        body = SpawnAgentNode().build_body(spawn.config, {"id": "t-9"}, make_context())

        assert body == {"taskId": "t-9"}

    @pytest.mark.asyncio
    async def test_error_status_fails_node(self, make_node, make_context):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))
        spawn = make_node("spawn", "action_spawn_agent", taskId="t-1")

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(NodeExecutionError, match=r"Spawn failed \(503\): busy"):
                await SpawnAgentNode().execute(spawn, None, make_context(http=client))

    @pytest.mark.asyncio
    async def test_transport_error_fails_node(self, make_node, make_context):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        spawn = make_node("spawn", "action_spawn_agent", taskId="t-1")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(NodeExecutionError, match="Spawn request failed"):
                await SpawnAgentNode().execute(spawn, None, make_context(http=client))

    @pytest.mark.asyncio
    async def test_non_json_reply_returned_as_text(self, make_node, make_context):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="spawned"))
        spawn = make_node("spawn", "action_spawn_agent", taskId="t-1")

        async with httpx.AsyncClient(transport=transport) as client:
            output = await SpawnAgentNode().execute(spawn, None, make_context(http=client))

        assert output == "spawned"

    @pytest.mark.asyncio
    async def test_dry_run(self, make_node, make_context):
        spawn = make_node("spawn", "action_spawn_agent", taskTitle="New", model="haiku")

        output = await SpawnAgentNode().execute(spawn, None, make_context(dry_run=True))

        assert output == {"dryRun": True, "taskId": None, "taskTitle": "New", "model": "haiku"}


class TestBrowserNode:
    """Tests for the browser executor."""

    @pytest.mark.asyncio
    async def test_navigate(self, make_node, make_context, tools, settings):
        browser = make_node("b", "action_browser", action="navigate", url="https://{{input.host}}/")

        await BrowserNode().execute(browser, {"host": "example.com"}, make_context())

        assert tools.calls[0]["command"] == "browser-nav.js"
        assert tools.calls[0]["args"] == ["https://example.com/"]
        assert tools.calls[0]["timeout"] == settings.cli_timeout

    @pytest.mark.asyncio
    async def test_screenshot_returns_path(self, make_node, make_context, tools, settings):
        browser = make_node("b", "action_browser", action="screenshot")

        output = await BrowserNode().execute(browser, None, make_context())

        path = output["screenshotPath"]
        assert path.startswith(str(settings.screenshot_dir))
        assert Path(path).name.startswith("workflow-screenshot-")
        assert tools.calls[0]["args"] == ["--output", path]

    @pytest.mark.asyncio
    async def test_eval_click_and_wait_arguments(self, make_node, make_context, tools):
        executor = BrowserNode()
        context = make_context()

        await executor.execute(make_node("e", "action_browser", action="eval", jsCode="document.title"), None, context)
        await executor.execute(make_node("c", "action_browser", action="click", selector="#go"), None, context)
        await executor.execute(make_node("w", "action_browser", action="wait", timeout=500), None, context)

        assert [call["command"] for call in tools.calls] == [
            "browser-eval.js",
            "browser-pick.js",
            "browser-wait.js",
        ]
        assert tools.calls[0]["args"] == ["document.title"]
        assert tools.calls[1]["args"] == ["--selector", "#go"]
        assert tools.calls[2]["args"] == ["--timeout", "500"]

    @pytest.mark.parametrize(
        "config,message",
        [
            ({"action": "navigate"}, "URL required for navigate action"),
            ({"action": "eval"}, "jsCode required for eval action"),
            ({"action": "click"}, "selector required for click action"),
            ({"action": "wait"}, "selector or timeout required for wait action"),
            ({"action": "scroll"}, "Unknown browser action: scroll"),
        ],
    )
    @pytest.mark.asyncio
    async def test_missing_required_field_fails_even_in_dry_run(
        self, make_node, make_context, tools, config, message
    ):
        browser = make_node("b", "action_browser", **config)

        with pytest.raises(NodeExecutionError, match=message):
            await BrowserNode().execute(browser, None, make_context(dry_run=True))

        assert tools.calls == []

    @pytest.mark.asyncio
    async def test_dry_run(self, make_node, make_context, tools):
        browser = make_node("b", "action_browser", action="click", selector="#go")

        output = await BrowserNode().execute(browser, None, make_context(dry_run=True))

        assert output == {"dryRun": True, "action": "click", "url": None, "selector": "#go"}
        assert tools.calls == []


class TestConditionNode:
    """Tests for condition evaluation."""

    @pytest.mark.asyncio
    async def test_true_branch(self, make_node, make_context):
        cond = make_node("c", "condition", expression="input.flag === true")

        output = await ConditionNode().execute(cond, {"flag": True}, make_context())

        assert output == {"branch": "true", "value": True}

    @pytest.mark.asyncio
    async def test_error_is_false_branch(self, make_node, make_context):
        cond = make_node("c", "condition", expression="input.a.b.c")

        output = await ConditionNode().execute(cond, {}, make_context())

        assert output == {"branch": "false", "value": False}

    @pytest.mark.asyncio
    async def test_missing_input_is_empty_string(self, make_node, make_context):
        cond = make_node("c", "condition", expression="input === ''")

        output = await ConditionNode().execute(cond, None, make_context())

        assert output["branch"] == "true"

    @pytest.mark.asyncio
    async def test_dry_run_still_evaluates(self, make_node, make_context):
        cond = make_node("c", "condition", expression="input.n > 1")

        output = await ConditionNode().execute(cond, {"n": 0}, make_context(dry_run=True))

        assert output == {"branch": "false", "value": False, "dryRun": True}


class TestTransformNode:
    """Tests for transform evaluation."""

    @pytest.mark.asyncio
    async def test_returns_expression_value(self, make_node, make_context):
        transform = make_node("t", "transform", functionBody="return { n: input.items.length };")

        output = await TransformNode().execute(transform, {"items": [1, 2, 3]}, make_context())

        assert output == {"n": 3}

    @pytest.mark.asyncio
    async def test_error_fails_node(self, make_node, make_context):
        transform = make_node("t", "transform", functionBody="return input.a.b;")

        with pytest.raises(NodeExecutionError) as exc_info:
            await TransformNode().execute(transform, {}, make_context())

        assert exc_info.value.node_id == "t"

    @pytest.mark.asyncio
    async def test_dry_run(self, make_node, make_context):
        transform = make_node("t", "transform", functionBody="return input;")

        output = await TransformNode().execute(transform, 5, make_context(dry_run=True))

        assert output == {"dryRun": True, "functionBody": "return input;", "input": 5}
