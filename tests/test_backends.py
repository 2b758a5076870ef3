"""Tests for workflow and run storage backends."""

import pytest

from autoflow import MemoryStore, RunStatus, SQLiteStore, TriggerKind, WorkflowRun
from autoflow.backends.base import RunStore


def _run(run_id, workflow_id="wf-test", started_at="2026-01-01T00:00:00.000Z", status=RunStatus.SUCCESS):
    return WorkflowRun(
        id=run_id,
        workflow_id=workflow_id,
        trigger=TriggerKind.MANUAL,
        status=status,
        started_at=started_at,
        completed_at=started_at,
        duration_ms=5,
    )


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SQLiteStore(str(tmp_path / "nested" / "autoflow.db"))


class TestStores:
    """Behaviour shared by every backend."""

    def test_satisfies_protocol(self, any_store):
        assert isinstance(any_store, RunStore)

    @pytest.mark.asyncio
    async def test_workflow_round_trip(self, any_store, node, edge, build_workflow):
        workflow = build_workflow(
            [node("start", "trigger_manual"), node("t", "transform", functionBody="input")],
            [edge("start", "t", source_port="trigger_out")],
        )

        await any_store.save_workflow(workflow)
        loaded = await any_store.get_workflow("wf-test")

        assert loaded.to_record() == workflow.to_record()
        assert await any_store.get_workflow("missing") is None

    @pytest.mark.asyncio
    async def test_save_workflow_replaces(self, any_store, node, build_workflow):
        await any_store.save_workflow(build_workflow([node("a", "trigger_manual")], name="Old"))
        await any_store.save_workflow(build_workflow([node("a", "trigger_manual")], name="New"))

        loaded = await any_store.get_workflow("wf-test")

        assert loaded.name == "New"

    @pytest.mark.asyncio
    async def test_only_enabled_workflows_loaded(self, any_store, node, build_workflow):
        await any_store.save_workflow(build_workflow([node("a", "trigger_manual")], workflow_id="wf-on"))
        await any_store.save_workflow(
            build_workflow([node("a", "trigger_manual")], workflow_id="wf-off", enabled=False)
        )

        enabled = await any_store.load_enabled_workflows()

        assert [workflow.id for workflow in enabled] == ["wf-on"]

    @pytest.mark.asyncio
    async def test_runs_listed_newest_first(self, any_store):
        await any_store.save_run(_run("run-1", started_at="2026-01-01T00:00:00.000Z"))
        await any_store.save_run(_run("run-2", started_at="2026-01-01T00:01:00.000Z"))
        await any_store.save_run(_run("run-3", started_at="2026-01-01T00:02:00.000Z"))
        await any_store.save_run(_run("other", workflow_id="wf-other"))

        runs = await any_store.list_runs("wf-test")
        limited = await any_store.list_runs("wf-test", limit=2)

        assert [run.id for run in runs] == ["run-3", "run-2", "run-1"]
        assert [run.id for run in limited] == ["run-3", "run-2"]

    @pytest.mark.asyncio
    async def test_run_record_preserved(self, any_store):
        run = _run("run-9", status=RunStatus.FAILED).model_copy(update={"error": "cycle"})

        await any_store.save_run(run)
        loaded = (await any_store.list_runs("wf-test"))[0]

        assert loaded.status == RunStatus.FAILED
        assert loaded.error == "cycle"
        assert loaded.duration_ms == 5

    def test_run_ids_are_unique(self, any_store):
        ids = {any_store.new_run_id() for _ in range(50)}

        assert len(ids) == 50
        assert all(run_id.startswith("run-") for run_id in ids)


class TestMemoryStore:
    """MemoryStore specifics."""

    @pytest.mark.asyncio
    async def test_records_are_copied(self, node, build_workflow):
        workflow = build_workflow([node("a", "trigger_manual")])
        store = MemoryStore([workflow])

        loaded = await store.get_workflow("wf-test")
        loaded.name = "mutated"

        assert (await store.get_workflow("wf-test")).name == "Test workflow"

    @pytest.mark.asyncio
    async def test_clear(self, node, build_workflow):
        store = MemoryStore([build_workflow([node("a", "trigger_manual")])])
        await store.save_run(_run("run-1"))

        store.clear()

        assert store.runs == []
        assert await store.load_enabled_workflows() == []


class TestSQLiteStore:
    """SQLiteStore specifics."""

    @pytest.mark.asyncio
    async def test_data_survives_new_instance(self, tmp_path, node, build_workflow):
        path = str(tmp_path / "autoflow.db")
        await SQLiteStore(path).save_workflow(build_workflow([node("a", "trigger_manual")]))
        await SQLiteStore(path).save_run(_run("run-1"))

        reopened = SQLiteStore(path)

        assert (await reopened.get_workflow("wf-test")).id == "wf-test"
        assert [run.id for run in await reopened.list_runs("wf-test")] == ["run-1"]

    @pytest.mark.asyncio
    async def test_delete_workflow_removes_runs(self, tmp_path, node, build_workflow):
        store = SQLiteStore(str(tmp_path / "autoflow.db"))
        await store.save_workflow(build_workflow([node("a", "trigger_manual")]))
        await store.save_run(_run("run-1"))

        await store.delete_workflow("wf-test")

        assert await store.get_workflow("wf-test") is None
        assert await store.list_runs("wf-test") == []
