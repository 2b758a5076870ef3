"""SQLite store for persistent workflows and run history.

This backend uses aiosqlite so storage calls never block the event loop.
Workflow definitions and run records are stored as JSON bodies in their
camelCase record shape.
"""

import json
from pathlib import Path
from typing import List, Optional

import aiosqlite

from autoflow.core.graph import Workflow
from autoflow.core.state import WorkflowRun
from autoflow.utils.ids import generate_run_id


class SQLiteStore:
    """SQLite-based workflow and run storage.

    The database schema:
    - workflows(id TEXT PRIMARY KEY, enabled INTEGER, body TEXT, updated_at TEXT)
    - runs(id TEXT PRIMARY KEY, workflow_id TEXT, started_at TEXT, status TEXT, body TEXT)
    """

    def __init__(self, db_path: str = "autoflow.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Ensure database and tables exist."""
        if self._initialized:
            return

        db_dir = Path(self.db_path).parent
        if db_dir and not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS workflows (
                    id TEXT PRIMARY KEY,
                    enabled INTEGER NOT NULL DEFAULT 0,
                    body TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    status TEXT NOT NULL,
                    body TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_runs_workflow
                ON runs(workflow_id, started_at)
                """
            )
            await db.commit()

        self._initialized = True

    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow definition."""
        await self._ensure_initialized()

        body = json.dumps(workflow.to_record())
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO workflows (id, enabled, body, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id)
                DO UPDATE SET
                    enabled = excluded.enabled,
                    body = excluded.body,
                    updated_at = excluded.updated_at
                """,
                (workflow.id, int(workflow.enabled), body, workflow.updated_at),
            )
            await db.commit()

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT body FROM workflows WHERE id = ?",
                (workflow_id,),
            ) as cursor:
                row = await cursor.fetchone()
                if row:
                    return Workflow.model_validate(json.loads(row[0]))
                return None

    async def load_enabled_workflows(self) -> List[Workflow]:
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT body FROM workflows WHERE enabled = 1 ORDER BY id"
            ) as cursor:
                rows = await cursor.fetchall()
                return [Workflow.model_validate(json.loads(row[0])) for row in rows]

    async def delete_workflow(self, workflow_id: str) -> None:
        """Delete a workflow and its run history."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM runs WHERE workflow_id = ?", (workflow_id,))
            await db.execute("DELETE FROM workflows WHERE id = ?", (workflow_id,))
            await db.commit()

    def new_run_id(self) -> str:
        return generate_run_id()

    async def save_run(self, run: WorkflowRun) -> None:
        """Persist a run record, replacing any earlier record with the same id."""
        await self._ensure_initialized()

        body = json.dumps(run.to_record())
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO runs (id, workflow_id, started_at, status, body)
                VALUES (?, ?, ?, ?, ?)
                """,
                (run.id, run.workflow_id, run.started_at, run.status.value, body),
            )
            await db.commit()

    async def list_runs(self, workflow_id: str, limit: int = 20) -> List[WorkflowRun]:
        """List a workflow's runs ordered by start time (newest first)."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                """
                SELECT body FROM runs
                WHERE workflow_id = ?
                ORDER BY started_at DESC, rowid DESC
                LIMIT ?
                """,
                (workflow_id, limit),
            ) as cursor:
                rows = await cursor.fetchall()
                return [WorkflowRun.from_record(json.loads(row[0])) for row in rows]

    def __repr__(self) -> str:
        return f"SQLiteStore(db_path='{self.db_path}')"
