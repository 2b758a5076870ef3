"""Base protocol for workflow and run storage.

The engine only needs ``new_run_id`` and ``save_run``; the event bus and
the cron scheduler need ``load_enabled_workflows``. The remaining methods
serve the HTTP boundary.
"""

from typing import List, Optional, Protocol, runtime_checkable

from autoflow.core.graph import Workflow
from autoflow.core.state import WorkflowRun


@runtime_checkable
class RunStore(Protocol):
    """Protocol for workflow and run persistence backends."""

    async def load_enabled_workflows(self) -> List[Workflow]:
        """Return every workflow whose ``enabled`` flag is set.

        Raises:
            Exception: If the backing store cannot be read
        """
        ...

    async def save_run(self, run: WorkflowRun) -> None:
        """Persist a completed run record.

        Args:
            run: Run to persist

        Raises:
            Exception: If save operation fails
        """
        ...

    def new_run_id(self) -> str:
        """Allocate an id for a new run."""
        ...

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Load a workflow by id, or None if it does not exist."""
        ...

    async def save_workflow(self, workflow: Workflow) -> None:
        """Create or replace a workflow definition."""
        ...

    async def list_runs(self, workflow_id: str, limit: int = 20) -> List[WorkflowRun]:
        """Return a workflow's runs, newest first.

        Args:
            workflow_id: Owning workflow
            limit: Maximum number of runs to return
        """
        ...
