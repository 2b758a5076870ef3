"""In-memory store for testing and development.

Workflows and runs live in dictionaries and are lost when the process
terminates.
"""

from typing import Dict, List, Optional

from autoflow.core.graph import Workflow
from autoflow.core.state import WorkflowRun
from autoflow.utils.ids import generate_run_id


class MemoryStore:
    """In-memory workflow and run storage.

    Records are copied on the way in and out so callers cannot mutate
    stored state.
    """

    def __init__(self, workflows: Optional[List[Workflow]] = None):
        """Initialize memory store.

        Args:
            workflows: Optional workflows to seed the store with
        """
        self._workflows: Dict[str, Workflow] = {}
        self._runs: List[WorkflowRun] = []
        for workflow in workflows or []:
            self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def load_enabled_workflows(self) -> List[Workflow]:
        return [
            workflow.model_copy(deep=True)
            for workflow in self._workflows.values()
            if workflow.enabled
        ]

    async def save_run(self, run: WorkflowRun) -> None:
        self._runs.append(run.model_copy(deep=True))

    def new_run_id(self) -> str:
        return generate_run_id()

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def list_runs(self, workflow_id: str, limit: int = 20) -> List[WorkflowRun]:
        runs = [run for run in self._runs if run.workflow_id == workflow_id]
        return [run.model_copy(deep=True) for run in reversed(runs)][:limit]

    @property
    def runs(self) -> List[WorkflowRun]:
        """Every saved run across all workflows, oldest first."""
        return list(self._runs)

    def clear(self) -> None:
        """Clear all stored workflows and runs."""
        self._workflows.clear()
        self._runs.clear()

    def __repr__(self) -> str:
        return f"MemoryStore(workflows={len(self._workflows)}, runs={len(self.runs)})"
