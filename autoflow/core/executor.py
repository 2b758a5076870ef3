"""Sequential workflow executor.

This module implements the run state machine: nodes are sorted once at the
start of a run, then executed one at a time in that order. Each node's input
is resolved from its incoming edges, condition outputs decide which branch
stays active, and failures are recorded per node without stopping the run.

Independent branches are never executed in parallel; the run log and the
order of ``node_results`` follow the topological order exactly.
"""

import logging
import time
from typing import Any, Dict, Iterable, NamedTuple, Optional, Set, TYPE_CHECKING

import httpx

from autoflow.core.graph import (
    NodeType,
    Workflow,
    WorkflowNode,
    branch_for_port,
    ensure_valid,
    topological_sort,
)
from autoflow.core.state import (
    CancelSignal,
    ExecutionContext,
    LogSink,
    NodeExecutionResult,
    NodeStatus,
    RunStatus,
    TriggerKind,
    WorkflowRun,
)
from autoflow.utils.config import Settings
from autoflow.utils.errors import SchedulingError, WorkflowNotFoundError
from autoflow.utils.ids import utc_now, to_iso
from autoflow.utils.process import SubprocessToolRunner, ToolRunner
from autoflow.utils.registry import ExecutorRegistry

if TYPE_CHECKING:
    from autoflow.backends.base import RunStore

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Run was cancelled"


class ResolvedInput(NamedTuple):
    """Input for a node, or a verdict that the node must be skipped."""

    input: Any
    should_skip: bool


def resolve_node_input(
    node: WorkflowNode,
    workflow: Workflow,
    context: ExecutionContext,
    skipped: Set[str],
) -> ResolvedInput:
    """Resolve a node's input from its incoming edges.

    Rules, in order:
    - No incoming edges: triggers receive the run's event data (if any),
      other nodes receive None.
    - Edges whose source was skipped or errored are inactive. If no edge is
      active the node is skipped.
    - The first active edge from a successful condition node decides: an
      edge on the inactive branch skips the node, otherwise the node receives
      the condition's own input.
    - Otherwise the output of the first successful active source is used.

    Args:
        node: Node about to run
        workflow: Workflow being executed
        context: Run context holding results so far
        skipped: Ids of nodes already marked skipped

    Returns:
        ResolvedInput(input, should_skip)
    """
    incoming = workflow.incoming_edges(node.id)

    if not incoming:
        if node.is_trigger and context.event_data:
            return ResolvedInput(context.event_data, False)
        return ResolvedInput(None, False)

    active = []
    for edge in incoming:
        if edge.source_node_id in skipped:
            continue
        result = context.get_result(edge.source_node_id)
        if result is not None and result.status == NodeStatus.ERROR:
            continue
        active.append(edge)

    if not active:
        return ResolvedInput(None, True)

    for edge in active:
        result = context.get_result(edge.source_node_id)
        if result is None or result.status != NodeStatus.SUCCESS:
            continue

        source = context.get_node(edge.source_node_id)
        if source is None or source.type != NodeType.CONDITION:
            continue

        output = result.output if isinstance(result.output, dict) else {}
        active_branch = output.get("branch")
        edge_branch = branch_for_port(edge.source_port)
        if edge_branch is not None and edge_branch != active_branch:
            return ResolvedInput(None, True)
        return ResolvedInput(result.input, False)

    for edge in active:
        result = context.get_result(edge.source_node_id)
        if result is not None and result.status == NodeStatus.SUCCESS:
            return ResolvedInput(result.output, False)

    return ResolvedInput(None, False)


def compute_run_status(results: Iterable[NodeExecutionResult]) -> RunStatus:
    """Aggregate terminal node statuses into a run status.

    All skipped (including no nodes at all) is a failure; all success or
    skipped is a success; otherwise partial if anything succeeded.
    """
    statuses = [result.status for result in results]
    if all(status == NodeStatus.SKIPPED for status in statuses):
        return RunStatus.FAILED
    if all(status in (NodeStatus.SUCCESS, NodeStatus.SKIPPED) for status in statuses):
        return RunStatus.SUCCESS
    if any(status == NodeStatus.SUCCESS for status in statuses):
        return RunStatus.PARTIAL
    return RunStatus.FAILED


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class WorkflowEngine:
    """Execute workflows and persist their runs.

    The engine owns no workflow definitions; callers hand it a Workflow and
    it writes the finished run through the store.

    Example:
        >>> engine = WorkflowEngine(MemoryStore())
        >>> run = await engine.run_workflow(workflow, dry_run=True)
        >>> run.status
        <RunStatus.SUCCESS: 'success'>
    """

    def __init__(
        self,
        store: "RunStore",
        registry: Optional[ExecutorRegistry] = None,
        settings: Optional[Settings] = None,
        tools: Optional[ToolRunner] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize engine.

        Args:
            store: Storage collaborator for run ids and run records
            registry: Executor registry (defaults to the built-ins)
            settings: Runtime settings (defaults to ``Settings()``)
            tools: Runner for external CLIs (defaults to subprocesses)
            http_client: Shared client for HTTP collaborators
        """
        self.store = store
        self.registry = registry or ExecutorRegistry()
        self.settings = settings or Settings()
        self.tools = tools or SubprocessToolRunner()
        self.http_client = http_client

    async def run_workflow(
        self,
        workflow: Workflow,
        trigger: TriggerKind = TriggerKind.MANUAL,
        dry_run: bool = False,
        event_data: Optional[Dict[str, Any]] = None,
        project: Optional[str] = None,
        cancel_signal: Optional[CancelSignal] = None,
        log_sink: Optional[LogSink] = None,
        base_url: Optional[str] = None,
    ) -> WorkflowRun:
        """Execute a workflow to completion and save the run.

        Node failures never raise; they are recorded on the node and reflected
        in the aggregate status. A cycle produces a failed run with no node
        results.

        Args:
            workflow: Workflow to execute
            trigger: What started the run
            dry_run: Simulate every node without external side effects
            event_data: Payload injected into root trigger nodes
            project: Project context for tool invocations
            cancel_signal: Checked before each node; once set, remaining nodes are skipped
            log_sink: Receives (node_id, message) for each log line
            base_url: Override for the orchestration API base URL

        Returns:
            The completed WorkflowRun

        Raises:
            Exception: Whatever the store raises while saving the run
        """
        run_id = self.store.new_run_id()
        started = utc_now()
        started_clock = time.monotonic()

        context = ExecutionContext(
            workflow_id=workflow.id,
            run_id=run_id,
            started_at=to_iso(started),
            dry_run=dry_run,
            settings=self.settings,
            base_url=base_url,
            project=project,
            nodes={node.id: node for node in workflow.nodes},
            log_sink=log_sink,
            cancel_signal=cancel_signal,
            event_data=event_data,
            tools=self.tools,
            http=self.http_client,
        )

        logger.info(
            "Starting run %s of workflow %s (trigger=%s, dry_run=%s)",
            run_id, workflow.id, TriggerKind(trigger).value, dry_run,
        )

        try:
            ordered = topological_sort(workflow.nodes, workflow.edges)
        except SchedulingError as e:
            logger.error("Run %s aborted: %s", run_id, e)
            run = WorkflowRun(
                id=run_id,
                workflow_id=workflow.id,
                trigger=trigger,
                status=RunStatus.FAILED,
                started_at=context.started_at,
                completed_at=to_iso(utc_now()),
                duration_ms=0,
                node_results={},
                error=str(e),
            )
            await self.store.save_run(run)
            return run

        skipped: Set[str] = set()
        for node in ordered:
            await self._run_node(node, workflow, context, skipped)

        run = WorkflowRun(
            id=run_id,
            workflow_id=workflow.id,
            trigger=trigger,
            status=compute_run_status(context.node_results.values()),
            started_at=context.started_at,
            completed_at=to_iso(utc_now()),
            duration_ms=_elapsed_ms(started_clock),
            node_results=dict(context.node_results),
        )
        logger.info(
            "Finished run %s of workflow %s: %s in %dms",
            run_id, workflow.id, run.status.value, run.duration_ms,
        )

        await self.store.save_run(run)
        return run

    async def run_workflow_by_id(self, workflow_id: str, **kwargs: Any) -> WorkflowRun:
        """Load a workflow from the store, validate it and run it.

        Keyword arguments are passed through to ``run_workflow``.

        Raises:
            WorkflowNotFoundError: If the store has no such workflow
            GraphValidationError: If the stored workflow is invalid
        """
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return await self.run_workflow(ensure_valid(workflow), **kwargs)

    async def _run_node(
        self,
        node: WorkflowNode,
        workflow: Workflow,
        context: ExecutionContext,
        skipped: Set[str],
    ) -> None:
        """Drive one node from pending to a terminal state."""
        started_at = to_iso(utc_now())

        if context.is_cancelled():
            context.record(
                NodeExecutionResult(
                    node_id=node.id,
                    status=NodeStatus.SKIPPED,
                    started_at=started_at,
                    error=CANCELLED_MESSAGE,
                )
            )
            skipped.add(node.id)
            return

        start_clock = time.monotonic()
        input, should_skip = resolve_node_input(node, workflow, context, skipped)

        if should_skip:
            context.record(
                NodeExecutionResult(
                    node_id=node.id, status=NodeStatus.SKIPPED, started_at=started_at
                )
            )
            skipped.add(node.id)
            context.log(node.id, "Skipped (inactive branch)")
            return

        executor = self.registry.find(node.type)
        if executor is None:
            context.record(
                NodeExecutionResult(
                    node_id=node.id,
                    status=NodeStatus.ERROR,
                    input=input,
                    started_at=started_at,
                    completed_at=to_iso(utc_now()),
                    duration_ms=_elapsed_ms(start_clock),
                    error=f"No executor for node type: {node.type.value}",
                )
            )
            return

        try:
            context.log(node.id, f'Executing {node.type.value} "{node.label}"')
            output = await executor.execute(node, input, context)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            context.record(
                NodeExecutionResult(
                    node_id=node.id,
                    status=NodeStatus.ERROR,
                    input=input,
                    started_at=started_at,
                    completed_at=to_iso(utc_now()),
                    duration_ms=_elapsed_ms(start_clock),
                    error=message,
                )
            )
            context.log(node.id, f"Error: {message}")
            logger.warning("Node %s failed in run %s: %s", node.id, context.run_id, message)
            return

        result = NodeExecutionResult(
            node_id=node.id,
            status=NodeStatus.SUCCESS,
            input=input,
            output=output,
            started_at=started_at,
            completed_at=to_iso(utc_now()),
            duration_ms=_elapsed_ms(start_clock),
        )
        context.record(result)
        context.log(node.id, f"Completed in {result.duration_ms}ms")

    def __repr__(self) -> str:
        return f"WorkflowEngine(store={self.store!r}, registry={self.registry!r})"
