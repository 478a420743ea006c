"""
Execution Engine for crmflow automations

The AutomationEngine is responsible for:
1. Loading the automation and its workflow graph
2. Opening an ExecutionLog for the run
3. Walking the graph from the trigger node, one node at a time
4. Dispatching action nodes to the ActionExecutor and branch groups to the
   ConditionEvaluator
5. Recording a "started" Step and an outcome Step for every visited node
6. Closing the log and updating run statistics

Traversal rules:
- trigger, action, branch and unknown nodes continue to ALL their outgoing
  edges, in authored order, each subtree finishing before the next
- condition nodes continue to exactly ONE selected branch
- an action error aborts the rest of the run; actions already applied stay
  applied (there is no rollback)

``execute`` never raises: callers fire it and forget it, and failures are
visible only in the ExecutionLog.

Example:
    engine = AutomationEngine(Stores.from_single(SqlAlchemyStore(session)))
    log_id = await engine.execute(automation_id, record_id, "record_created")
"""

import asyncio
import logging
import weakref
from typing import List, Optional, Tuple

from .actions import ActionExecutor
from .conditions import ConditionEvaluator
from .context import ExecutionContext
from .exceptions import CrmflowException, GraphExecutionError, GraphValidationError
from .graph import WorkflowGraph
from .logging_config import reset_run_id, set_run_id
from .nodes import ActionNode, BranchNode, ConditionNode, NodeType, TriggerNode
from .run_log import RunLogRecorder
from .stats import RunStatsUpdater
from .stores import Stores
from .types import Automation, RunStatus

logger = logging.getLogger(__name__)

YES_HANDLES = ("yes", "true")
NO_HANDLES = ("no", "false")


class RecordLocks:
    """
    Per-record advisory locks for runs inside one process.

    Two runs against the same record are serialized; runs against different
    records proceed concurrently. Locks are dropped once no run holds or
    waits on them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, record_id: str) -> asyncio.Lock:
        lock = self._locks.get(record_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[record_id] = lock
        return lock


# Shared by every engine built in this process unless one is passed explicitly
process_record_locks = RecordLocks()


class AutomationEngine:
    """
    Core execution engine for automation workflows.
    """

    def __init__(self, stores: Stores, record_locks: Optional[RecordLocks] = None):
        """
        Args:
            stores: Store capabilities the engine reads and mutates through
            record_locks: Lock registry (defaults to the process-wide one)
        """
        self.stores = stores
        self.record_locks = record_locks or process_record_locks
        self.evaluator = ConditionEvaluator(stores.records)
        self.actions = ActionExecutor(stores)
        self.stats = RunStatsUpdater(stores.logs)

    async def execute(self, automation_id: str, record_id: str, triggered_by: str) -> Optional[str]:
        """
        Run one automation against one record.

        Args:
            automation_id: Automation to run
            record_id: Record the automation acts on
            triggered_by: Event that caused the run (e.g. "record_created")

        Returns:
            ID of the ExecutionLog, or None if nothing was run (automation
            missing, inactive, or without nodes)
        """
        try:
            automation = await self.stores.automations.get_automation(automation_id)
        except Exception as e:
            logger.error(f"Failed to load automation {automation_id}: {e}")
            return None

        if automation is None or not automation.is_active:
            logger.info(f"Automation {automation_id} not found or inactive")
            return None

        if not (automation.workflow_data or {}).get("nodes"):
            logger.info(f"Automation {automation_id} has no workflow nodes")
            return None

        async with self.record_locks.get(record_id):
            return await self._run(automation, record_id, triggered_by)

    async def _run(self, automation: Automation, record_id: str, triggered_by: str) -> Optional[str]:
        try:
            recorder = await RunLogRecorder.start(
                self.stores.logs, automation.owner_id, automation.id, record_id, triggered_by
            )
        except Exception as e:
            logger.error(f"Failed to create execution log for automation {automation.id}: {e}")
            return None

        token = set_run_id(recorder.log_id)
        context = ExecutionContext(
            tenant_id=automation.owner_id,
            automation_id=automation.id,
            automation_name=automation.name,
            record_id=record_id,
            log_id=recorder.log_id,
            triggered_by=triggered_by,
        )
        logger.info(f"Executing automation '{automation.name}' on record {record_id} ({triggered_by})")

        try:
            try:
                graph = WorkflowGraph.from_dict(automation.workflow_data)
                trigger = graph.trigger_node()
                cycle = graph.find_cycle(trigger.id)
                if cycle:
                    raise GraphValidationError(f"Workflow contains a cycle: {' -> '.join(cycle)}")

                nodes_executed = await self._walk(graph, trigger, context, recorder)

            except Exception as e:
                logger.error(f"Automation {automation.id} failed: {e}")
                await recorder.finish(RunStatus.FAILED, error_message=str(e) or type(e).__name__)
                return recorder.log_id

            await recorder.finish(RunStatus.COMPLETED)
            await self.stats.record_success(automation.owner_id, automation.id)
            logger.info(f"Automation {automation.id} completed ({nodes_executed} nodes executed)")

        except Exception as e:
            logger.exception(f"Failed to close execution log {recorder.log_id}: {e}")

        finally:
            reset_run_id(token)

        return recorder.log_id

    async def _walk(
        self,
        graph: WorkflowGraph,
        trigger: TriggerNode,
        context: ExecutionContext,
        recorder: RunLogRecorder,
    ) -> int:
        """
        Depth-first walk with an explicit work-list.

        Successors are pushed in reverse so they pop in authored order.
        Returns the number of nodes visited.
        """
        stack: List[str] = [trigger.id]
        visited = 0

        while stack:
            node_id = stack.pop()
            node = graph.get(node_id)
            if node is None:
                logger.warning(f"Edge points to missing node {node_id}, skipping")
                continue

            successors = await self._visit(node, graph, context, recorder)
            visited += 1
            stack.extend(reversed(successors))

        return visited

    async def _visit(
        self,
        node: NodeType,
        graph: WorkflowGraph,
        context: ExecutionContext,
        recorder: RunLogRecorder,
    ) -> List[str]:
        """
        Execute one node and return the IDs of the nodes to visit next.

        Raises:
            CrmflowException: What the node raised, after a "failed" Step is recorded
            GraphExecutionError: Wrapping any other error the node raised
        """
        logger.info(f"Executing node: {node.display_name} ({node.kind})")
        started_at = await recorder.started(node)
        targets = [edge.target for edge in graph.outgoing(node.id)]

        try:
            if isinstance(node, TriggerNode):
                await recorder.completed(node, started_at, message=f"Triggered by {context.triggered_by}")
                return targets

            if isinstance(node, ActionNode):
                result = await self.actions.apply(node, context)
                if result.skipped:
                    await recorder.skipped(node, started_at, message=result.message)
                else:
                    await recorder.completed(node, started_at, message=result.message)
                return targets

            if isinstance(node, ConditionNode):
                selected, outcome = await self._select_branch(node, graph, context)
                await recorder.completed(
                    node, started_at, message=f"Evaluated {node.display_name}", result=outcome
                )
                return [selected] if selected else []

            if isinstance(node, BranchNode):
                await recorder.completed(node, started_at, message=f"Branch {node.branch_name} selected")
                return targets

            logger.info(f"Skipping unsupported node type: {node.kind}")
            await recorder.skipped(node, started_at, message=f"Unsupported node type: {node.kind}")
            return targets

        except CrmflowException as e:
            logger.error(f"Node {node.id} failed: {e}")
            await recorder.failed(node, started_at, error=str(e) or type(e).__name__)
            raise

        except Exception as e:
            logger.error(f"Unexpected error executing node {node.id}: {e}")
            await recorder.failed(node, started_at, error=str(e) or type(e).__name__)
            raise GraphExecutionError(f"Unexpected error in node {node.id}: {e}", node_id=node.id) from e

    async def _select_branch(
        self, node: ConditionNode, graph: WorkflowGraph, context: ExecutionContext
    ) -> Tuple[Optional[str], str]:
        """
        Choose the one successor of a condition node.

        Conditioned branches are tried in authored edge order and the first
        match wins; otherwise the fallback branch (no conditions, or named
        "None") is taken if there is one.

        A condition node without branch children routes by its own
        conditions over edges whose sourceHandle is "yes"/"no".

        Returns:
            (selected node ID or None, Step result text)
        """
        branch_edges = graph.branch_edges(node.id)

        if not branch_edges:
            matched = await self.evaluator.evaluate_branch(node.conditions, context)
            handles = YES_HANDLES if matched else NO_HANDLES
            edge = next(
                (e for e in graph.outgoing(node.id) if (e.source_handle or "").lower() in handles),
                None,
            )
            return (edge.target if edge else None), f"Condition: {'true' if matched else 'false'}"

        conditioned: List[BranchNode] = []
        fallback: Optional[BranchNode] = None
        for edge in branch_edges:
            branch = graph.get(edge.target)
            if branch.is_fallback:
                if fallback is None:
                    fallback = branch
            else:
                conditioned.append(branch)

        for branch in conditioned:
            if await self.evaluator.evaluate_branch(branch.conditions, context):
                logger.info(f"Condition {node.id} selected branch {branch.branch_name}")
                return branch.id, f"Branch: {branch.branch_name}"

        if fallback is not None:
            logger.info(f"Condition {node.id} fell back to branch {fallback.branch_name}")
            return fallback.id, f"Branch: {fallback.branch_name}"

        logger.info(f"Condition {node.id} matched no branch")
        return None, "No match"
