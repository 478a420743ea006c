"""
Run log recorder

Writes the ExecutionLog of one run: the run row and one append-only row per
Step, each with a monotonic sequence number. The status moves from "running"
to a terminal status exactly once.
"""

import logging
from datetime import datetime
from typing import Optional

from .exceptions import WorkflowError
from .nodes import ActionNode, NodeType
from .stores import ExecutionLogStore
from .types import RunStatus, Step, StepStatus

logger = logging.getLogger(__name__)


class RunLogRecorder:
    """
    Records the Steps of one run.

    Every node visit writes a "started" Step before its outcome Step
    (completed, failed or skipped).
    """

    def __init__(self, store: ExecutionLogStore, tenant_id: str, log_id: str):
        self.store = store
        self.tenant_id = tenant_id
        self.log_id = log_id
        self._sequence = 0
        self._finished = False

    @classmethod
    async def start(
        cls,
        store: ExecutionLogStore,
        tenant_id: str,
        automation_id: str,
        record_id: str,
        triggered_by: str,
    ) -> "RunLogRecorder":
        log_id = await store.create_log(tenant_id, automation_id, record_id, triggered_by)
        logger.info(f"Created execution log {log_id} for automation {automation_id}")
        return cls(store, tenant_id, log_id)

    async def _append(
        self,
        node: NodeType,
        status: StepStatus,
        started_at: datetime,
        message: Optional[str] = None,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Step:
        self._sequence += 1
        step = Step(
            sequence=self._sequence,
            node_id=node.id,
            node_kind=node.kind,
            label=node.label,
            action_type=node.action_type if isinstance(node, ActionNode) else None,
            status=status,
            message=message,
            result=result,
            error=error,
            started_at=started_at,
            completed_at=None if status == StepStatus.STARTED else datetime.utcnow(),
        )
        await self.store.append_step(self.tenant_id, self.log_id, step)
        return step

    async def started(self, node: NodeType) -> datetime:
        """Record that ``node`` is about to run. Returns the start time for the outcome Step."""
        started_at = datetime.utcnow()
        await self._append(node, StepStatus.STARTED, started_at, message=f"Executing {node.display_name}")
        return started_at

    async def completed(
        self, node: NodeType, started_at: datetime, message: Optional[str] = None, result: Optional[str] = None
    ) -> Step:
        return await self._append(node, StepStatus.COMPLETED, started_at, message=message, result=result)

    async def skipped(self, node: NodeType, started_at: datetime, message: Optional[str] = None) -> Step:
        return await self._append(node, StepStatus.SKIPPED, started_at, message=message)

    async def failed(self, node: NodeType, started_at: datetime, error: str) -> Step:
        return await self._append(node, StepStatus.FAILED, started_at, message="Failed", error=error)

    async def finish(self, status: RunStatus, error_message: Optional[str] = None) -> None:
        if self._finished:
            raise WorkflowError(f"Execution log {self.log_id} already finished")
        await self.store.finish_log(self.tenant_id, self.log_id, status, error_message)
        self._finished = True
        logger.info(f"Execution log {self.log_id} finished with status {status.value}")
