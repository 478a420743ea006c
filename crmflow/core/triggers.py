"""
Trigger matching and dispatch

TriggerMatcher selects the active automations of a tenant whose trigger node
listens to an event. AutomationDispatcher launches one engine run per match
without waiting for it, so a slow or failing automation never blocks the
business operation that emitted the event.

Example (inside a record-creation handler):
    dispatcher = AutomationDispatcher(engine, TriggerMatcher(stores.automations))
    await dispatcher.record_created(record.id, tenant_id)
"""

import asyncio
import logging
from typing import List, Set, Union

from .engine import AutomationEngine
from .graph import WorkflowGraph
from .stores import AutomationStore
from .types import Automation, TriggerType

logger = logging.getLogger(__name__)


def _trigger_value(trigger_type: Union[str, TriggerType]) -> str:
    return trigger_type.value if isinstance(trigger_type, TriggerType) else trigger_type


class TriggerMatcher:

    def __init__(self, automations: AutomationStore):
        self.automations = automations

    async def find_matching(self, trigger_type: Union[str, TriggerType], tenant_id: str) -> List[Automation]:
        """
        Active automations of ``tenant_id`` whose single trigger node has type ``trigger_type``.

        Automations without a workflow or without exactly one trigger node
        are left out silently. The rest of the graph is not parsed here, so a
        malformed node fails the run (and shows in its log) instead of
        hiding the automation. Trigger filters (e.g. toStatusId) are not
        evaluated.
        """
        trigger_type = _trigger_value(trigger_type)
        matches = []

        for automation in await self.automations.list_active_automations(tenant_id):
            if not automation.is_active or automation.owner_id != tenant_id:
                continue
            if WorkflowGraph.trigger_type_of(automation.workflow_data) == trigger_type:
                matches.append(automation)

        logger.info(f"{len(matches)} automation(s) match {trigger_type} for tenant {tenant_id}")
        return matches


class AutomationDispatcher:
    """
    Fire-and-forget launcher of automation runs.

    Each run becomes its own asyncio task. The dispatcher holds a reference
    to every pending task so it is not garbage collected mid-run.
    """

    def __init__(self, engine: AutomationEngine, matcher: TriggerMatcher):
        self.engine = engine
        self.matcher = matcher
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def dispatch(
        self, trigger_type: Union[str, TriggerType], record_id: str, tenant_id: str
    ) -> List[asyncio.Task]:
        """
        Start one run per matching automation and return without awaiting them.

        Returns:
            The launched tasks (callers normally ignore them)
        """
        trigger_type = _trigger_value(trigger_type)
        automations = await self.matcher.find_matching(trigger_type, tenant_id)

        tasks = []
        for automation in automations:
            task = asyncio.create_task(
                self.engine.execute(automation.id, record_id, trigger_type),
                name=f"automation-{automation.id}-{record_id}",
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)

        return tasks

    async def dispatch_and_wait(
        self, trigger_type: Union[str, TriggerType], record_id: str, tenant_id: str
    ) -> List[str]:
        """Start all matching runs and wait for them. Returns the log IDs of the runs that started."""
        tasks = await self.dispatch(trigger_type, record_id, tenant_id)
        log_ids = await asyncio.gather(*tasks)
        return [log_id for log_id in log_ids if log_id]

    # Event helpers, one per CRM trigger site

    async def record_created(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.RECORD_CREATED, record_id, tenant_id)

    async def status_changed(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.STATUS_CHANGED, record_id, tenant_id)

    async def tag_added(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.TAG_ADDED, record_id, tenant_id)

    async def tag_removed(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.TAG_REMOVED, record_id, tenant_id)

    async def temperature_changed(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.TEMPERATURE_CHANGED, record_id, tenant_id)

    async def record_assigned(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.RECORD_ASSIGNED, record_id, tenant_id)

    async def task_completed(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.TASK_COMPLETED, record_id, tenant_id)

    async def added_to_board(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.ADDED_TO_BOARD, record_id, tenant_id)

    async def moved_to_column(self, record_id: str, tenant_id: str) -> List[asyncio.Task]:
        return await self.dispatch(TriggerType.MOVED_TO_COLUMN, record_id, tenant_id)
