"""
Celery Tasks for crmflow

Main Tasks:
- execute_automation_task: Run one automation against one record
- dispatch_event_task: Match an event and queue one run per matching automation

Task Design Principles:
- Terminal runs: no automatic retry. A run that failed halfway keeps its
  applied actions, so replaying it would apply them twice
- Retryable matching: dispatch_event_task retries errors whose
  retry_allowed flag is set, since nothing has been queued yet
- Observable: every run writes its own execution log
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from .celery_app import celery_app
from ..database import get_db
from ..core.engine import AutomationEngine
from ..core.exceptions import CrmflowException
from ..core.stores import Stores
from ..core.triggers import TriggerMatcher
from ..stores import SqlAlchemyStore

logger = logging.getLogger(__name__)


async def _execute(
    store: SqlAlchemyStore, automation_id: str, record_id: str, triggered_by: str
) -> Tuple[Optional[str], Optional[str]]:
    engine = AutomationEngine(Stores.from_single(store))
    log_id = await engine.execute(automation_id, record_id, triggered_by)
    if not log_id:
        return None, None

    automation = await store.get_automation(automation_id)
    log = await store.get_log(automation.owner_id, log_id) if automation else None
    return log_id, (log.status if log else None)


@celery_app.task(bind=True, name="execute_automation_task", max_retries=0)
def execute_automation_task(
    self,
    automation_id: str,
    record_id: str,
    triggered_by: str,
) -> Dict[str, Any]:
    """
    Run one automation against one record.

    Args:
        automation_id: Automation to run
        record_id: Record the automation acts on
        triggered_by: Event that caused the run

    Returns:
        Dict with the run result:
        {
            "automation_id": "...",
            "record_id": "...",
            "log_id": "..." or None (automation missing, inactive or empty),
            "status": "completed" | "failed" | None
        }
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: Running automation {automation_id} on record {record_id} ({triggered_by})")

    with get_db() as db:
        # AutomationEngine.execute is async, so we need to run it in event loop
        log_id, status = asyncio.run(_execute(SqlAlchemyStore(db), automation_id, record_id, triggered_by))

    logger.info(f"Task {task_id}: Automation {automation_id} finished with status {status or 'not run'}")

    return {
        "automation_id": automation_id,
        "record_id": record_id,
        "log_id": log_id,
        "status": status,
    }


@celery_app.task(bind=True, name="dispatch_event_task", max_retries=3, default_retry_delay=10)
def dispatch_event_task(
    self,
    trigger_type: str,
    record_id: str,
    tenant_id: str,
) -> Dict[str, Any]:
    """
    Match a business event and queue one execute_automation_task per match.

    Matching has no side effects, so it is retried when the error allows it
    (e.g. a StoreError while listing automations). Nothing is queued until
    matching succeeded.

    Returns:
        {"trigger_type": ..., "record_id": ..., "queued": [automation ids]}
    """
    task_id = self.request.id

    try:
        with get_db() as db:
            matcher = TriggerMatcher(SqlAlchemyStore(db))
            automations = asyncio.run(matcher.find_matching(trigger_type, tenant_id))

    except CrmflowException as e:
        if not e.retry_allowed:
            logger.error(f"Task {task_id}: Matching {trigger_type} failed: {e}")
            raise
        logger.warning(f"Task {task_id}: Matching {trigger_type} failed, retrying in {self.default_retry_delay}s: {e}")
        raise self.retry(exc=e)

    queued = []
    for automation in automations:
        execute_automation_task.delay(automation.id, record_id, trigger_type)
        queued.append(automation.id)

    logger.info(f"Task {task_id}: Queued {len(queued)} run(s) for {trigger_type} on record {record_id}")

    return {
        "trigger_type": trigger_type,
        "record_id": record_id,
        "queued": queued,
    }
