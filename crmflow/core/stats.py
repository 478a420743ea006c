"""
Run statistics

Only fully successful runs count: failed or partially applied runs are
visible in their ExecutionLog but never in runCount / lastRunAt.
"""

import logging
from datetime import datetime

from .stores import ExecutionLogStore

logger = logging.getLogger(__name__)


class RunStatsUpdater:
    """Increments runCount and sets lastRunAt after a completed run."""

    def __init__(self, store: ExecutionLogStore):
        self.store = store

    async def record_success(self, tenant_id: str, automation_id: str) -> None:
        await self.store.increment_run_stats(tenant_id, automation_id, datetime.utcnow())
        logger.debug(f"Incremented run count of automation {automation_id}")
