"""
Store capability contracts consumed by the engine.

The engine never talks to a database directly. It depends on these abstract
capabilities; ``crmflow.stores.sqlalchemy_store.SqlAlchemyStore`` implements
all of them over SQLAlchemy.

Every method takes the tenant (account) id explicitly: a store must never
return or mutate data outside the tenant it is given.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .types import Automation, ExecutionLog, RecordSnapshot, RunStatus, Step


class AutomationStore(ABC):

    @abstractmethod
    async def get_automation(
        self, automation_id: str, tenant_id: Optional[str] = None
    ) -> Optional[Automation]:
        """Load one automation; when ``tenant_id`` is given, only if it belongs to that tenant."""
        pass

    @abstractmethod
    async def list_active_automations(self, tenant_id: str) -> List[Automation]:
        pass

    @abstractmethod
    async def replace_workflow(
        self, tenant_id: str, automation_id: str, workflow_data: Dict[str, Any]
    ) -> Automation:
        """
        Replace the whole embedded workflow payload in one write.

        Raises:
            AutomationNotFoundError: If the automation is not in the tenant
        """
        pass


class RecordStore(ABC):

    @abstractmethod
    async def get_record(self, tenant_id: str, record_id: str) -> Optional[RecordSnapshot]:
        """Read a record with its tag and motivation memberships. None if it does not exist."""
        pass

    @abstractmethod
    async def update_record(self, tenant_id: str, record_id: str, fields: Dict[str, Any]) -> None:
        """
        Set scalar fields (status_id, temperature, is_complete, assigned_to_id).

        Raises:
            RecordNotFoundError: If the record does not exist in the tenant
        """
        pass

    @abstractmethod
    async def add_tag(self, tenant_id: str, record_id: str, tag_id: str) -> None:
        """Upsert a tag membership (no-op if present)."""
        pass

    @abstractmethod
    async def remove_tag(self, tenant_id: str, record_id: str, tag_id: str) -> None:
        """Delete a tag membership (no-op if absent)."""
        pass

    @abstractmethod
    async def add_motivation(self, tenant_id: str, record_id: str, motivation_id: str) -> None:
        pass

    @abstractmethod
    async def remove_motivation(self, tenant_id: str, record_id: str, motivation_id: str) -> None:
        pass


class CatalogStore(ABC):
    """Display names for referenced ids, resolved at execution time (logging only)."""

    @abstractmethod
    async def status_name(self, tenant_id: str, status_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def tag_name(self, tenant_id: str, tag_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def motivation_name(self, tenant_id: str, motivation_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def user_display_name(self, tenant_id: str, user_id: str) -> Optional[str]:
        pass


class TaskStore(ABC):

    @abstractmethod
    async def create_task(
        self,
        tenant_id: str,
        record_id: str,
        title: str,
        description: Optional[str] = None,
        assigned_to_id: Optional[str] = None,
        due_date: Optional[datetime] = None,
        priority: str = "MEDIUM",
    ) -> str:
        """Create a task owned by ``tenant_id`` and linked to the record. Returns its id."""
        pass


class NotificationStore(ABC):

    @abstractmethod
    async def create_notification(
        self,
        tenant_id: str,
        user_id: str,
        title: str,
        message: str,
        record_id: Optional[str] = None,
        notification_type: str = "AUTOMATION",
    ) -> str:
        pass


class BoardPositionStore(ABC):

    @abstractmethod
    async def add_to_board(self, tenant_id: str, record_id: str, board_id: str, column_id: str) -> int:
        """
        Place the record at the end of the column.

        Keyed by (record, column): if the record is already in the column its
        position is left unchanged. Returns the record's order in the column.
        """
        pass


class ActivityLogStore(ABC):

    @abstractmethod
    async def log_activity(
        self,
        tenant_id: str,
        record_id: str,
        action: str,
        field: str,
        new_value: Optional[str],
        source: str,
    ) -> None:
        pass


class ExecutionLogStore(ABC):

    @abstractmethod
    async def create_log(
        self, tenant_id: str, automation_id: str, record_id: str, triggered_by: str
    ) -> str:
        """Create a run log with status "running". Returns its id."""
        pass

    @abstractmethod
    async def append_step(self, tenant_id: str, log_id: str, step: Step) -> None:
        """Persist one Step as its own row, ordered by ``step.sequence``."""
        pass

    @abstractmethod
    async def finish_log(
        self, tenant_id: str, log_id: str, status: RunStatus, error_message: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    async def increment_run_stats(self, tenant_id: str, automation_id: str, ran_at: datetime) -> None:
        """runCount += 1, lastRunAt = ran_at."""
        pass

    @abstractmethod
    async def get_log(self, tenant_id: str, log_id: str) -> Optional[ExecutionLog]:
        pass

    @abstractmethod
    async def list_logs(self, tenant_id: str, automation_id: str, limit: int = 50) -> List[ExecutionLog]:
        """Newest first."""
        pass


@dataclass
class Stores:
    """The set of capabilities the engine runs against."""

    automations: AutomationStore
    records: RecordStore
    catalog: CatalogStore
    tasks: TaskStore
    notifications: NotificationStore
    boards: BoardPositionStore
    activity: ActivityLogStore
    logs: ExecutionLogStore

    @classmethod
    def from_single(cls, store: Any) -> "Stores":
        """Use one object that implements every capability."""
        return cls(
            automations=store,
            records=store,
            catalog=store,
            tasks=store,
            notifications=store,
            boards=store,
            activity=store,
            logs=store,
        )
