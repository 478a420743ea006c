"""
SQLAlchemy implementation of every store capability.

One SqlAlchemyStore wraps one Session. Each mutating method commits before
returning, so a Step or an action is durable as soon as it is recorded and a
later failure in the run never rolls it back.

Usage:
    with get_db() as db:
        engine = AutomationEngine(Stores.from_single(SqlAlchemyStore(db)))
        await engine.execute(automation_id, record_id, "record_created")
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import AutomationNotFoundError, RecordNotFoundError, StoreError
from ..core.graph import WorkflowGraph
from ..core.stores import (
    ActivityLogStore,
    AutomationStore,
    BoardPositionStore,
    CatalogStore,
    ExecutionLogStore,
    NotificationStore,
    RecordStore,
    TaskStore,
)
from ..core.types import Automation, ExecutionLog, RecordSnapshot, RunStatus, Step
from ..models import (
    Automation as AutomationRow,
    AutomationLog,
    AutomationLogStep,
    Motivation,
    Notification,
    Record,
    RecordActivityLog,
    RecordBoardPosition,
    RecordMotivation,
    RecordTag,
    Status,
    Tag,
    Task,
    User,
)

logger = logging.getLogger(__name__)

RECORD_FIELDS = ("status_id", "temperature", "is_complete", "assigned_to_id")


def automation_to_domain(row: AutomationRow) -> Automation:
    return Automation(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        is_active=bool(row.is_active),
        is_draft=bool(row.is_draft),
        workflow_data=row.workflow_data,
        run_count=row.run_count or 0,
        last_run_at=row.last_run_at,
    )


def log_to_domain(row: AutomationLog) -> ExecutionLog:
    return ExecutionLog(
        id=row.id,
        automation_id=row.automation_id,
        record_id=row.record_id,
        triggered_by=row.triggered_by,
        status=row.status,
        error_message=row.error_message,
        started_at=row.started_at,
        completed_at=row.completed_at,
        steps=[
            Step(
                sequence=s.sequence,
                node_id=s.node_id,
                node_kind=s.node_kind,
                label=s.label,
                action_type=s.action_type,
                status=s.status,
                message=s.message,
                result=s.result,
                error=s.error,
                started_at=s.started_at,
                completed_at=s.completed_at,
            )
            for s in row.steps
        ],
    )


class SqlAlchemyStore(
    AutomationStore,
    RecordStore,
    CatalogStore,
    TaskStore,
    NotificationStore,
    BoardPositionStore,
    ActivityLogStore,
    ExecutionLogStore,
):
    """All store capabilities over a single SQLAlchemy session."""

    def __init__(self, session: Session):
        self.db = session

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise StoreError(f"Database commit failed: {e}") from e

    def _record(self, tenant_id: str, record_id: str) -> Optional[Record]:
        return (
            self.db.query(Record)
            .filter(Record.id == record_id, Record.owner_id == tenant_id)
            .first()
        )

    def _require_record(self, tenant_id: str, record_id: str) -> Record:
        record = self._record(tenant_id, record_id)
        if record is None:
            raise RecordNotFoundError(record_id, tenant_id=tenant_id)
        return record

    # ========================================================================
    # AUTOMATIONS
    # ========================================================================

    async def get_automation(self, automation_id: str, tenant_id: Optional[str] = None) -> Optional[Automation]:
        query = self.db.query(AutomationRow).filter(AutomationRow.id == automation_id)
        if tenant_id is not None:
            query = query.filter(AutomationRow.owner_id == tenant_id)
        row = query.first()
        return automation_to_domain(row) if row else None

    async def list_active_automations(self, tenant_id: str) -> List[Automation]:
        try:
            rows = (
                self.db.query(AutomationRow)
                .filter(AutomationRow.owner_id == tenant_id, AutomationRow.is_active.is_(True))
                .order_by(AutomationRow.created_at)
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list automations: {e}") from e
        return [automation_to_domain(row) for row in rows]

    async def replace_workflow(self, tenant_id: str, automation_id: str, workflow_data: Dict[str, Any]) -> Automation:
        row = (
            self.db.query(AutomationRow)
            .filter(AutomationRow.id == automation_id, AutomationRow.owner_id == tenant_id)
            .first()
        )
        if row is None:
            raise AutomationNotFoundError(automation_id)

        # Raises GraphValidationError before anything is written
        WorkflowGraph.from_dict(workflow_data).validate()

        row.workflow_data = workflow_data
        self._commit()
        logger.info(f"Replaced workflow of automation {automation_id}")
        return automation_to_domain(row)

    # ========================================================================
    # RECORDS
    # ========================================================================

    async def get_record(self, tenant_id: str, record_id: str) -> Optional[RecordSnapshot]:
        record = self._record(tenant_id, record_id)
        if record is None:
            return None
        return RecordSnapshot(
            id=record.id,
            owner_id=record.owner_id,
            status_id=record.status_id,
            temperature=record.temperature,
            is_complete=bool(record.is_complete),
            assigned_to_id=record.assigned_to_id,
            tag_ids=frozenset(t.tag_id for t in record.tags),
            motivation_ids=frozenset(m.motivation_id for m in record.motivations),
        )

    async def update_record(self, tenant_id: str, record_id: str, fields: Dict[str, Any]) -> None:
        unknown = [key for key in fields if key not in RECORD_FIELDS]
        if unknown:
            raise StoreError(f"Field {', '.join(unknown)} cannot be updated by automations")

        record = self._require_record(tenant_id, record_id)
        for key, value in fields.items():
            setattr(record, key, value)
        self._commit()

    async def add_tag(self, tenant_id: str, record_id: str, tag_id: str) -> None:
        self._require_record(tenant_id, record_id)
        exists = (
            self.db.query(RecordTag)
            .filter(RecordTag.record_id == record_id, RecordTag.tag_id == tag_id)
            .first()
        )
        if exists is None:
            self.db.add(RecordTag(record_id=record_id, tag_id=tag_id))
            self._commit()

    async def remove_tag(self, tenant_id: str, record_id: str, tag_id: str) -> None:
        self._require_record(tenant_id, record_id)
        self.db.query(RecordTag).filter(
            RecordTag.record_id == record_id, RecordTag.tag_id == tag_id
        ).delete(synchronize_session="fetch")
        self._commit()

    async def add_motivation(self, tenant_id: str, record_id: str, motivation_id: str) -> None:
        self._require_record(tenant_id, record_id)
        exists = (
            self.db.query(RecordMotivation)
            .filter(RecordMotivation.record_id == record_id, RecordMotivation.motivation_id == motivation_id)
            .first()
        )
        if exists is None:
            self.db.add(RecordMotivation(record_id=record_id, motivation_id=motivation_id))
            self._commit()

    async def remove_motivation(self, tenant_id: str, record_id: str, motivation_id: str) -> None:
        self._require_record(tenant_id, record_id)
        self.db.query(RecordMotivation).filter(
            RecordMotivation.record_id == record_id, RecordMotivation.motivation_id == motivation_id
        ).delete(synchronize_session="fetch")
        self._commit()

    # ========================================================================
    # CATALOG
    # ========================================================================

    def _name(self, model, tenant_id: str, item_id: str) -> Optional[str]:
        row = self.db.query(model).filter(model.id == item_id, model.owner_id == tenant_id).first()
        return row.name if row else None

    async def status_name(self, tenant_id: str, status_id: str) -> Optional[str]:
        return self._name(Status, tenant_id, status_id)

    async def tag_name(self, tenant_id: str, tag_id: str) -> Optional[str]:
        return self._name(Tag, tenant_id, tag_id)

    async def motivation_name(self, tenant_id: str, motivation_id: str) -> Optional[str]:
        return self._name(Motivation, tenant_id, motivation_id)

    async def user_display_name(self, tenant_id: str, user_id: str) -> Optional[str]:
        user = self.db.query(User).filter(User.id == user_id, User.owner_id == tenant_id).first()
        if user is None:
            return None
        return user.name or user.email

    # ========================================================================
    # TASKS, NOTIFICATIONS, BOARDS
    # ========================================================================

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
        task = Task(
            owner_id=tenant_id,
            record_id=record_id,
            title=title,
            description=description,
            assigned_to_id=assigned_to_id,
            due_date=due_date,
            priority=priority,
        )
        self.db.add(task)
        self._commit()
        return task.id

    async def create_notification(
        self,
        tenant_id: str,
        user_id: str,
        title: str,
        message: str,
        record_id: Optional[str] = None,
        notification_type: str = "AUTOMATION",
    ) -> str:
        notification = Notification(
            owner_id=tenant_id,
            user_id=user_id,
            title=title,
            message=message,
            record_id=record_id,
            type=notification_type,
        )
        self.db.add(notification)
        self._commit()
        return notification.id

    async def add_to_board(self, tenant_id: str, record_id: str, board_id: str, column_id: str) -> int:
        self._require_record(tenant_id, record_id)

        existing = (
            self.db.query(RecordBoardPosition)
            .filter(RecordBoardPosition.record_id == record_id, RecordBoardPosition.column_id == column_id)
            .first()
        )
        if existing is not None:
            return existing.order

        max_order = (
            self.db.query(func.max(RecordBoardPosition.order))
            .filter(RecordBoardPosition.column_id == column_id)
            .scalar()
        )
        order = 0 if max_order is None else max_order + 1

        self.db.add(RecordBoardPosition(
            record_id=record_id,
            board_id=board_id,
            column_id=column_id,
            order=order,
        ))
        self._commit()
        return order

    # ========================================================================
    # ACTIVITY LOG
    # ========================================================================

    async def log_activity(
        self,
        tenant_id: str,
        record_id: str,
        action: str,
        field: str,
        new_value: Optional[str],
        source: str,
    ) -> None:
        self.db.add(RecordActivityLog(
            owner_id=tenant_id,
            record_id=record_id,
            action=action,
            field=field,
            new_value=new_value,
            source=source,
        ))
        self._commit()

    # ========================================================================
    # EXECUTION LOGS
    # ========================================================================

    def _log(self, tenant_id: str, log_id: str) -> Optional[AutomationLog]:
        return (
            self.db.query(AutomationLog)
            .filter(AutomationLog.id == log_id, AutomationLog.owner_id == tenant_id)
            .first()
        )

    async def create_log(self, tenant_id: str, automation_id: str, record_id: str, triggered_by: str) -> str:
        log = AutomationLog(
            automation_id=automation_id,
            owner_id=tenant_id,
            record_id=record_id,
            triggered_by=triggered_by,
            status=RunStatus.RUNNING.value,
            started_at=datetime.utcnow(),
        )
        self.db.add(log)
        self._commit()
        return log.id

    async def append_step(self, tenant_id: str, log_id: str, step: Step) -> None:
        self.db.add(AutomationLogStep(
            log_id=log_id,
            sequence=step.sequence,
            node_id=step.node_id,
            node_kind=step.node_kind,
            label=step.label,
            action_type=step.action_type,
            status=step.status,
            message=step.message,
            result=step.result,
            error=step.error,
            started_at=step.started_at,
            completed_at=step.completed_at,
        ))
        self._commit()

    async def finish_log(
        self, tenant_id: str, log_id: str, status: RunStatus, error_message: Optional[str] = None
    ) -> None:
        log = self._log(tenant_id, log_id)
        if log is None:
            raise StoreError(f"Execution log {log_id} not found")
        log.status = RunStatus(status).value
        log.error_message = error_message
        log.completed_at = datetime.utcnow()
        self._commit()

    async def increment_run_stats(self, tenant_id: str, automation_id: str, ran_at: datetime) -> None:
        updated = (
            self.db.query(AutomationRow)
            .filter(AutomationRow.id == automation_id, AutomationRow.owner_id == tenant_id)
            .update(
                {
                    AutomationRow.run_count: AutomationRow.run_count + 1,
                    AutomationRow.last_run_at: ran_at,
                },
                synchronize_session="fetch",
            )
        )
        if not updated:
            raise AutomationNotFoundError(automation_id)
        self._commit()

    async def get_log(self, tenant_id: str, log_id: str) -> Optional[ExecutionLog]:
        log = self._log(tenant_id, log_id)
        return log_to_domain(log) if log else None

    async def list_logs(self, tenant_id: str, automation_id: str, limit: int = 50) -> List[ExecutionLog]:
        rows = (
            self.db.query(AutomationLog)
            .filter(AutomationLog.automation_id == automation_id, AutomationLog.owner_id == tenant_id)
            .order_by(AutomationLog.started_at.desc())
            .limit(limit)
            .all()
        )
        return [log_to_domain(row) for row in rows]
