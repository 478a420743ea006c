"""
Domain types shared by the engine and the stores.

These are plain pydantic models: stores build them from whatever persistence
they use, and the engine never touches ORM objects directly.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field


class TriggerType(str, Enum):
    """Business events an automation trigger can listen to"""

    RECORD_CREATED = "record_created"
    STATUS_CHANGED = "status_changed"
    TAG_ADDED = "tag_added"
    TAG_REMOVED = "tag_removed"
    TEMPERATURE_CHANGED = "temperature_changed"
    RECORD_ASSIGNED = "record_assigned"
    TASK_COMPLETED = "task_completed"
    ADDED_TO_BOARD = "added_to_board"
    MOVED_TO_COLUMN = "moved_to_column"
    MANUAL_TEST = "manual_test"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RecordSnapshot(BaseModel):
    """
    A record as read from the RecordStore, with its tag and motivation memberships.

    Snapshots are never reused across evaluations: every branch evaluation
    reads a fresh one.
    """

    id: str
    owner_id: Optional[str] = None
    status_id: Optional[str] = None
    temperature: Optional[str] = None
    is_complete: bool = False
    assigned_to_id: Optional[str] = None
    tag_ids: FrozenSet[str] = frozenset()
    motivation_ids: FrozenSet[str] = frozenset()

    class Config:
        frozen = True


class Automation(BaseModel):
    """An automation definition with its embedded workflow payload"""

    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    is_active: bool = False
    is_draft: bool = True
    workflow_data: Optional[Dict[str, Any]] = None
    run_count: int = 0
    last_run_at: Optional[datetime] = None


class Step(BaseModel):
    """One recorded execution event for a single node within a run"""

    sequence: int = 0
    node_id: str
    node_kind: str
    label: Optional[str] = None
    action_type: Optional[str] = None
    status: StepStatus
    message: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        use_enum_values = True


class ExecutionLog(BaseModel):
    """A run of one automation against one record"""

    id: str
    automation_id: str
    record_id: str
    triggered_by: str
    status: RunStatus
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    steps: List[Step] = Field(default_factory=list)

    class Config:
        use_enum_values = True
