"""
Models module - SQLAlchemy database models
"""

import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


# Import models after Base is defined to avoid circular imports
from .automation import Automation  # noqa: E402
from .execution_log import AutomationLog, AutomationLogStep  # noqa: E402
from .crm import (  # noqa: E402
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

__all__ = [
    "Base",
    "new_id",
    "Automation",
    "AutomationLog",
    "AutomationLogStep",
    "Motivation",
    "Notification",
    "Record",
    "RecordActivityLog",
    "RecordBoardPosition",
    "RecordMotivation",
    "RecordTag",
    "Status",
    "Tag",
    "Task",
    "User",
]
