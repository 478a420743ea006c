"""
CRM Models
The slice of the CRM schema that automations read and mutate.

Every row carries the id of the owning account (owner_id). Catalog rows
(statuses, tags, motivations) are per-account as well.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from . import Base, new_id


class User(Base):
    """A member of an account. Tasks and notifications are addressed to users."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class Status(Base):
    __tablename__ = "statuses"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<Status(id={self.id}, name='{self.name}')>"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<Tag(id={self.id}, name='{self.name}')>"


class Motivation(Base):
    __tablename__ = "motivations"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<Motivation(id={self.id}, name='{self.name}')>"


class Record(Base):
    """
    Record Model

    A CRM contact/lead. Automations are triggered by changes to records and
    act on exactly one record per run.
    """
    __tablename__ = "records"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=True)

    status_id = Column(String(36), ForeignKey("statuses.id"), nullable=True)
    # cold, warm, hot
    temperature = Column(String(20), nullable=True)
    is_complete = Column(Boolean, nullable=False, default=False)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tags = relationship("RecordTag", back_populates="record", cascade="all, delete-orphan")
    motivations = relationship("RecordMotivation", back_populates="record", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Record(id={self.id}, name='{self.name}')>"


class RecordTag(Base):
    __tablename__ = "record_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("records.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)

    record = relationship("Record", back_populates="tags")

    __table_args__ = (
        UniqueConstraint('record_id', 'tag_id', name='unique_record_tag'),
    )


class RecordMotivation(Base):
    __tablename__ = "record_motivations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("records.id", ondelete="CASCADE"), nullable=False, index=True)
    motivation_id = Column(String(36), ForeignKey("motivations.id", ondelete="CASCADE"), nullable=False)

    record = relationship("Record", back_populates="motivations")

    __table_args__ = (
        UniqueConstraint('record_id', 'motivation_id', name='unique_record_motivation'),
    )


class RecordBoardPosition(Base):
    """Placement of a record in a board column. A record appears at most once per column."""
    __tablename__ = "record_board_positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String(36), ForeignKey("records.id", ondelete="CASCADE"), nullable=False, index=True)
    board_id = Column(String(36), nullable=False)
    column_id = Column(String(36), nullable=False, index=True)
    order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('record_id', 'column_id', name='unique_record_column'),
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    record_id = Column(String(36), ForeignKey("records.id", ondelete="CASCADE"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    due_date = Column(DateTime, nullable=True)
    # LOW, MEDIUM, HIGH, URGENT
    priority = Column(String(20), nullable=False, default="MEDIUM")
    is_completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}')>"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    record_id = Column(String(36), nullable=True)

    type = Column(String(50), nullable=False, default="AUTOMATION")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class RecordActivityLog(Base):
    """Per-record audit feed shown in the CRM. Automations write one entry per mutation."""
    __tablename__ = "record_activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(36), nullable=False, index=True)
    record_id = Column(String(36), ForeignKey("records.id", ondelete="CASCADE"), nullable=False, index=True)

    action = Column(String(100), nullable=False)  # e.g. automation_update_status
    field = Column(String(100), nullable=True)
    new_value = Column(Text, nullable=True)
    source = Column(String(255), nullable=True)  # e.g. "Automation: Welcome flow"

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
