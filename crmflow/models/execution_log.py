"""
Execution Log Models
Database models for automation runs and their per-node audit trail
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from . import Base, new_id


class AutomationLog(Base):
    """
    Automation Log Model

    One row per run of an automation against a record.
    Status moves from running to completed or failed exactly once.
    """
    __tablename__ = "automation_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    automation_id = Column(String(36), ForeignKey("automations.id"), nullable=False, index=True)
    owner_id = Column(String(36), nullable=False, index=True)
    record_id = Column(String(36), nullable=False, index=True)

    # record_created, status_changed, ..., manual_test
    triggered_by = Column(String(50), nullable=False)

    # Status: running, completed, failed
    status = Column(String(20), nullable=False, default="running", index=True)

    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    automation = relationship("Automation", back_populates="logs")

    steps = relationship(
        "AutomationLogStep",
        back_populates="log",
        cascade="all, delete-orphan",
        order_by="AutomationLogStep.sequence"
    )

    def __repr__(self):
        return f"<AutomationLog(id={self.id}, automation_id={self.automation_id}, status='{self.status}')>"


class AutomationLogStep(Base):
    """
    Automation Log Step Model

    One row per recorded step. Steps are only ever inserted, never rewritten;
    ``sequence`` orders them within their run.
    """
    __tablename__ = "automation_log_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    log_id = Column(String(36), ForeignKey("automation_logs.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    node_id = Column(String(255), nullable=False)
    node_kind = Column(String(50), nullable=False)  # trigger, action, condition, branch, ...
    label = Column(String(255), nullable=True)
    action_type = Column(String(50), nullable=True)

    # Status: started, completed, failed, skipped
    status = Column(String(20), nullable=False)

    message = Column(Text, nullable=True)
    # For condition nodes: "Branch: <name>" or "No match"
    result = Column(Text, nullable=True)
    error = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    log = relationship("AutomationLog", back_populates="steps")

    __table_args__ = (
        UniqueConstraint('log_id', 'sequence', name='unique_log_step_sequence'),
    )

    def __repr__(self):
        return f"<AutomationLogStep(log_id={self.log_id}, sequence={self.sequence}, node_id='{self.node_id}', status='{self.status}')>"
