"""
Automation Model
Database model for user-authored automations
"""

from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
from . import Base, new_id


class Automation(Base):
    """
    Automation Model

    Stores an automation and its embedded workflow graph.
    The graph is edited as a whole: every save replaces workflow_data.
    """
    __tablename__ = "automations"

    id = Column(String(36), primary_key=True, default=new_id)

    # Tenant (account) that owns the automation
    owner_id = Column(String(36), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=False, index=True)
    is_draft = Column(Boolean, nullable=False, default=True)

    # Editor payload:
    # {
    #   "nodes": [
    #     {"id": "t1", "type": "trigger", "data": {"label": "New lead", "type": "record_created", "config": {}}},
    #     {"id": "a1", "type": "action", "data": {"label": "Tag VIP", "type": "add_tag", "config": {"tagId": "..."}}}
    #   ],
    #   "edges": [{"id": "e1", "source": "t1", "target": "a1"}],
    #   "viewport": {"x": 0, "y": 0, "zoom": 1}
    # }
    workflow_data = Column(JSON, nullable=True)

    # Only fully successful runs are counted
    run_count = Column(Integer, nullable=False, default=0)
    last_run_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    logs = relationship("AutomationLog", back_populates="automation", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Automation(id={self.id}, name='{self.name}', active={self.is_active})>"
