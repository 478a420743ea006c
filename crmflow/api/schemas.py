"""
Pydantic schemas for API request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime

from ..core.types import TriggerType


# ============================================================================
# EVENT SCHEMAS
# ============================================================================

class EventRequest(BaseModel):
    """Schema for a CRM business event"""
    trigger_type: TriggerType = Field(..., description="Event that happened to the record")
    record_id: str = Field(..., min_length=1, description="Record the event happened to")

    class Config:
        json_schema_extra = {
            "example": {
                "trigger_type": "status_changed",
                "record_id": "0b7c2d4e-5f3a-4c1b-9e8d-7a6b5c4d3e2f"
            }
        }


class EventAcceptedResponse(BaseModel):
    """Schema for an accepted event (runs continue in the background)"""
    trigger_type: str
    record_id: str
    matched_automation_ids: List[str]


# ============================================================================
# AUTOMATION SCHEMAS
# ============================================================================

class ManualRunRequest(BaseModel):
    """Schema for a manual test run"""
    record_id: str = Field(..., min_length=1, description="Record to run the automation against")


class WorkflowReplaceRequest(BaseModel):
    """Schema for replacing the whole workflow graph of an automation"""
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    viewport: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "nodes": [
                    {"id": "t1", "type": "trigger", "data": {"label": "New lead", "type": "record_created"}},
                    {"id": "a1", "type": "action", "data": {"label": "Mark hot", "type": "update_temperature", "config": {"temperature": "hot"}}}
                ],
                "edges": [{"id": "e1", "source": "t1", "target": "a1"}]
            }
        }


class AutomationResponse(BaseModel):
    """Schema for automation response"""
    id: str
    name: str
    description: Optional[str]
    is_active: bool
    is_draft: bool
    workflow_data: Optional[Dict[str, Any]]
    run_count: int
    last_run_at: Optional[datetime]

    class Config:
        from_attributes = True


# ============================================================================
# EXECUTION LOG SCHEMAS
# ============================================================================

class StepResponse(BaseModel):
    """Schema for one recorded step"""
    sequence: int
    node_id: str
    node_kind: str
    label: Optional[str]
    action_type: Optional[str]
    status: str
    message: Optional[str]
    result: Optional[str]
    error: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class ExecutionLogResponse(BaseModel):
    """Schema for one run"""
    id: str
    automation_id: str
    record_id: str
    triggered_by: str
    status: str
    error_message: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    steps: List[StepResponse]

    class Config:
        from_attributes = True


class ExecutionLogListResponse(BaseModel):
    """Schema for listing runs"""
    logs: List[ExecutionLogResponse]
    total: int


class ManualRunResponse(BaseModel):
    """Schema for a manual test run. ``log`` is None when the automation did not run."""
    success: bool
    message: str
    log: Optional[ExecutionLogResponse]
