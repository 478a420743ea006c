"""
Execution context

One ExecutionContext exists per run. It identifies the run, the automation,
the record and the tenant every store call is scoped to.
"""

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class ExecutionContext:
    """
    State shared by every node of one run.

    Attributes:
        tenant_id: Account that owns the automation; all store calls are scoped to it
        automation_id: Automation being executed
        automation_name: Used as the activity-log source ("Automation: <name>")
        record_id: Record the automation runs against
        log_id: ExecutionLog row of this run
        triggered_by: Event that started the run
        variables: Reserved for values passed between nodes (unused)
    """

    tenant_id: str
    automation_id: str
    automation_name: str
    record_id: str
    log_id: str
    triggered_by: str
    variables: Dict[str, Any] = field(default_factory=dict)

    @property
    def activity_source(self) -> str:
        return f"Automation: {self.automation_name}"
