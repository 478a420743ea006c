"""
Custom Exceptions for crmflow

This module defines the exception types raised while matching and running
automations.

Exception Hierarchy:
- CrmflowException (base)
  - WorkflowError
    - GraphValidationError (don't retry)
    - GraphExecutionError
  - ActionError (action mutation failed)
  - StoreError
    - RecordNotFoundError
  - AutomationNotFoundError
"""


class CrmflowException(Exception):
    """Base exception for all crmflow errors"""

    def __init__(self, message: str, retry_allowed: bool = True):
        super().__init__(message)
        self.message = message
        self.retry_allowed = retry_allowed


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

class WorkflowError(CrmflowException):
    """Base class for workflow-related errors"""
    pass


class GraphValidationError(WorkflowError):
    """
    Workflow structure is invalid (e.g., missing trigger, cycles, unknown action types).
    Should NOT be retried - fix the workflow definition.
    """

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=False)


class GraphExecutionError(WorkflowError):
    """
    Workflow execution failed while walking the graph.
    """

    def __init__(self, message: str, node_id: str = None):
        super().__init__(message, retry_allowed=False)
        self.node_id = node_id


# ============================================================================
# ACTION ERRORS
# ============================================================================

class ActionError(CrmflowException):
    """
    An action node's store mutation failed.
    The run is aborted; mutations applied by earlier nodes are kept.
    """

    def __init__(self, message: str, action_type: str = None, node_id: str = None):
        super().__init__(message, retry_allowed=False)
        self.action_type = action_type
        self.node_id = node_id


# ============================================================================
# STORE ERRORS
# ============================================================================

class StoreError(CrmflowException):
    """
    Store read or write failed.
    """

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=True)


class RecordNotFoundError(StoreError):
    """Record does not exist in the tenant"""

    def __init__(self, record_id: str, tenant_id: str = None):
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id
        self.tenant_id = tenant_id


class AutomationNotFoundError(CrmflowException):
    """Automation does not exist in the tenant"""

    def __init__(self, automation_id: str):
        super().__init__(f"Automation {automation_id} not found", retry_allowed=False)
        self.automation_id = automation_id
