"""
ConditionEvaluator

Evaluates the ordered condition list of a branch against the record.

Conditions are folded strictly left to right: the first condition seeds the
result and each following condition combines with it through its own
``logic`` ("OR" means or, anything else means and). There is no operator
precedence, so authored order changes the outcome:

    A=true, B=false (logic OR), C=false (logic AND)
    fold:        (A or B) and C  -> False
    precedence:  A or (B and C)  -> True   (NOT what this evaluator does)
"""

import logging
from typing import Any, Iterable

from .context import ExecutionContext
from .nodes import Condition
from .stores import RecordStore
from .types import RecordSnapshot

logger = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def evaluate_single(record: RecordSnapshot, field: str, operator: str, value: Any) -> bool:
    """
    Evaluate one predicate against a record snapshot.

    Supported fields and operators:
        status, temperature     equals | not_equals
        isComplete              equals | not_equals (against true/false)
        hasTag, hasMotivation   equals | contains    -> member
                                not_equals | not_contains -> not member
        isAssigned              value "any" -> assigned, "none" -> unassigned,
                                otherwise the assignee id must match

    Any other field/operator pair evaluates to False.
    """
    operator = operator or "equals"

    if field in ("status", "temperature"):
        current = record.status_id if field == "status" else record.temperature
        if operator == "equals":
            return current == value
        if operator == "not_equals":
            return current != value

    elif field == "isComplete":
        if operator == "equals":
            return record.is_complete == _as_bool(value)
        if operator == "not_equals":
            return record.is_complete != _as_bool(value)

    elif field in ("hasTag", "hasMotivation"):
        members = record.tag_ids if field == "hasTag" else record.motivation_ids
        if not isinstance(value, str):
            logger.debug(f"Non-string {field} value {value!r}, evaluating to False")
            return False
        if operator in ("equals", "contains"):
            return value in members
        if operator in ("not_equals", "not_contains"):
            return value not in members

    elif field == "isAssigned":
        if value == "any":
            return record.assigned_to_id is not None
        if value == "none":
            return record.assigned_to_id is None
        return record.assigned_to_id == value

    logger.debug(f"Unsupported condition {field!r} {operator!r}, evaluating to False")
    return False


def fold_conditions(record: RecordSnapshot, conditions: Iterable[Condition]) -> bool:
    """Left fold of ``conditions`` over ``record``. An empty list is False."""
    result = None
    for condition in conditions:
        outcome = evaluate_single(record, condition.field, condition.operator, condition.value)
        if result is None:
            result = outcome
        elif condition.logic == "OR":
            result = result or outcome
        else:
            result = result and outcome
    return bool(result)


class ConditionEvaluator:
    """
    Evaluates branch conditions against a freshly read record.

    The record is re-read on every call so that actions executed earlier in
    the run are visible to later branches.
    """

    def __init__(self, records: RecordStore):
        self.records = records

    async def evaluate_branch(self, conditions: Iterable[Condition], context: ExecutionContext) -> bool:
        """
        Args:
            conditions: Ordered conditions of one branch
            context: Current run

        Returns:
            The folded result. False if the record no longer exists.
        """
        record = await self.records.get_record(context.tenant_id, context.record_id)
        if record is None:
            logger.warning(
                f"Record {context.record_id} not found while evaluating conditions, treating as False"
            )
            return False
        return fold_conditions(record, conditions)
