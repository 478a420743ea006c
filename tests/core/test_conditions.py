"""
Unit Tests for ConditionEvaluator

Tests cover:
- Single predicates per field and operator
- Left-to-right fold of AND/OR (no precedence)
- Fresh record reads and vanished records
"""

import pytest

from crmflow.core.conditions import ConditionEvaluator, evaluate_single, fold_conditions
from crmflow.core.context import ExecutionContext
from crmflow.core.nodes import Condition
from crmflow.core.types import RecordSnapshot


@pytest.fixture
def record():
    return RecordSnapshot(
        id="rec-1",
        owner_id="acct-1",
        status_id="st-new",
        temperature="hot",
        is_complete=False,
        assigned_to_id=None,
        tag_ids=frozenset({"tag-vip"}),
        motivation_ids=frozenset({"mot-price"}),
    )


def context(record_id: str = "rec-1") -> ExecutionContext:
    return ExecutionContext(
        tenant_id="acct-1",
        automation_id="auto-1",
        automation_name="Test",
        record_id=record_id,
        log_id="log-1",
        triggered_by="record_created",
    )


# ============================================================================
# SINGLE PREDICATE TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("field,operator,value,expected", [
    ("status", "equals", "st-new", True),
    ("status", "equals", "st-qualified", False),
    ("status", "not_equals", "st-qualified", True),
    ("temperature", "equals", "hot", True),
    ("temperature", "not_equals", "hot", False),
    ("isComplete", "equals", "false", True),
    ("isComplete", "equals", True, False),
    ("isComplete", "not_equals", "true", True),
    ("hasTag", "equals", "tag-vip", True),
    ("hasTag", "contains", "tag-other", False),
    ("hasTag", "not_contains", "tag-other", True),
    ("hasTag", "not_equals", "tag-vip", False),
    ("hasMotivation", "contains", "mot-price", True),
    ("hasMotivation", "not_contains", "mot-price", False),
    ("isAssigned", "equals", "none", True),
    ("isAssigned", "equals", "any", False),
    ("isAssigned", "equals", "user-1", False),
])
def test_evaluate_single(record, field, operator, value, expected):
    """Test each supported field/operator pair"""
    assert evaluate_single(record, field, operator, value) is expected


@pytest.mark.unit
def test_is_assigned_to_specific_user(record):
    """Test isAssigned compares the assignee id"""
    assigned = record.model_copy(update={"assigned_to_id": "user-1"})

    assert evaluate_single(assigned, "isAssigned", "equals", "user-1") is True
    assert evaluate_single(assigned, "isAssigned", "equals", "any") is True
    assert evaluate_single(assigned, "isAssigned", "equals", "none") is False


@pytest.mark.unit
@pytest.mark.parametrize("field,operator", [
    ("hasTag", "contains"),
    ("hasTag", "not_contains"),
    ("hasMotivation", "equals"),
])
def test_membership_with_list_value_is_false(record, field, operator):
    """Test a multi-select value does not raise and evaluates to False"""
    assert evaluate_single(record, field, operator, ["tag-vip", "mot-price"]) is False


@pytest.mark.unit
def test_unsupported_field_is_false(record):
    """Test unknown fields evaluate to False"""
    assert evaluate_single(record, "email", "equals", "a@b.c") is False


@pytest.mark.unit
def test_unsupported_operator_is_false(record):
    """Test unknown operators evaluate to False"""
    assert evaluate_single(record, "status", "greater_than", "st-new") is False


# ============================================================================
# FOLD TESTS
# ============================================================================

TRUE = Condition(field="temperature", value="hot")
FALSE = Condition(field="temperature", value="cold")


def with_logic(condition: Condition, logic: str) -> Condition:
    return condition.model_copy(update={"logic": logic})


@pytest.mark.unit
def test_fold_empty_is_false(record):
    """Test a branch without conditions never matches by evaluation"""
    assert fold_conditions(record, []) is False


@pytest.mark.unit
def test_fold_single(record):
    """Test a single condition decides alone"""
    assert fold_conditions(record, [TRUE]) is True
    assert fold_conditions(record, [FALSE]) is False


@pytest.mark.unit
def test_fold_or(record):
    """Test OR with a false first condition"""
    assert fold_conditions(record, [FALSE, with_logic(TRUE, "OR")]) is True


@pytest.mark.unit
def test_fold_default_logic_is_and(record):
    """Test a missing logic means AND"""
    assert fold_conditions(record, [TRUE, FALSE]) is False
    assert fold_conditions(record, [TRUE, with_logic(TRUE, "AND")]) is True


@pytest.mark.unit
def test_fold_lowercase_or_means_and(record):
    """Test only the exact string OR selects or"""
    assert fold_conditions(record, [FALSE, with_logic(TRUE, "or")]) is False


@pytest.mark.unit
def test_fold_left_to_right_not_precedence(record):
    """Test A=true, B=false OR, C=false AND evaluates as (A or B) and C"""
    conditions = [TRUE, with_logic(FALSE, "OR"), with_logic(FALSE, "AND")]

    assert fold_conditions(record, conditions) is False


@pytest.mark.unit
def test_fold_false_or_true_and_false(record):
    """Test A=false, B=true OR, C=false AND evaluates as (A or B) and C"""
    conditions = [FALSE, with_logic(TRUE, "OR"), with_logic(FALSE, "AND")]

    assert fold_conditions(record, conditions) is False


@pytest.mark.unit
def test_fold_first_logic_ignored(record):
    """Test the logic of the first condition has no effect"""
    assert fold_conditions(record, [with_logic(TRUE, "OR")]) is True


# ============================================================================
# EVALUATOR TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_evaluate_branch_reads_record(store, crm):
    """Test the evaluator reads the record from the store"""
    evaluator = ConditionEvaluator(store)

    result = await evaluator.evaluate_branch(
        [Condition(field="status", value=crm.status_new)], context(crm.record_id)
    )

    assert result is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_evaluate_branch_sees_fresh_state(store, crm):
    """Test changes made after a first evaluation are visible to the next one"""
    evaluator = ConditionEvaluator(store)
    hot = [Condition(field="temperature", value="hot")]

    assert await evaluator.evaluate_branch(hot, context(crm.record_id)) is False

    await store.update_record(crm.tenant_id, crm.record_id, {"temperature": "hot"})

    assert await evaluator.evaluate_branch(hot, context(crm.record_id)) is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_evaluate_branch_vanished_record(store, crm):
    """Test a record that no longer exists evaluates to False"""
    evaluator = ConditionEvaluator(store)

    result = await evaluator.evaluate_branch(
        [Condition(field="isAssigned", value="none")], context("rec-deleted")
    )

    assert result is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_evaluate_branch_other_tenant_record(store, crm):
    """Test records of another tenant are invisible"""
    evaluator = ConditionEvaluator(store)

    result = await evaluator.evaluate_branch(
        [Condition(field="isAssigned", value="none")], context(crm.other_record_id)
    )

    assert result is False
