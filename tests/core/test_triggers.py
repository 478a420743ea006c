"""
Unit Tests for TriggerMatcher and AutomationDispatcher

Tests cover:
- Matching by trigger type, tenant and active flag
- Automations with missing or broken workflows
- Fire-and-forget dispatch and the event helpers
"""

import pytest

from crmflow.core.triggers import AutomationDispatcher, TriggerMatcher
from crmflow.core.types import TriggerType
from crmflow.models import AutomationLog


def workflow(wf, trigger_type):
    return {
        "nodes": [wf.trigger(trigger_type=trigger_type), wf.action("a1", "mark_complete")],
        "edges": [wf.edge("trigger", "a1")],
    }


# ============================================================================
# MATCHER TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_matches_trigger_type(store, crm, automation_factory, wf):
    """Test only automations listening to the event match"""
    created = automation_factory(workflow(wf, "record_created"), name="On create")
    automation_factory(workflow(wf, "tag_added"), name="On tag")

    matches = await TriggerMatcher(store).find_matching("record_created", crm.tenant_id)

    assert [a.id for a in matches] == [created.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_accepts_enum(store, crm, automation_factory, wf):
    """Test TriggerType members are accepted"""
    automation = automation_factory(workflow(wf, "status_changed"))

    matches = await TriggerMatcher(store).find_matching(TriggerType.STATUS_CHANGED, crm.tenant_id)

    assert [a.id for a in matches] == [automation.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_inactive_never_matched(store, crm, automation_factory, wf):
    """Test inactive automations are never matched"""
    automation_factory(workflow(wf, "record_created"), is_active=False)

    assert await TriggerMatcher(store).find_matching("record_created", crm.tenant_id) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_other_tenant_never_matched(store, crm, automation_factory, wf):
    """Test automations of another tenant are never matched"""
    automation_factory(workflow(wf, "record_created"), owner_id=crm.other_tenant_id)

    assert await TriggerMatcher(store).find_matching("record_created", crm.tenant_id) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_broken_workflows_are_ignored(store, crm, automation_factory, wf, workflow_no_trigger):
    """Test automations without nodes or without a trigger are left out"""
    automation_factory(None)
    automation_factory({"nodes": [], "edges": []})
    automation_factory(workflow_no_trigger)
    automation_factory({"nodes": [{"type": "trigger"}], "edges": []})
    valid = automation_factory(workflow(wf, "record_created"))

    matches = await TriggerMatcher(store).find_matching("record_created", crm.tenant_id)

    assert [a.id for a in matches] == [valid.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_malformed_node_still_matched(store, crm, automation_factory, wf):
    """Test a broken non-trigger node does not hide the automation from matching"""
    automation = automation_factory({
        "nodes": [wf.trigger(), {"id": "", "type": "action", "data": {"type": "mark_complete"}}],
        "edges": [],
    })

    matches = await TriggerMatcher(store).find_matching("record_created", crm.tenant_id)

    assert [a.id for a in matches] == [automation.id]


# ============================================================================
# DISPATCHER TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatch_and_wait(engine, store, crm, automation_factory, wf, db_session):
    """Test every match is executed with the event as triggered_by"""
    automation_factory(workflow(wf, "tag_added"), name="One")
    automation_factory(workflow(wf, "tag_added"), name="Two")
    automation_factory(workflow(wf, "record_created"), name="Other event")

    dispatcher = AutomationDispatcher(engine, TriggerMatcher(store))
    log_ids = await dispatcher.dispatch_and_wait("tag_added", crm.record_id, crm.tenant_id)

    assert len(log_ids) == 2
    logs = db_session.query(AutomationLog).all()
    assert {log.triggered_by for log in logs} == {"tag_added"}
    assert {log.status for log in logs} == {"completed"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatch_returns_tasks_without_waiting(engine, store, crm, automation_factory, wf):
    """Test dispatch launches tasks and keeps references until they finish"""
    automation_factory(workflow(wf, "record_created"))
    dispatcher = AutomationDispatcher(engine, TriggerMatcher(store))

    tasks = await dispatcher.record_created(crm.record_id, crm.tenant_id)

    assert len(tasks) == 1
    assert dispatcher.pending == 1

    log_id = await tasks[0]

    assert log_id is not None
    assert dispatcher.pending == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatch_without_matches(engine, store, crm):
    """Test an event nobody listens to launches nothing"""
    dispatcher = AutomationDispatcher(engine, TriggerMatcher(store))

    assert await dispatcher.moved_to_column(crm.record_id, crm.tenant_id) == []
    assert dispatcher.pending == 0


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("helper,trigger_type", [
    ("record_created", "record_created"),
    ("status_changed", "status_changed"),
    ("tag_added", "tag_added"),
    ("tag_removed", "tag_removed"),
    ("temperature_changed", "temperature_changed"),
    ("record_assigned", "record_assigned"),
    ("task_completed", "task_completed"),
    ("added_to_board", "added_to_board"),
    ("moved_to_column", "moved_to_column"),
])
async def test_event_helpers(engine, store, crm, automation_factory, wf, db_session, helper, trigger_type):
    """Test each event helper dispatches its trigger type"""
    automation_factory(workflow(wf, trigger_type))
    dispatcher = AutomationDispatcher(engine, TriggerMatcher(store))

    tasks = await getattr(dispatcher, helper)(crm.record_id, crm.tenant_id)
    for task in tasks:
        await task

    log = db_session.query(AutomationLog).one()
    assert log.triggered_by == trigger_type
