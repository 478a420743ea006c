"""
Unit Tests for SqlAlchemyStore

Tests cover:
- Tenant scoping of reads and writes
- Record snapshots and updates
- Workflow replacement with validation
- Execution log listing
"""

import pytest
from datetime import datetime

from crmflow.core.exceptions import (
    AutomationNotFoundError, GraphValidationError, RecordNotFoundError, StoreError
)
from crmflow.core.types import RunStatus, Step, StepStatus
from crmflow.models import AutomationLog


# ============================================================================
# AUTOMATION TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_automation_tenant_scope(store, crm, automation_factory, simple_workflow):
    """Test automations are only visible to their tenant when a tenant is given"""
    automation = automation_factory(simple_workflow)

    assert (await store.get_automation(automation.id)).name == "Test Automation"
    assert (await store.get_automation(automation.id, tenant_id=crm.tenant_id)) is not None
    assert (await store.get_automation(automation.id, tenant_id=crm.other_tenant_id)) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_active_automations(store, crm, automation_factory, simple_workflow):
    """Test only active automations of the tenant are listed"""
    active = automation_factory(simple_workflow, name="Active")
    automation_factory(simple_workflow, name="Draft", is_active=False)
    automation_factory(simple_workflow, name="Foreign", owner_id=crm.other_tenant_id)

    listed = await store.list_active_automations(crm.tenant_id)

    assert [a.id for a in listed] == [active.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replace_workflow(store, crm, automation_factory, simple_workflow, branching_workflow):
    """Test the whole payload is replaced"""
    automation = automation_factory(simple_workflow)

    updated = await store.replace_workflow(crm.tenant_id, automation.id, branching_workflow)

    assert updated.workflow_data == branching_workflow
    reloaded = await store.get_automation(automation.id)
    assert [n["id"] for n in reloaded.workflow_data["nodes"]][:2] == ["trigger", "check"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replace_workflow_invalid_keeps_old(store, crm, automation_factory, simple_workflow,
                                                  workflow_with_cycle):
    """Test an invalid graph is rejected and the stored one kept"""
    automation = automation_factory(simple_workflow)

    with pytest.raises(GraphValidationError, match="cycle"):
        await store.replace_workflow(crm.tenant_id, automation.id, workflow_with_cycle)

    reloaded = await store.get_automation(automation.id)
    assert reloaded.workflow_data == simple_workflow


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replace_workflow_other_tenant(store, crm, automation_factory, simple_workflow):
    """Test automations of another tenant cannot be replaced"""
    automation = automation_factory(simple_workflow)

    with pytest.raises(AutomationNotFoundError):
        await store.replace_workflow(crm.other_tenant_id, automation.id, simple_workflow)


# ============================================================================
# RECORD TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_record_snapshot(store, crm):
    """Test the snapshot includes memberships"""
    await store.add_tag(crm.tenant_id, crm.record_id, crm.tag_vip)
    await store.add_motivation(crm.tenant_id, crm.record_id, crm.motivation_price)

    record = await store.get_record(crm.tenant_id, crm.record_id)

    assert record.owner_id == crm.tenant_id
    assert record.status_id == crm.status_new
    assert record.tag_ids == frozenset({crm.tag_vip})
    assert record.motivation_ids == frozenset({crm.motivation_price})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_record_other_tenant(store, crm):
    """Test records of another tenant are not returned"""
    assert await store.get_record(crm.tenant_id, crm.other_record_id) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_record_missing(store, crm):
    """Test updating a missing record raises"""
    with pytest.raises(RecordNotFoundError):
        await store.update_record(crm.tenant_id, "rec-deleted", {"temperature": "hot"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_record_other_tenant(store, crm):
    """Test records of another tenant cannot be updated"""
    with pytest.raises(RecordNotFoundError):
        await store.update_record(crm.tenant_id, crm.other_record_id, {"temperature": "hot"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_record_rejects_other_fields(store, crm):
    """Test only automation-writable fields can be set"""
    with pytest.raises(StoreError, match="cannot be updated"):
        await store.update_record(crm.tenant_id, crm.record_id, {"owner_id": crm.other_tenant_id})


# ============================================================================
# CATALOG TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_catalog_names_are_tenant_scoped(store, crm):
    """Test names resolve only inside the tenant"""
    assert await store.status_name(crm.tenant_id, crm.status_qualified) == "Qualified"
    assert await store.tag_name(crm.tenant_id, crm.tag_vip) == "VIP"
    assert await store.motivation_name(crm.tenant_id, crm.motivation_price) == "Price"
    assert await store.user_display_name(crm.tenant_id, crm.user_id) == "Ana Lopez"
    assert await store.tag_name(crm.other_tenant_id, crm.tag_vip) is None


# ============================================================================
# EXECUTION LOG TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_logs_newest_first(store, crm, automation_factory, simple_workflow, db_session):
    """Test logs are listed newest first with their steps"""
    automation = automation_factory(simple_workflow)
    first = await store.create_log(crm.tenant_id, automation.id, crm.record_id, "record_created")
    await store.append_step(crm.tenant_id, first, Step(
        sequence=1, node_id="trigger", node_kind="trigger", status=StepStatus.STARTED,
    ))
    await store.finish_log(crm.tenant_id, first, RunStatus.COMPLETED)
    second = await store.create_log(crm.tenant_id, automation.id, crm.record_id, "manual_test")

    older = db_session.get(AutomationLog, first)
    older.started_at = datetime(2024, 1, 1)
    db_session.commit()

    logs = await store.list_logs(crm.tenant_id, automation.id)

    assert [log.id for log in logs] == [second, first]
    assert logs[1].status == "completed"
    assert logs[1].steps[0].node_id == "trigger"
    assert logs[0].status == "running"

    assert len(await store.list_logs(crm.tenant_id, automation.id, limit=1)) == 1
    assert await store.list_logs(crm.other_tenant_id, automation.id) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_increment_run_stats_missing_automation(store, crm):
    """Test stats of an unknown automation cannot be updated"""
    with pytest.raises(AutomationNotFoundError):
        await store.increment_run_stats(crm.tenant_id, "auto-missing", datetime.utcnow())
