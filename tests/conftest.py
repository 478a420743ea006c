"""
Pytest fixtures for crmflow tests

This module provides shared fixtures for all tests:
- Database session fixtures
- Seeded CRM data (one tenant with a record, statuses, tags, a user)
- Automation factory
- Sample workflow definitions
"""

import pytest
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from crmflow.models import (
    Base, Automation, Motivation, Record, Status, Tag, User
)
from crmflow.core.engine import AutomationEngine
from crmflow.core.stores import Stores
from crmflow.stores import SqlAlchemyStore


TENANT_ID = "acct-1"
OTHER_TENANT_ID = "acct-2"


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def db_session():
    """
    Create an in-memory SQLite database for testing.
    Each test gets a fresh database that's torn down after the test.
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db_session):
    return SqlAlchemyStore(db_session)


@pytest.fixture
def stores(store):
    return Stores.from_single(store)


@pytest.fixture
def engine(stores):
    return AutomationEngine(stores)


# ============================================================================
# CRM DATA FIXTURES
# ============================================================================

def seed_crm(db) -> SimpleNamespace:
    """
    Insert one tenant's catalog and record plus a record of another tenant.

    Returns the ids as attributes.
    """
    rows = [
        User(id="user-1", owner_id=TENANT_ID, name="Ana Lopez", email="ana@example.com"),
        User(id="user-2", owner_id=TENANT_ID, name=None, email="ben@example.com"),
        Status(id="st-new", owner_id=TENANT_ID, name="New"),
        Status(id="st-qualified", owner_id=TENANT_ID, name="Qualified"),
        Tag(id="tag-vip", owner_id=TENANT_ID, name="VIP"),
        Tag(id="tag-cold-call", owner_id=TENANT_ID, name="Cold call"),
        Motivation(id="mot-price", owner_id=TENANT_ID, name="Price"),
        Record(id="rec-1", owner_id=TENANT_ID, name="Jane Roe", status_id="st-new", temperature="cold"),
        Record(id="rec-2", owner_id=TENANT_ID, name="John Doe", status_id="st-new", temperature="warm"),
        Record(id="rec-other", owner_id=OTHER_TENANT_ID, name="Not yours"),
    ]
    db.add_all(rows)
    db.commit()

    return SimpleNamespace(
        tenant_id=TENANT_ID,
        other_tenant_id=OTHER_TENANT_ID,
        record_id="rec-1",
        second_record_id="rec-2",
        other_record_id="rec-other",
        user_id="user-1",
        status_new="st-new",
        status_qualified="st-qualified",
        tag_vip="tag-vip",
        tag_cold_call="tag-cold-call",
        motivation_price="mot-price",
    )


@pytest.fixture
def crm(db_session):
    """Database session with the sample CRM data pre-loaded."""
    return seed_crm(db_session)


@pytest.fixture
def automation_factory(db_session):
    """
    Create automations directly in the database.

    Usage:
        automation = automation_factory(workflow, name="Welcome")
    """
    def create(
        workflow_data: Optional[Dict[str, Any]],
        name: str = "Test Automation",
        owner_id: str = TENANT_ID,
        is_active: bool = True,
    ) -> Automation:
        automation = Automation(
            owner_id=owner_id,
            name=name,
            is_active=is_active,
            is_draft=not is_active,
            workflow_data=workflow_data,
        )
        db_session.add(automation)
        db_session.commit()
        db_session.refresh(automation)
        return automation

    return create


# ============================================================================
# WORKFLOW BUILDERS
# ============================================================================

def trigger_node(node_id: str = "trigger", trigger_type: str = "record_created") -> Dict[str, Any]:
    return {"id": node_id, "type": "trigger", "data": {"label": "When", "type": trigger_type, "config": {}}}


def action_node(node_id: str, action_type: str, config: Optional[Dict[str, Any]] = None,
                label: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": "action",
        "data": {"label": label or node_id, "type": action_type, "config": config or {}},
    }


def condition_node(node_id: str, conditions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"label": node_id, "type": "if_else"}
    if conditions is not None:
        data["conditions"] = conditions
    return {"id": node_id, "type": "condition", "data": data}


def branch_node(node_id: str, name: str, conditions: Optional[List[Dict[str, Any]]] = None,
                index: int = 0) -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": "branch",
        "data": {"label": name, "branchName": name, "branchIndex": index, "conditions": conditions or []},
    }


def edge(source: str, target: str, handle: Optional[str] = None) -> Dict[str, Any]:
    data = {"id": f"{source}-{target}", "source": source, "target": target}
    if handle:
        data["sourceHandle"] = handle
    return data


@pytest.fixture
def wf():
    """Workflow builder helpers (trigger, action, condition, branch, edge)."""
    return SimpleNamespace(
        trigger=trigger_node,
        action=action_node,
        condition=condition_node,
        branch=branch_node,
        edge=edge,
    )


# ============================================================================
# WORKFLOW DEFINITION FIXTURES
# ============================================================================

@pytest.fixture
def simple_workflow():
    """
    Linear workflow: Trigger → set temperature hot → add tag VIP
    """
    return {
        "nodes": [
            trigger_node(),
            action_node("hot", "update_temperature", {"temperature": "hot"}),
            action_node("vip", "add_tag", {"tagId": "tag-vip"}),
        ],
        "edges": [
            edge("trigger", "hot"),
            edge("hot", "vip"),
        ],
        "viewport": {"x": 0, "y": 0, "zoom": 1},
    }


@pytest.fixture
def branching_workflow():
    """
    Trigger → condition → [Qualified | Hot | None] branches, each with one action
    """
    return {
        "nodes": [
            trigger_node(),
            condition_node("check"),
            branch_node("b-qualified", "Qualified",
                        [{"field": "status", "operator": "equals", "value": "st-qualified"}], index=0),
            branch_node("b-hot", "Hot",
                        [{"field": "temperature", "operator": "equals", "value": "hot"}], index=1),
            branch_node("b-none", "None", index=2),
            action_node("a-qualified", "add_tag", {"tagId": "tag-vip"}),
            action_node("a-hot", "assign_user", {"userId": "user-1"}),
            action_node("a-none", "mark_complete"),
        ],
        "edges": [
            edge("trigger", "check"),
            edge("check", "b-qualified"),
            edge("check", "b-hot"),
            edge("check", "b-none"),
            edge("b-qualified", "a-qualified"),
            edge("b-hot", "a-hot"),
            edge("b-none", "a-none"),
        ],
    }


@pytest.fixture
def workflow_no_trigger():
    """
    Invalid workflow: missing trigger node
    """
    return {
        "nodes": [action_node("hot", "update_temperature", {"temperature": "hot"})],
        "edges": [],
    }


@pytest.fixture
def workflow_with_cycle():
    """
    Invalid workflow: contains a cycle
    """
    return {
        "nodes": [
            trigger_node(),
            action_node("a1", "update_temperature", {"temperature": "hot"}),
            action_node("a2", "mark_complete"),
        ],
        "edges": [
            edge("trigger", "a1"),
            edge("a1", "a2"),
            edge("a2", "a1"),  # Cycle!
        ],
    }
