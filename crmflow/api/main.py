"""
FastAPI main application
REST API endpoints for crmflow
"""

from fastapi import FastAPI, HTTPException, Depends, Request, Header, BackgroundTasks, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Callable, List
import os
import logging
import uuid

from ..database import SessionLocal
from ..core.engine import AutomationEngine
from ..core.exceptions import AutomationNotFoundError, GraphValidationError
from ..core.logging_config import setup_logging, set_request_id, clear_request_id
from ..core.stores import Stores
from ..core.triggers import TriggerMatcher
from ..core.types import TriggerType
from ..stores import SqlAlchemyStore
from .schemas import (
    EventRequest, EventAcceptedResponse, ManualRunRequest, ManualRunResponse,
    WorkflowReplaceRequest, AutomationResponse,
    ExecutionLogResponse, ExecutionLogListResponse
)

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

# Uses JSON logs in production (JSON_LOGS=true), standard logs in development
setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "false").lower() == "true",
    log_file=os.getenv("LOG_FILE", None)
)

logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP CONFIGURATION
# ============================================================================

app = FastAPI(
    title="crmflow API",
    description="""
# crmflow

Workflow automation engine for the CRM. Automations are directed graphs of
trigger, action and condition nodes, executed against one record per run.

## Execution Flow

1. The CRM reports a business event: **POST /events**
2. Every active automation of the tenant listening to that event is matched
3. The API returns the matched automation IDs immediately (HTTP 202 Accepted)
4. Runs continue in the background; **GET /automations/{id}/logs** shows each
   run with its per-node steps

## Tenancy

Every request carries the account id in the `X-Tenant-Id` header.
Authentication happens upstream of this service.
    """,
    version="0.1.0",
    openapi_tags=[
        {
            "name": "health",
            "description": "Health checks and system status"
        },
        {
            "name": "events",
            "description": "Business event ingestion. Events start matching automations."
        },
        {
            "name": "automations",
            "description": "Manual test runs, workflow replacement and run history."
        }
    ]
)

# ============================================================================
# MIDDLEWARE - CORS Configuration
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Local development (Next.js default)
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_session_factory() -> Callable[[], Session]:
    """Session factory used by the request and by background runs (overridden in tests)"""
    return SessionLocal


def get_db(session_factory: Callable[[], Session] = Depends(get_session_factory)):
    """Dependency for database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_tenant_id(x_tenant_id: str = Header(..., alias="X-Tenant-Id")) -> str:
    """Account the request acts for"""
    if not x_tenant_id.strip():
        raise HTTPException(status_code=400, detail="X-Tenant-Id header is empty")
    return x_tenant_id


# ============================================================================
# MIDDLEWARE - Request ID Tracking
# ============================================================================

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Middleware to add request ID to all requests.

    - Generates UUID for each request
    - Sets request ID in logging context
    - Adds X-Request-ID header to response
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    set_request_id(request_id)

    logger.info(
        f"{request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
        }
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(f"Response {response.status_code}", extra={"status_code": response.status_code})
        return response

    except Exception as e:
        logger.exception("Unhandled exception in request", extra={"error": str(e)})
        raise

    finally:
        clear_request_id()


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler for better error responses"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )


# ============================================================================
# BACKGROUND RUNS
# ============================================================================

async def run_matched_automations(
    session_factory: Callable[[], Session],
    automation_ids: List[str],
    record_id: str,
    triggered_by: str,
) -> None:
    """
    Execute matched automations after the response was sent.

    Uses its own session: the request session is closed by then.
    Runs are independent; one failing never affects the others.
    """
    db = session_factory()
    try:
        engine = AutomationEngine(Stores.from_single(SqlAlchemyStore(db)))
        for automation_id in automation_ids:
            await engine.execute(automation_id, record_id, triggered_by)
    finally:
        db.close()


# ============================================================================
# ROOT & HEALTH
# ============================================================================

@app.get("/", tags=["health"], summary="API root")
def root():
    """Root endpoint - Returns API info"""
    return {
        "name": "crmflow API",
        "version": "0.1.0",
        "status": "healthy",
        "docs": "/docs"
    }


@app.get(
    "/health",
    tags=["health"],
    summary="Health check (lightweight)",
    description="Lightweight health check - just verifies the API server is running."
)
def health_check():
    return {
        "status": "healthy",
        "service": "crmflow API",
        "version": "0.1.0"
    }


# ============================================================================
# EVENTS
# ============================================================================

@app.post(
    "/events",
    response_model=EventAcceptedResponse,
    status_code=202,
    tags=["events"],
    summary="Report a business event",
    description="""
    Match the event against the tenant's active automations and run every
    match in the background. Returns the matched automation IDs immediately.
    """
)
async def ingest_event(
    event: EventRequest,
    background_tasks: BackgroundTasks,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    trigger_type = event.trigger_type.value
    matcher = TriggerMatcher(SqlAlchemyStore(db))
    automations = await matcher.find_matching(trigger_type, tenant_id)
    automation_ids = [automation.id for automation in automations]

    if automation_ids:
        background_tasks.add_task(
            run_matched_automations, session_factory, automation_ids, event.record_id, trigger_type
        )

    logger.info(f"Event {trigger_type} on record {event.record_id}: {len(automation_ids)} automation(s) scheduled")

    return EventAcceptedResponse(
        trigger_type=trigger_type,
        record_id=event.record_id,
        matched_automation_ids=automation_ids,
    )


# ============================================================================
# AUTOMATIONS
# ============================================================================

@app.post(
    "/automations/{automation_id}/test",
    response_model=ManualRunResponse,
    tags=["automations"],
    summary="Test run an automation against a record",
    description="""
    Runs the automation synchronously with triggered_by "manual_test" and
    returns the resulting log. ``log`` is null when the automation did not
    run (inactive or without nodes).
    """
)
async def run_automation_test(
    automation_id: str,
    request: ManualRunRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    store = SqlAlchemyStore(db)

    if await store.get_automation(automation_id, tenant_id=tenant_id) is None:
        raise HTTPException(status_code=404, detail="Automation not found")

    if await store.get_record(tenant_id, request.record_id) is None:
        raise HTTPException(status_code=404, detail="Record not found")

    engine = AutomationEngine(Stores.from_single(store))
    log_id = await engine.execute(automation_id, request.record_id, TriggerType.MANUAL_TEST.value)

    log = await store.get_log(tenant_id, log_id) if log_id else None

    return ManualRunResponse(
        success=True,
        message="Automation test completed",
        log=ExecutionLogResponse.model_validate(log.model_dump()) if log else None,
    )


@app.put(
    "/automations/{automation_id}/workflow",
    response_model=AutomationResponse,
    tags=["automations"],
    summary="Replace the workflow graph",
    description="Validates the graph and replaces the whole payload. Returns 422 with the validation message on invalid graphs."
)
async def replace_workflow(
    automation_id: str,
    workflow: WorkflowReplaceRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    store = SqlAlchemyStore(db)
    try:
        automation = await store.replace_workflow(
            tenant_id, automation_id, workflow.model_dump(exclude_none=True)
        )
    except AutomationNotFoundError:
        raise HTTPException(status_code=404, detail="Automation not found")
    except GraphValidationError as e:
        logger.info(f"Rejected workflow for automation {automation_id}: {e.message}")
        raise HTTPException(status_code=422, detail=e.message)

    return AutomationResponse.model_validate(automation.model_dump())


@app.get(
    "/automations/{automation_id}/logs",
    response_model=ExecutionLogListResponse,
    tags=["automations"],
    summary="List runs of an automation",
    description="Newest first, each run with its steps in sequence order."
)
async def list_automation_logs(
    automation_id: str,
    limit: int = Query(50, ge=1, le=500),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    store = SqlAlchemyStore(db)

    if await store.get_automation(automation_id, tenant_id=tenant_id) is None:
        raise HTTPException(status_code=404, detail="Automation not found")

    logs = await store.list_logs(tenant_id, automation_id, limit=limit)

    return ExecutionLogListResponse(
        logs=[ExecutionLogResponse.model_validate(log.model_dump()) for log in logs],
        total=len(logs),
    )
