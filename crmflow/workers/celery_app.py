"""
Celery Application Configuration for crmflow

This module configures Celery for out-of-process automation runs.

Architecture:
- Message Broker: Redis
- Result Backend: Redis (CELERY_RESULT_BACKEND overrides it)
- Workers: Separate service

Key Features:
- No automatic retry: a failed run is terminal and visible in its log
- Task timeout protection (5 minutes max)
- Result expiration (24 hours)
- JSON serialization (safe, debuggable)
"""

import os
import logging
from celery import Celery
from kombu import Queue, Exchange
from dotenv import load_dotenv
from ..core.logging_config import setup_logging

load_dotenv()

# Initialize structured logging for Celery workers
setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "true").lower() == "true",  # Default to JSON in workers
    log_file=os.getenv("LOG_FILE", None)
)

logger = logging.getLogger(__name__)

# Get Redis URL from environment
REDIS_URL = os.getenv("REDIS_URL")
if not REDIS_URL:
    raise ValueError(
        "REDIS_URL environment variable not set. "
        "Required for Celery message broker and result backend."
    )

RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)

# Create Celery app
celery_app = Celery("crmflow")

# Celery Configuration
celery_app.conf.update(
    # ============================================================================
    # BROKER & BACKEND
    # ============================================================================
    broker_url=REDIS_URL,
    result_backend=RESULT_BACKEND,

    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,

    # ============================================================================
    # SERIALIZATION
    # ============================================================================
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # ============================================================================
    # TIMEZONE
    # ============================================================================
    timezone="UTC",
    enable_utc=True,

    # ============================================================================
    # TASK EXECUTION
    # ============================================================================
    task_track_started=True,

    # Acknowledge before execution: a run that crashed the worker is not replayed,
    # since its earlier actions are already applied
    task_acks_late=False,

    worker_prefetch_multiplier=1,

    task_time_limit=300,  # Hard limit: 5 minutes (kills task)
    task_soft_time_limit=270,  # Soft limit: 4.5 minutes (raises exception)

    # ============================================================================
    # RESULTS
    # ============================================================================
    result_expires=86400,  # 24 hours in seconds

    # ============================================================================
    # TASK ROUTING
    # ============================================================================
    task_default_queue="automations",
    task_default_exchange="automations",
    task_default_routing_key="automation.execute",

    task_queues=(
        # Runs of single automations
        Queue(
            "automations",
            Exchange("automations"),
            routing_key="automation.execute",
        ),
        # Event fan-out (matching only, cheap)
        Queue(
            "automation_events",
            Exchange("automations"),
            routing_key="automation.event",
        ),
    ),

    task_routes={
        "execute_automation_task": {
            "queue": "automations",
            "routing_key": "automation.execute",
        },
        "dispatch_event_task": {
            "queue": "automation_events",
            "routing_key": "automation.event",
        },
    },

    # ============================================================================
    # WORKER CONFIGURATION
    # ============================================================================
    worker_pool="prefork",
    worker_concurrency=2,
    worker_max_tasks_per_child=1000,

    # ============================================================================
    # MONITORING & LOGGING
    # ============================================================================
    worker_send_task_events=True,
    task_send_sent_event=True,

    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s",
)

logger.info("Celery app configured successfully")
logger.info(f"Broker: {REDIS_URL.split('@')[1] if '@' in REDIS_URL else 'configured'}")
logger.info("Default queue: automations")

# ============================================================================
# IMPORT TASKS (so they get registered when worker starts)
# ============================================================================
# This import MUST come AFTER celery_app is configured
from . import tasks  # noqa: F401, E402

logger.info("Tasks imported and registered")
