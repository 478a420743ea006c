"""
Integration Tests for crmflow

Tests cover:
- HTTP API end to end (events, manual runs, workflow replacement, logs)
- Celery tasks run eagerly against the test database
"""
