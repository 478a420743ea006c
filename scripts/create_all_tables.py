"""
Create ALL crmflow tables in the database

Creates (if missing):
1. automations
2. automation_logs, automation_log_steps
3. the CRM tables automations read and write (records, statuses, tags,
   motivations, users, tasks, notifications, board positions, activity log)

Usage:
    DATABASE_URL=postgresql://... python scripts/create_all_tables.py
"""

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from crmflow.database import get_engine  # noqa: E402
from crmflow.models import Base  # noqa: E402


def main() -> int:
    print("=" * 70)
    print("crmflow - Create All Tables")
    print("=" * 70)

    try:
        engine = get_engine()
    except ValueError as e:
        print(f"\nERROR: {e}")
        return 1

    print(f"\nDatabase: {engine.url.render_as_string(hide_password=True)}")

    try:
        Base.metadata.create_all(engine)
    except Exception as e:
        print(f"\nError: {e}")
        return 1

    print("\nTables:")
    for table in sorted(Base.metadata.tables):
        print(f"   - {table}")

    print("\n" + "=" * 70)
    print("ALL TABLES CREATED")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())
