"""
Database connection and session management for crmflow.

Provides:
- get_engine(): SQLAlchemy engine, built on first use from DATABASE_URL
- SessionLocal(): Factory for creating database sessions
- get_db(): Context manager for DB sessions
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
load_dotenv()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """
    Read DATABASE_URL from the environment.

    Heroku/Railway style ``postgres://`` URLs are rewritten to ``postgresql://``
    because SQLAlchemy no longer accepts the old scheme.
    """
    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise ValueError(
            "DATABASE_URL environment variable not set. "
            "Please configure it in .env file."
        )

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        # pool_pre_ping=True ensures connections are valid before using them
        _engine = create_engine(
            get_database_url(),
            pool_pre_ping=True,
            echo=False  # Set to True for SQL query logging
        )
    return _engine


def SessionLocal() -> Session:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory()


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            automation = db.query(Automation).filter(Automation.id == automation_id).first()

    The session is automatically closed when exiting the context,
    and rolled back if an exception occurs.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
