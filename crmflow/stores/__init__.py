"""
Stores module - persistence backends for the engine's store capabilities
"""

from .sqlalchemy_store import SqlAlchemyStore

__all__ = ["SqlAlchemyStore"]
