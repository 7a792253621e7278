"""Data store backends for the churn engine."""

from .memory import InMemoryStore
from .protocols import ChurnDataStore
from .sql import SqlAlchemyStore, create_session_factory

__all__ = [
    "ChurnDataStore",
    "InMemoryStore",
    "SqlAlchemyStore",
    "create_session_factory",
]
