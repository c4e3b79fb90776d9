"""
Persistence layer for job orders.

SQLite-backed storage for job documents and the append-only audit trail.
The workflow engine never calls this directly; the registry does.
"""

from .manager import PersistenceManager
from .errors import PersistenceError, SchemaError, LoadError, SaveError

__all__ = ["PersistenceManager", "PersistenceError", "SchemaError", "LoadError", "SaveError"]
