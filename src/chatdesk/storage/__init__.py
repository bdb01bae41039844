"""
Persistence boundary: key-value stores and the workspace repository.
"""

from .encryption import EncryptionManager
from .repository import WorkspaceRepository
from .store import KeyValueStore, MemoryStore, SQLiteStore

__all__ = [
    "EncryptionManager",
    "KeyValueStore",
    "MemoryStore",
    "SQLiteStore",
    "WorkspaceRepository",
]
