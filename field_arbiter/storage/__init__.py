"""
Storage backends for the field arbiter.

Provides:
- Atomic JSON document store for history, audit and correction state
- Abstract base class for custom backends
"""

from field_arbiter.storage.base import (
    BaseDocumentStore,
    DocumentCorruptedError,
    StorageError,
)
from field_arbiter.storage.json_store import JsonDocumentStore

__all__ = [
    # Base
    "BaseDocumentStore",
    "DocumentCorruptedError",
    "StorageError",
    # Implementations
    "JsonDocumentStore",
]
