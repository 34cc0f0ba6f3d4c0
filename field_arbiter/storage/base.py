"""
Abstract base classes for state persistence.

Defines the interface that document stores must implement. A document is a
JSON-compatible value saved and loaded under a short name.
"""

from abc import ABC, abstractmethod
from typing import Any

from field_arbiter.exceptions import ArbiterError


# Custom exceptions
class StorageError(ArbiterError):
    """Base exception for storage errors."""

    pass


class DocumentCorruptedError(StorageError):
    """Raised when a stored document cannot be decoded."""

    pass


class BaseDocumentStore(ABC):
    """
    Abstract base class for document persistence backends.

    Implementations must never leave a partially written document visible
    to readers.
    """

    @abstractmethod
    def load(self, name: str) -> Any | None:
        """
        Load a document by name.

        Args:
            name: Document name (e.g. "audit_trail")

        Returns:
            The decoded document, or None if it does not exist
        """
        pass

    @abstractmethod
    def save(self, name: str, document: Any) -> None:
        """
        Persist a document, replacing any previous version.

        Args:
            name: Document name
            document: JSON-compatible value
        """
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check whether a document has been saved."""
        pass
