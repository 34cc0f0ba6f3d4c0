"""
JSON file document store.

Each document lives in ``<directory>/<name>.json``. Writes go to a temporary
file in the same directory which is then renamed over the target, so a crash
mid-write leaves either the old or the new document, never a torn one.
"""

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from field_arbiter.storage.base import BaseDocumentStore, DocumentCorruptedError, StorageError

logger = logging.getLogger(__name__)


class JsonDocumentStore(BaseDocumentStore):
    """Single-writer JSON document store backed by a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def ensure_directory(self) -> None:
        """Create the backing directory if missing."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage directory {self.directory}: {e}") from e

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def load(self, name: str) -> Any | None:
        path = self.path_for(name)
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise DocumentCorruptedError(f"Failed to decode {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def save(self, name: str, document: Any) -> None:
        self.ensure_directory()
        target = self.path_for(name)

        try:
            payload = json.dumps(document, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Failed to encode {name}: {e}") from e

        fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {target}: {e}") from e

        logger.debug(f"Saved {target} ({len(payload)} bytes)")
