"""Persistence adapters: opaque per-session blobs keyed by session id."""
from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

from graph import checkpointer


@runtime_checkable
class PersistenceAdapter(Protocol):
    def save(self, session_id: str, blob: str) -> None: ...

    def load(self, session_id: str) -> Optional[str]: ...

    def delete(self, session_id: str) -> bool: ...

    def list(self) -> List[str]: ...

    def exists(self, session_id: str) -> bool: ...


class InMemoryPersistenceAdapter:
    """Process-local store, mostly for tests and single-process demos."""

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, session_id: str, blob: str) -> None:
        with self._lock:
            self._blobs[session_id] = blob

    def load(self, session_id: str) -> Optional[str]:
        with self._lock:
            return self._blobs.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._blobs.pop(session_id, None) is not None

    def list(self) -> List[str]:
        with self._lock:
            return sorted(self._blobs)

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._blobs


class FileCheckpointAdapter:
    """One atomically replaced JSON file per session under ``base_dir``."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        self.base_dir = base_dir

    def save(self, session_id: str, blob: str) -> None:
        checkpointer.write_blob(session_id, blob, self.base_dir)

    def load(self, session_id: str) -> Optional[str]:
        return checkpointer.read_blob(session_id, self.base_dir)

    def delete(self, session_id: str) -> bool:
        return checkpointer.delete_checkpoint(session_id, self.base_dir)

    def list(self) -> List[str]:
        return checkpointer.list_checkpoints(self.base_dir)

    def exists(self, session_id: str) -> bool:
        return checkpointer.read_blob(session_id, self.base_dir) is not None


__all__ = ["FileCheckpointAdapter", "InMemoryPersistenceAdapter", "PersistenceAdapter"]
