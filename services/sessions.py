"""Registry of live grading sessions, one tree manager per session."""
from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic import BaseModel

from config.settings import settings
from graph.checkpointer import SessionRecord
from observability.logger import log_event
from services.persistence import PersistenceAdapter
from topic_tree.errors import DuplicateSessionError, SessionNotFoundError, ValidationError
from topic_tree.manager import TreeManager
from topic_tree.models import ConversationTree, SessionInfo, utcnow
from topic_tree.validation import validate_session_id

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class MemoryStats(BaseModel):
    total_sessions: int
    total_nodes: int
    average_nodes_per_session: float
    oldest_session: Optional[str] = None
    newest_session: Optional[str] = None


class _SessionEntry:
    __slots__ = ("info", "manager", "lock")

    def __init__(self, info: SessionInfo, manager: TreeManager) -> None:
        self.info = info
        self.manager = manager
        self.lock = threading.Lock()


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


class SessionManager:
    """Owns every session's ``SessionInfo`` and ``TreeManager``.

    The registry map is guarded by one lock; each session has its own lock
    that serializes turns and excludes eviction while a turn is in flight.
    """

    def __init__(self, adapter: Optional[PersistenceAdapter] = None, clock: Optional[Clock] = None) -> None:
        self._adapter = adapter
        self._clock: Clock = clock or utcnow
        self._sessions: Dict[str, _SessionEntry] = {}
        self._guard = threading.Lock()
        self._autosave_stop: Optional[threading.Event] = None
        self._autosave_thread: Optional[threading.Thread] = None

    @property
    def adapter(self) -> Optional[PersistenceAdapter]:
        return self._adapter

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create_session(self, session_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> SessionInfo:
        session_id = session_id or new_session_id()
        validate_session_id(session_id)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("Session metadata must be a mapping", field="metadata")
        now = self._clock()
        info = SessionInfo(session_id=session_id, created_at=now, last_accessed=now, metadata=dict(metadata or {}))
        manager = TreeManager(session_id)
        manager.tree.created_at = now
        with self._guard:
            if session_id in self._sessions:
                raise DuplicateSessionError(session_id)
            self._sessions[session_id] = _SessionEntry(info, manager)
        log_event("session.created", session_id)
        return info.model_copy(deep=True)

    def get_session(self, session_id: str) -> SessionInfo:
        return self._entry(session_id).info.model_copy(deep=True)

    def has_session(self, session_id: str) -> bool:
        with self._guard:
            return session_id in self._sessions

    def list_sessions(self) -> List[SessionInfo]:
        with self._guard:
            entries = list(self._sessions.values())
        return [entry.info.model_copy(deep=True) for entry in entries]

    def delete_session(self, session_id: str) -> bool:
        with self._guard:
            entry = self._sessions.get(session_id)
        if entry is None:
            return False
        with entry.lock:
            with self._guard:
                if self._sessions.get(session_id) is not entry:
                    return False
                del self._sessions[session_id]
        log_event("session.deleted", session_id)
        return True

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------
    def _entry(self, session_id: str) -> _SessionEntry:
        with self._guard:
            entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)
        return entry

    def _touch(self, entry: _SessionEntry) -> None:
        entry.info.last_accessed = self._clock()

    @contextmanager
    def session(self, session_id: str) -> Iterator[TreeManager]:
        """Exclusive access to one session's tree manager."""

        entry = self._entry(session_id)
        with entry.lock:
            with self._guard:
                if self._sessions.get(session_id) is not entry:
                    raise SessionNotFoundError(session_id)
            self._touch(entry)
            try:
                yield entry.manager
            finally:
                self._touch(entry)

    def get_session_tree(self, session_id: str) -> ConversationTree:
        """Read-only snapshot of the session's tree."""
        with self.session(session_id) as manager:
            return manager.snapshot()

    def set_session_tree(self, session_id: str, tree: ConversationTree) -> None:
        with self.session(session_id) as manager:
            manager.restore(tree.model_copy(deep=True))

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------
    def cleanup_expired_sessions(self, max_age_ms: Optional[float] = None) -> int:
        """Evict sessions idle longer than ``max_age_ms``; busy sessions are skipped."""

        max_age_ms = settings.SESSION_MAX_AGE_MS if max_age_ms is None else max_age_ms
        if max_age_ms < 0:
            raise ValidationError("max_age_ms must not be negative", field="max_age_ms", value=max_age_ms)
        now = self._clock()
        with self._guard:
            candidates = list(self._sessions.items())

        evicted = 0
        for session_id, entry in candidates:
            if self._idle_ms(entry, now) <= max_age_ms:
                continue
            if not entry.lock.acquire(blocking=False):
                logger.debug("skipping busy session %s during cleanup", session_id)
                continue
            try:
                if self._idle_ms(entry, now) <= max_age_ms:
                    continue
                with self._guard:
                    if self._sessions.get(session_id) is not entry:
                        continue
                    del self._sessions[session_id]
                    evicted += 1
            finally:
                entry.lock.release()
            log_event("session.expired", session_id, max_age_ms=max_age_ms)
        return evicted

    @staticmethod
    def _idle_ms(entry: _SessionEntry, now: datetime) -> float:
        return (now - entry.info.last_accessed).total_seconds() * 1000

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _require_adapter(self) -> PersistenceAdapter:
        if self._adapter is None:
            raise ValidationError("No persistence adapter configured", field="adapter")
        return self._adapter

    def save_session(self, session_id: str) -> None:
        adapter = self._require_adapter()
        entry = self._entry(session_id)
        with self.session(session_id) as manager:
            record = SessionRecord(info=entry.info, tree=manager.tree)
            adapter.save(session_id, record.model_dump_json())
        log_event("session.saved", session_id, nodes=len(record.tree.nodes))

    def load_session(self, session_id: str) -> SessionInfo:
        """Restore a saved session, replacing any live tree with the same id."""

        validate_session_id(session_id)
        blob = self._require_adapter().load(session_id)
        if blob is None:
            raise SessionNotFoundError(session_id)
        record = SessionRecord.model_validate_json(blob)
        if record.info.session_id != session_id or record.tree.session_id != session_id:
            raise ValidationError("Saved session does not match the requested id", field="session_id", value=session_id)

        if self.has_session(session_id):
            with self.session(session_id) as manager:
                manager.restore(record.tree)
            info = self._entry(session_id).info
        else:
            manager = TreeManager(session_id, tree=record.tree)
            info = record.info
            info.last_accessed = self._clock()
            with self._guard:
                if session_id in self._sessions:
                    raise DuplicateSessionError(session_id)
                self._sessions[session_id] = _SessionEntry(info, manager)
        log_event("session.loaded", session_id, nodes=len(record.tree.nodes))
        return info.model_copy(deep=True)

    def save_all(self) -> int:
        saved = 0
        for info in self.list_sessions():
            try:
                self.save_session(info.session_id)
            except SessionNotFoundError:
                continue
            saved += 1
        return saved

    def start_autosave(self, interval_s: Optional[float] = None) -> None:
        interval = settings.AUTOSAVE_INTERVAL_S if interval_s is None else interval_s
        if interval <= 0:
            raise ValidationError("Auto-save interval must be positive", field="interval_s", value=interval)
        self._require_adapter()
        self.stop_autosave()
        stop = threading.Event()

        def _loop() -> None:
            while not stop.wait(interval):
                try:
                    count = self.save_all()
                except OSError:
                    logger.exception("auto-save failed")
                    continue
                logger.debug("auto-saved %d sessions", count)

        self._autosave_stop = stop
        self._autosave_thread = threading.Thread(target=_loop, name="session-autosave", daemon=True)
        self._autosave_thread.start()

    def stop_autosave(self) -> None:
        if self._autosave_stop is not None:
            self._autosave_stop.set()
        if self._autosave_thread is not None:
            self._autosave_thread.join(timeout=5)
        self._autosave_stop = None
        self._autosave_thread = None

    def dispose(self) -> None:
        """Stop auto-save, flush to the adapter if any, and drop every session."""

        self.stop_autosave()
        if self._adapter is not None:
            self.save_all()
        with self._guard:
            self._sessions.clear()

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------
    def get_memory_stats(self) -> MemoryStats:
        with self._guard:
            entries = list(self._sessions.values())
        total_nodes = sum(len(entry.manager) for entry in entries)
        oldest = min(entries, key=lambda entry: entry.info.created_at, default=None)
        newest = max(entries, key=lambda entry: entry.info.created_at, default=None)
        return MemoryStats(
            total_sessions=len(entries),
            total_nodes=total_nodes,
            average_nodes_per_session=round(total_nodes / len(entries), 2) if entries else 0.0,
            oldest_session=oldest.info.session_id if oldest else None,
            newest_session=newest.info.session_id if newest else None,
        )


__all__ = ["MemoryStats", "SessionManager", "new_session_id"]
