"""Atomic JSON checkpoints of conversation trees."""
from __future__ import annotations

import json
import os
from typing import List, Optional

from pydantic import BaseModel

from config.settings import settings
from topic_tree.models import ConversationTree, SessionInfo
from topic_tree.validation import validate_session_id


class SessionRecord(BaseModel):
    """Everything needed to bring a session back: its info and its tree."""

    info: SessionInfo
    tree: ConversationTree


def _base_dir(base_dir: Optional[str]) -> str:
    return base_dir or settings.CHECKPOINT_DIR


def checkpoint_path(session_id: str, base_dir: Optional[str] = None) -> str:
    validate_session_id(session_id)
    return os.path.join(_base_dir(base_dir), f"{session_id}.json")


def save_checkpoint(record: SessionRecord, base_dir: Optional[str] = None) -> str:
    """Persist the session atomically and return the file path."""
    return write_blob(record.info.session_id, record.model_dump_json(), base_dir)


def write_blob(session_id: str, blob: str, base_dir: Optional[str] = None) -> str:
    os.makedirs(_base_dir(base_dir), exist_ok=True)
    path = checkpoint_path(session_id, base_dir)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as handle:
        handle.write(blob)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)
    return path


def read_blob(session_id: str, base_dir: Optional[str] = None) -> Optional[str]:
    path = checkpoint_path(session_id, base_dir)
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def load_checkpoint(session_id: str, base_dir: Optional[str] = None) -> Optional[SessionRecord]:
    """Load a session from disk if present."""
    blob = read_blob(session_id, base_dir)
    if blob is None:
        return None
    return SessionRecord.model_validate(json.loads(blob))


def delete_checkpoint(session_id: str, base_dir: Optional[str] = None) -> bool:
    path = checkpoint_path(session_id, base_dir)
    if not os.path.exists(path):
        return False
    os.remove(path)
    return True


def list_checkpoints(base_dir: Optional[str] = None) -> List[str]:
    directory = _base_dir(base_dir)
    if not os.path.isdir(directory):
        return []
    return sorted(name[: -len(".json")] for name in os.listdir(directory) if name.endswith(".json"))


__all__ = [
    "SessionRecord",
    "checkpoint_path",
    "delete_checkpoint",
    "list_checkpoints",
    "load_checkpoint",
    "read_blob",
    "save_checkpoint",
    "write_blob",
]
