import json
import os
from pathlib import Path

import pytest

from graph.checkpointer import (
    SessionRecord,
    checkpoint_path,
    delete_checkpoint,
    list_checkpoints,
    load_checkpoint,
    save_checkpoint,
)
from observability import admin_cli
from services.engine import GradingService
from services.persistence import FileCheckpointAdapter, InMemoryPersistenceAdapter, PersistenceAdapter
from topic_tree.errors import ValidationError
from topic_tree.models import ConversationTree, SessionInfo


def _record(session_id="saved_1"):
    tree = ConversationTree(session_id=session_id)
    return SessionRecord(info=SessionInfo(session_id=session_id), tree=tree)


def test_adapters_satisfy_protocol(tmp_path):
    assert isinstance(InMemoryPersistenceAdapter(), PersistenceAdapter)
    assert isinstance(FileCheckpointAdapter(str(tmp_path)), PersistenceAdapter)


def test_save_and_load_checkpoint(tmp_checkpoints):
    record = _record()
    path = save_checkpoint(record)
    assert path == os.path.join(str(tmp_checkpoints), "saved_1.json")
    assert not os.path.exists(path + ".tmp")
    assert load_checkpoint("saved_1") == record
    assert json.loads(Path(path).read_text(encoding="utf-8"))["info"]["session_id"] == "saved_1"


def test_missing_checkpoint_and_listing(tmp_checkpoints):
    assert list_checkpoints() == []
    assert load_checkpoint("absent") is None
    save_checkpoint(_record("b_session"))
    save_checkpoint(_record("a_session"))
    assert list_checkpoints() == ["a_session", "b_session"]
    assert delete_checkpoint("a_session") is True
    assert delete_checkpoint("a_session") is False
    assert list_checkpoints() == ["b_session"]


def test_checkpoint_path_rejects_traversal():
    with pytest.raises(ValidationError):
        checkpoint_path("../escape")


def test_file_adapter_round_trip(tmp_path, turn_factory):
    adapter = FileCheckpointAdapter(str(tmp_path / "store"))
    service = GradingService(adapter=adapter)
    service.create_session("on_disk")
    service.process_turn("on_disk", turn_factory(engagement_level="high", new_topics=["Kafka"]))
    service.save_session("on_disk")
    assert adapter.list() == ["on_disk"]

    fresh = GradingService(adapter=FileCheckpointAdapter(str(tmp_path / "store")))
    fresh.load_session("on_disk")
    assert fresh.get_tree("on_disk") == service.get_tree("on_disk")
    assert adapter.delete("on_disk")
    assert not adapter.exists("on_disk")


def test_admin_cli_reports_saved_sessions(tmp_checkpoints, turn_factory, capsys):
    service = GradingService(adapter=FileCheckpointAdapter())
    service.create_session("cli_session")
    service.process_turn(
        "cli_session", turn_factory(engagement_level="high", new_topics=["Kafka", "Redis"])
    )
    service.save_session("cli_session")

    admin_cli.main(["--list", "--stats", "cli_session", "--tree", "cli_session"])
    output = capsys.readouterr().out
    assert "cli_session nodes=3 turns=1" in output
    assert "total=3 roots=1 leaves=2 max_depth=2" in output
    assert "Kafka (depth: 2) <- CURRENT" in output

    admin_cli.main(["--summary", "cli_session"])
    summary = json.loads(capsys.readouterr().out)
    assert summary["total_nodes"] == 3
    assert "rendered_tree_text" not in summary


def test_admin_cli_missing_session_exits(tmp_checkpoints):
    with pytest.raises(SystemExit):
        admin_cli.main(["--tree", "nobody"])
