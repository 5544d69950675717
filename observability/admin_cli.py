"""Lightweight CLI helpers for inspecting checkpointed grading sessions."""
from __future__ import annotations

import argparse
import json
from typing import List, Optional

from graph.checkpointer import SessionRecord, list_checkpoints, load_checkpoint
from graph.summary import build_summary, render_tree
from topic_tree.manager import tree_stats


def _load(session_id: str, base_dir: Optional[str]) -> SessionRecord:
    record = load_checkpoint(session_id, base_dir)
    if record is None:
        raise SystemExit(f"no checkpoint for session {session_id}")
    return record


def list_sessions(base_dir: Optional[str] = None) -> None:
    for session_id in list_checkpoints(base_dir):
        record = _load(session_id, base_dir)
        print(
            f"{session_id} nodes={len(record.tree.nodes)} turns={record.tree.turn_count} "
            f"last_accessed={record.info.last_accessed.isoformat()}"
        )


def show_stats(session_id: str, base_dir: Optional[str] = None) -> None:
    stats = tree_stats(_load(session_id, base_dir).tree)
    print(
        f"total={stats.total_nodes} roots={stats.root_nodes} leaves={stats.leaf_nodes} max_depth={stats.max_depth}"
    )


def show_summary(session_id: str, base_dir: Optional[str] = None) -> None:
    summary = build_summary(_load(session_id, base_dir).tree)
    print(json.dumps(summary.model_dump(exclude={"rendered_tree_text"}), indent=2, default=str))


def show_tree(session_id: str, base_dir: Optional[str] = None) -> None:
    print(render_tree(_load(session_id, base_dir).tree))


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Inspect checkpointed grading sessions")
    parser.add_argument("--dir", dest="base_dir", help="Checkpoint directory (defaults to settings)")
    parser.add_argument("--list", action="store_true", help="List checkpointed sessions")
    parser.add_argument("--stats", metavar="SESSION_ID", help="Show node counts for a session")
    parser.add_argument("--summary", metavar="SESSION_ID", help="Show the interview summary as JSON")
    parser.add_argument("--tree", metavar="SESSION_ID", help="Show the rendered topic tree")
    args = parser.parse_args(argv)

    if args.list:
        list_sessions(args.base_dir)
    if args.stats:
        show_stats(args.stats, args.base_dir)
    if args.summary:
        show_summary(args.summary, args.base_dir)
    if args.tree:
        show_tree(args.tree, args.base_dir)


if __name__ == "__main__":
    main()
