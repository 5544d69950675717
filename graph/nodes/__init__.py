"""State functions for the grading graph, one module per state."""
from . import (
    analyze_topic,
    commit,
    create_node,
    integrity_check,
    locate_parent,
    resolve_relationship,
    rollback,
    score_turn,
    update_path,
    validate,
)

__all__ = [
    "analyze_topic",
    "commit",
    "create_node",
    "integrity_check",
    "locate_parent",
    "resolve_relationship",
    "rollback",
    "score_turn",
    "update_path",
    "validate",
]
