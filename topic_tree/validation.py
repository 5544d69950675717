"""Stateless input validation and tree integrity checks."""
from __future__ import annotations

import re
from typing import Any, List, Optional, Set

from config.content_guard import match_categories
from config.settings import settings

from .errors import TreeIntegrityError, ValidationError
from .models import ConversationTree, Turn

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

_REDACTIONS = (
    (re.compile(r"\b\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?"), "[TIMESTAMP]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN]"),
    (re.compile(r"\b\d{4}[- ]\d{4}[- ]\d{4}[- ]\d{4}\b"), "[CARD]"),
)


# ----------------------------------------------------------------------
# Input validation
# ----------------------------------------------------------------------
def validate_text(value: Any, field: str, max_chars: int) -> None:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field, value=value)
    if not value.strip():
        raise ValidationError(f"{field} must not be empty", field=field, value=value)
    if len(value) > max_chars:
        raise ValidationError(f"{field} exceeds {max_chars} characters", field=field, value=len(value))


def validate_turn(turn: Any) -> None:
    if not isinstance(turn, Turn):
        raise ValidationError("turn must be a Turn", field="turn", value=type(turn).__name__)
    validate_text(turn.prompt, "prompt", settings.MAX_PROMPT_CHARS)
    validate_text(turn.response, "response", settings.MAX_RESPONSE_CHARS)
    if not isinstance(turn.metadata, dict):
        raise ValidationError("metadata must be a mapping", field="metadata")


def validate_score(score: Any, field: str = "score") -> None:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValidationError("score must be numeric", field=field, value=score)
    if score != score or not settings.SCORE_MIN <= score <= settings.SCORE_MAX:
        raise ValidationError(
            f"score must lie in [{settings.SCORE_MIN}, {settings.SCORE_MAX}]", field=field, value=score
        )


def validate_topic_label(label: Any) -> None:
    validate_text(label, "label", settings.MAX_TOPIC_CHARS)


def _validate_identifier(value: Any, field: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} must be a non-empty string", field=field, value=value)
    if len(value) > settings.MAX_ID_CHARS:
        raise ValidationError(f"{field} exceeds {settings.MAX_ID_CHARS} characters", field=field)
    if not _ID_PATTERN.match(value):
        raise ValidationError(f"{field} may only contain letters, digits, '_' and '-'", field=field, value=value)


def validate_session_id(session_id: Any) -> None:
    _validate_identifier(session_id, "session_id")


def validate_node_id(node_id: Any) -> None:
    _validate_identifier(node_id, "node_id")


def check_content(text: str, field: str = "input") -> None:
    """Reject markup, escape sequences and noise before they reach the tree."""

    finding = match_categories(text)
    if finding.blocked:
        raise ValidationError(f"{field} rejected by content guard ({finding.category})", field=field)


def sanitize_text(value: str) -> str:
    return _CONTROL_CHARS.sub("", value or "").strip()


def sanitize_turn(turn: Turn) -> Turn:
    """Validate, screen and return a cleaned copy of ``turn``."""

    validate_turn(turn)
    check_content(turn.prompt, "prompt")
    check_content(turn.response, "response")
    cleaned = turn.model_copy(
        update={
            "prompt": sanitize_text(turn.prompt),
            "response": sanitize_text(turn.response),
            "metadata": dict(turn.metadata),
        }
    )
    validate_turn(cleaned)
    return cleaned


def safe_error_message(error: BaseException, context: Optional[str] = None) -> str:
    message = f"{context}: {error}" if context else str(error)
    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


# ----------------------------------------------------------------------
# Tree integrity
# ----------------------------------------------------------------------
def validate_tree_size(tree: ConversationTree, adding: int = 1, max_nodes: Optional[int] = None) -> None:
    limit = max_nodes if max_nodes is not None else settings.MAX_TREE_NODES
    if len(tree.nodes) + adding > limit:
        raise TreeIntegrityError(f"Tree would exceed {limit} nodes")


def validate_tree_depth(depth: int, max_depth: Optional[int] = None) -> None:
    limit = max_depth if max_depth is not None else settings.MAX_TREE_DEPTH
    if depth > limit:
        raise TreeIntegrityError(f"Depth {depth} exceeds maximum {limit}")


def validate_tree_integrity(tree: ConversationTree, max_depth: Optional[int] = None) -> None:
    """Walk the whole tree and raise TreeIntegrityError on the first violation."""

    nodes = tree.nodes
    declared_roots = set(tree.root_ids)
    if len(declared_roots) != len(tree.root_ids):
        raise TreeIntegrityError("Duplicate root ids")

    for node_id, node in nodes.items():
        if node.id != node_id:
            raise TreeIntegrityError(f"Node keyed as {node_id} has id {node.id}", node_id=node_id)
        if node.parent_id is None:
            if node_id not in declared_roots:
                raise TreeIntegrityError(f"Root {node_id} missing from root ids", node_id=node_id)
            if node.depth != 1:
                raise TreeIntegrityError(f"Root {node_id} has depth {node.depth}", node_id=node_id)
        else:
            parent = nodes.get(node.parent_id)
            if parent is None:
                raise TreeIntegrityError(f"Parent {node.parent_id} of {node_id} does not exist", node_id=node_id)
            if node_id in declared_roots:
                raise TreeIntegrityError(f"Child {node_id} listed as root", node_id=node_id)
            if node_id not in parent.children:
                raise TreeIntegrityError(f"{node_id} missing from children of {parent.id}", node_id=node_id)
            if node.depth != parent.depth + 1:
                raise TreeIntegrityError(
                    f"Depth of {node_id} is {node.depth}, expected {parent.depth + 1}", node_id=node_id
                )
        validate_tree_depth(node.depth, max_depth)
        for child_id in node.children:
            child = nodes.get(child_id)
            if child is None:
                raise TreeIntegrityError(f"Child {child_id} of {node_id} does not exist", node_id=node_id)
            if child.parent_id != node_id:
                raise TreeIntegrityError(f"Child {child_id} does not point back to {node_id}", node_id=child_id)

    for root_id in tree.root_ids:
        if root_id not in nodes:
            raise TreeIntegrityError(f"Root {root_id} does not exist", node_id=root_id)

    # every node reachable from exactly one root, never twice
    seen: Set[str] = set()
    for root_id in tree.root_ids:
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                raise TreeIntegrityError(f"Node {node_id} reached twice; cycle or shared child", node_id=node_id)
            seen.add(node_id)
            stack.extend(nodes[node_id].children)
    if len(seen) != len(nodes):
        orphans = sorted(set(nodes) - seen)
        raise TreeIntegrityError(f"Unreachable nodes: {orphans[:5]}", node_id=orphans[0])

    validate_path(tree, tree.current_path)


def validate_path(tree: ConversationTree, path: List[str]) -> None:
    previous: Optional[str] = None
    for index, node_id in enumerate(path):
        node = tree.nodes.get(node_id)
        if node is None:
            raise TreeIntegrityError(f"Path entry {node_id} does not exist", node_id=node_id)
        if index == 0 and node.parent_id is not None:
            raise TreeIntegrityError(f"Path must start at a root, got {node_id}", node_id=node_id)
        if previous is not None and node.parent_id != previous:
            raise TreeIntegrityError(f"Path entry {node_id} is not a child of {previous}", node_id=node_id)
        previous = node_id


__all__ = [
    "check_content",
    "safe_error_message",
    "sanitize_text",
    "sanitize_turn",
    "validate_node_id",
    "validate_path",
    "validate_score",
    "validate_session_id",
    "validate_text",
    "validate_topic_label",
    "validate_tree_depth",
    "validate_tree_integrity",
    "validate_tree_size",
    "validate_turn",
]
