"""Adaptive interview navigation: fan out on rich answers, backtrack on exhausted ones."""
from __future__ import annotations

from typing import Iterable, List, Optional

from agents.topic_analyzer import mentions
from agents.types import ResponseAnalysis, TopicRelationship
from config.settings import settings
from topic_tree.manager import TreeManager
from topic_tree.models import TopicNode

from .state import Suggestion, TurnAction

MAX_FAN_OUT = 5


def choose_action(analysis: ResponseAnalysis, new_topics: List[str]) -> TurnAction:
    if analysis.is_exhausted:
        return "backtrack"
    if analysis.engagement_level == "high" and new_topics:
        return "fan_out"
    return "append"


def fresh_topics(manager: TreeManager, holder_id: Optional[str], candidates: Iterable[str]) -> List[str]:
    """Candidates not already covered by the holder's children, in first-seen order."""

    taken = set()
    if holder_id is not None and manager.get_node(holder_id) is not None:
        taken = {child.label.lower() for child in manager.get_children(holder_id)}
    topics: List[str] = []
    for candidate in candidates:
        label = " ".join(str(candidate).split())[: settings.MAX_TOPIC_CHARS]
        key = label.lower()
        if not label or key in taken:
            continue
        taken.add(key)
        topics.append(label)
    return topics[:MAX_FAN_OUT]


def fan_out_allowed(manager: TreeManager, holder_depth: int, count: int, pending: int = 0) -> bool:
    """Whether ``count`` children fit under a holder at ``holder_depth``.

    ``pending`` counts nodes the same turn creates before the fan-out.
    """

    if holder_depth + 1 > manager.max_depth:
        return False
    return len(manager) + pending + count <= manager.max_nodes


def stays_on_current(
    manager: TreeManager,
    holder: TopicNode,
    topics: List[str],
    relationship: TopicRelationship,
    prompt: str,
) -> bool:
    """Whether the turn keeps the current node instead of opening a branch.

    The question sets the subject: a primary topic the prompt never mentions
    is the answer elaborating on the current thread.
    """

    on_path = {manager.require_node(node_id).label.lower() for node_id in manager.get_current_path()}
    if any(topic.lower() in on_path for topic in topics):
        return True
    if not mentions(topics[0], prompt):
        return True
    if relationship.kind == "continuation":
        return True
    if relationship.kind == "child_of" and relationship.parent_node_id in (None, holder.id):
        return True
    return relationship.kind == "new_root" and relationship.confidence < settings.TOPIC_SHIFT_CONFIDENCE


def revisit_target(manager: TreeManager, label: str) -> Optional[TopicNode]:
    """Earliest existing node already carrying ``label``."""

    key = label.lower()
    matches = [node for node in manager.nodes() if node.label.lower() == key]
    return min(matches, key=lambda node: node.order, default=None)


def _unvisited(node: TopicNode) -> bool:
    return not node.visited and not node.metadata.exhausted


def backtrack(manager: TreeManager, node_id: str) -> tuple[List[str], List[str]]:
    """Mark ``node_id`` exhausted and find where the cursor goes next.

    Returns ``(new_path, newly_exhausted_labels)``. Climbing continues through
    ancestors whose children are all exhausted; roots are never exhausted and
    stop the climb.
    """

    exhausted: List[str] = []
    node = manager.require_node(node_id)
    if node.is_root:
        return node.get_path_from_root(manager.tree.nodes), exhausted

    node.mark_exhausted()
    exhausted.append(node.label)
    current = node
    while True:
        for sibling in manager.get_siblings(current.id):
            if _unvisited(sibling):
                return sibling.get_path_from_root(manager.tree.nodes), exhausted
        parent = manager.get_node(current.parent_id) if current.parent_id else None
        if parent is None or parent.is_root:
            target = parent or current
            return target.get_path_from_root(manager.tree.nodes), exhausted
        if all(child.metadata.exhausted for child in manager.get_children(parent.id)):
            parent.mark_exhausted()
            exhausted.append(parent.label)
            current = parent
            continue
        return parent.get_path_from_root(manager.tree.nodes), exhausted


def suggestions(manager: TreeManager, limit: int = 3) -> List[Suggestion]:
    """Next-question candidates around the cursor."""

    current = manager.get_current_topic()
    found: List[Suggestion] = []
    seen = set()

    def _add(node: TopicNode, relation: str, prompt: str) -> None:
        if node.id in seen or len(found) >= limit:
            return
        seen.add(node.id)
        found.append(Suggestion(node_id=node.id, topic=node.label, relation=relation, prompt=prompt))

    if current is not None:
        if _unvisited(current) and current.parent_id is not None:
            _add(current, "child", f"Tell me more about {current.label}.")
        for child in manager.get_children(current.id):
            if _unvisited(child):
                _add(child, "child", f"Can you go deeper on {child.label}?")
        if current.parent_id is not None:
            for sibling in manager.get_siblings(current.id):
                if _unvisited(sibling):
                    _add(sibling, "sibling", f"How does {sibling.label} compare with {current.label}?")
    deepest = manager.get_deepest_unvisited_branch()
    if deepest is not None:
        _add(deepest, "deepest", f"Earlier you mentioned {deepest.label}. What was your role there?")
    return found


__all__ = [
    "MAX_FAN_OUT",
    "backtrack",
    "choose_action",
    "fan_out_allowed",
    "fresh_topics",
    "revisit_target",
    "stays_on_current",
    "suggestions",
]
