"""Resolve the parent of a new branch and re-check the tree ceilings."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from agents.types import TopicRelationship
from config.settings import settings
from observability.logger import log_event
from observability.tracing import span
from topic_tree.errors import TreeIntegrityError
from topic_tree.manager import TreeManager
from topic_tree.validation import validate_tree_size

from .. import policy
from ..capabilities import Capabilities
from ..state import TurnPlan, TurnState

ATTACHING_KINDS = ("child_of", "sibling_of", "continuation")
BIASED_KINDS = ("child_of", "continuation")


def _proposed_parent(manager: TreeManager, relationship: Optional[TopicRelationship]) -> Optional[str]:
    if relationship is None or relationship.kind == "new_root":
        return None
    if relationship.kind in ATTACHING_KINDS and relationship.parent_node_id:
        return relationship.parent_node_id
    # no explicit parent: lean towards the live branch when reasonably sure
    if relationship.kind in BIASED_KINDS and relationship.confidence > settings.RELATIONSHIP_BIAS_CONFIDENCE:
        anchor = manager.get_current_topic() or manager.most_recent_node()
        return anchor.id if anchor is not None else None
    return None


def _demotion_reason(manager: TreeManager, parent_id: str) -> Optional[str]:
    parent = manager.get_node(parent_id)
    if parent is None:
        return "parent missing"
    if parent.depth + 1 > manager.max_depth:
        return "depth ceiling"
    return None


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    manager: TreeManager = state["manager"]
    plan: TurnPlan = state["plan"].model_copy(deep=True)

    with span(events, "locate_parent"):
        if plan.open_branch:
            parent_id = _proposed_parent(manager, state.get("relationship"))
            if parent_id is not None:
                reason = _demotion_reason(manager, parent_id)
                if reason is not None:
                    log_event(
                        "placement.demoted",
                        session_id,
                        level=logging.WARNING,
                        proposed_parent=parent_id,
                        reason=reason,
                    )
                    parent_id = None
                    plan.demoted = True
            plan.parent_id = parent_id
            try:
                validate_tree_size(manager.tree, 1, manager.max_nodes)
            except TreeIntegrityError as exc:
                log_event("turn.rejected", session_id, level=logging.WARNING, reason=str(exc))
                return {"failure": exc, "events": events}
            parent = manager.get_node(parent_id) if parent_id is not None else None
            holder_depth = parent.depth + 1 if parent is not None else 1
            extra = 1
        else:
            holder_depth = manager.require_node(plan.holder_id).depth
            extra = 0

        if plan.action == "fan_out":
            count = len(plan.new_topics)
            if not policy.fan_out_allowed(manager, holder_depth, count, pending=extra):
                log_event(
                    "placement.fan_out_skipped",
                    session_id,
                    level=logging.WARNING,
                    depth=holder_depth,
                    nodes=len(manager),
                    requested=count,
                )
                plan.action = "append"
                plan.new_topics = []

    return {"plan": plan, "events": events}
