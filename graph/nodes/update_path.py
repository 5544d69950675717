"""Move the cursor according to the turn's action."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from observability.logger import log_event
from observability.tracing import span
from topic_tree.errors import GradingError
from topic_tree.manager import TreeManager

from .. import policy
from ..capabilities import Capabilities
from ..state import TurnPlan, TurnState


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    manager: TreeManager = state["manager"]
    plan: TurnPlan = state["plan"]
    tree = manager.tree

    exhausted: List[str] = []
    with span(events, "update_path"):
        try:
            if plan.action == "fan_out":
                first_child = state["created_ids"][-len(plan.new_topics)]
                path = manager.move_cursor_to(first_child)
            elif plan.action == "backtrack":
                path, exhausted = policy.backtrack(manager, plan.holder_id)
                manager.set_current_path(path)
                tree.exhausted_topics.extend(exhausted)
            else:
                path = manager.move_cursor_to(plan.holder_id)
        except GradingError as exc:
            log_event("node.failed", session_id, level=logging.ERROR, node="update_path", reason=str(exc))
            return {"failure": exc, "events": events}
        tree.max_depth_reached = max(tree.max_depth_reached, len(path) - 1)

    log_event("node.end", session_id, node="update_path", action=plan.action, depth=len(path), exhausted=exhausted)
    return {"events": events}
