"""First mutating state: snapshot, then attach the turn and any new children."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from agents.scoring import average
from observability.logger import log_event
from observability.tracing import span
from topic_tree.errors import GradingError
from topic_tree.manager import TreeManager

from ..capabilities import Capabilities
from ..state import TurnPlan, TurnState


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    manager: TreeManager = state["manager"]
    plan: TurnPlan = state["plan"].model_copy(deep=True)
    outcome = state["outcome"]

    snapshot = manager.snapshot()
    created: List[str] = []
    with span(events, "create_node"):
        try:
            if plan.open_branch:
                branch = manager.add_node(plan.branch_label, plan.parent_id)
                created.append(branch.id)
                plan.holder_id = branch.id
            holder = manager.attach_turn(plan.holder_id, state["turn"])
            previous = [grade.score for grade in manager.tree.grades if grade.node_id == holder.id]
            holder.update_score(average([*previous, outcome.value]))
            if plan.action == "fan_out":
                manager.mark_rich(holder.id)
                for topic in plan.new_topics:
                    created.append(manager.add_node(topic, holder.id).id)
        except GradingError as exc:
            log_event("node.failed", session_id, level=logging.ERROR, node="create_node", reason=str(exc))
            return {"failure": exc, "snapshot": snapshot, "created_ids": created, "events": events}

    log_event("node.end", session_id, node="create_node", holder=plan.holder_id, created=created)
    return {"snapshot": snapshot, "plan": plan, "created_ids": created, "events": events}
