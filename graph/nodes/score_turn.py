"""Score the turn at the depth it will land on."""
from __future__ import annotations

from typing import Any, Dict, List

from agents.types import ScoringContext
from observability.logger import log_event
from observability.tracing import span
from topic_tree.manager import TreeManager
from topic_tree.models import Turn

from ..capabilities import Capabilities, degrade
from ..state import TurnPlan, TurnState


def _history(manager: TreeManager, turn: Turn) -> List[Turn]:
    turns = [item for node in manager.nodes() for item in node.metadata.turns]
    turns.sort(key=lambda item: item.timestamp)
    return [*turns, turn]


def build_context(manager: TreeManager, plan: TurnPlan, turn: Turn, analysis: Any) -> ScoringContext:
    if plan.open_branch:
        parent = manager.get_node(plan.parent_id) if plan.parent_id else None
        return ScoringContext(
            node=None,
            label=plan.branch_label or "",
            depth=parent.depth + 1 if parent is not None else 1,
            history=_history(manager, turn),
            analysis=analysis,
            is_new_branch=True,
        )
    holder = manager.require_node(plan.holder_id)
    return ScoringContext(
        node=holder,
        label=holder.label,
        depth=holder.depth,
        history=_history(manager, turn),
        analysis=analysis,
    )


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    reasons = list(state.get("degraded_reasons") or [])

    with span(events, "score_turn"):
        context = build_context(state["manager"], state["plan"], state["turn"], state["analysis"])
        outcome = caps.scoring.evaluate(state["turn"], context)
        if outcome.degraded:
            reasons = degrade(reasons, session_id, "scoring", outcome.reason or "fallback used")

    log_event("node.end", session_id, node="score_turn", score=outcome.value, strategy=outcome.strategy)
    return {"outcome": outcome, "degraded_reasons": reasons, "events": events}
