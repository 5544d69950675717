"""Record the graded turn and assemble the caller-facing result."""
from __future__ import annotations

from typing import Any, Dict, Iterable

from observability.logger import log_event
from observability.tracing import span
from topic_tree.manager import TreeManager
from topic_tree.models import BuzzwordStat, ConversationTree, GradeRecord

from .. import policy
from ..capabilities import Capabilities
from ..state import TurnPlan, TurnResult, TurnState


def record_buzzwords(tree: ConversationTree, terms: Iterable[str], turn_index: int) -> None:
    for term in terms:
        key = term.strip().lower()
        if not key:
            continue
        stat = tree.buzzwords.setdefault(key, BuzzwordStat(term=term.strip()))
        stat.count += 1
        if turn_index not in stat.sources:
            stat.sources.append(turn_index)


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    manager: TreeManager = state["manager"]
    plan: TurnPlan = state["plan"]
    outcome = state["outcome"]
    reasons = list(state.get("degraded_reasons") or [])
    tree = manager.tree

    with span(events, "commit"):
        turn_index = tree.turn_count
        tree.grades.append(
            GradeRecord(
                turn_index=turn_index,
                node_id=plan.holder_id,
                score=outcome.value,
                action=plan.action,
                strategy=outcome.strategy,
                degraded=bool(reasons),
            )
        )
        record_buzzwords(tree, state["analysis"].buzzwords, turn_index)
        tree.turn_count += 1
        holder = manager.require_node(plan.holder_id)
        current = manager.get_current_topic()

    result = TurnResult(
        session_id=session_id,
        node_id=holder.id,
        topic=holder.label,
        depth=holder.depth,
        score=outcome.value,
        is_new_branch=plan.open_branch,
        suggestions=policy.suggestions(manager),
        degraded=bool(reasons),
        degraded_reasons=reasons,
        action=plan.action,
        topics=list(state.get("topics") or []),
        created_node_ids=list(state.get("created_ids") or []),
        current_node_id=current.id if current is not None else None,
        current_path=manager.get_current_path(),
        scoring_strategy=outcome.strategy,
        events=list(events),
    )
    log_event(
        "turn.commit",
        session_id,
        node_id=result.node_id,
        action=result.action,
        score=result.score,
        degraded=result.degraded,
        created=len(result.created_node_ids),
    )
    return {"result": result, "events": events}
