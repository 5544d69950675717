"""Decide where the turn lands and what it does to the tree."""
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import ValidationError as SchemaError

from agents.types import TopicRelationship
from config.settings import settings
from observability.logger import log_event
from observability.tracing import span
from services.capability import guarded_call
from topic_tree.errors import AnalysisError

from .. import policy
from ..capabilities import Capabilities, degrade
from ..state import TurnPlan, TurnState


def _as_relationship(raw: Any) -> TopicRelationship:
    if isinstance(raw, TopicRelationship):
        return raw
    try:
        return TopicRelationship.model_validate(raw)
    except SchemaError as exc:
        raise AnalysisError(f"relationship payload is invalid: {exc.error_count()} errors") from exc


def _relationship(
    state: TurnState, caps: Capabilities, label: str, reasons: List[str]
) -> tuple[TopicRelationship, List[str]]:
    try:
        raw = guarded_call(
            "relationship",
            caps.topic_analyzer.determine_relationship,
            label,
            state["manager"].nodes(),
            timeout_s=caps.timeout_s,
            error_cls=AnalysisError,
        )
        return _as_relationship(raw), reasons
    except AnalysisError as exc:
        fallback = TopicRelationship(kind="new_root", confidence=settings.FALLBACK_RELATIONSHIP_CONFIDENCE)
        return fallback, degrade(reasons, state["session_id"], "relationship", exc)


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    manager = state["manager"]
    topics = state["topics"]
    analysis = state["analysis"]
    reasons = list(state.get("degraded_reasons") or [])
    label = topics[0]

    placement = "branch"
    with span(events, "resolve_relationship"):
        relationship, reasons = _relationship(state, caps, label, reasons)
        holder = manager.get_current_topic()
        if holder is not None and not policy.stays_on_current(
            manager, holder, topics, relationship, state["turn"].prompt
        ):
            # a subject the tree already covers goes back to that node
            holder = policy.revisit_target(manager, label)
            placement = "revisit" if holder is not None else "branch"
        elif holder is not None:
            placement = "stay"

        if holder is None:
            plan = TurnPlan(open_branch=True, branch_label=label)
            candidates = [topic for topic in analysis.new_topics if topic.lower() != label.lower()]
            new_topics = policy.fresh_topics(manager, None, candidates)
        else:
            plan = TurnPlan(holder_id=holder.id)
            new_topics = policy.fresh_topics(manager, holder.id, analysis.new_topics)

        plan.action = policy.choose_action(analysis, new_topics)
        if plan.action == "fan_out":
            plan.new_topics = new_topics

    log_event(
        "node.end",
        session_id,
        node="resolve_relationship",
        action=plan.action,
        placement=placement,
        relationship=relationship.kind,
        confidence=relationship.confidence,
    )
    return {"plan": plan, "relationship": relationship, "degraded_reasons": reasons, "events": events}
