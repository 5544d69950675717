"""Topic extraction and engagement analysis for the incoming turn."""
from __future__ import annotations

import re
from typing import Any, Dict, List

from pydantic import ValidationError as SchemaError

from agents.response_analyzer import analyze_response
from agents.types import ResponseAnalysis
from config.settings import settings
from observability.logger import log_event
from observability.tracing import span
from services.capability import guarded_call
from topic_tree.errors import AnalysisError
from topic_tree.models import Turn

from ..capabilities import Capabilities, degrade
from ..state import TurnState

FALLBACK_TOPIC = "conversation topic"

_WORD = re.compile(r"[A-Za-z0-9][A-Za-z0-9+#.'-]*")


def fallback_label(turn: Turn) -> str:
    """First few words of the prompt, lowercased."""

    words = _WORD.findall(turn.prompt.lower())[: settings.FALLBACK_LABEL_WORDS]
    return " ".join(word.strip(".'-") for word in words).strip() or FALLBACK_TOPIC


def _usable(topics: Any) -> List[str]:
    if not isinstance(topics, (list, tuple)):
        raise AnalysisError(f"topic analyzer returned {type(topics).__name__}, expected a list")
    cleaned: List[str] = []
    for topic in topics:
        label = " ".join(str(topic).split())[: settings.MAX_TOPIC_CHARS]
        if label and label.lower() not in {item.lower() for item in cleaned}:
            cleaned.append(label)
    if not cleaned:
        raise AnalysisError("topic analyzer returned no topics")
    return cleaned


def _as_analysis(raw: Any) -> ResponseAnalysis:
    if isinstance(raw, ResponseAnalysis):
        return raw
    try:
        return ResponseAnalysis.model_validate(raw)
    except SchemaError as exc:
        raise AnalysisError(f"response analyzer returned an invalid payload: {exc.error_count()} errors") from exc


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    turn: Turn = state["turn"]
    manager = state["manager"]
    reasons = list(state.get("degraded_reasons") or [])

    with span(events, "analyze_topic"):
        try:
            raw = guarded_call(
                "topic_analysis",
                caps.topic_analyzer.extract_topics,
                turn,
                timeout_s=caps.timeout_s,
                error_cls=AnalysisError,
            )
            topics = _usable(raw)
        except AnalysisError as exc:
            topics = [fallback_label(turn)]
            reasons = degrade(reasons, session_id, "topic_analysis", exc)

        analysis = state.get("analysis")
        if analysis is None:
            current = manager.get_current_topic()
            try:
                raw_analysis = guarded_call(
                    "response_analysis",
                    caps.response_analyzer.analyze,
                    turn,
                    current.label if current is not None else None,
                    timeout_s=caps.timeout_s,
                    error_cls=AnalysisError,
                )
                analysis = _as_analysis(raw_analysis)
            except AnalysisError as exc:
                analysis = analyze_response(turn.response)
                reasons = degrade(reasons, session_id, "response_analysis", exc)

    log_event(
        "node.end",
        session_id,
        node="analyze_topic",
        topics=topics,
        engagement=analysis.engagement_level,
        explicit=bool(state.get("analysis_explicit")),
    )
    return {"topics": topics, "analysis": analysis, "degraded_reasons": reasons, "events": events}
