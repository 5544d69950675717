"""Engagement analysis combining heuristics with optional LLM refinement."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from agents.types import SIGNAL_KEYS, ResponseAnalysis
from config.registry import RESPONSE_ANALYSIS_KEY, get_model
from topic_tree.models import Turn

DONT_KNOW_MARKERS = ("don't know", "dont know", "do not know", "not sure", "no idea", "never used", "haven't worked")
VAGUE_MARKERS = ("i guess", "maybe", "kind of", "sort of", "probably")
HEDGE_MARKERS = ("i think", "not sure", "maybe", "i guess", "probably")

TOPIC_PATTERNS = (
    re.compile(r"\bwork(?:ed|ing)? (?:on|with|in) ([A-Za-z0-9.+#/ -]{2,40}?)(?=[,.;!?]|\band\b|$)", re.IGNORECASE),
    re.compile(r"\bexperience (?:with|in) ([A-Za-z0-9.+#/ -]{2,40}?)(?=[,.;!?]|\band\b|$)", re.IGNORECASE),
    re.compile(r"\binvolved in ([A-Za-z0-9.+#/ -]{2,40}?)(?=[,.;!?]|\band\b|$)", re.IGNORECASE),
    re.compile(r"\bfocus(?:ed)? on ([A-Za-z0-9.+#/ -]{2,40}?)(?=[,.;!?]|\band\b|$)", re.IGNORECASE),
    re.compile(r"\bspeciali[sz]e[ds]? in ([A-Za-z0-9.+#/ -]{2,40}?)(?=[,.;!?]|\band\b|$)", re.IGNORECASE),
    re.compile(r"\bbackground in ([A-Za-z0-9.+#/ -]{2,40}?)(?=[,.;!?]|\band\b|$)", re.IGNORECASE),
)

# CamelCase, ALLCAPS and dotted tech names such as GraphQL, AWS, Node.js
BUZZWORD_PATTERN = re.compile(
    r"\b(?:[A-Z][a-z0-9]+[A-Z][A-Za-z0-9]*|[A-Z]{2,}[A-Za-z0-9]*|[A-Za-z]+\.(?:js|ts|py|net|io))\b"
)


@runtime_checkable
class ResponseAnalyzer(Protocol):
    def analyze(self, turn: Turn, current_topic: Optional[str] = None) -> ResponseAnalysis: ...


def word_count(text: Optional[str]) -> int:
    if not text:
        return 0
    return len(text.strip().split())


def detect_topics(text: str, limit: int = 5) -> List[str]:
    topics: List[str] = []
    for pattern in TOPIC_PATTERNS:
        for match in pattern.finditer(text):
            candidate = " ".join(match.group(1).split()[:3]).strip(" -")
            if len(candidate) > 1 and candidate.lower() not in {topic.lower() for topic in topics}:
                topics.append(candidate)
    return topics[:limit]


def detect_buzzwords(text: str) -> List[str]:
    seen: Dict[str, str] = {}
    for match in BUZZWORD_PATTERN.finditer(text):
        token = match.group(0)
        seen.setdefault(token.lower(), token)
    return list(seen.values())


def analyze_response(response: str) -> ResponseAnalysis:
    """Heuristic signals used whenever no richer analysis is available."""

    lowered = response.lower()
    words = word_count(response)

    signals: List[str] = []
    if words < 10:
        signals.append("short_answer")
    if any(marker in lowered for marker in DONT_KNOW_MARKERS):
        signals.append("dont_know")
    if any(marker in lowered for marker in VAGUE_MARKERS):
        signals.append("vague")

    if words > 30:
        engagement = "high"
    elif words > 15:
        engagement = "medium"
    else:
        engagement = "low"

    if words > 50:
        length = "detailed"
    elif words > 20:
        length = "moderate"
    else:
        length = "brief"

    if "dont_know" in signals:
        confidence = "struggling"
    elif any(marker in lowered for marker in HEDGE_MARKERS):
        confidence = "uncertain"
    else:
        confidence = "confident"

    return ResponseAnalysis(
        engagement_level=engagement,
        exhaustion_signals=signals,
        new_topics=detect_topics(response),
        buzzwords=detect_buzzwords(response),
        response_length=length,
        confidence_level=confidence,
    )


def signals_from_metadata(turn: Turn) -> Optional[ResponseAnalysis]:
    """Caller-supplied signals in ``turn.metadata`` take precedence over analysis.

    Only the supplied keys are trusted; buzzwords default to what the answer
    text itself mentions.
    """

    nested = turn.metadata.get("analysis")
    payload: Dict[str, Any] = dict(nested) if isinstance(nested, dict) else {}
    payload.update({key: value for key, value in turn.metadata.items() if key in SIGNAL_KEYS or key == "buzzwords"})
    if not any(key in payload for key in SIGNAL_KEYS):
        return None
    payload.setdefault("buzzwords", detect_buzzwords(turn.response))
    return ResponseAnalysis.model_validate(payload)


class HeuristicResponseAnalyzer:
    name = "heuristic"

    def analyze(self, turn: Turn, current_topic: Optional[str] = None) -> ResponseAnalysis:
        return analyze_response(turn.response)


class LlmResponseAnalyzer:
    """LLM-derived signals, falling back to the heuristic on schema drift."""

    name = "llm"

    def analyze(self, turn: Turn, current_topic: Optional[str] = None) -> ResponseAnalysis:
        heuristic = analyze_response(turn.response)
        llm = get_model(RESPONSE_ANALYSIS_KEY)
        raw = llm(
            inputs={
                "question": turn.prompt,
                "answer": turn.response,
                "current_topic": current_topic or "",
                "word_count": word_count(turn.response),
            },
            temperature=0.0,
            max_tokens=400,
        )
        try:
            parsed = ResponseAnalysis.model_validate(raw)
        except ValidationError:
            return heuristic
        if word_count(turn.response) < 10 and "short_answer" not in parsed.exhaustion_signals:
            parsed = parsed.model_copy(update={"exhaustion_signals": [*parsed.exhaustion_signals, "short_answer"]})
        return parsed


__all__ = [
    "HeuristicResponseAnalyzer",
    "LlmResponseAnalyzer",
    "ResponseAnalyzer",
    "analyze_response",
    "detect_buzzwords",
    "detect_topics",
    "signals_from_metadata",
    "word_count",
]
