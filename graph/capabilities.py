"""Injected capabilities the grading graph calls out to."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from agents.response_analyzer import HeuristicResponseAnalyzer, ResponseAnalyzer
from agents.scoring import ScoringEngine
from agents.topic_analyzer import KeywordTopicAnalyzer, TopicAnalyzer
from observability.logger import log_event


@dataclass
class Capabilities:
    topic_analyzer: TopicAnalyzer = field(default_factory=KeywordTopicAnalyzer)
    response_analyzer: ResponseAnalyzer = field(default_factory=HeuristicResponseAnalyzer)
    scoring: ScoringEngine = field(default_factory=ScoringEngine)
    timeout_s: Optional[float] = None


def degrade(reasons: List[str], session_id: str, capability: str, cause: object) -> List[str]:
    """Record a capability fallback and return the extended reason list."""

    log_event("capability.degraded", session_id, level=logging.WARNING, capability=capability, reason=str(cause))
    return [*reasons, f"{capability}: {cause}"]


__all__ = ["Capabilities", "degrade"]
