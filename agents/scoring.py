"""Pluggable turn scoring strategies and the dispatching engine.

All strategies score on the 0.0-2.0 scale used across the engine. The
engine never lets a strategy failure escape: it substitutes the length and
depth heuristic and flags the outcome as degraded.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError as SchemaError

from agents.response_analyzer import analyze_response
from agents.types import ResponseAnalysis, ScoreOutcome, ScoringContext, TurnScore
from config.registry import TURN_SCORING_KEY, get_model
from config.settings import settings
from services.capability import guarded_call
from topic_tree.errors import ScoringError, ValidationError
from topic_tree.models import Turn
from topic_tree.validation import validate_score

logger = logging.getLogger(__name__)

ENGAGEMENT_WEIGHTS: Dict[str, float] = {"high": 1.0, "medium": 0.7, "low": 0.4}
LENGTH_WEIGHTS: Dict[str, float] = {"detailed": 1.0, "moderate": 0.7, "brief": 0.4}
ENGAGEMENT_SHARE = 0.6
LENGTH_SHARE = 0.4
EXHAUSTION_PENALTY = 0.45

REASONING_MARKERS = ("because", "therefore", "since", "so that", "which meant")
EXAMPLE_MARKERS = ("example", "for instance", "such as", "e.g.")
NUANCE_MARKERS = ("however", "although", "but", "trade-off", "tradeoff")
REFERENCE_MARKERS = ("as mentioned", "previously", "earlier", "building on", "following up")


def _clamp(value: float, low: Optional[float] = None, high: Optional[float] = None) -> float:
    low = settings.SCORE_MIN if low is None else low
    high = settings.SCORE_MAX if high is None else high
    return max(low, min(high, value))


def _round2(value: float) -> float:
    return float(f"{value:.2f}")


@runtime_checkable
class ScoringStrategy(Protocol):
    name: str

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float: ...


class LengthDepthScoringStrategy:
    """Fallback: longer answers score higher, deeper topics are dampened."""

    name = "length_depth"

    def __init__(self, chars_per_point: float = 250.0, floor: float = 0.2) -> None:
        self.chars_per_point = chars_per_point
        self.floor = floor

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        base = _clamp(len(turn.response.strip()) / self.chars_per_point, self.floor)
        dampening = max(0.5, 1.0 - (context.depth - 1) * 0.1)
        return _round2(_clamp(base * dampening))


class EngagementScoringStrategy:
    """Default adaptive-interview policy.

    Engagement dominates, length refines it, exhaustion signals pull the score
    below the midpoint.
    """

    name = "engagement"

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        analysis = context.analysis or analyze_response(turn.response)
        return self.score_analysis(analysis)

    @staticmethod
    def score_analysis(analysis: ResponseAnalysis) -> float:
        blended = (
            ENGAGEMENT_SHARE * ENGAGEMENT_WEIGHTS[analysis.engagement_level]
            + LENGTH_SHARE * LENGTH_WEIGHTS[analysis.response_length]
        )
        score = settings.SCORE_MAX * blended
        if analysis.exhaustion_signals:
            score *= EXHAUSTION_PENALTY
        if analysis.confidence_level == "struggling":
            score *= 0.9
        return _round2(_clamp(score))


class QualityScoringStrategy:
    """Rewards reasoning, examples and nuance in the answer text."""

    name = "quality"

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        answer = turn.response.lower().strip()
        score = 1.0
        if any(marker in answer for marker in REASONING_MARKERS):
            score += 0.3
        if any(marker in answer for marker in EXAMPLE_MARKERS):
            score += 0.2
        if len(answer) > 100:
            score += 0.2
        if any(marker in answer for marker in NUANCE_MARKERS):
            score += 0.1
        if len(answer) < 20:
            score -= 0.4
        if answer in ("yes", "no", "maybe"):
            score -= 0.6
        return _round2(_clamp(score))


class ContextAwareScoringStrategy:
    """Rewards answers that build on earlier turns in the conversation."""

    name = "context_aware"

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        answer = turn.response.lower()
        score = 1.2
        if any(marker in answer for marker in REFERENCE_MARKERS):
            score += 0.3
        previous = [item.response.lower() for item in context.history if item is not turn]
        if previous:
            earlier_words = set(self._content_words(" ".join(previous)))
            shared = [word for word in self._content_words(answer) if word in earlier_words]
            score += min(0.4, len(shared) * 0.04)
        score += min(0.4, len(turn.response) / 1000)
        return _round2(_clamp(score))

    @staticmethod
    def _content_words(text: str) -> List[str]:
        return [word for word in text.split() if len(word) > 3]


class WeightedScoringStrategy:
    """Blend of length, quality, depth and context-awareness."""

    name = "weighted"

    def __init__(self, weights: Optional[Dict[str, float]] = None) -> None:
        self.weights = {"length": 0.3, "quality": 0.4, "depth": 0.2, "context": 0.1}
        if weights:
            self.set_weights(weights)
        self._quality = QualityScoringStrategy()
        self._context = ContextAwareScoringStrategy()

    def set_weights(self, weights: Dict[str, float]) -> None:
        unknown = set(weights) - set(self.weights)
        if unknown:
            raise ValidationError(f"Unknown weight keys: {sorted(unknown)}", field="weights")
        self.weights.update(weights)

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        parts = {
            "length": _clamp(len(turn.response) / 500),
            "quality": self._quality.calculate_score(turn, context),
            "depth": _clamp(context.depth * 0.4),
            "context": self._context.calculate_score(turn, context),
        }
        total = sum(self.weights.values()) or 1.0
        return _round2(_clamp(sum(parts[key] * weight for key, weight in self.weights.items()) / total))


class LlmScoringStrategy:
    """Score from the registry-bound grading model."""

    name = "llm"

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        llm = get_model(TURN_SCORING_KEY)
        raw = llm(
            inputs={
                "question": turn.prompt,
                "answer": turn.response,
                "topic": context.label,
                "depth": context.depth,
                "history": [{"q": item.prompt, "a": item.response} for item in context.history[-5:]],
                "signals": context.analysis.model_dump() if context.analysis else {},
            },
            temperature=0.0,
            max_tokens=200,
        )
        try:
            return TurnScore.model_validate(raw).score
        except SchemaError as exc:
            raise ScoringError("grading model returned an invalid payload") from exc


def _check_strategy(strategy: object) -> None:
    if not callable(getattr(strategy, "calculate_score", None)):
        raise ValidationError("Scoring strategy must define calculate_score(turn, context)", field="strategy")


class ScoringEngine:
    """Thin dispatcher over an injected strategy with a guaranteed fallback."""

    def __init__(
        self,
        strategy: Optional[ScoringStrategy] = None,
        *,
        fallback: Optional[ScoringStrategy] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self._strategy: ScoringStrategy = strategy or EngagementScoringStrategy()
        _check_strategy(self._strategy)
        self._fallback: ScoringStrategy = fallback or LengthDepthScoringStrategy()
        self.timeout_s = timeout_s

    @property
    def strategy(self) -> ScoringStrategy:
        return self._strategy

    def set_strategy(self, strategy: ScoringStrategy) -> None:
        _check_strategy(strategy)
        self._strategy = strategy

    def evaluate(self, turn: Turn, context: ScoringContext) -> ScoreOutcome:
        name = _strategy_name(self._strategy)
        try:
            value = guarded_call(
                f"scoring:{name}",
                self._strategy.calculate_score,
                turn,
                context,
                timeout_s=self.timeout_s,
                error_cls=ScoringError,
            )
            validate_score(value)
            return ScoreOutcome(value=float(value), strategy=name)
        except (ScoringError, ValidationError) as exc:
            logger.warning("scoring strategy %s failed, using fallback: %s", name, exc)
            value = self._fallback.calculate_score(turn, context)
            return ScoreOutcome(value=value, strategy=_strategy_name(self._fallback), degraded=True, reason=str(exc))

    def calculate_score(self, turn: Turn, context: ScoringContext) -> float:
        return self.evaluate(turn, context).value


def _strategy_name(strategy: object) -> str:
    return str(getattr(strategy, "name", type(strategy).__name__))


def average(scores: Iterable[float]) -> Optional[float]:
    values = list(scores)
    if not values:
        return None
    return _round2(sum(values) / len(values))


__all__ = [
    "ContextAwareScoringStrategy",
    "EngagementScoringStrategy",
    "LengthDepthScoringStrategy",
    "LlmScoringStrategy",
    "QualityScoringStrategy",
    "ScoringEngine",
    "ScoringStrategy",
    "WeightedScoringStrategy",
    "average",
]
