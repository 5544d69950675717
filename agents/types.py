"""Shared type definitions for analysis and scoring capabilities."""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from topic_tree.models import TopicNode, Turn

EngagementLevel = Literal["high", "medium", "low"]
ResponseLength = Literal["detailed", "moderate", "brief"]
ConfidenceLevel = Literal["confident", "uncertain", "struggling"]
RelationshipKind = Literal["new_root", "child_of", "sibling_of", "continuation"]


class ResponseAnalysis(BaseModel):
    """Engagement signals for one answer."""

    model_config = ConfigDict(populate_by_name=True)

    engagement_level: EngagementLevel = Field(
        default="medium", validation_alias=AliasChoices("engagement_level", "engagement", "engagementLevel")
    )
    exhaustion_signals: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("exhaustion_signals", "exhaustion", "exhaustionSignals"),
    )
    new_topics: List[str] = Field(default_factory=list, validation_alias=AliasChoices("new_topics", "newTopics"))
    buzzwords: List[str] = Field(default_factory=list)
    response_length: ResponseLength = Field(
        default="moderate", validation_alias=AliasChoices("response_length", "responseLength")
    )
    confidence_level: ConfidenceLevel = Field(
        default="confident", validation_alias=AliasChoices("confidence_level", "confidence", "confidenceLevel")
    )

    @field_validator("new_topics", "buzzwords", "exhaustion_signals")
    @classmethod
    def _strip_blank(cls, values: List[str]) -> List[str]:
        cleaned: List[str] = []
        for value in values:
            text = str(value).strip()
            if text and text not in cleaned:
                cleaned.append(text)
        return cleaned

    @property
    def is_exhausted(self) -> bool:
        return bool(self.exhaustion_signals) or self.engagement_level == "low"


SIGNAL_KEYS = (
    "engagement_level",
    "engagement",
    "engagementLevel",
    "exhaustion_signals",
    "exhaustion",
    "exhaustionSignals",
    "new_topics",
    "newTopics",
)


class TopicRelationship(BaseModel):
    kind: RelationshipKind
    parent_node_id: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    related_node_id: Optional[str] = None


class TopicExtraction(BaseModel):  # LLM topic extraction reply
    topics: List[str] = Field(min_length=1, max_length=5)


class TurnScore(BaseModel):  # LLM scoring reply, 0.0-2.0 scale
    score: float = Field(ge=0.0, le=2.0)
    rationale: str = ""


class ScoringContext(BaseModel):
    """What a scoring strategy knows about the turn's place in the tree.

    ``node`` is ``None`` when the turn opens a new root, which gives the
    strategy a synthetic root-level context.
    """

    node: Optional[TopicNode] = None
    label: str
    depth: int = Field(ge=1)
    history: List[Turn] = Field(default_factory=list)
    analysis: Optional[ResponseAnalysis] = None
    is_new_branch: bool = False


class ScoreOutcome(BaseModel):
    value: float
    strategy: str
    degraded: bool = False
    reason: Optional[str] = None


__all__ = [
    "ConfidenceLevel",
    "EngagementLevel",
    "RelationshipKind",
    "ResponseAnalysis",
    "ResponseLength",
    "SIGNAL_KEYS",
    "ScoreOutcome",
    "ScoringContext",
    "TopicExtraction",
    "TopicRelationship",
    "TurnScore",
]
