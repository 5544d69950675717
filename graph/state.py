"""State carried through one turn of the grading graph, and its result."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, TypedDict

from pydantic import BaseModel, Field

TurnAction = Literal["fan_out", "backtrack", "append"]


class TurnPlan(BaseModel):
    """What the turn will do to the tree once analysis and scoring resolve."""

    open_branch: bool = False
    branch_label: Optional[str] = None
    parent_id: Optional[str] = None
    holder_id: Optional[str] = None
    action: TurnAction = "append"
    new_topics: List[str] = Field(default_factory=list)
    demoted: bool = False


class Suggestion(BaseModel):
    node_id: str
    topic: str
    relation: Literal["child", "sibling", "deepest"]
    prompt: str


class TurnResult(BaseModel):
    session_id: str
    node_id: str
    topic: str
    depth: int
    score: float
    is_new_branch: bool
    suggestions: List[Suggestion] = Field(default_factory=list)
    degraded: bool = False
    degraded_reasons: List[str] = Field(default_factory=list)
    action: TurnAction
    topics: List[str] = Field(default_factory=list)
    created_node_ids: List[str] = Field(default_factory=list)
    current_node_id: Optional[str] = None
    current_path: List[str] = Field(default_factory=list)
    scoring_strategy: str
    events: List[Dict[str, Any]] = Field(default_factory=list)


class TurnState(TypedDict, total=False):
    """Graph channels. Capability outputs are pydantic models held as-is."""

    session_id: str
    manager: Any
    turn: Any
    snapshot: Any
    topics: List[str]
    analysis: Any
    analysis_explicit: bool
    relationship: Any
    plan: Any
    outcome: Any
    created_ids: List[str]
    degraded_reasons: List[str]
    events: List[Dict[str, Any]]
    failure: Optional[BaseException]
    result: Any


__all__ = ["Suggestion", "TurnAction", "TurnPlan", "TurnResult", "TurnState"]
