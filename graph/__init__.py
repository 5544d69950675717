"""LangGraph orchestration of grading turns over a topic tree."""
from .state import Suggestion, TurnPlan, TurnResult, TurnState
from .build import GradingOrchestrator
from .summary import InterviewSummary, build_summary, render_tree

__all__ = [
    "GradingOrchestrator",
    "InterviewSummary",
    "Suggestion",
    "TurnPlan",
    "TurnResult",
    "TurnState",
    "build_summary",
    "render_tree",
]
