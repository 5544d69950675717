"""Grading orchestrator: one compiled LangGraph run per incoming turn."""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from langgraph.graph import END, StateGraph

from agents.response_analyzer import ResponseAnalyzer
from agents.scoring import ScoringEngine, ScoringStrategy
from agents.topic_analyzer import TopicAnalyzer
from observability.logger import log_event
from topic_tree.errors import ValidationError
from topic_tree.manager import TreeManager
from topic_tree.models import Turn

from .capabilities import Capabilities
from .nodes import (
    analyze_topic,
    commit,
    create_node,
    integrity_check,
    locate_parent,
    resolve_relationship,
    rollback,
    score_turn,
    update_path,
    validate,
)
from .state import TurnResult, TurnState

# Order of the states; each may divert to its failure target.
PIPELINE = (
    ("validate", validate, END),
    ("analyze_topic", analyze_topic, None),
    ("resolve_relationship", resolve_relationship, None),
    ("locate_parent", locate_parent, END),
    ("score_turn", score_turn, None),
    ("create_node", create_node, "rollback"),
    ("update_path", update_path, "rollback"),
    ("integrity_check", integrity_check, "rollback"),
    ("commit", commit, None),
)


def _failed_to(target: str, on_failure: str) -> Callable[[TurnState], str]:
    def _route(state: TurnState) -> str:
        return on_failure if state.get("failure") is not None else target

    return _route


class GradingOrchestrator:
    """Sequences analysis, placement, scoring and mutation for one turn.

    Capabilities may be swapped at any time; the compiled graph reads them
    through ``self.capabilities`` on every run.
    """

    def __init__(
        self,
        topic_analyzer: Optional[TopicAnalyzer] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        response_analyzer: Optional[ResponseAnalyzer] = None,
        *,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.capabilities = Capabilities(timeout_s=timeout_s)
        if topic_analyzer is not None:
            self.set_topic_analyzer(topic_analyzer)
        if response_analyzer is not None:
            self.set_response_analyzer(response_analyzer)
        if scoring_engine is not None:
            self.capabilities.scoring = scoring_engine
        if timeout_s is not None:
            self.capabilities.scoring.timeout_s = timeout_s
        self._graph = self._build()

    def _build(self) -> Any:
        graph = StateGraph(TurnState)
        for name, module, _ in PIPELINE:
            graph.add_node(name, self._bind(module))
        graph.add_node("rollback", self._bind(rollback))

        for (name, _, on_failure), (following, _, _) in zip(PIPELINE, PIPELINE[1:]):
            if on_failure is None:
                graph.add_edge(name, following)
            else:
                graph.add_conditional_edges(
                    name,
                    _failed_to(following, on_failure),
                    {following: following, on_failure: on_failure},
                )
        graph.add_edge("commit", END)
        graph.add_edge("rollback", END)
        graph.set_entry_point("validate")
        return graph.compile()

    def _bind(self, module: Any) -> Callable[[TurnState], Dict[str, Any]]:
        return lambda state: module.run(state, self.capabilities)

    # ------------------------------------------------------------------
    # Capability injection
    # ------------------------------------------------------------------
    def set_topic_analyzer(self, analyzer: TopicAnalyzer) -> None:
        for method in ("extract_topics", "determine_relationship"):
            if not callable(getattr(analyzer, method, None)):
                raise ValidationError(f"Topic analyzer must define {method}()", field="analyzer")
        self.capabilities.topic_analyzer = analyzer

    def set_response_analyzer(self, analyzer: ResponseAnalyzer) -> None:
        if not callable(getattr(analyzer, "analyze", None)):
            raise ValidationError("Response analyzer must define analyze()", field="analyzer")
        self.capabilities.response_analyzer = analyzer

    def set_scoring_strategy(self, strategy: ScoringStrategy) -> None:
        self.capabilities.scoring.set_strategy(strategy)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def process_turn(self, manager: TreeManager, turn: Turn) -> TurnResult:
        """Run one turn against ``manager``; raises on validation or integrity failure.

        The caller must hold the session's exclusive lock.
        """

        session_id = manager.session_id
        log_event("turn.start", session_id, nodes=len(manager), path=len(manager.get_current_path()))
        initial: TurnState = {
            "session_id": session_id,
            "manager": manager,
            "turn": turn,
            "analysis": None,
            "analysis_explicit": False,
            "created_ids": [],
            "degraded_reasons": [],
            "events": [],
            "failure": None,
        }
        final = self._graph.invoke(initial)
        failure = final.get("failure")
        if failure is not None:
            raise failure
        return final["result"]


__all__ = ["GradingOrchestrator", "PIPELINE"]
