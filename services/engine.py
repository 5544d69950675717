"""Facade tying the session registry to the grading orchestrator."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from agents.response_analyzer import ResponseAnalyzer
from agents.scoring import ScoringEngine, ScoringStrategy
from agents.topic_analyzer import TopicAnalyzer
from graph.build import GradingOrchestrator
from graph.state import TurnResult
from graph.summary import InterviewSummary, build_summary
from observability.logger import log_event
from services import capability
from services.persistence import PersistenceAdapter
from services.sessions import Clock, MemoryStats, SessionManager
from topic_tree.models import ConversationTree, SessionInfo, TopicNode, Turn
from topic_tree.validation import validate_node_id


class GradingService:
    """Entry point for collaborators: one orchestrator shared by every session."""

    def __init__(
        self,
        sessions: Optional[SessionManager] = None,
        orchestrator: Optional[GradingOrchestrator] = None,
        *,
        topic_analyzer: Optional[TopicAnalyzer] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        response_analyzer: Optional[ResponseAnalyzer] = None,
        adapter: Optional[PersistenceAdapter] = None,
        clock: Optional[Clock] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.sessions = sessions or SessionManager(adapter=adapter, clock=clock)
        self.orchestrator = orchestrator or GradingOrchestrator(
            topic_analyzer,
            scoring_engine,
            response_analyzer,
            timeout_s=timeout_s,
        )

    # ------------------------------------------------------------------
    # Turns and navigation
    # ------------------------------------------------------------------
    def process_turn(self, session_id: str, turn: Turn) -> TurnResult:
        with self.sessions.session(session_id) as manager:
            return self.orchestrator.process_turn(manager, turn)

    def get_tree(self, session_id: str) -> ConversationTree:
        return self.sessions.get_session_tree(session_id)

    def get_deepest_unvisited_branch(self, session_id: str) -> Optional[TopicNode]:
        with self.sessions.session(session_id) as manager:
            node = manager.get_deepest_unvisited_branch()
            return node.model_copy(deep=True) if node is not None else None

    def mark_visited(self, session_id: str, node_id: str) -> TopicNode:
        validate_node_id(node_id)
        with self.sessions.session(session_id) as manager:
            node = manager.mark_visited(node_id)
            log_event("node.visited", session_id, node_id=node_id, visits=node.metadata.visit_count)
            return node.model_copy(deep=True)

    def get_summary(self, session_id: str) -> InterviewSummary:
        return build_summary(self.get_tree(session_id))

    # ------------------------------------------------------------------
    # Capability injection
    # ------------------------------------------------------------------
    def set_scoring_strategy(self, strategy: ScoringStrategy) -> None:
        self.orchestrator.set_scoring_strategy(strategy)

    def set_topic_analyzer(self, analyzer: TopicAnalyzer) -> None:
        self.orchestrator.set_topic_analyzer(analyzer)

    def set_response_analyzer(self, analyzer: ResponseAnalyzer) -> None:
        self.orchestrator.set_response_analyzer(analyzer)

    # ------------------------------------------------------------------
    # Session pass-throughs
    # ------------------------------------------------------------------
    def create_session(self, session_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> SessionInfo:
        return self.sessions.create_session(session_id, metadata)

    def get_session(self, session_id: str) -> SessionInfo:
        return self.sessions.get_session(session_id)

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.delete_session(session_id)

    def list_sessions(self) -> List[SessionInfo]:
        return self.sessions.list_sessions()

    def cleanup_expired_sessions(self, max_age_ms: Optional[float] = None) -> int:
        return self.sessions.cleanup_expired_sessions(max_age_ms)

    def save_session(self, session_id: str) -> None:
        self.sessions.save_session(session_id)

    def load_session(self, session_id: str) -> SessionInfo:
        return self.sessions.load_session(session_id)

    def get_memory_stats(self) -> MemoryStats:
        return self.sessions.get_memory_stats()

    def close(self) -> None:
        """Flush sessions to the adapter, if any, and release the capability pool."""
        self.sessions.dispose()
        capability.shutdown()


__all__ = ["GradingService"]
