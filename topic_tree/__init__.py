"""Topic tree domain: nodes, validation and the tree manager."""
from .errors import (
    AnalysisError,
    CapabilityError,
    DuplicateSessionError,
    GradingError,
    ScoringError,
    SessionNotFoundError,
    TreeIntegrityError,
    ValidationError,
)
from .manager import TreeManager, TreeStats
from .models import ConversationTree, SessionInfo, TopicNode, Turn

__all__ = [
    "AnalysisError",
    "CapabilityError",
    "ConversationTree",
    "DuplicateSessionError",
    "GradingError",
    "ScoringError",
    "SessionInfo",
    "SessionNotFoundError",
    "TopicNode",
    "TreeIntegrityError",
    "TreeManager",
    "TreeStats",
    "Turn",
    "ValidationError",
]
