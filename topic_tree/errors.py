"""Error taxonomy for the grading engine."""
from __future__ import annotations

from typing import Any, Optional


class GradingError(Exception):
    """Base class for all engine errors."""


class ValidationError(GradingError, ValueError):
    """Bad caller input, rejected before anything touches the tree."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class TreeIntegrityError(GradingError):
    """A mutation would violate, or did violate, a structural invariant."""

    def __init__(self, message: str, node_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class SessionNotFoundError(GradingError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:
        return self.args[0]


class DuplicateSessionError(ValidationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session already exists: {session_id}", field="session_id", value=session_id)


class CapabilityError(GradingError):
    """An injected capability failed or exceeded its time budget."""


class AnalysisError(CapabilityError):
    pass


class ScoringError(CapabilityError):
    pass


__all__ = [
    "AnalysisError",
    "CapabilityError",
    "DuplicateSessionError",
    "GradingError",
    "ScoringError",
    "SessionNotFoundError",
    "TreeIntegrityError",
    "ValidationError",
]
