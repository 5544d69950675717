"""Pydantic schemas for the grading session API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from topic_tree.models import Turn, utcnow


class CreateSessionReq(BaseModel):
    session_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TurnReq(BaseModel):
    prompt: str
    response: str
    timestamp: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_turn(self) -> Turn:
        return Turn(
            prompt=self.prompt,
            response=self.response,
            timestamp=self.timestamp or utcnow(),
            metadata=dict(self.metadata),
        )


class DeleteResp(BaseModel):
    session_id: str
    deleted: bool
