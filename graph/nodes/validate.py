"""Input gate: reject bad turns before anything touches the tree."""
from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic import ValidationError as SchemaError

from agents.response_analyzer import signals_from_metadata
from observability.logger import log_event
from observability.tracing import span
from topic_tree.errors import ValidationError
from topic_tree.validation import safe_error_message, sanitize_turn, validate_session_id

from ..capabilities import Capabilities
from ..state import TurnState


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    session_id = state["session_id"]
    with span(events, "validate"):
        try:
            validate_session_id(session_id)
            turn = sanitize_turn(state["turn"])
            try:
                analysis = signals_from_metadata(turn)
            except SchemaError as exc:
                raise ValidationError(
                    f"Invalid engagement signals in metadata: {exc.error_count()} errors", field="metadata"
                ) from exc
        except ValidationError as exc:
            log_event("turn.rejected", session_id, level=logging.WARNING, reason=safe_error_message(exc))
            return {"failure": exc, "events": events}
    return {
        "turn": turn,
        "analysis": analysis,
        "analysis_explicit": analysis is not None,
        "events": events,
    }
