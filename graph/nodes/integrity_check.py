"""Full-tree integrity walk after the turn's mutations."""
from __future__ import annotations

import logging
from typing import Any, Dict

from observability.logger import log_event
from observability.tracing import span
from topic_tree.errors import TreeIntegrityError

from ..capabilities import Capabilities
from ..state import TurnState


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    with span(events, "integrity_check"):
        try:
            state["manager"].validate()
        except TreeIntegrityError as exc:
            log_event(
                "integrity.violation",
                state["session_id"],
                level=logging.ERROR,
                node_id=exc.node_id,
                reason=str(exc),
            )
            return {"failure": exc, "events": events}
    return {"events": events}
