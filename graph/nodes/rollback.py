"""Restore the pre-turn tree after a failed mutation."""
from __future__ import annotations

import logging
from typing import Any, Dict

from observability.logger import log_event
from observability.tracing import span

from ..capabilities import Capabilities
from ..state import TurnState


def run(state: TurnState, caps: Capabilities) -> Dict[str, Any]:
    events = state["events"]
    snapshot = state.get("snapshot")
    with span(events, "rollback"):
        if snapshot is not None:
            state["manager"].restore(snapshot)
    log_event(
        "turn.rolled_back",
        state["session_id"],
        level=logging.ERROR,
        reason=str(state.get("failure")),
        discarded=state.get("created_ids") or [],
    )
    return {"events": events}
