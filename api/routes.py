"""FastAPI routes for grading session control."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from api.schemas import CreateSessionReq, DeleteResp, TurnReq
from graph.state import TurnResult
from graph.summary import InterviewSummary
from observability.logger import log_event
from services.engine import GradingService
from session_reports import render_summary_pdf
from topic_tree.errors import (
    DuplicateSessionError,
    GradingError,
    SessionNotFoundError,
    TreeIntegrityError,
    ValidationError,
)
from topic_tree.models import ConversationTree, SessionInfo, TopicNode
from topic_tree.validation import safe_error_message

router = APIRouter(prefix="/api/grading-sessions")

_SERVICE: Optional[GradingService] = None


def get_service() -> GradingService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = GradingService()
    return _SERVICE


def set_service(service: Optional[GradingService]) -> None:
    global _SERVICE
    _SERVICE = service


def _http_error(exc: GradingError) -> HTTPException:
    if isinstance(exc, SessionNotFoundError):
        status = 404
    elif isinstance(exc, DuplicateSessionError):
        status = 409
    elif isinstance(exc, ValidationError):
        status = 422
    elif isinstance(exc, TreeIntegrityError):
        status = 409
    else:
        status = 500
    return HTTPException(status_code=status, detail=safe_error_message(exc))


@router.post("", response_model=SessionInfo, status_code=201)
def create_session(req: CreateSessionReq, service: GradingService = Depends(get_service)) -> SessionInfo:
    try:
        return service.create_session(req.session_id, req.metadata)
    except GradingError as exc:
        raise _http_error(exc) from exc


@router.post("/{session_id}/turns", response_model=TurnResult)
def post_turn(session_id: str, req: TurnReq, service: GradingService = Depends(get_service)) -> TurnResult:
    try:
        return service.process_turn(session_id, req.to_turn())
    except GradingError as exc:
        log_event("api.turn_failed", session_id, reason=safe_error_message(exc))
        raise _http_error(exc) from exc


@router.get("/{session_id}/tree", response_model=ConversationTree)
def get_tree(session_id: str, service: GradingService = Depends(get_service)) -> ConversationTree:
    try:
        return service.get_tree(session_id)
    except GradingError as exc:
        raise _http_error(exc) from exc


@router.get("/{session_id}/deepest-unvisited", response_model=Optional[TopicNode])
def deepest_unvisited(session_id: str, service: GradingService = Depends(get_service)) -> Optional[TopicNode]:
    try:
        return service.get_deepest_unvisited_branch(session_id)
    except GradingError as exc:
        raise _http_error(exc) from exc


@router.post("/{session_id}/nodes/{node_id}/visit", response_model=TopicNode)
def mark_visited(session_id: str, node_id: str, service: GradingService = Depends(get_service)) -> TopicNode:
    try:
        return service.mark_visited(session_id, node_id)
    except GradingError as exc:
        raise _http_error(exc) from exc


@router.get("/{session_id}/summary", response_model=InterviewSummary)
def get_summary(session_id: str, service: GradingService = Depends(get_service)) -> InterviewSummary:
    try:
        return service.get_summary(session_id)
    except GradingError as exc:
        raise _http_error(exc) from exc


@router.get("/{session_id}/summary.pdf")
def get_summary_pdf(session_id: str, service: GradingService = Depends(get_service)) -> Response:
    try:
        summary = service.get_summary(session_id)
    except GradingError as exc:
        raise _http_error(exc) from exc
    payload = render_summary_pdf(summary, session_id)
    headers = {"Content-Disposition": f"attachment; filename=\"{session_id}-summary.pdf\""}
    return Response(content=payload, media_type="application/pdf", headers=headers)


@router.delete("/{session_id}", response_model=DeleteResp)
def delete_session(session_id: str, service: GradingService = Depends(get_service)) -> DeleteResp:
    if not service.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return DeleteResp(session_id=session_id, deleted=True)
