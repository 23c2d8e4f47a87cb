"""Graph session API endpoints.

The caller is assumed to be authorized already: owner ids are taken as
given. Engine errors map to HTTP as
ValidationError/CycleError -> 422, NotFoundError -> 404, ConflictError -> 409.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from agentgraph import settings
from agentgraph.engine.audit import AuditRecord
from agentgraph.engine.errors import (
    ConflictError,
    GraphEngineError,
    NotFoundError,
    ValidationError,
)
from agentgraph.engine.models import GraphSession
from agentgraph.service import GraphService
from app.debounce import SyncRateLimiter
from app.dependencies import get_graph_service, get_sync_limiter
from app.schemas import (
    AgentTypeResponse,
    AuditRecordResponse,
    AuditResponse,
    CloneSessionRequest,
    ContextDeleteResponse,
    CreateSessionRequest,
    ExecutionResponse,
    SessionListResponse,
    SessionResponse,
    SyncGraphRequest,
    SyncResponse,
    ValidateGraphRequest,
    ValidateGraphResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v2", tags=["graphs"])


# --- Helper functions ---


def _http_error(e: GraphEngineError) -> HTTPException:
    """Convert an engine error to an HTTPException."""
    if isinstance(e, NotFoundError):
        status_code = 404
    elif isinstance(e, ConflictError):
        status_code = 409
    elif isinstance(e, ValidationError):
        status_code = 422
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=e.to_dict())


def _session_to_response(session: GraphSession) -> SessionResponse:
    return SessionResponse.model_validate(session.to_dict())


def _record_to_response(record: AuditRecord) -> AuditRecordResponse:
    return AuditRecordResponse.model_validate({
        **record.judgment.to_dict(),
        "sessionId": record.session_id,
        "nodeId": record.node_id,
        "createdAt": record.created_at.isoformat(),
    })


# --- Session endpoints ---


@router.post("/graphs", response_model=SessionResponse, status_code=201)
async def create_graph_session(
    payload: CreateSessionRequest,
    service: GraphService = Depends(get_graph_service),
):
    """Get or create the session for an (owner, context) pair."""
    session = await service.create_session(payload.owner_id, payload.context_id)
    return _session_to_response(session)


@router.get("/graphs", response_model=SessionListResponse)
async def list_graph_sessions(
    owner_id: str = Query(..., min_length=1),
    limit: int = Query(settings.SESSION_HISTORY_LIMIT, ge=1, le=100),
    service: GraphService = Depends(get_graph_service),
):
    """Owner's graph history, most recently updated first."""
    sessions = await service.list_sessions(owner_id, limit)
    items = [_session_to_response(s) for s in sessions]
    return SessionListResponse(items=items, total=len(items))


@router.get("/graphs/{session_id}", response_model=SessionResponse)
async def get_graph_session(
    session_id: str,
    service: GraphService = Depends(get_graph_service),
):
    try:
        session = await service.get_session(session_id)
    except GraphEngineError as e:
        raise _http_error(e) from e
    return _session_to_response(session)


@router.delete("/graphs/{session_id}", status_code=204, response_class=Response)
async def delete_graph_session(
    session_id: str,
    service: GraphService = Depends(get_graph_service),
):
    try:
        await service.delete_session(session_id)
    except GraphEngineError as e:
        raise _http_error(e) from e
    return Response(status_code=204)


@router.put("/graphs/{session_id}/sync", response_model=SyncResponse)
async def sync_graph_session(
    session_id: str,
    payload: SyncGraphRequest,
    service: GraphService = Depends(get_graph_service),
    limiter: SyncRateLimiter = Depends(get_sync_limiter),
):
    """Replace the session's nodes and edges (all-or-nothing)."""
    if not limiter.allow(session_id):
        retry_after = limiter.retry_after(session_id)
        logger.warning(f"Sync rate limit hit for session {session_id}")
        raise HTTPException(
            status_code=429,
            detail={
                "code": "SYNC_RATE_LIMITED",
                "message": f"Too many syncs for session {session_id}",
                "node_ids": [],
                "context": {"retry_after": retry_after},
            },
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )

    try:
        result = await service.sync_graph(
            session_id,
            payload.nodes,
            payload.edge_list(),
            status=payload.status,
            sentiment=payload.sentiment,
        )
    except GraphEngineError as e:
        raise _http_error(e) from e
    return SyncResponse.model_validate(result.to_dict())


@router.post("/graphs/{session_id}/execute", response_model=ExecutionResponse)
async def execute_graph_session(
    session_id: str,
    service: GraphService = Depends(get_graph_service),
):
    """Run every node in topological order. Per-node failures are in the payload."""
    try:
        report = await service.execute_graph(session_id)
    except GraphEngineError as e:
        raise _http_error(e) from e
    return ExecutionResponse.model_validate(report.to_dict())


@router.post("/graphs/{session_id}/nodes/{node_id}/audit", response_model=AuditResponse)
async def audit_graph_node(
    session_id: str,
    node_id: str,
    service: GraphService = Depends(get_graph_service),
):
    try:
        judgment = await service.audit_node(session_id, node_id)
    except GraphEngineError as e:
        raise _http_error(e) from e
    return AuditResponse.model_validate(judgment.to_dict())


@router.get("/graphs/{session_id}/audits", response_model=List[AuditRecordResponse])
async def list_graph_audits(
    session_id: str,
    node_id: Optional[str] = Query(None),
    service: GraphService = Depends(get_graph_service),
):
    try:
        records = await service.list_audits(session_id, node_id)
    except GraphEngineError as e:
        raise _http_error(e) from e
    return [_record_to_response(r) for r in records]


@router.post("/graphs/{session_id}/clone", response_model=SessionResponse, status_code=201)
async def clone_graph_session(
    session_id: str,
    payload: CloneSessionRequest,
    service: GraphService = Depends(get_graph_service),
):
    try:
        clone = await service.clone_session(session_id, payload.owner_id, payload.context_id)
    except GraphEngineError as e:
        raise _http_error(e) from e
    return _session_to_response(clone)


# --- Context endpoints ---


@router.get("/contexts/{context_id}/graphs", response_model=SessionListResponse)
async def list_context_graphs(
    context_id: str,
    service: GraphService = Depends(get_graph_service),
):
    sessions = await service.list_context_sessions(context_id)
    items = [_session_to_response(s) for s in sessions]
    return SessionListResponse(items=items, total=len(items))


@router.delete("/contexts/{context_id}/graphs", response_model=ContextDeleteResponse)
async def delete_context_graphs(
    context_id: str,
    service: GraphService = Depends(get_graph_service),
):
    """Cascade delete when a context is removed."""
    deleted = await service.delete_context_sessions(context_id)
    return ContextDeleteResponse(context_id=context_id, deleted=deleted)


# --- Catalog / validation ---


@router.get("/agent-types", response_model=List[AgentTypeResponse])
async def list_agent_types(service: GraphService = Depends(get_graph_service)):
    """Enabled agent types for the node palette."""
    return [AgentTypeResponse(**p.to_dict()) for p in service.catalog.list_profiles()]


@router.post("/validate-graph", response_model=ValidateGraphResponse)
async def validate_graph_payload(
    payload: ValidateGraphRequest,
    service: GraphService = Depends(get_graph_service),
):
    """Inline validation without saving."""
    try:
        service.validate(payload.nodes, payload.edge_list())
    except GraphEngineError as e:
        return ValidateGraphResponse(valid=False, error=e.to_dict())
    return ValidateGraphResponse(valid=True)
