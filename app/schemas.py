"""Pydantic schemas for the graph session API.

Node and edge payloads are typed as plain JSON values. The
engine's validator owns structural checks and their error codes.
Wire keys are camelCase; snake_case names are accepted on input too.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ─── Requests ────────────────────────────────────────────────────────


class CreateSessionRequest(_WireModel):
    """Request for POST /api/v2/graphs."""
    owner_id: str = Field(..., alias="ownerId", min_length=1)
    context_id: Optional[str] = Field(None, alias="contextId")


class SyncGraphRequest(_WireModel):
    """Request for PUT /api/v2/graphs/{id}/sync (full replacement)."""
    nodes: List[Any] = Field(default_factory=list)
    edges: Optional[List[Any]] = None
    connections: Optional[List[Any]] = Field(
        None, description="Alias of edges accepted from older clients",
    )
    status: Optional[str] = Field(None, description="Ignored if it disagrees with the derived status")
    sentiment: Optional[Any] = Field(
        None, validation_alias=AliasChoices("sentiment", "sentimentScore"),
    )

    def edge_list(self) -> List[Any]:
        if self.edges is not None:
            return self.edges
        return self.connections or []


class CloneSessionRequest(_WireModel):
    """Request for POST /api/v2/graphs/{id}/clone."""
    owner_id: str = Field(..., alias="ownerId", min_length=1)
    context_id: Optional[str] = Field(None, alias="contextId")


class ValidateGraphRequest(_WireModel):
    """Request for POST /api/v2/validate-graph."""
    nodes: List[Any] = Field(default_factory=list)
    edges: Optional[List[Any]] = None
    connections: Optional[List[Any]] = None

    def edge_list(self) -> List[Any]:
        if self.edges is not None:
            return self.edges
        return self.connections or []


# ─── Responses ───────────────────────────────────────────────────────


class SessionResponse(_WireModel):
    id: str
    owner_id: str = Field(..., alias="ownerId")
    context_id: Optional[str] = Field(None, alias="contextId")
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    status: str
    sentiment_score: int = Field(..., alias="sentimentScore")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")


class SessionListResponse(BaseModel):
    items: List[SessionResponse]
    total: int


class SyncResponse(_WireModel):
    session_id: str = Field(..., alias="sessionId")
    status: str
    node_count: int = Field(..., alias="nodeCount")
    edge_count: int = Field(..., alias="edgeCount")
    last_synced_at: str = Field(..., alias="lastSyncedAt")


class NodeResultResponse(_WireModel):
    node_id: str = Field(..., alias="nodeId")
    status: str
    output: Optional[str] = None
    confidence: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = Field(0, alias="durationMs")


class ExecutionResponse(_WireModel):
    session_id: str = Field(..., alias="sessionId")
    executed_node_count: int = Field(..., alias="executedNodeCount")
    per_node_results: List[NodeResultResponse] = Field(..., alias="perNodeResults")
    status: str


class AuditResponse(_WireModel):
    is_hallucination: bool = Field(..., alias="isHallucination")
    confidence: int
    explanation: str
    suggested_fix: Optional[str] = Field(None, alias="suggestedFix")
    degraded: bool = False


class AuditRecordResponse(AuditResponse):
    session_id: str = Field(..., alias="sessionId")
    node_id: str = Field(..., alias="nodeId")
    created_at: str = Field(..., alias="createdAt")


class AgentTypeResponse(BaseModel):
    agent_type: str
    display_name: str
    description: str
    category: str
    cost: int
    required_level: int


class ValidateGraphResponse(BaseModel):
    valid: bool
    error: Optional[Dict[str, Any]] = None


class ContextDeleteResponse(_WireModel):
    context_id: str = Field(..., alias="contextId")
    deleted: int
