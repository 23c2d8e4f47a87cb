"""Graph session data model.

Key Components:
- Position / NodeData / Node / Edge: the authored workflow graph
- GraphSession: one owner's persisted graph with its derived status
- NodeStatus / GraphStatus: per-node and aggregate execution status

Every type round-trips through to_dict()/from_dict(); the dict form is what
the cache, the durable store and the API exchange. from_dict() trusts its
input: untrusted payloads go through engine.validator first.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..nodes.catalog import AgentType
from .. import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return str(uuid.uuid4())


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utcnow()


def _format_ts(value: datetime) -> str:
    return value.isoformat()


class NodeStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class GraphStatus(str, Enum):
    IDLE = "IDLE"
    FLOW = "FLOW"
    STUCK = "STUCK"


@dataclass
class Position:
    """Opaque 2D display coordinate. Never read by the engine."""

    x: float
    y: float

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Position":
        return cls(x=data["x"], y=data["y"])


@dataclass
class NodeData:
    """Fixed per-node record: authored input and the last run's result.

    Attributes:
        input: Authored input text
        output: Produced output text (None until a successful run)
        confidence: Provider confidence 0-100 for the output
        status: Execution status
        error: Failure reason when status is error
    """

    input: str = ""
    output: Optional[str] = None
    confidence: Optional[int] = None
    status: NodeStatus = NodeStatus.IDLE
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input": self.input,
            "output": self.output,
            "confidence": self.confidence,
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "NodeData":
        data = data or {}
        return cls(
            input=data.get("input") or "",
            output=data.get("output"),
            confidence=data.get("confidence"),
            status=NodeStatus(data.get("status") or NodeStatus.IDLE.value),
            error=data.get("error"),
        )


@dataclass
class Node:
    """One step in an agent workflow."""

    id: str
    type: AgentType
    position: Position
    data: NodeData = field(default_factory=NodeData)

    def __post_init__(self):
        if not self.id:
            raise ValueError("node id cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "position": self.position.to_dict(),
            "data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Node":
        return cls(
            id=data["id"],
            type=AgentType(data["type"]),
            position=Position.from_dict(data["position"]),
            data=NodeData.from_dict(data.get("data")),
        )


def edge_tag(data: Mapping[str, Any]) -> Any:
    """Raw edge tag: "tag" when present and not null, else the legacy "type" key."""
    tag = data.get("tag")
    if tag is None:
        tag = data.get("type")
    return tag


@dataclass
class Edge:
    """Directed dependency: the source node's output feeds the target node.

    Attributes:
        id: Unique edge identifier
        source: Source node ID
        target: Target node ID
        tag: Optional edge semantics label (e.g. "data", "audit"); carried, not interpreted
    """

    id: str
    source: str
    target: str
    tag: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("edge id cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "tag": self.tag,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Edge":
        return cls(
            id=data["id"],
            source=data["source"],
            target=data["target"],
            tag=edge_tag(data),
        )


@dataclass
class GraphSession:
    """Persisted state of one owner's in-progress workflow graph."""

    id: str
    owner_id: str
    context_id: Optional[str] = None
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    status: GraphStatus = GraphStatus.IDLE
    sentiment_score: int = settings.DEFAULT_SENTIMENT
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def find_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def copy(self) -> "GraphSession":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "contextId": self.context_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "status": self.status.value,
            "sentimentScore": self.sentiment_score,
            "createdAt": _format_ts(self.created_at),
            "updatedAt": _format_ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GraphSession":
        edges = data.get("edges")
        if edges is None:
            edges = data.get("connections", [])
        return cls(
            id=data["id"],
            owner_id=data["ownerId"],
            context_id=data.get("contextId"),
            nodes=[Node.from_dict(n) for n in data.get("nodes", [])],
            edges=[Edge.from_dict(e) for e in edges],
            status=GraphStatus(data.get("status") or GraphStatus.IDLE.value),
            sentiment_score=int(data.get("sentimentScore", settings.DEFAULT_SENTIMENT)),
            created_at=_parse_ts(data.get("createdAt")),
            updated_at=_parse_ts(data.get("updatedAt")),
        )
