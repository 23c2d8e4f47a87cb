"""SQLAlchemy ORM models for the graph session store.

Tables:
- graph_sessions: One row per (owner, context) workflow graph, nodes/edges as JSON
- node_audits: Hallucination audit judgments, kept apart from the session
- action_logs: User actions on graph sessions (create, update, execute, ...)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_uuid() -> str:
    return str(uuid.uuid4())


# ─── Graph Session ───────────────────────────────────────────────────


class GraphSessionModel(Base):
    """Persistent graph session.

    Stores the node and edge lists as JSON in their wire form, along with
    the derived status and the sentiment score.
    """

    __tablename__ = "graph_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    context_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    nodes: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list, comment="Ordered node records",
    )
    edges: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list, comment="Ordered edge records",
    )

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="IDLE",
        comment="IDLE | FLOW | STUCK",
    )
    sentiment_score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_graph_sessions_owner_id", "owner_id"),
        # At most one session per (owner, context); NULL context counts as a value
        Index(
            "uq_graph_sessions_owner_context", "owner_id", "context_id", unique=True,
            sqlite_where=text("context_id IS NOT NULL"),
            postgresql_where=text("context_id IS NOT NULL"),
        ),
        Index(
            "uq_graph_sessions_owner_no_context", "owner_id", unique=True,
            sqlite_where=text("context_id IS NULL"),
            postgresql_where=text("context_id IS NULL"),
        ),
        Index("ix_graph_sessions_context_id", "context_id"),
        Index("ix_graph_sessions_updated_at", "updated_at"),
    )


# ─── Node Audit ──────────────────────────────────────────────────────


class NodeAuditModel(Base):
    """One hallucination audit of one node's output."""

    __tablename__ = "node_audits"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    node_id: Mapped[str] = mapped_column(String(128), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    is_hallucination: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False, default="")
    suggested_fix: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_node_audits_session_id", "session_id"),
        Index("ix_node_audits_node_id", "node_id"),
    )


# ─── Action Log ──────────────────────────────────────────────────────


class ActionLogModel(Base):
    """User action on a graph session."""

    __tablename__ = "action_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[str] = mapped_column(
        String(32), nullable=False,
        comment="GRAPH_CREATE | GRAPH_UPDATE | GRAPH_EXECUTE | GRAPH_DELETE | GRAPH_CLONE | NODE_AUDIT",
    )
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_action_logs_owner_id", "owner_id"),
        Index("ix_action_logs_action", "action"),
    )
