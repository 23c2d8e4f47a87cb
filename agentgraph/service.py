"""Graph Service

Single facade the API layer calls. Composes the agent catalog, the
cache/store coordinator, the inference capability and (optionally) a
diagnostics log.

Control flow:
- sync:    Validator -> Status Aggregator -> Coordinator (write)
- execute: Scheduler -> Executor (per node) -> Status Aggregator -> Coordinator (write)
- audit:   Audit Engine against one node's stored output (no write to the session)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from . import settings
from .agents.inference import InferenceCapability
from .engine.audit import AuditEngine, AuditJudgment, AuditRecord
from .engine.coordinator import DiagnosticsLog, SessionCoordinator
from .engine.errors import ConflictError, NotFoundError, ValidationError
from .engine.executor import ExecutionReport, NodeUpdateCallback, execute_graph_nodes
from .engine.models import (
    Edge,
    GraphSession,
    GraphStatus,
    Node,
    NodeData,
    new_session_id,
    utcnow,
)
from .engine.status import derive_status
from .engine.validator import ValidatedGraph, validate_graph
from .nodes.catalog import AgentCatalog

logger = logging.getLogger(__name__)

# Action types written to the diagnostics log
GRAPH_CREATE = "GRAPH_CREATE"
GRAPH_UPDATE = "GRAPH_UPDATE"
GRAPH_EXECUTE = "GRAPH_EXECUTE"
GRAPH_DELETE = "GRAPH_DELETE"
GRAPH_CLONE = "GRAPH_CLONE"
NODE_AUDIT = "NODE_AUDIT"


@dataclass
class SyncResult:
    session_id: str
    status: GraphStatus
    node_count: int
    edge_count: int
    last_synced_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "status": self.status.value,
            "nodeCount": self.node_count,
            "edgeCount": self.edge_count,
            "lastSyncedAt": self.last_synced_at.isoformat(),
        }


def check_sentiment(value: Any) -> int:
    """Sentiment must be an integer 0..100."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ValidationError(
            f"Invalid sentiment score: {value!r} (expected an integer 0-100)",
            code="INVALID_SENTIMENT",
            context={"sentiment": value},
        )
    return value


class GraphService:
    """Facade over validation, execution, storage and audit of graph sessions."""

    def __init__(
        self,
        catalog: AgentCatalog,
        coordinator: SessionCoordinator,
        capability: InferenceCapability,
        diagnostics: Optional[DiagnosticsLog] = None,
    ):
        self.catalog = catalog
        self.coordinator = coordinator
        self.capability = capability
        self.diagnostics = diagnostics
        self.auditor = AuditEngine(capability)

    async def _log_action(self, owner_id: str, action: str, details: Dict[str, Any]) -> None:
        if self.diagnostics is None:
            return
        try:
            await self.diagnostics.log_action(owner_id, action, details)
        except Exception as e:
            logger.error(f"Failed to log {action} for owner={owner_id}: {e}")

    async def _load(self, session_id: str) -> GraphSession:
        session = await self.coordinator.read(session_id)
        if session is None:
            raise NotFoundError.session(session_id)
        return session

    # =================================================================
    # Sessions
    # =================================================================

    async def create_session(self, owner_id: str, context_id: Optional[str] = None) -> GraphSession:
        """Return the (owner, context) session, creating an empty one if needed."""
        existing = await self.coordinator.store.find(owner_id, context_id)
        if existing is not None:
            return existing

        session = GraphSession(
            id=new_session_id(),
            owner_id=owner_id,
            context_id=context_id,
            status=GraphStatus.IDLE,
            sentiment_score=settings.DEFAULT_SENTIMENT,
        )
        try:
            await self.coordinator.write(session)
        except ConflictError:
            # A concurrent create for the same pair won; return its session
            winner = await self.coordinator.store.find(owner_id, context_id)
            if winner is None:
                raise
            logger.info(f"Session for owner={owner_id} context={context_id} created concurrently: {winner.id}")
            return winner
        await self._log_action(owner_id, GRAPH_CREATE, {
            "sessionId": session.id,
            "contextId": context_id,
        })
        logger.info(f"Created session {session.id} for owner={owner_id} context={context_id}")
        return session

    async def get_session(self, session_id: str) -> GraphSession:
        """Raises NotFoundError if the session does not exist."""
        return await self._load(session_id)

    async def delete_session(self, session_id: str) -> None:
        session = await self._load(session_id)
        await self.coordinator.delete(session_id)
        await self._log_action(session.owner_id, GRAPH_DELETE, {"sessionId": session_id})
        logger.info(f"Deleted session {session_id}")

    async def list_sessions(
        self,
        owner_id: str,
        limit: int = settings.SESSION_HISTORY_LIMIT,
    ) -> List[GraphSession]:
        """Owner's graph history, most recently updated first."""
        return await self.coordinator.store.list_by_owner(owner_id, limit)

    async def list_context_sessions(self, context_id: str) -> List[GraphSession]:
        return await self.coordinator.store.list_by_context(context_id)

    async def delete_context_sessions(self, context_id: str) -> int:
        """Cascade delete for a removed context. Returns the number of sessions deleted."""
        sessions = await self.coordinator.store.list_by_context(context_id)
        deleted = 0
        for session in sessions:
            if await self.coordinator.delete(session.id):
                deleted += 1
        logger.info(f"Deleted {deleted} sessions for context {context_id}")
        return deleted

    async def clone_session(
        self,
        session_id: str,
        owner_id: str,
        context_id: Optional[str] = None,
    ) -> GraphSession:
        """Copy a session's graph into a fresh IDLE session for (owner, context).

        Run results are not copied: cloned nodes keep their authored input only.

        Raises:
            NotFoundError: If the source session does not exist
            ConflictError: If the target (owner, context) pair already has a session
        """
        original = await self._load(session_id)
        if await self.coordinator.store.find(owner_id, context_id) is not None:
            raise ConflictError(
                f"A session already exists for owner={owner_id} context={context_id}",
                context={"owner_id": owner_id, "context_id": context_id},
            )

        nodes = [
            Node(
                id=node.id,
                type=node.type,
                position=node.position,
                data=NodeData(input=node.data.input),
            )
            for node in original.copy().nodes
        ]
        clone = GraphSession(
            id=new_session_id(),
            owner_id=owner_id,
            context_id=context_id,
            nodes=nodes,
            edges=[Edge(e.id, e.source, e.target, e.tag) for e in original.edges],
            sentiment_score=settings.DEFAULT_SENTIMENT,
        )
        clone.status = derive_status(clone.nodes)
        await self.coordinator.write(clone)
        await self._log_action(owner_id, GRAPH_CLONE, {
            "originalSessionId": session_id,
            "newSessionId": clone.id,
        })
        logger.info(f"Cloned session {session_id} -> {clone.id}")
        return clone

    # =================================================================
    # Sync
    # =================================================================

    def validate(
        self,
        nodes: Sequence[Union[Node, Mapping[str, Any]]],
        edges: Sequence[Union[Edge, Mapping[str, Any]]],
    ) -> ValidatedGraph:
        """Run the structural checks without touching any session."""
        return validate_graph(nodes, edges, self.catalog)

    async def sync_graph(
        self,
        session_id: str,
        nodes: Sequence[Union[Node, Mapping[str, Any]]],
        edges: Sequence[Union[Edge, Mapping[str, Any]]],
        status: Optional[Union[GraphStatus, str]] = None,
        sentiment: Optional[int] = None,
    ) -> SyncResult:
        """Replace a session's nodes and edges wholesale.

        All-or-nothing: any validation failure raises before anything is
        written. The aggregate status is always derived from the nodes.

        Raises:
            NotFoundError: If the session does not exist
            ValidationError / CycleError: If the payload is rejected
        """
        current = await self._load(session_id)
        graph = validate_graph(nodes, edges, self.catalog)
        sentiment_score = (
            current.sentiment_score if sentiment is None else check_sentiment(sentiment)
        )

        derived = derive_status(graph.nodes)
        if status is not None:
            requested = status.value if isinstance(status, GraphStatus) else str(status)
            if requested != derived.value:
                logger.warning(
                    f"Session {session_id}: ignoring caller status {requested!r}, "
                    f"derived {derived.value}"
                )

        updated = GraphSession(
            id=current.id,
            owner_id=current.owner_id,
            context_id=current.context_id,
            nodes=graph.nodes,
            edges=graph.edges,
            status=derived,
            sentiment_score=sentiment_score,
            created_at=current.created_at,
            updated_at=utcnow(),
        )
        await self.coordinator.write(updated)

        if len(updated.nodes) != len(current.nodes):
            await self._log_action(current.owner_id, GRAPH_UPDATE, {
                "sessionId": session_id,
                "nodeCount": len(updated.nodes),
                "previousNodeCount": len(current.nodes),
            })

        logger.info(
            f"Synced session {session_id}: {len(updated.nodes)} nodes, "
            f"{len(updated.edges)} edges, status={derived.value}"
        )
        return SyncResult(
            session_id=session_id,
            status=derived,
            node_count=len(updated.nodes),
            edge_count=len(updated.edges),
            last_synced_at=updated.updated_at,
        )

    # =================================================================
    # Execute
    # =================================================================

    async def execute_graph(
        self,
        session_id: str,
        on_node_update: Optional[NodeUpdateCallback] = None,
    ) -> ExecutionReport:
        """Run every node in topological order and persist the results.

        Per-node failures are recorded on the nodes and never raised.

        Raises:
            NotFoundError: If the session does not exist
            ValidationError: If the session has no nodes (EMPTY_GRAPH)
        """
        session = await self._load(session_id)
        if not session.nodes:
            raise ValidationError(
                "Graph has no nodes to execute",
                code="EMPTY_GRAPH",
                context={"session_id": session_id},
            )

        report = await execute_graph_nodes(session, self.capability, on_node_update)
        session.updated_at = utcnow()
        await self.coordinator.write(session)

        await self._log_action(session.owner_id, GRAPH_EXECUTE, {
            "sessionId": session_id,
            "nodeCount": report.executed_node_count,
            "successCount": report.success_count,
        })
        return report

    # =================================================================
    # Audit
    # =================================================================

    async def audit_node(self, session_id: str, node_id: str) -> AuditJudgment:
        """Critic pass over one node's stored output. Never mutates the session.

        Raises:
            NotFoundError: If the session or node does not exist
            ValidationError: If the node has no output (NODE_HAS_NO_OUTPUT)
        """
        session = await self._load(session_id)
        judgment = await self.auditor.audit(session, node_id)

        if self.diagnostics is not None:
            try:
                await self.diagnostics.record_audit(AuditRecord(
                    session_id=session_id,
                    node_id=node_id,
                    owner_id=session.owner_id,
                    judgment=judgment,
                ))
            except Exception as e:
                logger.error(f"Failed to record audit for {session_id}/{node_id}: {e}")
        await self._log_action(session.owner_id, NODE_AUDIT, {
            "sessionId": session_id,
            "nodeId": node_id,
            "isHallucination": judgment.is_hallucination,
            "degraded": judgment.degraded,
        })
        return judgment

    async def list_audits(self, session_id: str, node_id: Optional[str] = None) -> List[AuditRecord]:
        await self._load(session_id)
        if self.diagnostics is None:
            return []
        return await self.diagnostics.list_audits(session_id, node_id)
