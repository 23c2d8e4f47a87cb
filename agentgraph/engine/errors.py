"""Graph engine error taxonomy.

Every error carries a machine-readable code, a message, the affected node ids
and extra context, so the API layer can render it without string parsing.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class GraphEngineError(Exception):
    """Base class for all graph engine errors.

    Attributes:
        code: Error code
        message: Error message
        node_ids: List of affected node IDs
        context: Additional error context
    """

    default_code = "GRAPH_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        node_ids: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.node_ids = list(node_ids or [])
        self.context = dict(context or {})
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "code": self.code,
            "message": self.message,
            "node_ids": self.node_ids,
            "context": self.context,
        }


class ValidationError(GraphEngineError):
    """Malformed node/edge, unknown node type or missing position.

    Raised before any mutation; the whole request is rejected.
    """

    default_code = "VALIDATION_FAILED"


class CycleError(ValidationError):
    """The edge set is not acyclic.

    Attributes:
        cycle_path: Node IDs forming the cycle (last == first)
    """

    default_code = "CIRCULAR_DEPENDENCY"

    def __init__(self, cycle_path: List[str], message: Optional[str] = None):
        self.cycle_path = list(cycle_path)
        members = self.cycle_path[:-1] if len(self.cycle_path) > 1 else self.cycle_path
        super().__init__(
            message or f"Graph contains a cycle: {' -> '.join(self.cycle_path)}",
            node_ids=members,
            context={"cycle_path": self.cycle_path},
        )


class NotFoundError(GraphEngineError):
    """A referenced session or node does not exist."""

    default_code = "NOT_FOUND"

    @classmethod
    def session(cls, session_id: str) -> "NotFoundError":
        return cls(
            f"Graph session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            context={"session_id": session_id},
        )

    @classmethod
    def node(cls, session_id: str, node_id: str) -> "NotFoundError":
        return cls(
            f"Node '{node_id}' not found in session {session_id}",
            code="NODE_NOT_FOUND",
            node_ids=[node_id],
            context={"session_id": session_id},
        )


class ConflictError(GraphEngineError):
    """A session already exists for the requested (owner, context) pair."""

    default_code = "SESSION_EXISTS"


class PerNodeExecutionError(GraphEngineError):
    """An inference invocation failed for one node during execute.

    Node-local: recorded on the node and the run result, never raised
    to the caller of execute.
    """

    default_code = "NODE_EXECUTION_FAILED"

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(
            f"Node '{node_id}' failed: {reason}",
            node_ids=[node_id],
            context={"reason": reason},
        )


class AuditDegradationError(GraphEngineError):
    """The critic response could not be turned into a judgment.

    Only raised inside the audit engine, which always converts it to
    the neutral fallback judgment.
    """

    default_code = "AUDIT_DEGRADED"
