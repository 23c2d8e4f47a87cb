"""Graph Engine: validation, scheduling, execution, status, storage consistency and audit."""

from .audit import AuditEngine, AuditJudgment, AuditRecord, parse_judgment
from .coordinator import DiagnosticsLog, SessionCache, SessionCoordinator, SessionStore
from .errors import (
    AuditDegradationError,
    ConflictError,
    CycleError,
    GraphEngineError,
    NotFoundError,
    PerNodeExecutionError,
    ValidationError,
)
from .executor import ExecutionReport, NodeResult, execute_graph_nodes
from .models import (
    Edge,
    GraphSession,
    GraphStatus,
    Node,
    NodeData,
    NodeStatus,
    Position,
)
from .scheduler import topological_sort
from .status import derive_status
from .validator import ValidatedGraph, find_cycle, validate_graph

__all__ = [
    "AuditEngine",
    "AuditJudgment",
    "AuditRecord",
    "parse_judgment",
    "DiagnosticsLog",
    "SessionCache",
    "SessionCoordinator",
    "SessionStore",
    "AuditDegradationError",
    "ConflictError",
    "CycleError",
    "GraphEngineError",
    "NotFoundError",
    "PerNodeExecutionError",
    "ValidationError",
    "ExecutionReport",
    "NodeResult",
    "execute_graph_nodes",
    "Edge",
    "GraphSession",
    "GraphStatus",
    "Node",
    "NodeData",
    "NodeStatus",
    "Position",
    "topological_sort",
    "derive_status",
    "ValidatedGraph",
    "find_cycle",
    "validate_graph",
]
