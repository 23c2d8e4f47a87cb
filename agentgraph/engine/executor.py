"""Node Executor

Runs a session's nodes one at a time in scheduler order against the
inference capability, recording each result on the node itself.

Input aggregation for a node:
- No predecessors: the node's own authored input
- One or more predecessors: their outputs from this run, in edge-list order,
  joined by settings.NODE_INPUT_SEPARATOR. A predecessor that failed or
  produced nothing contributes nothing.

A failed invocation marks the node as error and execution moves on to the
next node; nothing is raised to the caller and nothing is retried.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .. import settings
from ..agents.inference import InferenceCapability, InferenceContext
from .errors import PerNodeExecutionError
from .models import GraphSession, GraphStatus, Node, NodeStatus
from .scheduler import topological_sort
from .status import derive_status

logger = logging.getLogger(__name__)

NodeUpdateCallback = Callable[[Node], Awaitable[None]]


@dataclass
class NodeResult:
    """Outcome of one node in one run."""

    node_id: str
    status: NodeStatus
    output: Optional[str] = None
    confidence: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "status": self.status.value,
            "output": self.output,
            "confidence": self.confidence,
            "error": self.error,
            "durationMs": self.duration_ms,
        }


@dataclass
class ExecutionReport:
    """Request-level result of an execute call.

    Always returned, even when some nodes failed; callers inspect the
    per-node results (or status == STUCK) to detect partial failure.
    """

    session_id: str
    executed_node_count: int
    results: List[NodeResult] = field(default_factory=list)
    status: GraphStatus = GraphStatus.IDLE

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status == NodeStatus.COMPLETE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "executedNodeCount": self.executed_node_count,
            "perNodeResults": [r.to_dict() for r in self.results],
            "status": self.status.value,
        }


def collect_predecessors(session: GraphSession) -> Dict[str, List[str]]:
    """Map node id -> direct predecessor ids, in edge-list order."""
    predecessors: Dict[str, List[str]] = defaultdict(list)
    for edge in session.edges:
        predecessors[edge.target].append(edge.source)
    return predecessors


async def execute_graph_nodes(
    session: GraphSession,
    capability: InferenceCapability,
    on_node_update: Optional[NodeUpdateCallback] = None,
) -> ExecutionReport:
    """Execute every node of a session in topological order.

    The session's nodes are mutated in place and its status is re-derived
    when the run ends.

    Args:
        session: Session to execute (validated, acyclic)
        capability: Inference provider
        on_node_update: Optional coroutine called after each node status change

    Returns:
        ExecutionReport with one NodeResult per node, in run order

    Raises:
        CycleError: If the edges contain a cycle (nothing is executed)
    """
    order = topological_sort(session.nodes, session.edges)
    by_id = {node.id: node for node in session.nodes}
    predecessors = collect_predecessors(session)

    # Outputs produced during this run only
    run_outputs: Dict[str, str] = {}
    prior_outputs: List[str] = []
    results: List[NodeResult] = []

    logger.info(f"Executing session {session.id}: {len(order)} nodes, order={order}")

    for node_id in order:
        node = by_id[node_id]
        upstream = predecessors.get(node_id, [])
        predecessor_outputs = [run_outputs[p] for p in upstream if run_outputs.get(p)]

        if upstream:
            effective_input = settings.NODE_INPUT_SEPARATOR.join(predecessor_outputs)
        else:
            effective_input = node.data.input

        node.data.status = NodeStatus.RUNNING
        node.data.error = None
        if on_node_update is not None:
            await on_node_update(node)

        context = InferenceContext(
            session_id=session.id,
            owner_id=session.owner_id,
            context_id=session.context_id,
            predecessor_outputs=predecessor_outputs,
            prior_outputs=list(prior_outputs),
        )

        started = time.monotonic()
        try:
            inference = await capability.invoke(node.type, effective_input, context)
        except Exception as e:
            failure = PerNodeExecutionError(node_id, str(e) or type(e).__name__)
            duration_ms = int((time.monotonic() - started) * 1000)
            node.data.status = NodeStatus.ERROR
            node.data.error = failure.reason
            logger.warning(f"Session {session.id}: {failure}")
            results.append(NodeResult(
                node_id=node_id,
                status=NodeStatus.ERROR,
                error=failure.reason,
                duration_ms=duration_ms,
            ))
        else:
            duration_ms = int((time.monotonic() - started) * 1000)
            node.data.output = inference.text
            node.data.confidence = inference.confidence
            node.data.status = NodeStatus.COMPLETE
            run_outputs[node_id] = inference.text
            prior_outputs.append(inference.text)
            logger.info(
                f"Session {session.id}: node '{node_id}' ({node.type.value}) complete "
                f"in {duration_ms}ms, confidence={inference.confidence}"
            )
            results.append(NodeResult(
                node_id=node_id,
                status=NodeStatus.COMPLETE,
                output=inference.text,
                confidence=inference.confidence,
                duration_ms=duration_ms,
            ))

        if on_node_update is not None:
            await on_node_update(node)

    session.status = derive_status(session.nodes)
    report = ExecutionReport(
        session_id=session.id,
        executed_node_count=len(results),
        results=results,
        status=session.status,
    )
    logger.info(
        f"Session {session.id} executed: {report.success_count}/{len(results)} complete, "
        f"status={report.status.value}"
    )
    return report
