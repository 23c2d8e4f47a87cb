"""Graph Validator

Checks a candidate node list and edge list (full replacement, not a patch)
before any mutation is accepted.

Checks, in order:
1. Every node has a non-empty, unique id
2. Every node type is an enabled member of the agent catalog
3. Every node has a numeric two-dimensional position
4. Every node data record is well-formed
5. Every edge has a non-empty, unique id
6. Every edge source and target exists in the node id set
7. The directed graph is acyclic (DFS with an on-path set)

The first failing check raises; nothing is returned partially.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Union

from ..nodes.catalog import AgentCatalog
from .errors import CycleError, ValidationError
from .models import Edge, Node, NodeData, NodeStatus, Position, edge_tag

logger = logging.getLogger(__name__)

NodeInput = Union[Node, Mapping[str, Any]]
EdgeInput = Union[Edge, Mapping[str, Any]]


@dataclass
class ValidatedGraph:
    """Typed node and edge lists that passed every check."""

    nodes: List[Node]
    edges: List[Edge]


def _as_dict(item: Any) -> Any:
    if isinstance(item, (Node, Edge)):
        return item.to_dict()
    return item


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def validate_graph(
    nodes: Sequence[NodeInput],
    edges: Sequence[EdgeInput],
    catalog: AgentCatalog,
) -> ValidatedGraph:
    """Validate a full node/edge replacement and return the typed graph.

    Args:
        nodes: Candidate nodes (dicts in wire form, or Node objects)
        edges: Candidate edges (dicts in wire form, or Edge objects)
        catalog: Enabled agent types

    Returns:
        ValidatedGraph with typed nodes and edges in input order

    Raises:
        ValidationError: On the first structural failure
        CycleError: If the edges form a cycle
    """
    raw_nodes = [_as_dict(n) for n in nodes]
    raw_edges = [_as_dict(e) for e in edges]

    for index, raw in enumerate(raw_nodes):
        if not isinstance(raw, Mapping):
            raise ValidationError(
                f"Invalid node at index {index}: expected an object",
                code="INVALID_NODE_ID",
                context={"index": index},
            )

    # 1. Node ids
    seen_nodes: Set[str] = set()
    for index, raw in enumerate(raw_nodes):
        node_id = raw.get("id")
        if not _is_nonempty_str(node_id):
            raise ValidationError(
                f"Invalid node at index {index}: missing or invalid id",
                code="INVALID_NODE_ID",
                context={"index": index},
            )
        if node_id in seen_nodes:
            raise ValidationError(
                f"Duplicate node id: {node_id}",
                code="DUPLICATE_NODE_ID",
                node_ids=[node_id],
            )
        seen_nodes.add(node_id)

    # 2. Node types
    for raw in raw_nodes:
        if not catalog.is_known(raw.get("type")):
            raise ValidationError(
                f"Invalid node type: {raw.get('type')!r}",
                code="INVALID_NODE_TYPE",
                node_ids=[raw["id"]],
                context={"node_type": raw.get("type")},
            )

    # 3. Positions
    for raw in raw_nodes:
        position = raw.get("position")
        if (
            not isinstance(position, Mapping)
            or not _is_number(position.get("x"))
            or not _is_number(position.get("y"))
        ):
            raise ValidationError(
                f"Invalid node {raw['id']}: missing or invalid position",
                code="INVALID_POSITION",
                node_ids=[raw["id"]],
            )

    # 4. Node data records
    typed_nodes = [_build_node(raw, catalog) for raw in raw_nodes]

    for index, raw in enumerate(raw_edges):
        if not isinstance(raw, Mapping):
            raise ValidationError(
                f"Invalid edge at index {index}: expected an object",
                code="INVALID_EDGE_ID",
                context={"index": index},
            )

    # 5. Edge ids
    seen_edges: Set[str] = set()
    for index, raw in enumerate(raw_edges):
        edge_id = raw.get("id")
        if not _is_nonempty_str(edge_id):
            raise ValidationError(
                f"Invalid edge at index {index}: missing or invalid id",
                code="INVALID_EDGE_ID",
                context={"index": index},
            )
        if edge_id in seen_edges:
            raise ValidationError(
                f"Duplicate edge id: {edge_id}",
                code="DUPLICATE_EDGE_ID",
                context={"edge_id": edge_id},
            )
        seen_edges.add(edge_id)

    # 6. Referential integrity
    for raw in raw_edges:
        source, target = raw.get("source"), raw.get("target")
        if not isinstance(source, str) or source not in seen_nodes:
            raise ValidationError(
                f"Invalid edge {raw['id']}: source node {source!r} not found",
                code="UNKNOWN_EDGE_SOURCE",
                context={"edge_id": raw["id"], "source": source},
            )
        if not isinstance(target, str) or target not in seen_nodes:
            raise ValidationError(
                f"Invalid edge {raw['id']}: target node {target!r} not found",
                code="UNKNOWN_EDGE_TARGET",
                context={"edge_id": raw["id"], "target": target},
            )
        tag = edge_tag(raw)
        if tag is not None and not isinstance(tag, str):
            raise ValidationError(
                f"Invalid edge {raw['id']}: tag must be a string",
                code="INVALID_EDGE_TAG",
                context={"edge_id": raw["id"]},
            )

    typed_edges = [Edge.from_dict(raw) for raw in raw_edges]

    # 7. Acyclicity
    cycle = find_cycle([n.id for n in typed_nodes], typed_edges)
    if cycle is not None:
        raise CycleError(cycle)

    return ValidatedGraph(nodes=typed_nodes, edges=typed_edges)


def _build_node(raw: Mapping[str, Any], catalog: AgentCatalog) -> Node:
    """Check the node's data record and build the typed Node."""
    node_id = raw["id"]
    data = raw.get("data")
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise _data_error(node_id, "data must be an object")

    text_input = data.get("input")
    if text_input is not None and not isinstance(text_input, str):
        raise _data_error(node_id, "input must be a string")

    output = data.get("output")
    if output is not None and not isinstance(output, str):
        raise _data_error(node_id, "output must be a string")

    confidence = data.get("confidence")
    if confidence is not None:
        if not _is_number(confidence) or not 0 <= confidence <= 100:
            raise _data_error(node_id, "confidence must be a number between 0 and 100")
        confidence = int(round(confidence))

    status_raw = data.get("status")
    if status_raw is None:
        status = NodeStatus.IDLE
    else:
        try:
            status = NodeStatus(status_raw)
        except ValueError:
            raise _data_error(node_id, f"unknown status {status_raw!r}") from None

    error = data.get("error")
    if error is not None and not isinstance(error, str):
        raise _data_error(node_id, "error must be a string")

    position = raw["position"]
    return Node(
        id=node_id,
        type=catalog.resolve(raw["type"]),
        position=Position(x=position["x"], y=position["y"]),
        data=NodeData(
            input=text_input or "",
            output=output,
            confidence=confidence,
            status=status,
            error=error,
        ),
    )


def _data_error(node_id: str, detail: str) -> ValidationError:
    return ValidationError(
        f"Invalid node {node_id}: {detail}",
        code="INVALID_NODE_DATA",
        node_ids=[node_id],
    )


def find_cycle(node_ids: Sequence[str], edges: Sequence[Edge]) -> Optional[List[str]]:
    """Find one cycle using DFS with an on-path set.

    Nodes are visited in input order and successors in edge-list order, so
    the reported cycle is deterministic.

    Args:
        node_ids: Node IDs in input order
        edges: Edges whose endpoints are all in node_ids

    Returns:
        Cycle path (last == first), or None if the graph is acyclic
    """
    graph: Dict[str, List[str]] = defaultdict(list)
    for edge in edges:
        graph[edge.source].append(edge.target)

    visited: Set[str] = set()

    for start in node_ids:
        if start in visited:
            continue
        # Explicit stack of (node, next successor index) keeps deep chains off the C stack
        path: List[str] = [start]
        on_path: Set[str] = {start}
        cursor: List[int] = [0]
        visited.add(start)

        while path:
            node = path[-1]
            successors = graph[node]
            if cursor[-1] >= len(successors):
                path.pop()
                cursor.pop()
                on_path.discard(node)
                continue

            neighbor = successors[cursor[-1]]
            cursor[-1] += 1

            if neighbor in on_path:
                cycle_start = path.index(neighbor)
                cycle_path = path[cycle_start:] + [neighbor]
                logger.info(f"Cycle detected: {' -> '.join(cycle_path)}")
                return cycle_path
            if neighbor in visited:
                continue

            visited.add(neighbor)
            path.append(neighbor)
            on_path.add(neighbor)
            cursor.append(0)

    return None
