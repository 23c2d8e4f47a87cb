"""Topological Scheduler

Orders nodes consistently with edge direction using Kahn's algorithm.

Determinism: the initial queue holds zero in-degree nodes in their original
list order. Nodes released by the same pop are queued in their original list
order too, behind everything already queued, so the result never depends on
dict or set iteration order.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Dict, List, Sequence

from .errors import CycleError
from .models import Edge, Node
from .validator import find_cycle

logger = logging.getLogger(__name__)


def topological_sort(nodes: Sequence[Node], edges: Sequence[Edge]) -> List[str]:
    """Perform topological sort on session nodes.

    Args:
        nodes: Nodes in their authored order
        edges: Edges whose endpoints exist in nodes

    Returns:
        List of node IDs in execution order

    Raises:
        CycleError: If not every node could be ordered (the graph has a cycle)
    """
    graph: Dict[str, List[str]] = defaultdict(list)
    in_degree: Dict[str, int] = {node.id: 0 for node in nodes}
    position = {node.id: index for index, node in enumerate(nodes)}

    for edge in edges:
        graph[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    # Kahn's algorithm
    queue = deque(node.id for node in nodes if in_degree[node.id] == 0)
    result: List[str] = []

    while queue:
        node_id = queue.popleft()
        result.append(node_id)

        released = []
        for neighbor in graph[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                released.append(neighbor)
        # Same-step ties follow the original node order
        released.sort(key=position.__getitem__)
        queue.extend(released)

    if len(result) != len(nodes):
        ordered = set(result)
        remaining = [node.id for node in nodes if node.id not in ordered]
        cycle = find_cycle(remaining, [e for e in edges if e.source not in ordered])
        logger.error(
            f"Topological sort ordered {len(result)}/{len(nodes)} nodes; "
            f"unordered: {remaining}"
        )
        raise CycleError(cycle or remaining + remaining[:1])

    return result

