"""Session status derivation from per-node execution status."""

from __future__ import annotations

from typing import Sequence

from .models import GraphStatus, Node, NodeStatus


def derive_status(nodes: Sequence[Node]) -> GraphStatus:
    """Derive the aggregate session status.

    - STUCK if any node is in error
    - FLOW if the list is non-empty and no node is idle
    - IDLE otherwise (empty list, or some node still idle)
    """
    statuses = [node.data.status for node in nodes]
    if NodeStatus.ERROR in statuses:
        return GraphStatus.STUCK
    if statuses and NodeStatus.IDLE not in statuses:
        return GraphStatus.FLOW
    return GraphStatus.IDLE
