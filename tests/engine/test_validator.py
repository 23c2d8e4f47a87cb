"""Unit tests for the Graph Validator

Tests cover:
- Node id, type, position and data checks (with their error codes)
- Edge id and referential integrity checks
- Cycle detection (self-loop, 2-cycle, longer cycle)
- Check ordering and all-or-nothing behaviour
"""

import pytest

from agentgraph.engine.errors import CycleError, ValidationError
from agentgraph.engine.models import Edge, Node, NodeStatus, Position
from agentgraph.engine.validator import find_cycle, validate_graph
from agentgraph.nodes.catalog import AgentCatalog, AgentType
from tests.fakes import edge, node


class TestNodeChecks:
    """Node-level structural checks."""

    def test_valid_graph_returns_typed_nodes(self, catalog):
        graph = validate_graph(
            [node("n1", "SCOUT", "find facts"), node("n2", "ARCHITECT")],
            [edge("e1", "n1", "n2", tag="data")],
            catalog,
        )

        assert [n.id for n in graph.nodes] == ["n1", "n2"]
        assert graph.nodes[0].type is AgentType.SCOUT
        assert graph.nodes[0].data.input == "find facts"
        assert graph.nodes[0].data.status is NodeStatus.IDLE
        assert graph.edges[0].tag == "data"

    def test_empty_graph_is_valid(self, catalog):
        graph = validate_graph([], [], catalog)
        assert graph.nodes == []
        assert graph.edges == []

    @pytest.mark.parametrize("bad_id", ["", None, 42])
    def test_missing_or_invalid_node_id(self, catalog, bad_id):
        payload = node("n1")
        payload["id"] = bad_id
        with pytest.raises(ValidationError) as exc:
            validate_graph([payload], [], catalog)
        assert exc.value.code == "INVALID_NODE_ID"

    def test_non_object_node(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph(["n1"], [], catalog)
        assert exc.value.code == "INVALID_NODE_ID"

    def test_duplicate_node_id(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1"), node("n1", "CRITIC")], [], catalog)
        assert exc.value.code == "DUPLICATE_NODE_ID"
        assert exc.value.node_ids == ["n1"]

    @pytest.mark.parametrize("bad_type", ["WIZARD", "scout", None, 7])
    def test_unknown_node_type(self, catalog, bad_type):
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1", bad_type)], [], catalog)
        assert exc.value.code == "INVALID_NODE_TYPE"
        assert exc.value.node_ids == ["n1"]

    def test_type_disabled_in_catalog(self):
        catalog = AgentCatalog.from_mapping({"enabled": ["SCOUT"]})
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1", "ORACLE")], [], catalog)
        assert exc.value.code == "INVALID_NODE_TYPE"

    @pytest.mark.parametrize(
        "position",
        [None, {}, {"x": 1}, {"x": "1", "y": 2}, {"x": True, "y": 0}, {"x": float("nan"), "y": 0}, [1, 2]],
    )
    def test_invalid_position(self, catalog, position):
        payload = node("n1")
        payload["position"] = position
        with pytest.raises(ValidationError) as exc:
            validate_graph([payload], [], catalog)
        assert exc.value.code == "INVALID_POSITION"

    def test_float_position_accepted(self, catalog):
        graph = validate_graph([node("n1", x=12.5, y=-3.25)], [], catalog)
        assert graph.nodes[0].position == Position(12.5, -3.25)

    def test_missing_data_defaults(self, catalog):
        payload = node("n1")
        del payload["data"]
        graph = validate_graph([payload], [], catalog)
        assert graph.nodes[0].data.input == ""
        assert graph.nodes[0].data.output is None

    @pytest.mark.parametrize(
        "data",
        [
            "text",
            {"input": 3},
            {"output": ["x"]},
            {"confidence": 101},
            {"confidence": "high"},
            {"status": "done"},
            {"error": 500},
        ],
    )
    def test_invalid_node_data(self, catalog, data):
        payload = node("n1")
        payload["data"] = data
        with pytest.raises(ValidationError) as exc:
            validate_graph([payload], [], catalog)
        assert exc.value.code == "INVALID_NODE_DATA"

    def test_confidence_rounded_to_int(self, catalog):
        graph = validate_graph([node("n1", confidence=87.6)], [], catalog)
        assert graph.nodes[0].data.confidence == 88

    def test_accepts_typed_objects(self, catalog):
        n1 = Node("n1", AgentType.SCOUT, Position(0, 0))
        n2 = Node("n2", AgentType.CRITIC, Position(1, 1))
        graph = validate_graph([n1, n2], [Edge("e1", "n1", "n2")], catalog)
        assert [n.type for n in graph.nodes] == [AgentType.SCOUT, AgentType.CRITIC]


class TestEdgeChecks:
    """Edge-level structural checks."""

    def test_missing_edge_id(self, catalog):
        bad = edge("e1", "n1", "n2")
        bad["id"] = ""
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1"), node("n2")], [bad], catalog)
        assert exc.value.code == "INVALID_EDGE_ID"

    def test_duplicate_edge_id(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph(
                [node("n1"), node("n2"), node("n3")],
                [edge("e1", "n1", "n2"), edge("e1", "n2", "n3")],
                catalog,
            )
        assert exc.value.code == "DUPLICATE_EDGE_ID"

    def test_unknown_source(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1")], [edge("e1", "ghost", "n1")], catalog)
        assert exc.value.code == "UNKNOWN_EDGE_SOURCE"

    def test_unknown_target(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1")], [edge("e1", "n1", "ghost")], catalog)
        assert exc.value.code == "UNKNOWN_EDGE_TARGET"

    def test_non_string_tag(self, catalog):
        bad = edge("e1", "n1", "n2")
        bad["tag"] = 5
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1"), node("n2")], [bad], catalog)
        assert exc.value.code == "INVALID_EDGE_TAG"

    def test_legacy_type_key_used_as_tag(self, catalog):
        legacy = {"id": "e1", "source": "n1", "target": "n2", "type": "audit"}
        graph = validate_graph([node("n1"), node("n2")], [legacy], catalog)
        assert graph.edges[0].tag == "audit"

    def test_null_tag_falls_back_to_checked_type_key(self, catalog):
        bad = {"id": "e1", "source": "n1", "target": "n2", "tag": None, "type": 5}
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1"), node("n2")], [bad], catalog)
        assert exc.value.code == "INVALID_EDGE_TAG"

    def test_null_tag_with_string_type_key(self, catalog):
        legacy = {"id": "e1", "source": "n1", "target": "n2", "tag": None, "type": "audit"}
        graph = validate_graph([node("n1"), node("n2")], [legacy], catalog)
        assert graph.edges[0].tag == "audit"


class TestCycleDetection:
    """Acyclicity check."""

    def test_self_loop(self, catalog):
        with pytest.raises(CycleError) as exc:
            validate_graph([node("n1")], [edge("e1", "n1", "n1")], catalog)
        assert exc.value.code == "CIRCULAR_DEPENDENCY"
        assert exc.value.node_ids == ["n1"]
        assert exc.value.cycle_path == ["n1", "n1"]

    def test_two_cycle_names_a_member(self, catalog):
        """Two nodes pointing at each other are rejected, naming n1 or n2."""
        with pytest.raises(CycleError) as exc:
            validate_graph(
                [node("n1"), node("n2")],
                [edge("e1", "n1", "n2"), edge("e2", "n2", "n1")],
                catalog,
            )
        assert set(exc.value.node_ids) == {"n1", "n2"}
        assert exc.value.cycle_path[0] == exc.value.cycle_path[-1]

    def test_longer_cycle_behind_acyclic_prefix(self, catalog):
        nodes = [node(f"n{i}") for i in range(1, 6)]
        edges = [
            edge("e1", "n1", "n2"),
            edge("e2", "n2", "n3"),
            edge("e3", "n3", "n4"),
            edge("e4", "n4", "n5"),
            edge("e5", "n5", "n3"),
        ]
        with pytest.raises(CycleError) as exc:
            validate_graph(nodes, edges, catalog)
        assert exc.value.cycle_path == ["n3", "n4", "n5", "n3"]
        assert "n1" not in exc.value.node_ids

    def test_cycle_error_is_a_validation_error(self, catalog):
        with pytest.raises(ValidationError):
            validate_graph([node("n1")], [edge("e1", "n1", "n1")], catalog)

    def test_diamond_is_acyclic(self, catalog):
        graph = validate_graph(
            [node("a"), node("b"), node("c"), node("d")],
            [edge("e1", "a", "b"), edge("e2", "a", "c"), edge("e3", "b", "d"), edge("e4", "c", "d")],
            catalog,
        )
        assert len(graph.edges) == 4

    def test_find_cycle_none_for_dag(self):
        edges = [Edge("e1", "a", "b"), Edge("e2", "b", "c")]
        assert find_cycle(["a", "b", "c"], edges) is None

    def test_find_cycle_handles_long_chain(self):
        ids = [f"n{i}" for i in range(3000)]
        edges = [Edge(f"e{i}", ids[i], ids[i + 1]) for i in range(len(ids) - 1)]
        assert find_cycle(ids, edges) is None
        edges.append(Edge("back", ids[-1], ids[0]))
        cycle = find_cycle(ids, edges)
        assert cycle is not None and len(cycle) == len(ids) + 1


class TestCheckOrder:
    """Earlier checks win over later ones."""

    def test_node_errors_reported_before_edge_errors(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1", "WIZARD")], [edge("e1", "n1", "ghost")], catalog)
        assert exc.value.code == "INVALID_NODE_TYPE"

    def test_structural_errors_reported_before_cycles(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph(
                [node("n1"), node("n2")],
                [edge("e1", "n1", "n2"), edge("e2", "n2", "n1"), edge("e3", "n2", "ghost")],
                catalog,
            )
        assert not isinstance(exc.value, CycleError)
        assert exc.value.code == "UNKNOWN_EDGE_TARGET"

    def test_error_serializes(self, catalog):
        with pytest.raises(ValidationError) as exc:
            validate_graph([node("n1"), node("n1")], [], catalog)
        data = exc.value.to_dict()
        assert data["code"] == "DUPLICATE_NODE_ID"
        assert data["node_ids"] == ["n1"]
        assert "n1" in data["message"]
