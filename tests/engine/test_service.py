"""Tests for the GraphService facade (in-memory collaborators).

Covers:
- create (get-or-create), get, delete, history, contexts, clone
- sync: all-or-nothing, derived status, sentiment, idempotence, round-trip
- execute: empty graph, partial failure end to end, persistence of results
- audit: nodes without output, diagnostics records, read-only
"""

from __future__ import annotations

import asyncio

import pytest

from agentgraph.engine.coordinator import SessionCoordinator
from agentgraph.engine.errors import ConflictError, CycleError, NotFoundError, ValidationError
from agentgraph.engine.models import GraphStatus, NodeStatus
from agentgraph.nodes.catalog import AgentType
from agentgraph.service import GraphService
from tests.fakes import FailingDiagnostics, ScriptedCapability, YieldingStore, edge, node

CHAIN_NODES = [
    node("n1", "SCOUT", "topic", x=0),
    node("n2", "ARCHITECT", x=100),
    node("n3", "SYNTHESIZER", x=200),
]
CHAIN_EDGES = [edge("e1", "n1", "n2"), edge("e2", "n2", "n3")]


async def _synced(service: GraphService, nodes=CHAIN_NODES, edges=CHAIN_EDGES):
    session = await service.create_session("u1", "ctx-1")
    await service.sync_graph(session.id, nodes, edges)
    return session.id


class TestSessions:

    @pytest.mark.asyncio
    async def test_create_new_session(self, service, diagnostics):
        session = await service.create_session("u1")

        assert session.owner_id == "u1"
        assert session.context_id is None
        assert session.status is GraphStatus.IDLE
        assert session.sentiment_score == 50
        assert diagnostics.action_names() == ["GRAPH_CREATE"]

    @pytest.mark.asyncio
    async def test_create_is_get_or_create_per_pair(self, service, diagnostics):
        first = await service.create_session("u1", "ctx-1")
        again = await service.create_session("u1", "ctx-1")
        other_context = await service.create_session("u1", "ctx-2")
        no_context = await service.create_session("u1")

        assert again.id == first.id
        assert other_context.id != first.id
        assert no_context.id not in (first.id, other_context.id)
        assert diagnostics.action_names().count("GRAPH_CREATE") == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("context_id", ["ctx-1", None])
    async def test_concurrent_creates_share_one_session(
        self, catalog, cache, capability, diagnostics, context_id,
    ):
        store = YieldingStore()
        service = GraphService(
            catalog, SessionCoordinator(cache, store, ttl_seconds=60), capability, diagnostics=diagnostics,
        )

        first, second = await asyncio.gather(
            service.create_session("u1", context_id),
            service.create_session("u1", context_id),
        )

        assert first.id == second.id
        assert list(store.rows) == [first.id]
        assert diagnostics.action_names().count("GRAPH_CREATE") == 1
        assert (await service.get_session(first.id)).context_id == context_id

    @pytest.mark.asyncio
    async def test_get_missing(self, service):
        with pytest.raises(NotFoundError) as exc:
            await service.get_session("missing")
        assert exc.value.code == "SESSION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delete(self, service, store, diagnostics):
        session = await service.create_session("u1")
        await service.delete_session(session.id)

        assert session.id not in store.rows
        with pytest.raises(NotFoundError):
            await service.get_session(session.id)
        assert diagnostics.action_names()[-1] == "GRAPH_DELETE"

    @pytest.mark.asyncio
    async def test_delete_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.delete_session("missing")

    @pytest.mark.asyncio
    async def test_history_newest_first_and_limited(self, service):
        ids = []
        for i in range(3):
            session = await service.create_session("u1", f"ctx-{i}")
            ids.append(session.id)
        await service.sync_graph(ids[0], [node("n1")], [])

        history = await service.list_sessions("u1", limit=2)

        assert len(history) == 2
        assert history[0].id == ids[0]

    @pytest.mark.asyncio
    async def test_context_listing_and_cascade(self, service, cache, store):
        a = await service.create_session("u1", "room")
        b = await service.create_session("u2", "room")
        keep = await service.create_session("u1", "other")

        listed = await service.list_context_sessions("room")
        assert {s.id for s in listed} == {a.id, b.id}

        assert await service.delete_context_sessions("room") == 2
        assert set(store.rows) == {keep.id}
        assert await cache.get(f"graph:session:{a.id}") is None
        assert await service.list_context_sessions("room") == []


class TestClone:

    @pytest.mark.asyncio
    async def test_clone_copies_graph_without_results(self, service, capability, diagnostics):
        source_id = await _synced(service)
        await service.execute_graph(source_id)

        clone = await service.clone_session(source_id, "u2")

        assert clone.id != source_id
        assert clone.owner_id == "u2"
        assert clone.context_id is None
        assert [n.id for n in clone.nodes] == ["n1", "n2", "n3"]
        assert [e.id for e in clone.edges] == ["e1", "e2"]
        assert clone.nodes[0].data.input == "topic"
        assert all(n.data.output is None for n in clone.nodes)
        assert all(n.data.status is NodeStatus.IDLE for n in clone.nodes)
        assert clone.status is GraphStatus.IDLE
        assert clone.sentiment_score == 50
        assert diagnostics.action_names()[-1] == "GRAPH_CLONE"

    @pytest.mark.asyncio
    async def test_clone_into_taken_pair_conflicts(self, service):
        source_id = await _synced(service)
        await service.create_session("u2")

        with pytest.raises(ConflictError) as exc:
            await service.clone_session(source_id, "u2")
        assert exc.value.code == "SESSION_EXISTS"

    @pytest.mark.asyncio
    async def test_clone_missing_source(self, service):
        with pytest.raises(NotFoundError):
            await service.clone_session("missing", "u2")


class TestSync:

    @pytest.mark.asyncio
    async def test_sync_result(self, service):
        session = await service.create_session("u1")
        result = await service.sync_graph(session.id, CHAIN_NODES, CHAIN_EDGES)

        assert result.session_id == session.id
        assert result.status is GraphStatus.IDLE
        assert result.node_count == 3
        assert result.edge_count == 2
        assert result.to_dict()["nodeCount"] == 3

    @pytest.mark.asyncio
    async def test_round_trip(self, service, store):
        session_id = await _synced(service)

        loaded = await service.get_session(session_id)

        assert [(n.id, n.type, n.position.x, n.position.y) for n in loaded.nodes] == [
            ("n1", AgentType.SCOUT, 0, 0),
            ("n2", AgentType.ARCHITECT, 100, 0),
            ("n3", AgentType.SYNTHESIZER, 200, 0),
        ]
        assert [(e.id, e.source, e.target) for e in loaded.edges] == [
            ("e1", "n1", "n2"), ("e2", "n2", "n3"),
        ]

    @pytest.mark.asyncio
    async def test_idempotent(self, service, store):
        session = await service.create_session("u1")
        await service.sync_graph(session.id, CHAIN_NODES, CHAIN_EDGES, sentiment=70)
        first = dict(store.rows[session.id])
        await service.sync_graph(session.id, CHAIN_NODES, CHAIN_EDGES, sentiment=70)
        second = dict(store.rows[session.id])

        first.pop("updatedAt")
        second.pop("updatedAt")
        assert first == second

    @pytest.mark.asyncio
    async def test_cycle_rejected_without_persisting(self, service, store):
        session_id = await _synced(service)
        before = dict(store.rows[session_id])
        puts = store.put_calls

        with pytest.raises(CycleError) as exc:
            await service.sync_graph(
                session_id,
                [node("n1"), node("n2")],
                [edge("e1", "n1", "n2"), edge("e2", "n2", "n1")],
            )

        assert {"n1", "n2"} & set(exc.value.node_ids)
        assert store.put_calls == puts
        assert store.rows[session_id] == before
        loaded = await service.get_session(session_id)
        assert len(loaded.nodes) == 3

    @pytest.mark.asyncio
    async def test_invalid_payload_rejected_without_persisting(self, service, store):
        session_id = await _synced(service)
        puts = store.put_calls

        with pytest.raises(ValidationError) as exc:
            await service.sync_graph(session_id, [node("n1", "WIZARD")], [])

        assert exc.value.code == "INVALID_NODE_TYPE"
        assert store.put_calls == puts

    @pytest.mark.asyncio
    async def test_sync_missing_session(self, service):
        with pytest.raises(NotFoundError):
            await service.sync_graph("missing", [], [])

    @pytest.mark.asyncio
    async def test_status_is_derived_not_taken_from_caller(self, service):
        session = await service.create_session("u1")
        result = await service.sync_graph(
            session.id,
            [node("n1", status="complete", output="x"), node("n2", status="error", error="boom")],
            [],
            status="FLOW",
        )
        assert result.status is GraphStatus.STUCK
        assert (await service.get_session(session.id)).status is GraphStatus.STUCK

    @pytest.mark.asyncio
    async def test_empty_sync_is_idle(self, service):
        session_id = await _synced(service)
        result = await service.sync_graph(session_id, [], [])
        assert result.status is GraphStatus.IDLE
        assert result.node_count == 0

    @pytest.mark.asyncio
    async def test_sentiment_kept_when_omitted(self, service):
        session = await service.create_session("u1")
        await service.sync_graph(session.id, [], [], sentiment=90)
        await service.sync_graph(session.id, [node("n1")], [])
        assert (await service.get_session(session.id)).sentiment_score == 90

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [-1, 101, 50.5, "60", True])
    async def test_invalid_sentiment(self, service, bad):
        session = await service.create_session("u1")
        with pytest.raises(ValidationError) as exc:
            await service.sync_graph(session.id, [], [], sentiment=bad)
        assert exc.value.code == "INVALID_SENTIMENT"

    @pytest.mark.asyncio
    async def test_update_logged_only_when_node_count_changes(self, service, diagnostics):
        session_id = await _synced(service)
        await service.sync_graph(session_id, CHAIN_NODES, CHAIN_EDGES)
        await service.sync_graph(session_id, CHAIN_NODES[:2], CHAIN_EDGES[:1])

        assert diagnostics.action_names().count("GRAPH_UPDATE") == 2

    @pytest.mark.asyncio
    async def test_validate_does_not_touch_store(self, service, store):
        graph = service.validate(CHAIN_NODES, CHAIN_EDGES)
        assert len(graph.nodes) == 3
        assert store.put_calls == 0


class TestExecute:

    @pytest.mark.asyncio
    async def test_empty_graph_rejected(self, service, capability):
        session = await service.create_session("u1")
        with pytest.raises(ValidationError) as exc:
            await service.execute_graph(session.id)
        assert exc.value.code == "EMPTY_GRAPH"
        assert capability.calls == []

    @pytest.mark.asyncio
    async def test_partial_failure_end_to_end(self, catalog, coordinator, diagnostics):
        capability = ScriptedCapability(fail_types={AgentType.ARCHITECT})
        service = GraphService(catalog, coordinator, capability, diagnostics=diagnostics)
        session_id = await _synced(service)

        report = await service.execute_graph(session_id)

        assert report.status is GraphStatus.STUCK
        assert [r.status for r in report.results] == [
            NodeStatus.COMPLETE, NodeStatus.ERROR, NodeStatus.COMPLETE,
        ]
        stored = await service.get_session(session_id)
        assert stored.status is GraphStatus.STUCK
        assert stored.nodes[1].data.status is NodeStatus.ERROR
        assert stored.nodes[1].data.error
        assert stored.nodes[0].data.output == "SCOUT(topic)"
        _, action, details = diagnostics.actions[-1]
        assert action == "GRAPH_EXECUTE"
        assert details["nodeCount"] == 3
        assert details["successCount"] == 2

    @pytest.mark.asyncio
    async def test_success_persists_flow(self, service, store):
        session_id = await _synced(service)
        report = await service.execute_graph(session_id)

        assert report.status is GraphStatus.FLOW
        assert store.rows[session_id]["status"] == "FLOW"

    @pytest.mark.asyncio
    async def test_rerun_is_fresh_call(self, service, capability):
        session_id = await _synced(service)
        await service.execute_graph(session_id)
        await service.execute_graph(session_id)
        assert len(capability.calls) == 6

    @pytest.mark.asyncio
    async def test_execute_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.execute_graph("missing")


class TestAudit:

    @pytest.mark.asyncio
    async def test_audit_records_judgment(self, catalog, coordinator, diagnostics):
        capability = ScriptedCapability(critique_response={
            "isHallucination": True, "confidence": 88, "explanation": "made up",
        })
        service = GraphService(catalog, coordinator, capability, diagnostics=diagnostics)
        session_id = await _synced(service)
        await service.execute_graph(session_id)
        before = (await service.get_session(session_id)).to_dict()

        judgment = await service.audit_node(session_id, "n2")

        assert judgment.is_hallucination is True
        assert (await service.get_session(session_id)).to_dict() == before
        records = await service.list_audits(session_id)
        assert len(records) == 1
        assert records[0].node_id == "n2"
        assert records[0].owner_id == "u1"
        assert diagnostics.action_names()[-1] == "NODE_AUDIT"

    @pytest.mark.asyncio
    async def test_node_without_output_rejected(self, service, capability):
        session_id = await _synced(service)
        with pytest.raises(ValidationError) as exc:
            await service.audit_node(session_id, "n1")
        assert exc.value.code == "NODE_HAS_NO_OUTPUT"
        assert capability.critique_calls == []

    @pytest.mark.asyncio
    async def test_degraded_audit_still_recorded(self, service, diagnostics):
        session_id = await _synced(service)
        await service.execute_graph(session_id)

        judgment = await service.audit_node(session_id, "n1")

        assert judgment.degraded is True
        assert judgment.confidence == 50
        assert diagnostics.audits[0].judgment.degraded is True

    @pytest.mark.asyncio
    async def test_list_audits_filters_by_node(self, service):
        session_id = await _synced(service)
        await service.execute_graph(session_id)
        await service.audit_node(session_id, "n1")
        await service.audit_node(session_id, "n3")

        assert [r.node_id for r in await service.list_audits(session_id, "n3")] == ["n3"]

    @pytest.mark.asyncio
    async def test_works_without_diagnostics(self, catalog, coordinator):
        service = GraphService(catalog, coordinator, ScriptedCapability())
        session_id = await _synced(service)
        await service.execute_graph(session_id)

        judgment = await service.audit_node(session_id, "n1")

        assert judgment.degraded is True
        assert await service.list_audits(session_id) == []

    @pytest.mark.asyncio
    async def test_audit_survives_diagnostics_failure(self, catalog, coordinator):
        capability = ScriptedCapability(critique_response={
            "isHallucination": False, "confidence": 91, "explanation": "grounded",
        })
        setup = GraphService(catalog, coordinator, capability)
        session_id = await _synced(setup)
        await setup.execute_graph(session_id)
        service = GraphService(catalog, coordinator, capability, diagnostics=FailingDiagnostics())

        judgment = await service.audit_node(session_id, "n2")

        assert judgment.is_hallucination is False
        assert judgment.confidence == 91
        assert judgment.degraded is False
