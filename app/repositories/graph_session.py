"""Repository layer for graph session persistence.

Provides async CRUD operations for GraphSessionModel, and SqlSessionStore,
the durable store the session coordinator writes through to.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agentgraph.engine.errors import ConflictError
from agentgraph.engine.models import GraphSession
from app.database import get_session_ctx
from app.models.db import GraphSessionModel


def to_domain(row: GraphSessionModel) -> GraphSession:
    return GraphSession.from_dict({
        "id": row.id,
        "ownerId": row.owner_id,
        "contextId": row.context_id,
        "nodes": row.nodes or [],
        "edges": row.edges or [],
        "status": row.status,
        "sentimentScore": row.sentiment_score,
        "createdAt": row.created_at,
        "updatedAt": row.updated_at,
    })


class GraphSessionRepository:
    """Data access layer for graph sessions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, session_id: str) -> Optional[GraphSessionModel]:
        result = await self.session.execute(
            select(GraphSessionModel).where(GraphSessionModel.id == session_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, graph: GraphSession) -> GraphSessionModel:
        data = graph.to_dict()
        row = await self.get(graph.id)
        if row is None:
            row = GraphSessionModel(
                id=graph.id,
                owner_id=graph.owner_id,
                context_id=graph.context_id,
                created_at=graph.created_at,
            )
            self.session.add(row)
        row.nodes = data["nodes"]
        row.edges = data["edges"]
        row.status = graph.status.value
        row.sentiment_score = graph.sentiment_score
        row.updated_at = graph.updated_at
        await self.session.flush()
        return row

    async def delete(self, session_id: str) -> bool:
        result = await self.session.execute(
            delete(GraphSessionModel).where(GraphSessionModel.id == session_id)
        )
        return (result.rowcount or 0) > 0

    async def find(self, owner_id: str, context_id: Optional[str]) -> Optional[GraphSessionModel]:
        query = select(GraphSessionModel).where(GraphSessionModel.owner_id == owner_id)
        if context_id is None:
            query = query.where(GraphSessionModel.context_id.is_(None))
        else:
            query = query.where(GraphSessionModel.context_id == context_id)
        result = await self.session.execute(
            query.order_by(GraphSessionModel.created_at.asc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_owner(self, owner_id: str, limit: int = 10) -> List[GraphSessionModel]:
        result = await self.session.execute(
            select(GraphSessionModel)
            .where(GraphSessionModel.owner_id == owner_id)
            .order_by(GraphSessionModel.updated_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_context(self, context_id: str) -> List[GraphSessionModel]:
        result = await self.session.execute(
            select(GraphSessionModel)
            .where(GraphSessionModel.context_id == context_id)
            .order_by(GraphSessionModel.updated_at.desc())
        )
        return list(result.scalars().all())


class SqlSessionStore:
    """Durable session store: one unit of work per call."""

    async def get(self, session_id: str) -> Optional[GraphSession]:
        async with get_session_ctx() as session:
            row = await GraphSessionRepository(session).get(session_id)
            return to_domain(row) if row is not None else None

    async def put(self, graph: GraphSession) -> None:
        """Raises ConflictError if another session holds the (owner, context) pair."""
        try:
            async with get_session_ctx() as session:
                await GraphSessionRepository(session).upsert(graph)
        except IntegrityError as e:
            raise ConflictError(
                f"A session already exists for owner={graph.owner_id} context={graph.context_id}",
                context={"owner_id": graph.owner_id, "context_id": graph.context_id},
            ) from e

    async def delete(self, session_id: str) -> bool:
        async with get_session_ctx() as session:
            return await GraphSessionRepository(session).delete(session_id)

    async def find(self, owner_id: str, context_id: Optional[str]) -> Optional[GraphSession]:
        async with get_session_ctx() as session:
            row = await GraphSessionRepository(session).find(owner_id, context_id)
            return to_domain(row) if row is not None else None

    async def list_by_owner(self, owner_id: str, limit: int) -> List[GraphSession]:
        async with get_session_ctx() as session:
            rows = await GraphSessionRepository(session).list_by_owner(owner_id, limit)
            return [to_domain(row) for row in rows]

    async def list_by_context(self, context_id: str) -> List[GraphSession]:
        async with get_session_ctx() as session:
            rows = await GraphSessionRepository(session).list_by_context(context_id)
            return [to_domain(row) for row in rows]
