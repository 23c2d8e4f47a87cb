"""Repository layer for audit judgments and the action log."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentgraph.engine.audit import AuditJudgment, AuditRecord
from app.database import get_session_ctx
from app.models.db import ActionLogModel, NodeAuditModel


class DiagnosticsRepository:
    """Data access layer for node audits and action logs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_audit(self, record: AuditRecord) -> NodeAuditModel:
        row = NodeAuditModel(
            session_id=record.session_id,
            node_id=record.node_id,
            owner_id=record.owner_id,
            is_hallucination=record.judgment.is_hallucination,
            confidence=record.judgment.confidence,
            explanation=record.judgment.explanation,
            suggested_fix=record.judgment.suggested_fix,
            degraded=record.judgment.degraded,
            created_at=record.created_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_audits(
        self,
        session_id: str,
        node_id: Optional[str] = None,
    ) -> List[NodeAuditModel]:
        query = select(NodeAuditModel).where(NodeAuditModel.session_id == session_id)
        if node_id is not None:
            query = query.where(NodeAuditModel.node_id == node_id)
        result = await self.session.execute(query.order_by(NodeAuditModel.created_at.asc()))
        return list(result.scalars().all())

    async def add_action(self, owner_id: str, action: str, details: Dict[str, Any]) -> ActionLogModel:
        row = ActionLogModel(owner_id=owner_id, action=action, details=details)
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_actions(self, owner_id: str) -> List[ActionLogModel]:
        result = await self.session.execute(
            select(ActionLogModel)
            .where(ActionLogModel.owner_id == owner_id)
            .order_by(ActionLogModel.id.asc())
        )
        return list(result.scalars().all())


def _aware(value: datetime) -> datetime:
    # SQLite drops the offset on read
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _to_record(row: NodeAuditModel) -> AuditRecord:
    return AuditRecord(
        session_id=row.session_id,
        node_id=row.node_id,
        owner_id=row.owner_id,
        judgment=AuditJudgment(
            is_hallucination=row.is_hallucination,
            confidence=row.confidence,
            explanation=row.explanation,
            suggested_fix=row.suggested_fix,
            degraded=row.degraded,
        ),
        created_at=_aware(row.created_at),
    )


class SqlDiagnosticsLog:
    """Diagnostics log backed by node_audits and action_logs."""

    async def record_audit(self, record: AuditRecord) -> None:
        async with get_session_ctx() as session:
            await DiagnosticsRepository(session).add_audit(record)

    async def list_audits(self, session_id: str, node_id: Optional[str] = None) -> List[AuditRecord]:
        async with get_session_ctx() as session:
            rows = await DiagnosticsRepository(session).list_audits(session_id, node_id)
            return [_to_record(row) for row in rows]

    async def log_action(self, owner_id: str, action: str, details: Dict[str, Any]) -> None:
        async with get_session_ctx() as session:
            await DiagnosticsRepository(session).add_action(owner_id, action, details)
