"""Audit Engine

Runs a secondary "critic" pass over one node's recorded output and turns
the provider's answer into a structured hallucination judgment.

The engine never fails the caller because of the provider: a capability
error or an unparseable answer yields the neutral fallback judgment
(isHallucination=False, confidence=AUDIT_FALLBACK_CONFIDENCE, fallback
explanation, degraded=True). The audited node is never modified.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from .. import settings
from ..agents.inference import CritiqueContext, InferenceCapability
from ..agents.llm_utils import parse_llm_json
from .errors import AuditDegradationError, NotFoundError, ValidationError
from .models import GraphSession, utcnow

logger = logging.getLogger(__name__)

FALLBACK_EXPLANATION = "Audit completed with fallback mode."


@dataclass
class AuditJudgment:
    is_hallucination: bool
    confidence: int
    explanation: str
    suggested_fix: Optional[str] = None
    degraded: bool = False

    @classmethod
    def fallback(cls) -> "AuditJudgment":
        return cls(
            is_hallucination=False,
            confidence=settings.AUDIT_FALLBACK_CONFIDENCE,
            explanation=FALLBACK_EXPLANATION,
            degraded=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "isHallucination": self.is_hallucination,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }
        if self.suggested_fix is not None:
            data["suggestedFix"] = self.suggested_fix
        data["degraded"] = self.degraded
        return data


@dataclass
class AuditRecord:
    """Diagnostic record of one audit, stored apart from the session."""

    session_id: str
    node_id: str
    owner_id: str
    judgment: AuditJudgment
    created_at: datetime = field(default_factory=utcnow)


def parse_judgment(response: Union[str, Mapping[str, Any], None]) -> AuditJudgment:
    """Turn a critic response into a judgment.

    Accepts a mapping or text containing a JSON object. isHallucination must
    be a boolean, explanation a string and confidence a number (clamped to
    0..100). suggestedFix is optional.

    Raises:
        AuditDegradationError: If the response does not have that shape
    """
    if isinstance(response, Mapping):
        data: Optional[Mapping[str, Any]] = response
    elif isinstance(response, str):
        data = parse_llm_json(response, caller="AuditEngine")
    else:
        data = None

    if data is None:
        raise AuditDegradationError("Critic response is not a JSON object")

    flag = data.get("isHallucination")
    if not isinstance(flag, bool):
        raise AuditDegradationError("isHallucination missing or not a boolean")

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise AuditDegradationError("confidence missing or not a number")
    if not math.isfinite(confidence):
        raise AuditDegradationError("confidence is not finite")

    explanation = data.get("explanation")
    if not isinstance(explanation, str):
        raise AuditDegradationError("explanation missing or not a string")

    suggested_fix = data.get("suggestedFix")
    if suggested_fix is not None and not isinstance(suggested_fix, str):
        raise AuditDegradationError("suggestedFix must be a string")

    return AuditJudgment(
        is_hallucination=flag,
        confidence=max(0, min(100, int(round(confidence)))),
        explanation=explanation,
        suggested_fix=suggested_fix or None,
    )


def build_source_text(session: GraphSession, node_id: str) -> str:
    """The audited node's input followed by its predecessors' outputs."""
    node = session.find_node(node_id)
    parts = [node.data.input] if node is not None and node.data.input else []
    by_id = {n.id: n for n in session.nodes}
    for edge in session.edges:
        if edge.target == node_id:
            source = by_id.get(edge.source)
            if source is not None and source.data.output:
                parts.append(source.data.output)
    return settings.NODE_INPUT_SEPARATOR.join(parts)


class AuditEngine:
    """Critic pass over a single node's recorded output."""

    def __init__(self, capability: InferenceCapability):
        self.capability = capability

    async def audit(self, session: GraphSession, node_id: str) -> AuditJudgment:
        """Audit one node.

        Raises:
            NotFoundError: If the node is not in the session
            ValidationError: If the node has no recorded output (before any provider call)
        """
        node = session.find_node(node_id)
        if node is None:
            raise NotFoundError.node(session.id, node_id)

        output = node.data.output
        if output is None or not output.strip():
            raise ValidationError(
                f"Node '{node_id}' has no output to audit",
                code="NODE_HAS_NO_OUTPUT",
                node_ids=[node_id],
            )

        context = CritiqueContext(
            session_id=session.id,
            node_id=node_id,
            node_type=node.type,
            source_text=build_source_text(session, node_id),
        )

        try:
            try:
                response = await self.capability.critique(output, context)
            except Exception as e:
                raise AuditDegradationError(f"Critic call failed: {e}") from e
            judgment = parse_judgment(response)
        except AuditDegradationError as e:
            logger.warning(f"Audit of {session.id}/{node_id} degraded: {e.message}")
            return AuditJudgment.fallback()

        logger.info(
            f"Audited {session.id}/{node_id}: hallucination={judgment.is_hallucination}, "
            f"confidence={judgment.confidence}"
        )
        return judgment
