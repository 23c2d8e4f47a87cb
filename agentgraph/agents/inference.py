"""Inference Capability

The external collaborator that turns (agent type, input, context) into text
plus a confidence score, and that critiques a recorded output on request.

Key Components:
- InferenceCapability: Protocol the executor and the audit engine call
- InferenceContext / CritiqueContext: What the caller knows at call time
- InferenceResult: Text + confidence returned by a successful invocation
- ClaudeCliCapability: Provider backed by the Claude CLI subprocess
- MockCapability: Deterministic offline provider for development and tests
- build_capability: Provider selection from settings
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from .. import config, settings
from ..nodes.catalog import AgentCatalog, AgentType
from .llm_utils import invoke_claude_cli, parse_llm_json

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """Provider failure: timeout, transport error or unusable response."""


@dataclass
class InferenceContext:
    """Context passed with every node invocation.

    Attributes:
        session_id: Session being executed
        owner_id: Session owner
        context_id: Optional group/context of the session
        predecessor_outputs: Outputs of the node's direct predecessors, in edge order
        prior_outputs: Outputs of every node completed earlier in this run, in run order
    """

    session_id: str
    owner_id: str
    context_id: Optional[str] = None
    predecessor_outputs: List[str] = field(default_factory=list)
    prior_outputs: List[str] = field(default_factory=list)


@dataclass
class CritiqueContext:
    """Context passed with an audit request.

    Attributes:
        session_id: Session the audited node belongs to
        node_id: Audited node
        node_type: Agent type that produced the output
        source_text: The node's input plus its predecessors' outputs
    """

    session_id: str
    node_id: str
    node_type: AgentType
    source_text: str = ""


@dataclass
class InferenceResult:
    text: str
    confidence: int


class InferenceCapability(Protocol):
    """Interface every inference provider conforms to."""

    async def invoke(
        self,
        node_type: AgentType,
        input_text: str,
        context: InferenceContext,
    ) -> InferenceResult:
        """Produce output for one node.

        Raises:
            InferenceError: On timeout, provider error or unusable response
        """
        ...

    async def critique(
        self,
        output: str,
        context: CritiqueContext,
    ) -> Union[str, Mapping[str, Any]]:
        """Judge whether an output is supported by its source text.

        The response may be a mapping or raw text; callers must not trust
        its shape.
        """
        ...


AUDIT_SYSTEM_PROMPT = """You are a hallucination detector. Analyze the following output from a {node_type} agent and determine if it contains hallucinations or inaccuracies.

Respond in JSON format:
{{
  "isHallucination": boolean,
  "confidence": number (0-100),
  "explanation": "string",
  "suggestedFix": "string or null"
}}"""

NODE_OUTPUT_INSTRUCTIONS = """
Respond with a JSON object only:
{"output": "<your answer>", "confidence": <integer 0-100>}"""


def _clamp_confidence(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0, min(100, int(round(value))))


def _format_user_prompt(input_text: str, context: InferenceContext) -> str:
    parts = []
    if context.prior_outputs:
        parts.append("Context:\n" + settings.NODE_INPUT_SEPARATOR.join(context.prior_outputs))
        parts.append("")
    parts.append(f"Task: {input_text}")
    return "\n".join(parts)


class ClaudeCliCapability:
    """Inference provider that shells out to the Claude CLI.

    Transport retries (timeouts, rate limits, spawn failures) happen inside
    invoke_claude_cli; once they are exhausted the failure surfaces as
    InferenceError.
    """

    def __init__(
        self,
        catalog: AgentCatalog,
        claude_bin: str = "",
        model: str = "",
        node_timeout: Optional[float] = None,
        audit_timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        self.catalog = catalog
        self.claude_bin = claude_bin or config.CLAUDE_CLI_PATH
        self.model = model or config.CLAUDE_MODEL
        self.node_timeout = node_timeout if node_timeout is not None else settings.LLM_NODE_TIMEOUT
        self.audit_timeout = audit_timeout if audit_timeout is not None else settings.LLM_AUDIT_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.LLM_MAX_RETRIES
        # Running totals across every provider call made by this capability
        self.token_usage: Dict[str, int] = {"input_tokens": 0, "output_tokens": 0}

    async def _call(self, system_prompt: str, user_prompt: str, timeout: float, component: str) -> str:
        try:
            response = await invoke_claude_cli(
                claude_bin=self.claude_bin,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                model=self.model,
                timeout=timeout,
                max_retries=self.max_retries,
                retry_base_delay=settings.LLM_RETRY_BASE_DELAY,
                component_name=component,
                caller="ClaudeCliCapability",
            )
        except (TimeoutError, RuntimeError) as e:
            raise InferenceError(str(e)) from e

        usage = response.get("token_usage") or {}
        for key in self.token_usage:
            self.token_usage[key] += int(usage.get(key) or 0)
        logger.info(
            f"[{component}] provider call done: duration_ms={response.get('duration_ms')} "
            f"retries={response.get('retry_count', 0)} "
            f"input_tokens={usage.get('input_tokens')} output_tokens={usage.get('output_tokens')}"
        )
        return str(response.get("text") or "")

    async def invoke(
        self,
        node_type: AgentType,
        input_text: str,
        context: InferenceContext,
    ) -> InferenceResult:
        profile = self.catalog.get(node_type)
        raw = await self._call(
            profile.system_prompt + "\n" + NODE_OUTPUT_INSTRUCTIONS,
            _format_user_prompt(input_text, context),
            self.node_timeout,
            f"{context.session_id}:{node_type.value}",
        )
        if not raw.strip():
            raise InferenceError(f"Empty response from provider for {node_type.value}")

        parsed = parse_llm_json(raw, caller="ClaudeCliCapability")
        if parsed is not None and isinstance(parsed.get("output"), str) and parsed["output"].strip():
            return InferenceResult(
                text=parsed["output"],
                confidence=_clamp_confidence(parsed.get("confidence"), settings.LLM_DEFAULT_CONFIDENCE),
            )
        # Plain-text reply
        return InferenceResult(text=raw.strip(), confidence=settings.LLM_DEFAULT_CONFIDENCE)

    async def critique(self, output: str, context: CritiqueContext) -> str:
        return await self._call(
            AUDIT_SYSTEM_PROMPT.format(node_type=context.node_type.value),
            f"Context: {context.source_text}\n\nOutput to verify:\n{output}",
            self.audit_timeout,
            f"audit:{context.node_id}",
        )


class MockCapability:
    """Deterministic offline provider.

    Output echoes the agent role and a short digest of the input, so equal
    inputs always produce equal outputs.
    """

    def __init__(self, catalog: AgentCatalog, confidence: int = 85):
        self.catalog = catalog
        self.confidence = confidence

    async def invoke(
        self,
        node_type: AgentType,
        input_text: str,
        context: InferenceContext,
    ) -> InferenceResult:
        profile = self.catalog.get(node_type)
        digest = hashlib.sha256(input_text.encode("utf-8")).hexdigest()[:12]
        preview = " ".join(input_text.split())[:80]
        text = f"[{profile.display_name}] processed ({digest}): {preview}"
        return InferenceResult(text=text, confidence=self.confidence)

    async def critique(self, output: str, context: CritiqueContext) -> Dict[str, Any]:
        return {
            "isHallucination": False,
            "confidence": self.confidence,
            "explanation": "Output appears consistent with the given context and expected behavior.",
            "suggestedFix": None,
        }


def build_capability(provider_name: str, catalog: AgentCatalog) -> InferenceCapability:
    """Create the inference provider named by settings.INFERENCE_PROVIDER.

    Raises:
        ValueError: If the provider name is unknown
    """
    name = (provider_name or "").strip().lower()
    if name == "mock":
        logger.info("Using mock inference provider")
        return MockCapability(catalog)
    if name == "claude_cli":
        logger.info(f"Using Claude CLI inference provider: {config.CLAUDE_CLI_PATH}")
        return ClaudeCliCapability(catalog)
    raise ValueError(
        f"Unknown inference provider: {provider_name!r} "
        "(expected claude_cli or mock)"
    )
