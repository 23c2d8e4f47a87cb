"""Agent Capability Catalog

This module defines the closed set of agent node types and the metadata
attached to each of them.

Key Components:
- AgentType: Closed enum of agent capabilities a node can be tagged with
- AgentProfile: Display, prompt and cost/level metadata for one agent type
- AgentCatalog: The enabled types plus their profiles, supplied by configuration
- load_catalog: Build a catalog from a JSON override file

Design Principles:
- The engine only asks "is this type enabled?" and "what is its prompt?"
- Cost and level metadata is carried for the caller, never interpreted here
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


class AgentType(str, Enum):
    """Agent capability a node is tagged with."""

    SCOUT = "SCOUT"
    ARCHITECT = "ARCHITECT"
    CRITIC = "CRITIC"
    ETHICIST = "ETHICIST"
    SYNTHESIZER = "SYNTHESIZER"
    ORACLE = "ORACLE"
    COMMANDER = "COMMANDER"
    DEBUGGER = "DEBUGGER"
    CREATIVE = "CREATIVE"
    ANALYST = "ANALYST"
    INPUT = "INPUT"
    OUTPUT = "OUTPUT"


@dataclass(frozen=True)
class AgentProfile:
    """Metadata for one agent type.

    Attributes:
        agent_type: The agent type this profile describes
        display_name: Human-readable name for UI display
        description: Brief description of the agent's role
        category: Category for grouping (e.g., "gather", "evaluate", "io")
        system_prompt: Role prompt sent to the inference provider
        cost: Credit cost per invocation (caller-side accounting only)
        required_level: Minimum user level (caller-side gating only)
    """

    agent_type: AgentType
    display_name: str
    description: str
    category: str
    system_prompt: str
    cost: int = 0
    required_level: int = 1

    def __post_init__(self):
        if not self.display_name:
            raise ValueError("display_name cannot be empty")
        if self.cost < 0:
            raise ValueError(f"cost cannot be negative for {self.agent_type.value}")
        if self.required_level < 1:
            raise ValueError(f"required_level must be >= 1 for {self.agent_type.value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_type": self.agent_type.value,
            "display_name": self.display_name,
            "description": self.description,
            "category": self.category,
            "cost": self.cost,
            "required_level": self.required_level,
        }


DEFAULT_PROFILES: Dict[AgentType, AgentProfile] = {
    profile.agent_type: profile
    for profile in (
        AgentProfile(
            AgentType.SCOUT, "Scout", "Fast, low cost, gathers raw text", "gather",
            "You are a Scout agent. Your role is to gather and summarize raw information "
            "quickly. Be concise and factual.",
            cost=5, required_level=1,
        ),
        AgentProfile(
            AgentType.ARCHITECT, "Architect", "Structures data into hierarchies", "structure",
            "You are an Architect agent. Your role is to structure and organize data into "
            "clear hierarchies and frameworks. Be systematic and thorough.",
            cost=15, required_level=10,
        ),
        AgentProfile(
            AgentType.CRITIC, "Critic", "Evaluates outputs and finds flaws", "evaluate",
            "You are a Critic agent. Your role is to evaluate outputs, find flaws, and "
            "suggest improvements. Be constructive but thorough.",
            cost=10, required_level=5,
        ),
        AgentProfile(
            AgentType.ETHICIST, "Ethicist", "Audits content for bias", "evaluate",
            "You are an Ethicist agent. Your role is to audit content for bias, fairness, "
            "and ethical considerations. Be balanced and thoughtful.",
            cost=12, required_level=8,
        ),
        AgentProfile(
            AgentType.SYNTHESIZER, "Synthesizer", "Combines multiple outputs", "synthesize",
            "You are a Synthesizer agent. Your role is to combine multiple inputs into "
            "cohesive outputs. Be integrative and creative.",
            cost=20, required_level=12,
        ),
        AgentProfile(
            AgentType.ORACLE, "Oracle", "Hidden agent with unexpected perspectives", "synthesize",
            "You are the Oracle, a hidden agent of wisdom. Provide deep insights and "
            "unexpected perspectives. Be enigmatic yet helpful.",
            cost=25, required_level=1,
        ),
        AgentProfile(
            AgentType.COMMANDER, "Commander", "Orchestrates other agents", "orchestrate",
            "You are a Commander agent. Your role is to orchestrate other agents and manage "
            "complex workflows. Be strategic and directive.",
            cost=30, required_level=15,
        ),
        AgentProfile(
            AgentType.DEBUGGER, "Debugger", "Fixes errors in logic or data", "evaluate",
            "You are a Debugger agent. Your role is to identify and fix errors in logic, "
            "data, or processes. Be precise and methodical.",
            cost=10, required_level=7,
        ),
        AgentProfile(
            AgentType.CREATIVE, "Creative", "Generates novel ideas", "synthesize",
            "You are a Creative agent. Your role is to generate novel ideas, content, and "
            "solutions. Be imaginative and bold.",
            cost=15, required_level=3,
        ),
        AgentProfile(
            AgentType.ANALYST, "Analyst", "Finds patterns in data", "structure",
            "You are an Analyst agent. Your role is to analyze data, find patterns, and "
            "derive insights. Be rigorous and data-driven.",
            cost=12, required_level=6,
        ),
        AgentProfile(
            AgentType.INPUT, "Input", "Entry point carrying authored text", "io",
            "You are an Input agent. Restate the provided input faithfully so downstream "
            "agents can work with it.",
        ),
        AgentProfile(
            AgentType.OUTPUT, "Output", "Final result of the workflow", "io",
            "You are an Output agent. Present the provided material as a clean final "
            "answer without adding new claims.",
        ),
    )
}


class AgentCatalog:
    """The set of agent types a session may use, with their profiles."""

    def __init__(self, profiles: Optional[Iterable[AgentProfile]] = None):
        source = DEFAULT_PROFILES.values() if profiles is None else profiles
        self._profiles: Dict[AgentType, AgentProfile] = {}
        for profile in source:
            self._profiles[profile.agent_type] = profile

    def __contains__(self, agent_type: object) -> bool:
        return isinstance(agent_type, AgentType) and agent_type in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def is_known(self, type_name: Any) -> bool:
        """Check whether a raw type value names an enabled agent type."""
        agent_type = self.resolve(type_name)
        return agent_type is not None and agent_type in self._profiles

    def resolve(self, type_name: Any) -> Optional[AgentType]:
        """Map a raw type value to its AgentType, or None if not a member."""
        if isinstance(type_name, AgentType):
            return type_name
        if not isinstance(type_name, str):
            return None
        try:
            return AgentType(type_name)
        except ValueError:
            return None

    def get(self, agent_type: AgentType) -> AgentProfile:
        """Get the profile of an enabled agent type.

        Raises:
            KeyError: If the type is not enabled in this catalog
        """
        return self._profiles[agent_type]

    def list_profiles(self) -> List[AgentProfile]:
        """List enabled profiles in enum declaration order."""
        return [self._profiles[t] for t in AgentType if t in self._profiles]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentCatalog":
        """Build a catalog from a config mapping.

        Format:
            {
              "enabled": ["SCOUT", "CRITIC"],        # optional, default: all
              "agents": {"SCOUT": {"cost": 3, ...}}  # optional metadata overrides
            }
        """
        enabled_raw = data.get("enabled")
        if enabled_raw is None:
            enabled = list(AgentType)
        else:
            try:
                enabled = [AgentType(name) for name in enabled_raw]
            except ValueError as e:
                raise ValueError(f"unknown agent type in catalog config: {e}") from e

        overrides = data.get("agents", {}) or {}
        profiles = []
        for agent_type in enabled:
            profile = DEFAULT_PROFILES[agent_type]
            override = overrides.get(agent_type.value)
            if override:
                allowed = {
                    k: v for k, v in override.items()
                    if k in ("display_name", "description", "category",
                             "system_prompt", "cost", "required_level")
                }
                profile = replace(profile, **allowed)
            profiles.append(profile)
        return cls(profiles)


def load_catalog(path: str = "") -> AgentCatalog:
    """Load the agent catalog from a JSON file, or the defaults if no path."""
    if not path:
        return AgentCatalog()
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    catalog = AgentCatalog.from_mapping(data)
    logger.info(f"Loaded agent catalog from {path} ({len(catalog)} types enabled)")
    return catalog
