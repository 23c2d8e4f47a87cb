"""Agent node types and their catalog."""

from .catalog import (
    DEFAULT_PROFILES,
    AgentCatalog,
    AgentProfile,
    AgentType,
    load_catalog,
)

__all__ = [
    "DEFAULT_PROFILES",
    "AgentCatalog",
    "AgentProfile",
    "AgentType",
    "load_catalog",
]
