"""Graph engine runtime settings. Tunable parameters for sessions, runs and audits.

All values read from environment variables with defaults. Import from
here instead of hardcoding.

Infrastructure config (database URL, API host, CLI path) stays in
agentgraph/config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


# =====================================================================
# Session cache
# =====================================================================

# Fast cache TTL for a synced session (seconds)
GRAPH_CACHE_TTL_SECONDS = _int("GRAPH_CACHE_TTL_SECONDS", 1800)

# Key prefix for cached sessions
GRAPH_CACHE_PREFIX = _str("GRAPH_CACHE_PREFIX", "graph:session:")


# =====================================================================
# Sessions
# =====================================================================

# Sentiment score given to new and cloned sessions
DEFAULT_SENTIMENT = _int("DEFAULT_SENTIMENT", 50)

# Number of sessions returned by the history listing
SESSION_HISTORY_LIMIT = _int("SESSION_HISTORY_LIMIT", 10)


# =====================================================================
# Execution
# =====================================================================

# Separator placed between predecessor outputs when building a node's input
NODE_INPUT_SEPARATOR = _str("NODE_INPUT_SEPARATOR", "\n---\n")

# Sync rate limit applied at the API boundary, per session id
SYNC_RATE_LIMIT_MAX_CALLS = _int("SYNC_RATE_LIMIT_MAX_CALLS", 2)
SYNC_RATE_LIMIT_WINDOW_SECONDS = _float("SYNC_RATE_LIMIT_WINDOW_SECONDS", 5.0)


# =====================================================================
# LLM / inference provider
# =====================================================================

# "claude_cli" | "mock"
INFERENCE_PROVIDER = _str("INFERENCE_PROVIDER", "claude_cli")

# Claude CLI call timeouts (seconds)
LLM_NODE_TIMEOUT = _float("LLM_NODE_TIMEOUT", 120.0)
LLM_AUDIT_TIMEOUT = _float("LLM_AUDIT_TIMEOUT", 60.0)

# Transport-level retries inside the provider (the executor never retries)
LLM_MAX_RETRIES = _int("LLM_MAX_RETRIES", 1)
LLM_RETRY_BASE_DELAY = _float("LLM_RETRY_BASE_DELAY", 5.0)

# Confidence reported when the provider answers with plain text
LLM_DEFAULT_CONFIDENCE = _int("LLM_DEFAULT_CONFIDENCE", 80)

# Confidence of the neutral judgment returned by a degraded audit
AUDIT_FALLBACK_CONFIDENCE = _int("AUDIT_FALLBACK_CONFIDENCE", 50)


# =====================================================================
# Agent catalog
# =====================================================================

# Optional JSON file overriding agent metadata / restricting enabled types
AGENT_CATALOG_FILE = _str("AGENT_CATALOG_FILE", "")
