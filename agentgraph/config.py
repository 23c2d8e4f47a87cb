"""Infrastructure configuration constants. Single source of truth for env vars."""

import os
import shutil

# Durable store: async SQLAlchemy URL
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./agentgraph.db")

# Server binding: used by entrypoint / uvicorn
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# CORS: comma-separated origins
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

# Claude CLI: resolved once at import time
CLAUDE_CLI_PATH = os.getenv("CLAUDE_CLI_PATH") or shutil.which("claude") or "claude"

# Model passed to the CLI (empty = CLI default)
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "")

# Shared session cache (redis://host:port/db). Empty = in-process cache,
# which is only coherent for a single API worker.
REDIS_URL = os.getenv("REDIS_URL", "")
