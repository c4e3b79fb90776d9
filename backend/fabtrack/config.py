"""
Runtime configuration.

Defaults are module constants; each can be overridden with an environment
variable. Overrides are optional and read when the getter is called.
"""

import os
from pathlib import Path
from typing import List

# Environment variable overrides
ENV_DB_PATH = "FABTRACK_DB_PATH"
ENV_STRICT_INVARIANTS = "FABTRACK_STRICT_INVARIANTS"
ENV_CORS_ORIGINS = "FABTRACK_CORS_ORIGINS"
ENV_HOST = "FABTRACK_HOST"
ENV_PORT = "FABTRACK_PORT"

DEFAULT_DB_FILENAME = "fabtrack.db"
DEFAULT_CORS_ORIGINS = ["http://localhost:5173"]
DEFAULT_HOST = "127.0.0.1"  # Localhost only by default
DEFAULT_PORT = 8085


def get_db_path() -> str:
    """SQLite file for job storage (defaults to ./fabtrack.db)."""
    override = os.environ.get(ENV_DB_PATH)
    if override:
        return override
    return str(Path.cwd() / DEFAULT_DB_FILENAME)


def strict_invariants_enabled() -> bool:
    """Whether the registry checks job invariants after every operation."""
    return os.environ.get(ENV_STRICT_INVARIANTS, "").strip().lower() in ("1", "true", "yes")


def get_cors_origins() -> List[str]:
    override = os.environ.get(ENV_CORS_ORIGINS)
    if not override:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in override.split(",") if origin.strip()]


def get_bind_host() -> str:
    return os.environ.get(ENV_HOST) or DEFAULT_HOST


def get_bind_port() -> int:
    """
    Raises:
        ValueError: If FABTRACK_PORT is not an integer
    """
    override = os.environ.get(ENV_PORT)
    return int(override) if override else DEFAULT_PORT
