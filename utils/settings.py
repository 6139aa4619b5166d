"""Environment-driven configuration for the live chat service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings; see `load_settings` for the environment variables."""

    database_dir: Optional[Path]
    moderator_jwt_secret: str
    moderator_jwt_algorithm: str = "HS256"
    database_reset: bool = False
    broadcast_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    session_idle_timeout_seconds: int = 86_400
    session_sweep_interval_seconds: int = 3_600
    chat_max_message_length: int = 500
    broadcast_publish_attempts: int = 3
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build Settings from the process environment (and a `.env` file if present)."""
    load_dotenv()

    secret = os.getenv("MODERATOR_JWT_SECRET")
    if not secret:
        raise RuntimeError("MODERATOR_JWT_SECRET environment variable is not set")

    database_dir = os.getenv("DATABASE_DIR")
    backend = os.getenv("BROADCAST_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "redis"}:
        raise RuntimeError(f"BROADCAST_BACKEND must be 'memory' or 'redis', got {backend!r}")

    return Settings(
        database_dir=Path(database_dir).expanduser() if database_dir and database_dir.strip() else None,
        moderator_jwt_secret=secret,
        moderator_jwt_algorithm=os.getenv("MODERATOR_JWT_ALGORITHM", "HS256"),
        database_reset=_env_bool("DATABASE_RESET"),
        broadcast_backend=backend,
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        session_idle_timeout_seconds=_env_int("SESSION_IDLE_TIMEOUT_SECONDS", 86_400),
        session_sweep_interval_seconds=_env_int("SESSION_SWEEP_INTERVAL_SECONDS", 3_600),
        chat_max_message_length=_env_int("CHAT_MAX_MESSAGE_LENGTH", 500),
        broadcast_publish_attempts=max(1, _env_int("BROADCAST_PUBLISH_ATTEMPTS", 3)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
