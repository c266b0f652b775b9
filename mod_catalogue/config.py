"""Process settings.

Values come from environment variables, after loading a ``.env`` file at the
project root (only variables not already set in the process are taken from it).

Variables:
- MONGO_URI (required for Mongo-backed runs), MONGO_DB_NAME
- UPDATE_INTERVAL_HOURS, UPDATE_SLACK_SECONDS
- SMALL_UPDATE_INTERVAL_MINUTES, SMALL_UPDATE_COOLDOWN_MULTIPLIER
- FETCH_CHUNK_SIZE, FETCH_MAX_ATTEMPTS, FETCH_RETRY_COOLDOWN, FETCH_CHUNK_DELAY, FETCH_TIMEOUT
- BUILD_COMMIT, ENABLE_SCHEDULER
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from mod_catalogue.constants import MAX_MONGO_DB_NAME_LENGTH

T = TypeVar("T")


@dataclass
class Settings:
    mongo_uri: Optional[str] = None
    mongo_db_name: str = "rimworld_mod_catalogue_default"

    update_interval_hours: float = 6
    # Subtracted from the last sweep's timestamp; workshop timestamps drift a little.
    update_slack_seconds: int = 24 * 60 * 60

    small_update_interval_minutes: float = 5
    small_update_cooldown_multiplier: int = 10

    fetch_chunk_size: int = 300
    fetch_max_attempts: int = 3
    fetch_retry_cooldown: float = 1.0
    fetch_chunk_delay: float = 0.1
    fetch_timeout: float = 30.0

    commit: str = "unknown"
    enable_scheduler: bool = True
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def require_mongo_uri(self) -> str:
        if not self.mongo_uri:
            raise RuntimeError(
                "MONGO_URI is not set.\n"
                "Define it in your environment or in a .env file at the project root, e.g.\n"
                "MONGO_URI=mongodb://localhost:27017"
            )
        return self.mongo_uri


def _load_env_from_file(env_path: Optional[str] = None) -> None:
    """Load KEY=VALUE lines from a .env file without overriding existing variables."""
    if env_path is None:
        root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
        env_path = os.path.join(root_dir, ".env")
    if not os.path.isfile(env_path):
        return
    with open(env_path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#") or "=" not in s:
                continue
            key, val = s.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and not os.environ.get(key):
                os.environ[key] = val


def _env(name: str, cast: Callable[[str], T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid value for {name}: {raw!r} ({exc})") from exc


def _flag(raw: str) -> bool:
    return raw.lower() in ("1", "true", "yes", "on")


def load_settings(env_path: Optional[str] = None) -> Settings:
    """Build Settings from the environment (and .env), validating the values that can be wrong."""
    _load_env_from_file(env_path)
    defaults = Settings()
    settings = Settings(
        mongo_uri=os.getenv("MONGO_URI") or None,
        mongo_db_name=_env("MONGO_DB_NAME", str, defaults.mongo_db_name),
        update_interval_hours=_env("UPDATE_INTERVAL_HOURS", float, defaults.update_interval_hours),
        update_slack_seconds=_env("UPDATE_SLACK_SECONDS", int, defaults.update_slack_seconds),
        small_update_interval_minutes=_env(
            "SMALL_UPDATE_INTERVAL_MINUTES", float, defaults.small_update_interval_minutes
        ),
        small_update_cooldown_multiplier=_env(
            "SMALL_UPDATE_COOLDOWN_MULTIPLIER", int, defaults.small_update_cooldown_multiplier
        ),
        fetch_chunk_size=_env("FETCH_CHUNK_SIZE", int, defaults.fetch_chunk_size),
        fetch_max_attempts=_env("FETCH_MAX_ATTEMPTS", int, defaults.fetch_max_attempts),
        fetch_retry_cooldown=_env("FETCH_RETRY_COOLDOWN", float, defaults.fetch_retry_cooldown),
        fetch_chunk_delay=_env("FETCH_CHUNK_DELAY", float, defaults.fetch_chunk_delay),
        fetch_timeout=_env("FETCH_TIMEOUT", float, defaults.fetch_timeout),
        commit=_env("BUILD_COMMIT", str, defaults.commit),
        enable_scheduler=_env("ENABLE_SCHEDULER", _flag, defaults.enable_scheduler),
    )

    problems = []
    if len(settings.mongo_db_name) > MAX_MONGO_DB_NAME_LENGTH:
        problems.append(
            f"MONGO_DB_NAME must be at most {MAX_MONGO_DB_NAME_LENGTH} characters "
            f"(got {len(settings.mongo_db_name)})"
        )
    if settings.fetch_chunk_size < 1:
        problems.append("FETCH_CHUNK_SIZE must be at least 1")
    if settings.fetch_max_attempts < 1:
        problems.append("FETCH_MAX_ATTEMPTS must be at least 1")
    if settings.update_interval_hours <= 0 or settings.small_update_interval_minutes <= 0:
        problems.append("UPDATE_INTERVAL_HOURS and SMALL_UPDATE_INTERVAL_MINUTES must be positive")
    if problems:
        raise RuntimeError("Invalid settings:\n" + "\n".join(problems))
    return settings
