"""
Runtime configuration for taskdesk.

Values come from environment variables (a project-level .env is loaded first).
"""

import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from dotenv import load_dotenv

project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    return float(value)


class Settings(BaseModel):
    """All tunables in one place."""
    database_url: str = f"sqlite:///{project_root / 'taskdesk.db'}"
    db_echo: bool = False

    # Completion service (Gemini on Vertex AI)
    gcp_project_id: Optional[str] = None
    gcp_location: str = "global"
    gemini_model: str = "gemini-3-pro-preview"
    gemini_temperature: float = 0.1

    # Timeouts (seconds)
    snapshot_timeout: float = 5.0
    completion_timeout: float = 60.0
    commit_timeout: float = 10.0

    # Live updates
    heartbeat_interval: float = 30.0
    sink_queue_size: int = 100

    auto_approve_enabled: bool = False
    slack_bot_token: Optional[str] = None
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.model_fields["database_url"].default),
        db_echo=_env_bool("DB_ECHO"),
        gcp_project_id=os.getenv("GCP_PROJECT_ID"),
        gcp_location=os.getenv("GCP_LOCATION", "global"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-3-pro-preview"),
        gemini_temperature=_env_float("GEMINI_TEMPERATURE", 0.1),
        snapshot_timeout=_env_float("SNAPSHOT_TIMEOUT_SECONDS", 5.0),
        completion_timeout=_env_float("COMPLETION_TIMEOUT_SECONDS", 60.0),
        commit_timeout=_env_float("COMMIT_TIMEOUT_SECONDS", 10.0),
        heartbeat_interval=_env_float("HEARTBEAT_INTERVAL_SECONDS", 30.0),
        sink_queue_size=int(os.getenv("SINK_QUEUE_SIZE", "100")),
        auto_approve_enabled=_env_bool("AUTO_APPROVE_ENABLED"),
        slack_bot_token=os.getenv("SLACK_BOT_TOKEN") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
