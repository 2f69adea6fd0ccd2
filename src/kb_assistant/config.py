from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised when required config is missing or invalid."""


@dataclass(frozen=True)
class Settings:
    api_base: str
    api_token: str | None
    recent_limit: int
    watcher_poll_seconds: int
    dictation_language: str
    state_file: Path
    widget_margin: int
    log_level: str


def _get_int_env(key: str, default: int) -> int:
    raw = os.getenv(key, str(default))
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got: {raw}") from exc


def load_settings(api_base: str | None = None, state_file: Path | None = None) -> Settings:
    load_dotenv()
    settings = Settings(
        api_base=(api_base or os.getenv("KB_API_BASE", "http://localhost:8080")).rstrip("/"),
        api_token=os.getenv("KB_API_TOKEN") or None,
        recent_limit=_get_int_env("KB_RECENT_LIMIT", 10),
        watcher_poll_seconds=_get_int_env("KB_WATCHER_POLL_SECONDS", 30),
        dictation_language=os.getenv("KB_DICTATION_LANGUAGE", "en-US"),
        state_file=(state_file or Path(os.getenv("KB_STATE_FILE", ".kb_assistant/ui_state.json"))).resolve(),
        widget_margin=_get_int_env("KB_WIDGET_MARGIN", 16),
        log_level=os.getenv("KB_LOG_LEVEL", "INFO").upper(),
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    if not settings.api_base.startswith(("http://", "https://")):
        raise ConfigError("KB_API_BASE must be an http(s) URL")
    if not 1 <= settings.recent_limit <= 50:
        raise ConfigError("KB_RECENT_LIMIT must be between 1 and 50")
    if settings.watcher_poll_seconds <= 0:
        raise ConfigError("KB_WATCHER_POLL_SECONDS must be > 0")
    if settings.widget_margin < 0:
        raise ConfigError("KB_WIDGET_MARGIN must be >= 0")
    if not settings.dictation_language.strip():
        raise ConfigError("KB_DICTATION_LANGUAGE must not be empty")
    if settings.log_level not in LOG_LEVELS:
        raise ConfigError(f"KB_LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}")
