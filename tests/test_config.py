from __future__ import annotations

from pathlib import Path

import pytest

from kb_assistant.config import ConfigError, load_settings

ENV_KEYS = (
    "KB_API_BASE",
    "KB_API_TOKEN",
    "KB_RECENT_LIMIT",
    "KB_WATCHER_POLL_SECONDS",
    "KB_DICTATION_LANGUAGE",
    "KB_STATE_FILE",
    "KB_WIDGET_MARGIN",
    "KB_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("kb_assistant.config.load_dotenv", lambda: None)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_load_settings_defaults(tmp_path: Path) -> None:
    settings = load_settings(state_file=tmp_path / "ui.json")

    assert settings.api_base == "http://localhost:8080"
    assert settings.api_token is None
    assert settings.recent_limit == 10
    assert settings.watcher_poll_seconds == 30
    assert settings.dictation_language == "en-US"
    assert settings.widget_margin == 16
    assert settings.log_level == "INFO"
    assert settings.state_file == (tmp_path / "ui.json").resolve()


def test_api_base_override_strips_trailing_slash(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KB_API_BASE", "http://env-host:9000")

    assert load_settings().api_base == "http://env-host:9000"
    assert load_settings(api_base="https://kb.local/").api_base == "https://kb.local"


def test_invalid_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KB_RECENT_LIMIT", "ten")
    with pytest.raises(ConfigError):
        load_settings()


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("KB_RECENT_LIMIT", "0"),
        ("KB_RECENT_LIMIT", "51"),
        ("KB_WATCHER_POLL_SECONDS", "0"),
        ("KB_WIDGET_MARGIN", "-1"),
        ("KB_API_BASE", "localhost:8080"),
        ("KB_DICTATION_LANGUAGE", " "),
    ],
)
def test_out_of_range_values(monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigError):
        load_settings()
