"""Tests for config/settings.py — environment parsing and validation."""

from __future__ import annotations

import pytest

from config.settings import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENAI_KEY", "API_KEY",
        "AI_BACKEND_ORDER", "DATABASE_URL", "SEED_DEMO_DATA", "CHAT_HISTORY_TURNS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.backend_order == ["anthropic", "openai"]
        assert settings.database_url == ""
        assert settings.seed_demo_data is True
        assert settings.title_max_length == 50

    def test_missing_keys_still_valid(self):
        Settings().validate()

    def test_openai_key_aliases(self, monkeypatch):
        monkeypatch.setenv("OPENAI_KEY", "from-alias")
        assert Settings().openai_api_key == "from-alias"

    def test_primary_openai_key_wins(self, monkeypatch):
        monkeypatch.setenv("API_KEY", "generic")
        monkeypatch.setenv("OPENAI_API_KEY", "specific")
        assert Settings().openai_api_key == "specific"

    def test_backend_order_parsed(self, monkeypatch):
        monkeypatch.setenv("AI_BACKEND_ORDER", " OpenAI , anthropic ")
        assert Settings().backend_order == ["openai", "anthropic"]

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("AI_BACKEND_ORDER", "anthropic,gemini")
        with pytest.raises(ValueError, match="gemini"):
            Settings().validate()

    def test_non_positive_length_rejected(self):
        with pytest.raises(ValueError, match="title_max_length"):
            Settings(title_max_length=0).validate()

    @pytest.mark.parametrize("url, path", [
        ("sqlite:///data/app.db", "data/app.db"),
        ("sqlite:////tmp/app.db", "/tmp/app.db"),
        ("/var/lib/app.db", "/var/lib/app.db"),
    ])
    def test_sqlite_path(self, monkeypatch, url, path):
        monkeypatch.setenv("DATABASE_URL", url)
        assert Settings().sqlite_path == path
