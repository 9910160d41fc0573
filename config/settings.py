"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError on nonsensical values
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

#: Generation backends the gateway knows how to build.
KNOWN_BACKENDS: tuple[str, ...] = ("anthropic", "openai")


def _openai_key() -> str:
    for name in ("OPENAI_API_KEY", "OPENAI_KEY", "API_KEY"):
        value = os.environ.get(name, "")
        if value:
            return value
    return ""


def _backend_order() -> list[str]:
    raw = os.environ.get("AI_BACKEND_ORDER", ",".join(KNOWN_BACKENDS))
    return [name.strip().lower() for name in raw.split(",") if name.strip()]


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )
    openai_api_key: str = field(default_factory=_openai_key)

    # ── AI Models ───────────────────────────────────────────────────────────
    #: Order in which the gateway tries generation backends.
    backend_order: list[str] = field(default_factory=_backend_order)
    anthropic_model: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_MODEL", "claude-haiku-4-5")
    )
    openai_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    )

    # ── Storage ─────────────────────────────────────────────────────────────
    #: Empty → in-memory store. ``sqlite:///path`` or a bare path → SQLite.
    database_url: str = field(
        default_factory=lambda: os.environ.get("DATABASE_URL", "")
    )
    seed_demo_data: bool = field(
        default_factory=lambda: os.environ.get("SEED_DEMO_DATA", "1") == "1"
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5000"))
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    # ── Chat ────────────────────────────────────────────────────────────────
    title_max_length: int = 50
    preview_length: int = 100
    #: Prior messages sent along with a chat turn.
    history_turns: int = field(
        default_factory=lambda: int(os.environ.get("CHAT_HISTORY_TURNS", "10"))
    )
    max_sources: int = 5

    @property
    def sqlite_path(self) -> str:
        """Return the filesystem path encoded in ``database_url``."""
        url = self.database_url.strip()
        if url.startswith("sqlite:///"):
            return url[len("sqlite:///"):]
        return url

    def validate(self) -> None:
        """Raise ``ValueError`` if any setting is unusable.

        Missing API keys are allowed: the gateway then runs degraded.
        """
        for name in ("title_max_length", "preview_length", "max_sources"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")
        if self.history_turns < 0:
            raise ValueError("history_turns must not be negative.")
        unknown = [b for b in self.backend_order if b not in KNOWN_BACKENDS]
        if unknown:
            raise ValueError(
                f"Unknown AI backend(s) in AI_BACKEND_ORDER: {', '.join(unknown)}. "
                f"Expected any of: {', '.join(KNOWN_BACKENDS)}."
            )
