"""
Pydantic models shared across the assistant core.

Field names are snake_case in Python and camelCase on the wire;
serialise with ``dump()`` to get the JSON shape the client expects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model that accepts and emits camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Return a JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class SourceRef(CamelModel):
    """A single web source cited by a generated answer."""

    title: str
    url: str
    snippet: str = ""


class GeneratedAnswer(CamelModel):
    """Answer text plus cited sources, as produced by the AI gateway."""

    content: str
    sources: list[SourceRef] = Field(default_factory=list)


# ── Identity ───────────────────────────────────────────────────────────────


class User(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ── Searches ───────────────────────────────────────────────────────────────


class Search(CamelModel):
    """A single query/response pair."""

    id: str
    user_id: Optional[str] = None
    query: str
    response: Optional[str] = None
    category: Optional[str] = None
    sources: list[SourceRef] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class SearchHistory(CamelModel):
    """Append-only link between a user and a search they ran."""

    id: str
    user_id: str
    search_id: str
    created_at: datetime = Field(default_factory=utcnow)


# ── Conversations ──────────────────────────────────────────────────────────


class Conversation(CamelModel):
    id: str
    user_id: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Message(CamelModel):
    id: str
    conversation_id: str
    role: Literal["user", "assistant"]
    content: str
    sources: list[SourceRef] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class ThreadSummary(CamelModel):
    """List-view shape of a conversation."""

    id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_message_preview: str = ""
    message_count: int = 0


class Thread(CamelModel):
    """A conversation together with its ordered messages."""

    id: str
    title: Optional[str] = None
    summary: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    messages: list[Message] = Field(default_factory=list)


# ── Catalogue ──────────────────────────────────────────────────────────────


class TrendingTopic(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    category: str
    read_time: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool = True
    view_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class Space(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    category: str
    template_count: int = 0
    icon: Optional[str] = None
    gradient: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
