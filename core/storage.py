"""
Storage interface shared by the in-memory and SQLite backends.

Conventions every backend follows
─────────────────────────────────
* ``create_*`` assigns a fresh UUID and timestamps and returns a new model;
  caller-supplied values are never mutated.
* ``get_*`` returns ``None`` for an unknown id.
* ``update_conversation`` raises ``NotFound`` for an unknown id.
* Listings are newest first: conversations by ``updated_at``, searches and
  history rows by ``created_at``. Messages are oldest first.
* ``create_message`` refreshes the owning conversation's ``updated_at``.
* ``delete_conversation`` does not cascade; call ``delete_messages`` first.

Each call is atomic on its own. Multi-step flows are not transactional.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Optional

from core.models import (
    Conversation,
    Message,
    Search,
    SearchHistory,
    SourceRef,
    Space,
    TrendingTopic,
    User,
)

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

#: Fields of a ``User`` that an identity callback may set.
USER_FIELDS: tuple[str, ...] = ("email", "first_name", "last_name", "profile_image_url")


class Store(ABC):
    """Repository for every entity the assistant persists."""

    # ── Users ──────────────────────────────────────────────────────────────

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def upsert_user(self, user_id: str, **fields: Optional[str]) -> User:
        """Create the user or merge non-``None`` *fields* into it.

        ``updated_at`` is refreshed on every call; ``created_at`` is kept.
        """

    # ── Searches ───────────────────────────────────────────────────────────

    @abstractmethod
    def create_search(
        self,
        query: str,
        response: Optional[str] = None,
        category: Optional[str] = None,
        sources: Sequence[SourceRef] = (),
        user_id: Optional[str] = None,
    ) -> Search: ...

    @abstractmethod
    def get_search(self, search_id: str) -> Optional[Search]: ...

    @abstractmethod
    def list_searches_by_user(self, user_id: str, limit: int = 50) -> list[Search]: ...

    @abstractmethod
    def add_search_history(self, user_id: str, search_id: str) -> SearchHistory: ...

    @abstractmethod
    def list_search_history(self, user_id: str, limit: int = 50) -> list[SearchHistory]: ...

    # ── Conversations ──────────────────────────────────────────────────────

    @abstractmethod
    def create_conversation(
        self,
        title: Optional[str] = None,
        user_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> Conversation: ...

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    def list_conversations_by_user(self, user_id: str, limit: int = 50) -> list[Conversation]: ...

    @abstractmethod
    def list_recent_conversations(
        self,
        limit: int = 50,
        *,
        scoped: bool = False,
        visible_to: Optional[str] = None,
    ) -> list[Conversation]:
        """Most recently updated conversations first.

        With *scoped* set, only anonymous conversations and those owned by
        *visible_to* are considered; *limit* applies after that filter.
        """

    @abstractmethod
    def update_conversation(
        self,
        conversation_id: str,
        title: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> Conversation:
        """Merge the non-``None`` fields and refresh ``updated_at``.

        Raises:
            NotFound: If *conversation_id* is unknown.
        """

    @abstractmethod
    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete the conversation row only. Returns False if it was absent."""

    @abstractmethod
    def search_conversations(
        self,
        query: str,
        limit: int = 50,
        *,
        scoped: bool = False,
        visible_to: Optional[str] = None,
    ) -> list[Conversation]:
        """Case-insensitive substring match over title and summary.

        *scoped* and *visible_to* filter as in ``list_recent_conversations``.
        """

    # ── Messages ───────────────────────────────────────────────────────────

    @abstractmethod
    def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        sources: Sequence[SourceRef] = (),
    ) -> Message:
        """Append a message.

        Raises:
            NotFound: If the conversation does not exist.
        """

    @abstractmethod
    def list_messages(self, conversation_id: str) -> list[Message]: ...

    @abstractmethod
    def delete_messages(self, conversation_id: str) -> int:
        """Delete every message of a conversation; return how many went."""

    # ── Trending topics ────────────────────────────────────────────────────

    @abstractmethod
    def list_trending_topics(self, limit: int = 10) -> list[TrendingTopic]:
        """Active topics, most viewed first."""

    @abstractmethod
    def create_trending_topic(
        self,
        title: str,
        category: str,
        description: Optional[str] = None,
        read_time: Optional[str] = None,
        icon: Optional[str] = None,
        view_count: int = 0,
        is_active: bool = True,
    ) -> TrendingTopic: ...

    @abstractmethod
    def increment_topic_views(self, topic_id: str) -> bool:
        """Add exactly one view. Returns False for an unknown topic."""

    # ── Spaces ─────────────────────────────────────────────────────────────

    @abstractmethod
    def list_spaces(self, limit: int = 10) -> list[Space]:
        """Active spaces, oldest first."""

    @abstractmethod
    def list_spaces_by_category(self, category: str) -> list[Space]: ...

    @abstractmethod
    def create_space(
        self,
        title: str,
        category: str,
        description: Optional[str] = None,
        template_count: int = 0,
        icon: Optional[str] = None,
        gradient: Optional[str] = None,
        tags: Iterable[str] = (),
        is_active: bool = True,
    ) -> Space: ...

    # ── Seeding ────────────────────────────────────────────────────────────

    def seed_demo_data(self) -> None:
        """Populate the catalogue once, when both tables are still empty."""
        from core.seed import DEMO_SPACES, DEMO_TOPICS

        if self.list_trending_topics(limit=1) or self.list_spaces(limit=1):
            return
        for topic in DEMO_TOPICS:
            self.create_trending_topic(**topic)
        for space in DEMO_SPACES:
            self.create_space(**space)
        logger.info(
            "Seeded %d trending topics and %d spaces", len(DEMO_TOPICS), len(DEMO_SPACES)
        )


def build_store(settings: Settings) -> Store:
    """Return the store selected by ``settings.database_url``.

    Falls back to the in-memory store if the SQLite file cannot be opened.
    """
    from core.memory_store import MemoryStore

    store: Store
    if settings.database_url.strip():
        from core.sqlite_store import SQLiteStore

        try:
            store = SQLiteStore(settings.sqlite_path)
            store.init_db()
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "Could not open database %r (%s); using in-memory store",
                settings.database_url, exc,
            )
            store = MemoryStore()
    else:
        store = MemoryStore()

    if settings.seed_demo_data:
        store.seed_demo_data()
    return store
