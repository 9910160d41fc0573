"""
In-process store backed by dicts keyed by UUID.

Lives for the lifetime of the process; used when no ``DATABASE_URL`` is
configured. A single re-entrant lock serialises access to the maps, and
every value handed out is a copy so callers can't mutate stored records.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable
from typing import TypeVar

from pydantic import BaseModel

from core.errors import NotFound
from core.models import (
    Conversation,
    Message,
    Search,
    SearchHistory,
    Space,
    TrendingTopic,
    User,
    utcnow,
)
from core.storage import Store

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _new_id() -> str:
    return str(uuid.uuid4())


def _copy(model: M) -> M:
    return model.model_copy(deep=True)


class MemoryStore(Store):
    """Ephemeral ``Store`` implementation."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[str, User] = {}
        self._searches: dict[str, Search] = {}
        self._history: dict[str, SearchHistory] = {}
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}
        self._topics: dict[str, TrendingTopic] = {}
        self._spaces: dict[str, Space] = {}

    # ── Users ──────────────────────────────────────────────────────────────

    def get_user(self, user_id):
        with self._lock:
            user = self._users.get(user_id)
            return _copy(user) if user else None

    def upsert_user(self, user_id, **fields):
        updates = {k: v for k, v in fields.items() if v is not None}
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                user = User(id=user_id, **updates)
            else:
                user = existing.model_copy(update={**updates, "updated_at": utcnow()})
            self._users[user_id] = user
            return _copy(user)

    # ── Searches ───────────────────────────────────────────────────────────

    def create_search(self, query, response=None, category=None, sources=(), user_id=None):
        search = Search(
            id=_new_id(),
            user_id=user_id,
            query=query,
            response=response,
            category=category,
            sources=[_copy(s) for s in sources],
        )
        with self._lock:
            self._searches[search.id] = search
        return _copy(search)

    def get_search(self, search_id):
        with self._lock:
            search = self._searches.get(search_id)
            return _copy(search) if search else None

    def list_searches_by_user(self, user_id, limit=50):
        with self._lock:
            rows = [s for s in self._searches.values() if s.user_id == user_id]
            rows.sort(key=lambda s: s.created_at, reverse=True)
            return [_copy(s) for s in rows[:limit]]

    def add_search_history(self, user_id, search_id):
        record = SearchHistory(id=_new_id(), user_id=user_id, search_id=search_id)
        with self._lock:
            self._history[record.id] = record
        return _copy(record)

    def list_search_history(self, user_id, limit=50):
        with self._lock:
            rows = [h for h in self._history.values() if h.user_id == user_id]
            rows.sort(key=lambda h: h.created_at, reverse=True)
            return [_copy(h) for h in rows[:limit]]

    # ── Conversations ──────────────────────────────────────────────────────

    def create_conversation(self, title=None, user_id=None, summary=None):
        now = utcnow()
        conversation = Conversation(
            id=_new_id(),
            user_id=user_id,
            title=title,
            summary=summary,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._conversations[conversation.id] = conversation
        logger.info("Created conversation id=%s", conversation.id)
        return _copy(conversation)

    def get_conversation(self, conversation_id):
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return _copy(conversation) if conversation else None

    def _recent(self, conversations: Iterable[Conversation], limit: int) -> list[Conversation]:
        rows = sorted(conversations, key=lambda c: c.updated_at, reverse=True)
        return [_copy(c) for c in rows[:limit]]

    def list_conversations_by_user(self, user_id, limit=50):
        with self._lock:
            return self._recent(
                (c for c in self._conversations.values() if c.user_id == user_id), limit
            )

    @staticmethod
    def _visible(conversation, scoped, visible_to):
        return not scoped or conversation.user_id is None or conversation.user_id == visible_to

    def list_recent_conversations(self, limit=50, *, scoped=False, visible_to=None):
        with self._lock:
            return self._recent(
                (
                    c for c in self._conversations.values()
                    if self._visible(c, scoped, visible_to)
                ),
                limit,
            )

    def _touch(self, conversation: Conversation, **updates) -> Conversation:
        # updated_at never moves backwards, even if the wall clock does.
        updated_at = max(utcnow(), conversation.updated_at)
        touched = conversation.model_copy(update={**updates, "updated_at": updated_at})
        self._conversations[conversation.id] = touched
        return touched

    def update_conversation(self, conversation_id, title=None, summary=None):
        updates = {k: v for k, v in (("title", title), ("summary", summary)) if v is not None}
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise NotFound("Conversation not found")
            return _copy(self._touch(conversation, **updates))

    def delete_conversation(self, conversation_id):
        with self._lock:
            deleted = self._conversations.pop(conversation_id, None) is not None
        if deleted:
            logger.info("Deleted conversation id=%s", conversation_id)
        return deleted

    def search_conversations(self, query, limit=50, *, scoped=False, visible_to=None):
        needle = query.lower()
        with self._lock:
            return self._recent(
                (
                    c for c in self._conversations.values()
                    if self._visible(c, scoped, visible_to)
                    and (
                        needle in (c.title or "").lower()
                        or needle in (c.summary or "").lower()
                    )
                ),
                limit,
            )

    # ── Messages ───────────────────────────────────────────────────────────

    def create_message(self, conversation_id, role, content, sources=()):
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise NotFound("Conversation not found")
            message = Message(
                id=_new_id(),
                conversation_id=conversation_id,
                role=role,
                content=content,
                sources=[_copy(s) for s in sources],
            )
            self._messages[message.id] = message
            self._touch(conversation)
            return _copy(message)

    def list_messages(self, conversation_id):
        with self._lock:
            rows = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        # sorted() is stable, so equal timestamps keep insertion order.
        rows.sort(key=lambda m: m.created_at)
        return [_copy(m) for m in rows]

    def delete_messages(self, conversation_id):
        with self._lock:
            doomed = [k for k, m in self._messages.items() if m.conversation_id == conversation_id]
            for key in doomed:
                del self._messages[key]
        return len(doomed)

    # ── Trending topics ────────────────────────────────────────────────────

    def list_trending_topics(self, limit=10):
        with self._lock:
            rows = [t for t in self._topics.values() if t.is_active]
            rows.sort(key=lambda t: t.view_count, reverse=True)
            return [_copy(t) for t in rows[:limit]]

    def create_trending_topic(
        self,
        title,
        category,
        description=None,
        read_time=None,
        icon=None,
        view_count=0,
        is_active=True,
    ):
        topic = TrendingTopic(
            id=_new_id(),
            title=title,
            category=category,
            description=description,
            read_time=read_time,
            icon=icon,
            view_count=view_count,
            is_active=is_active,
        )
        with self._lock:
            self._topics[topic.id] = topic
        return _copy(topic)

    def increment_topic_views(self, topic_id):
        with self._lock:
            topic = self._topics.get(topic_id)
            if topic is None:
                return False
            self._topics[topic_id] = topic.model_copy(
                update={"view_count": topic.view_count + 1}
            )
            return True

    # ── Spaces ─────────────────────────────────────────────────────────────

    def list_spaces(self, limit=10):
        with self._lock:
            rows = [s for s in self._spaces.values() if s.is_active]
        rows.sort(key=lambda s: s.created_at)
        return [_copy(s) for s in rows[:limit]]

    def list_spaces_by_category(self, category):
        with self._lock:
            rows = [
                s for s in self._spaces.values()
                if s.is_active and s.category == category
            ]
        rows.sort(key=lambda s: s.created_at)
        return [_copy(s) for s in rows]

    def create_space(
        self,
        title,
        category,
        description=None,
        template_count=0,
        icon=None,
        gradient=None,
        tags=(),
        is_active=True,
    ):
        space = Space(
            id=_new_id(),
            title=title,
            category=category,
            description=description,
            template_count=template_count,
            icon=icon,
            gradient=gradient,
            tags=list(tags),
            is_active=is_active,
        )
        with self._lock:
            self._spaces[space.id] = space
        return _copy(space)
