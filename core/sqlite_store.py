"""
SQLite-backed store.

Schema
──────
users           id, email, first_name, last_name, profile_image_url,
                created_at, updated_at
searches        id, user_id, query, response, category, sources, created_at
search_history  id, user_id, search_id, created_at
conversations   id, user_id, title, summary, created_at, updated_at
messages        id, conversation_id, role, content, sources, created_at
trending_topics id, title, description, category, read_time, icon,
                is_active, view_count, created_at
spaces          id, title, description, category, template_count, icon,
                gradient, tags, is_active, created_at

Timestamps are ISO-8601 UTC text; ``sources`` and ``tags`` are JSON text.
Every call opens its own connection, so the store is safe to share across
request threads.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.errors import NotFound
from core.models import (
    Conversation,
    Message,
    Search,
    SearchHistory,
    SourceRef,
    Space,
    TrendingTopic,
    User,
    utcnow,
)
from core.storage import USER_FIELDS, Store

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id                TEXT PRIMARY KEY,
    email             TEXT,
    first_name        TEXT,
    last_name         TEXT,
    profile_image_url TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS searches (
    id         TEXT PRIMARY KEY,
    user_id    TEXT,
    query      TEXT NOT NULL,
    response   TEXT,
    category   TEXT,
    sources    TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_searches_user ON searches (user_id, created_at);
CREATE TABLE IF NOT EXISTS search_history (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL,
    search_id  TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_history_user ON search_history (user_id, created_at);
CREATE TABLE IF NOT EXISTS conversations (
    id         TEXT PRIMARY KEY,
    user_id    TEXT,
    title      TEXT,
    summary    TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_conversations_updated ON conversations (updated_at);
CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role            TEXT NOT NULL,
    content         TEXT NOT NULL,
    sources         TEXT NOT NULL DEFAULT '[]',
    created_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages (conversation_id, created_at);
CREATE TABLE IF NOT EXISTS trending_topics (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    description TEXT,
    category    TEXT NOT NULL,
    read_time   TEXT,
    icon        TEXT,
    is_active   INTEGER NOT NULL DEFAULT 1,
    view_count  INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS spaces (
    id             TEXT PRIMARY KEY,
    title          TEXT NOT NULL,
    description    TEXT,
    category       TEXT NOT NULL,
    template_count INTEGER NOT NULL DEFAULT 0,
    icon           TEXT,
    gradient       TEXT,
    tags           TEXT NOT NULL DEFAULT '[]',
    is_active      INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL
);
"""


def _new_id() -> str:
    return str(uuid.uuid4())


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _sources_json(sources) -> str:
    return json.dumps([s.model_dump(mode="json") for s in sources])


def _copy_sources(sources) -> list:
    return [s.model_copy(deep=True) for s in sources]


def _visibility(scoped: bool, visible_to) -> tuple[str, tuple]:
    """WHERE fragment limiting rows to anonymous ones and *visible_to*'s."""
    if not scoped:
        return "1 = 1", ()
    return "(user_id IS NULL OR user_id = ?)", (visible_to,)


def _sources(raw: Optional[str]) -> list[SourceRef]:
    return [SourceRef.model_validate(s) for s in json.loads(raw or "[]")]


# ── Row mappers ────────────────────────────────────────────────────────────────


def _user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        profile_image_url=row["profile_image_url"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


def _search(row: sqlite3.Row) -> Search:
    return Search(
        id=row["id"],
        user_id=row["user_id"],
        query=row["query"],
        response=row["response"],
        category=row["category"],
        sources=_sources(row["sources"]),
        created_at=_dt(row["created_at"]),
    )


def _history(row: sqlite3.Row) -> SearchHistory:
    return SearchHistory(
        id=row["id"],
        user_id=row["user_id"],
        search_id=row["search_id"],
        created_at=_dt(row["created_at"]),
    )


def _conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        summary=row["summary"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


def _message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        sources=_sources(row["sources"]),
        created_at=_dt(row["created_at"]),
    )


def _topic(row: sqlite3.Row) -> TrendingTopic:
    return TrendingTopic(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        read_time=row["read_time"],
        icon=row["icon"],
        is_active=bool(row["is_active"]),
        view_count=row["view_count"],
        created_at=_dt(row["created_at"]),
    )


def _space(row: sqlite3.Row) -> Space:
    return Space(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        template_count=row["template_count"],
        icon=row["icon"],
        gradient=row["gradient"],
        tags=json.loads(row["tags"] or "[]"),
        is_active=bool(row["is_active"]),
        created_at=_dt(row["created_at"]),
    )


class SQLiteStore(Store):
    """Durable ``Store`` implementation on a single SQLite file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @contextmanager
    def _connect(self):
        """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create all tables if they don't exist yet."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.info("Database initialised at %s", self.path)

    # ── Users ──────────────────────────────────────────────────────────────

    def get_user(self, user_id):
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _user(row) if row else None

    def upsert_user(self, user_id, **fields):
        now = _ts(utcnow())
        values = {k: fields.get(k) for k in USER_FIELDS}
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, first_name, last_name, profile_image_url,
                                   created_at, updated_at)
                VALUES (:id, :email, :first_name, :last_name, :profile_image_url, :now, :now)
                ON CONFLICT(id) DO UPDATE SET
                    email             = COALESCE(excluded.email, users.email),
                    first_name        = COALESCE(excluded.first_name, users.first_name),
                    last_name         = COALESCE(excluded.last_name, users.last_name),
                    profile_image_url = COALESCE(excluded.profile_image_url,
                                                 users.profile_image_url),
                    updated_at        = excluded.updated_at
                """,
                {"id": user_id, "now": now, **values},
            )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _user(row)

    # ── Searches ───────────────────────────────────────────────────────────

    def create_search(self, query, response=None, category=None, sources=(), user_id=None):
        search = Search(
            id=_new_id(),
            user_id=user_id,
            query=query,
            response=response,
            category=category,
            sources=_copy_sources(sources),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO searches (id, user_id, query, response, category, sources, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    search.id, search.user_id, search.query, search.response,
                    search.category, _sources_json(search.sources), _ts(search.created_at),
                ),
            )
        return search

    def get_search(self, search_id):
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM searches WHERE id = ?", (search_id,)).fetchone()
        return _search(row) if row else None

    def list_searches_by_user(self, user_id, limit=50):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM searches WHERE user_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [_search(r) for r in rows]

    def add_search_history(self, user_id, search_id):
        record = SearchHistory(id=_new_id(), user_id=user_id, search_id=search_id)
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO search_history (id, user_id, search_id, created_at) "
                "VALUES (?, ?, ?, ?)",
                (record.id, record.user_id, record.search_id, _ts(record.created_at)),
            )
        return record

    def list_search_history(self, user_id, limit=50):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM search_history WHERE user_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [_history(r) for r in rows]

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
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO conversations (id, user_id, title, summary, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    conversation.id, user_id, title, summary,
                    _ts(conversation.created_at), _ts(conversation.updated_at),
                ),
            )
        logger.info("Created conversation id=%s", conversation.id)
        return conversation

    def get_conversation(self, conversation_id):
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
        return _conversation(row) if row else None

    def list_conversations_by_user(self, user_id, limit=50):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations WHERE user_id = ? "
                "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [_conversation(r) for r in rows]

    def list_recent_conversations(self, limit=50, *, scoped=False, visible_to=None):
        where, params = _visibility(scoped, visible_to)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM conversations WHERE {where} "
                "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [_conversation(r) for r in rows]

    @staticmethod
    def _touch(conn: sqlite3.Connection, conversation_id: str) -> None:
        # MAX() keeps updated_at monotonic if the wall clock steps back.
        conn.execute(
            "UPDATE conversations SET updated_at = MAX(updated_at, ?) WHERE id = ?",
            (_ts(utcnow()), conversation_id),
        )

    def update_conversation(self, conversation_id, title=None, summary=None):
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE conversations SET title = COALESCE(?, title), "
                "summary = COALESCE(?, summary) WHERE id = ?",
                (title, summary, conversation_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("Conversation not found")
            self._touch(conn, conversation_id)
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
        return _conversation(row)

    def delete_conversation(self, conversation_id):
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted conversation id=%s", conversation_id)
        return deleted

    def search_conversations(self, query, limit=50, *, scoped=False, visible_to=None):
        # instr() on lower() avoids LIKE wildcard escaping.
        needle = query.lower()
        where, params = _visibility(scoped, visible_to)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM conversations WHERE {where} "
                "AND (instr(lower(coalesce(title, '')), ?) > 0 "
                "     OR instr(lower(coalesce(summary, '')), ?) > 0) "
                "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
                (*params, needle, needle, limit),
            ).fetchall()
        return [_conversation(r) for r in rows]

    # ── Messages ───────────────────────────────────────────────────────────

    def create_message(self, conversation_id, role, content, sources=()):
        message = Message(
            id=_new_id(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            sources=_copy_sources(sources),
        )
        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
            if exists is None:
                raise NotFound("Conversation not found")
            conn.execute(
                "INSERT INTO messages (id, conversation_id, role, content, sources, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    message.id, conversation_id, role, content,
                    _sources_json(message.sources), _ts(message.created_at),
                ),
            )
            self._touch(conn, conversation_id)
        return message

    def list_messages(self, conversation_id):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? "
                "ORDER BY created_at ASC, rowid ASC",
                (conversation_id,),
            ).fetchall()
        return [_message(r) for r in rows]

    def delete_messages(self, conversation_id):
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
        return cursor.rowcount

    # ── Trending topics ────────────────────────────────────────────────────

    def list_trending_topics(self, limit=10):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM trending_topics WHERE is_active = 1 "
                "ORDER BY view_count DESC, rowid ASC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_topic(r) for r in rows]

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
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO trending_topics (id, title, description, category, read_time, "
                "icon, is_active, view_count, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    topic.id, topic.title, topic.description, topic.category,
                    topic.read_time, topic.icon, int(topic.is_active),
                    topic.view_count, _ts(topic.created_at),
                ),
            )
        return topic

    def increment_topic_views(self, topic_id):
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE trending_topics SET view_count = view_count + 1 WHERE id = ?",
                (topic_id,),
            )
        return cursor.rowcount > 0

    # ── Spaces ─────────────────────────────────────────────────────────────

    def list_spaces(self, limit=10):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM spaces WHERE is_active = 1 "
                "ORDER BY created_at ASC, rowid ASC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_space(r) for r in rows]

    def list_spaces_by_category(self, category):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM spaces WHERE is_active = 1 AND category = ? "
                "ORDER BY created_at ASC, rowid ASC",
                (category,),
            ).fetchall()
        return [_space(r) for r in rows]

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
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO spaces (id, title, description, category, template_count, icon, "
                "gradient, tags, is_active, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    space.id, space.title, space.description, space.category,
                    space.template_count, space.icon, space.gradient,
                    json.dumps(space.tags), int(space.is_active), _ts(space.created_at),
                ),
            )
        return space
