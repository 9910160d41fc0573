"""Request orchestration.

Ties the AI gateway and the store together for every HTTP action. The
web layer only parses requests and shapes responses; everything it needs
is a method here.

Chat turn
─────────
1. Load the conversation (or create one titled after the message).
2. Append the user message.
3. Ask the gateway for an answer, with earlier messages as context.
4. Append the assistant message carrying the answer's sources.
5. Reload and return the full thread.

The steps are not transactional. If step 4 fails the answer is still
returned, flagged ``persisted=False``, and the stored thread ends on an
unanswered user message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from core.categorizer import category_cards, normalize_category
from core.errors import AccessDenied, InvalidRequest, NotFound, Unauthorized
from core.models import (
    Conversation,
    GeneratedAnswer,
    Message,
    Search,
    Space,
    Thread,
    ThreadSummary,
    TrendingTopic,
    User,
)

if TYPE_CHECKING:
    from config.settings import Settings
    from core.gateway import AIGateway
    from core.storage import Store

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."


# ── Text helpers ───────────────────────────────────────────────────────────────


def derive_title(message: str, max_length: int = 50) -> str:
    """Build a conversation title from its first message.

    Messages that fit are used verbatim. Longer ones are cut so that the
    result, marker included, is exactly *max_length* characters.

    Examples:
        >>> derive_title("What is AI?")
        'What is AI?'
        >>> len(derive_title("x" * 80))
        50
    """
    if len(message) <= max_length:
        return message
    keep = max(max_length - len(TRUNCATION_MARKER), 0)
    return message[:keep] + TRUNCATION_MARKER


def preview(text: str, length: int = 100) -> str:
    """First *length* characters of *text*, with a marker when cut."""
    if len(text) <= length:
        return text
    return text[:length] + TRUNCATION_MARKER


def _required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{field} is required")
    return value.strip()


# ── Result types ───────────────────────────────────────────────────────────────


@dataclass
class ChatTurn:
    """Outcome of one chat turn."""

    thread_id: str
    answer: GeneratedAnswer
    thread: Thread
    persisted: bool = True


# ── Orchestrator ───────────────────────────────────────────────────────────────


class Orchestrator:
    """HTTP-facing operations over an injected store and gateway."""

    def __init__(
        self,
        store: Store,
        gateway: AIGateway,
        *,
        title_max_length: int = 50,
        preview_length: int = 100,
        history_turns: int = 10,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.title_max_length = title_max_length
        self.preview_length = preview_length
        self.history_turns = history_turns

    @classmethod
    def from_settings(cls, store: Store, gateway: AIGateway, settings: Settings) -> Orchestrator:
        return cls(
            store,
            gateway,
            title_max_length=settings.title_max_length,
            preview_length=settings.preview_length,
            history_turns=settings.history_turns,
        )

    # ── Identity ───────────────────────────────────────────────────────────

    def record_login(self, claims: dict[str, Any]) -> User:
        """Upsert the user described by identity-provider *claims*."""
        user_id = _required_text(claims.get("id"), "id")
        user = self.store.upsert_user(
            user_id,
            email=claims.get("email"),
            first_name=claims.get("firstName"),
            last_name=claims.get("lastName"),
            profile_image_url=claims.get("profileImageUrl"),
        )
        logger.info("Recorded login for user id=%s", user_id)
        return user

    def current_user(self, caller_id: Optional[str]) -> User:
        if not caller_id:
            raise Unauthorized("Unauthorized")
        user = self.store.get_user(caller_id)
        if user is None:
            raise NotFound("User not found")
        return user

    # ── Searches ───────────────────────────────────────────────────────────

    def submit_search(
        self,
        query: Any,
        category: Any = None,
        caller_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Answer *query*, store it, and record it in the caller's history.

        A degraded gateway still yields a successful result with the
        placeholder answer. A known *category* is normalised to its label;
        any other non-blank string (a space category such as "Business")
        is passed through as given.
        """
        query = _required_text(query, "Query")
        label = None
        if isinstance(category, str) and category.strip():
            label = normalize_category(category) or category.strip()

        answer = self.gateway.generate_answer(query, label)
        search = self.store.create_search(
            query=query,
            response=answer.content,
            category=label,
            sources=answer.sources,
            user_id=caller_id,
        )
        if caller_id:
            self.store.add_search_history(caller_id, search.id)

        logger.info("Search id=%s query=%r category=%s", search.id, query, label)
        return {
            "searchId": search.id,
            "query": query,
            "response": answer.content,
            "sources": [s.dump() for s in answer.sources],
            "category": label,
        }

    def get_search(self, search_id: str) -> Search:
        search = self.store.get_search(search_id)
        if search is None:
            raise NotFound("Search not found")
        return search

    def search_history(self, caller_id: Optional[str], limit: int = 50) -> list[Search]:
        if not caller_id:
            raise Unauthorized("Unauthorized")
        return self.store.list_searches_by_user(caller_id, limit)

    def suggestions(self, partial_query: Any) -> list[str]:
        """Query completions; empty on blank input or any internal fault."""
        if not isinstance(partial_query, str) or not partial_query.strip():
            return []
        try:
            return self.gateway.generate_suggestions(partial_query)
        except Exception:
            logger.exception("Suggestions failed for q=%r", partial_query)
            return []

    def categorize(self, query: Any) -> Optional[str]:
        if not isinstance(query, str) or not query.strip():
            return None
        try:
            return self.gateway.classify_category(query)
        except Exception:
            logger.exception("Categorisation failed for q=%r", query)
            return None

    # ── Catalogue ──────────────────────────────────────────────────────────

    def trending(self, limit: int = 10) -> list[TrendingTopic]:
        try:
            return self.store.list_trending_topics(limit)
        except Exception:
            logger.exception("Failed to list trending topics")
            return []

    def view_topic(self, topic_id: str) -> bool:
        counted = self.store.increment_topic_views(topic_id)
        if not counted:
            logger.debug("View for unknown topic id=%s ignored", topic_id)
        return counted

    def spaces(self, category: Optional[str] = None) -> list[Space]:
        if category:
            return self.store.list_spaces_by_category(category)
        return self.store.list_spaces(10)

    @staticmethod
    def categories() -> list[dict[str, str]]:
        return category_cards()

    # ── Threads ────────────────────────────────────────────────────────────

    def _load_conversation(self, thread_id: str, caller_id: Optional[str]) -> Conversation:
        conversation = self.store.get_conversation(thread_id)
        if conversation is None:
            raise NotFound("Thread not found")
        if conversation.user_id and conversation.user_id != caller_id:
            raise AccessDenied("You do not have access to this thread")
        return conversation

    @staticmethod
    def _thread(conversation: Conversation, messages: list[Message]) -> Thread:
        return Thread(
            id=conversation.id,
            title=conversation.title,
            summary=conversation.summary,
            user_id=conversation.user_id,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            messages=messages,
        )

    def _summary(self, conversation: Conversation) -> ThreadSummary:
        messages = self.store.list_messages(conversation.id)
        last = messages[-1].content if messages else ""
        return ThreadSummary(
            id=conversation.id,
            title=conversation.title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            last_message_preview=preview(last, self.preview_length),
            message_count=len(messages),
        )

    def _recent_history(self, conversation_id: str) -> list[Message]:
        if self.history_turns <= 0:
            return []
        return self.store.list_messages(conversation_id)[-self.history_turns:]

    def chat_turn(
        self,
        message: Any,
        thread_id: Optional[str] = None,
        caller_id: Optional[str] = None,
    ) -> ChatTurn:
        """Run one chat turn; see the module docstring for the steps."""
        message = _required_text(message, "Message")

        if thread_id:
            conversation = self._load_conversation(thread_id, caller_id)
            history = self._recent_history(conversation.id)
        else:
            conversation = self.store.create_conversation(
                title=derive_title(message, self.title_max_length),
                user_id=caller_id,
            )
            history = []

        known = [*history, self.store.create_message(conversation.id, "user", message)]
        answer = self.gateway.generate_answer(message, history=history)

        persisted = True
        try:
            known.append(
                self.store.create_message(
                    conversation.id, "assistant", answer.content, sources=answer.sources
                )
            )
        except Exception:
            persisted = False
            logger.exception(
                "Assistant message for thread id=%s was not stored; "
                "thread ends on an unanswered user message",
                conversation.id,
            )

        return ChatTurn(
            thread_id=conversation.id,
            answer=answer,
            thread=self._reload_thread(conversation, caller_id, known),
            persisted=persisted,
        )

    def _reload_thread(
        self,
        conversation: Conversation,
        caller_id: Optional[str],
        known: list[Message],
    ) -> Thread:
        """The stored thread after a turn.

        If the conversation cannot be reloaded, its stored messages are
        listed directly. Only when that fails as well is the thread built
        from *known* (recent history plus this turn), which may omit older
        messages.
        """
        try:
            return self.get_thread(conversation.id, caller_id)
        except Exception:
            logger.exception("Could not reload thread id=%s", conversation.id)
        try:
            return self._thread(conversation, self.store.list_messages(conversation.id))
        except Exception:
            logger.exception(
                "Could not list messages of thread id=%s; returning a partial thread",
                conversation.id,
            )
            return self._thread(conversation, known)

    def get_thread(self, thread_id: str, caller_id: Optional[str] = None) -> Thread:
        conversation = self._load_conversation(thread_id, caller_id)
        return self._thread(conversation, self.store.list_messages(conversation.id))

    def update_thread(
        self,
        thread_id: str,
        title: Any = None,
        summary: Any = None,
        caller_id: Optional[str] = None,
    ) -> Thread:
        """Rename a thread or set its summary."""
        if title is None and summary is None:
            raise InvalidRequest("title or summary is required")
        if title is not None:
            title = derive_title(_required_text(title, "title"), self.title_max_length)
        if summary is not None and not isinstance(summary, str):
            raise InvalidRequest("summary must be a string")

        self._load_conversation(thread_id, caller_id)
        self.store.update_conversation(thread_id, title=title, summary=summary)
        return self.get_thread(thread_id, caller_id)

    def delete_thread(self, thread_id: str, caller_id: Optional[str] = None) -> None:
        """Delete a thread's messages, then the thread itself."""
        conversation = self._load_conversation(thread_id, caller_id)
        removed = self.store.delete_messages(conversation.id)
        self.store.delete_conversation(conversation.id)
        logger.info("Deleted thread id=%s with %d messages", conversation.id, removed)

    def list_threads(self, limit: int = 10, caller_id: Optional[str] = None) -> list[ThreadSummary]:
        """Most recently updated threads; empty on any store fault."""
        try:
            if caller_id:
                conversations = self.store.list_conversations_by_user(caller_id, limit)
            else:
                conversations = self.store.list_recent_conversations(limit, scoped=True)
            return [self._summary(c) for c in conversations]
        except Exception:
            logger.exception("Failed to list threads")
            return []

    def search_threads(
        self,
        text: Any,
        limit: int = 10,
        caller_id: Optional[str] = None,
    ) -> list[ThreadSummary]:
        """Threads whose title or summary contains *text*; empty on fault."""
        if not isinstance(text, str) or not text.strip():
            return []
        try:
            matches = self.store.search_conversations(
                text.strip(), limit, scoped=True, visible_to=caller_id
            )
            return [self._summary(c) for c in matches]
        except Exception:
            logger.exception("Thread search failed for q=%r", text)
            return []
