"""AI provider gateway.

Wraps one or more text-generation backends behind three operations:

1. ``AIGateway.generate_answer()`` — answer text plus cited sources.
2. ``AIGateway.generate_suggestions()`` — 3–5 completions for a partial query.
3. ``AIGateway.classify_category()`` — one label from ``core.categorizer``.

Backends are tried in order; the first one that returns usable text wins.
When every backend fails (or none is configured) each operation returns a
deterministic fallback value. None of the three ever raises, so callers
need no error handling around them.

SDK clients are lazy-initialised so that backends can be instantiated in
tests without a live API key.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError

from core.categorizer import Category, normalize_category
from core.models import GeneratedAnswer, Message, SourceRef

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)


# ── Fallback texts ─────────────────────────────────────────────────────────────

UNCONFIGURED_ANSWER = (
    "AI search is currently unavailable. Please configure an AI provider "
    "API key to enable AI-powered responses."
)
DEGRADED_ANSWER = (
    "I'm experiencing technical difficulties right now. "
    "Please try your search again in a moment."
)
EMPTY_ANSWER = "I'm sorry, I couldn't generate a response to your query."

_SUGGESTION_TEMPLATES: tuple[str, ...] = (
    "What is {q}?",
    "How does {q} work?",
    "Latest news about {q}",
    "{q} explained",
    "Best practices for {q}",
)
_FALLBACK_SUGGESTIONS = 3
_MAX_SUGGESTIONS = 5


# ── Prompts ────────────────────────────────────────────────────────────────────

_ANSWER_SYSTEM = (
    "You are an AI assistant that provides accurate, informative responses to "
    "user queries.{focus}\n\n"
    "Provide a comprehensive answer and include relevant sources. Respond with "
    "JSON only, no markdown fences, using this structure:\n"
    '{{"content": "your answer", "sources": [{{"title": "Source title", '
    '"url": "https://example.com", "snippet": "Brief excerpt"}}]}}\n\n'
    "Be factual, include 3-5 relevant sources when possible, and keep the "
    "answer comprehensive but concise."
)

_SUGGESTIONS_SYSTEM = (
    "Generate 3-5 search suggestions based on the user's partial query. "
    "Suggestions must be related to the input, complete searchable questions "
    "or topics, and cover different angles. Respond with JSON only: "
    '{"suggestions": ["suggestion 1", "suggestion 2", "suggestion 3"]}'
)

_CATEGORY_SYSTEM = (
    "Categorize the query into exactly one of: "
    + ", ".join(c.value for c in Category)
    + ". If it fits none of them use null. "
    'Respond with JSON only: {"category": "<name or null>"}'
)

_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?|\n?```\s*$")


# ── Output parsing ─────────────────────────────────────────────────────────────


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any.

    Examples:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
        >>> strip_code_fences("plain")
        'plain'
    """
    return _FENCE_RE.sub("", text.strip()).strip()


def _load_json(text: str) -> object:
    """Parse *text* as JSON after fence stripping; ``None`` if it isn't JSON."""
    try:
        return json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        return None


def parse_answer(text: str, max_sources: int = 5) -> GeneratedAnswer:
    """Turn raw backend output into a ``GeneratedAnswer``.

    Structured output (``{"content": ..., "sources": [...]}``) is validated
    source by source; malformed sources are dropped. Unstructured text is
    kept verbatim as the content with no sources.
    """
    data = _load_json(text)
    if not isinstance(data, dict):
        return GeneratedAnswer(content=strip_code_fences(text), sources=[])

    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        content = EMPTY_ANSWER

    sources: list[SourceRef] = []
    raw_sources = data.get("sources")
    for item in raw_sources if isinstance(raw_sources, list) else []:
        try:
            sources.append(SourceRef.model_validate(item))
        except ValidationError:
            logger.debug("Dropping malformed source %r", item)

    return GeneratedAnswer(content=content.strip(), sources=sources[:max_sources])


def parse_suggestions(text: str) -> list[str]:
    """Extract suggestion strings from a JSON array or ``{"suggestions": [...]}``."""
    data = _load_json(text)
    if isinstance(data, dict):
        data = data.get("suggestions")
    if not isinstance(data, list):
        return []
    cleaned = [s.strip() for s in data if isinstance(s, str) and s.strip()]
    return cleaned[:_MAX_SUGGESTIONS]


def parse_category(text: str) -> Optional[str]:
    """Extract and validate a category from JSON or bare-word output."""
    data = _load_json(text)
    if isinstance(data, dict):
        return normalize_category(data.get("category"))
    if isinstance(data, str):
        return normalize_category(data)
    return normalize_category(strip_code_fences(text))


def fallback_suggestions(query: str) -> list[str]:
    """Deterministic suggestions used when no backend answers."""
    return [t.format(q=query) for t in _SUGGESTION_TEMPLATES][:_FALLBACK_SUGGESTIONS]


# ── Backends ───────────────────────────────────────────────────────────────────


class GenerationBackend(ABC):
    """A single external text-generation service."""

    #: Short name used in settings and log lines.
    name: str = "backend"

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether this backend has what it needs (e.g. an API key)."""

    @abstractmethod
    def complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the backend's text output.

        Raises:
            Exception: Any transport or API failure; the gateway handles it.
        """


class AnthropicBackend(GenerationBackend):
    """Claude Messages API."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str) -> None:
        self.api_key = api_key
        self.model = model
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=2)
        return self._client

    def complete(self, system, messages, *, max_tokens, temperature):
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=messages,
        )
        return "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )


class OpenAIBackend(GenerationBackend):
    """OpenAI Chat Completions API in JSON mode."""

    name = "openai"

    def __init__(self, api_key: str, model: str) -> None:
        self.api_key = api_key
        self.model = model
        self._client: object = None  # Lazy-initialised openai.OpenAI

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> object:
        """Lazy-initialise and return the OpenAI SDK client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key, max_retries=2)
        return self._client

    def complete(self, system, messages, *, max_tokens, temperature):
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "system", "content": system}, *messages],
            response_format={"type": "json_object"},
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""


_BACKEND_TYPES: dict[str, type[GenerationBackend]] = {
    AnthropicBackend.name: AnthropicBackend,
    OpenAIBackend.name: OpenAIBackend,
}


def build_backends(settings: Settings) -> list[GenerationBackend]:
    """Instantiate backends in ``settings.backend_order``."""
    credentials = {
        "anthropic": (settings.anthropic_api_key, settings.anthropic_model),
        "openai": (settings.openai_api_key, settings.openai_model),
    }
    backends: list[GenerationBackend] = []
    for name in settings.backend_order:
        backend_type = _BACKEND_TYPES.get(name)
        if backend_type is None:
            logger.warning("Ignoring unknown AI backend %r", name)
            continue
        api_key, model = credentials[name]
        backends.append(backend_type(api_key=api_key, model=model))
    return backends


# ── Gateway ────────────────────────────────────────────────────────────────────


class AIGateway:
    """Ordered fallback over generation backends.

    Every public method is total: it returns a usable value no matter how
    the backends behave.
    """

    def __init__(self, backends: Sequence[GenerationBackend], max_sources: int = 5) -> None:
        self.backends = list(backends)
        self.max_sources = max_sources

    @classmethod
    def from_settings(cls, settings: Settings) -> AIGateway:
        return cls(build_backends(settings), max_sources=settings.max_sources)

    @property
    def configured(self) -> bool:
        """True if at least one backend has credentials."""
        return any(b.configured for b in self.backends)

    def _complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
    ) -> Optional[str]:
        """Return the first non-empty completion, or ``None`` if all fail."""
        for backend in self.backends:
            if not backend.configured:
                continue
            try:
                text = backend.complete(
                    system, messages, max_tokens=max_tokens, temperature=temperature
                )
            except Exception as exc:
                logger.warning("AI backend %s failed: %s", backend.name, exc)
                continue
            if text and text.strip():
                return text
            logger.warning("AI backend %s returned an empty completion", backend.name)
        return None

    # ── Answers ────────────────────────────────────────────────────────────

    def generate_answer(
        self,
        query: str,
        category: Optional[str] = None,
        history: Sequence[Message] = (),
    ) -> GeneratedAnswer:
        """Answer *query*, optionally focused on *category*.

        Args:
            query: The user's question.
            category: Optional category label to steer the answer.
            history: Earlier messages of the same conversation, oldest first.

        Returns:
            A ``GeneratedAnswer``. When no backend answers, the content is a
            fixed placeholder and ``sources`` is empty.
        """
        if not self.configured:
            return GeneratedAnswer(content=UNCONFIGURED_ANSWER, sources=[])

        focus = f" Focus your response on the {category} category." if category else ""
        turns = list(history)
        # Conversations handed to the backends must open with a user turn.
        while turns and turns[0].role != "user":
            turns.pop(0)
        messages = [{"role": m.role, "content": m.content} for m in turns]
        messages.append({"role": "user", "content": query})

        text = self._complete(
            _ANSWER_SYSTEM.format(focus=focus),
            messages,
            max_tokens=2000,
            temperature=0.7,
        )
        if text is None:
            logger.warning("All AI backends failed for query=%r", query)
            return GeneratedAnswer(content=DEGRADED_ANSWER, sources=[])
        return parse_answer(text, max_sources=self.max_sources)

    # ── Suggestions ────────────────────────────────────────────────────────

    def generate_suggestions(self, partial_query: str) -> list[str]:
        """Return up to five completions for *partial_query*."""
        partial_query = partial_query.strip()
        if not partial_query:
            return []

        text = self._complete(
            _SUGGESTIONS_SYSTEM,
            [{"role": "user", "content": f'Partial query: "{partial_query}"'}],
            max_tokens=200,
            temperature=0.8,
        )
        suggestions = parse_suggestions(text) if text is not None else []
        if not suggestions:
            return fallback_suggestions(partial_query)

        # Short answers are topped up from the templates to the minimum.
        for template in _SUGGESTION_TEMPLATES:
            if len(suggestions) >= _FALLBACK_SUGGESTIONS:
                break
            extra = template.format(q=partial_query)
            if extra not in suggestions:
                suggestions.append(extra)
        return suggestions

    # ── Classification ─────────────────────────────────────────────────────

    def classify_category(self, query: str) -> Optional[str]:
        """Return a ``Category`` label for *query*, or ``None``."""
        if not query.strip():
            return None

        text = self._complete(
            _CATEGORY_SYSTEM,
            [{"role": "user", "content": query}],
            max_tokens=50,
            temperature=0.0,
        )
        return parse_category(text) if text is not None else None
