"""Query category taxonomy.

A query is classified into one of six categories:

- FINANCE     Markets, investments, personal finance
- TRAVEL      Destinations, trip planning
- SHOPPING    Products, prices, deals
- ACADEMIC    Research and educational content
- TECHNOLOGY  Software, hardware, AI
- HEALTH      Medicine, fitness, wellbeing

The label itself comes from a generation backend (see ``core.gateway``);
this module only owns the enumeration, validates whatever text the backend
returns against it, and holds the display metadata for the category cards.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


# ── Category enum ──────────────────────────────────────────────────────────────


class Category(str, Enum):
    """Fixed set of query categories."""

    FINANCE = "Finance"
    TRAVEL = "Travel"
    SHOPPING = "Shopping"
    ACADEMIC = "Academic"
    TECHNOLOGY = "Technology"
    HEALTH = "Health"


_BY_LOWER: dict[str, Category] = {c.value.lower(): c for c in Category}

# Quotes, punctuation and a leading "category:" label that models like to add.
_NOISE_RE = re.compile(r"^(?:category\s*[:=-]\s*)|[\"'`.!\s]+", re.IGNORECASE)


# ── Validation ─────────────────────────────────────────────────────────────────


def normalize_category(raw: object) -> Optional[str]:
    """Map a backend's raw answer onto a ``Category`` label.

    Matching is case-insensitive and tolerant of surrounding quotes or
    punctuation. Anything outside the enumeration, including the literal
    string ``"null"``, maps to ``None``.

    Args:
        raw: Whatever the backend produced (usually a string).

    Returns:
        The canonical label (e.g. ``"Finance"``), or ``None``.

    Examples:
        >>> normalize_category("finance")
        'Finance'
        >>> normalize_category(' "Travel". ')
        'Travel'
        >>> normalize_category("Sports") is None
        True
    """
    if not isinstance(raw, str):
        return None

    cleaned = _NOISE_RE.sub("", raw.strip())
    category = _BY_LOWER.get(cleaned.lower())
    if category is None:
        if cleaned:
            logger.debug("Discarding unrecognised category %r", raw)
        return None
    return category.value


# ── Category cards ─────────────────────────────────────────────────────────────

#: Display metadata for the category cards on the landing page.
CATEGORY_CARDS: tuple[dict[str, str], ...] = (
    {
        "id": "finance",
        "name": Category.FINANCE.value,
        "description": "Get insights on markets, investments, and financial planning",
        "icon": "fas fa-chart-line",
        "color": "green",
        "href": "/finance",
    },
    {
        "id": "travel",
        "name": Category.TRAVEL.value,
        "description": "Discover destinations, plan trips, and travel tips",
        "icon": "fas fa-plane",
        "color": "blue",
        "href": "/travel",
    },
    {
        "id": "shopping",
        "name": Category.SHOPPING.value,
        "description": "Find products, compare prices, and shopping advice",
        "icon": "fas fa-shopping-bag",
        "color": "purple",
        "href": "/shopping",
    },
    {
        "id": "academic",
        "name": Category.ACADEMIC.value,
        "description": "Research assistance and educational content",
        "icon": "fas fa-graduation-cap",
        "color": "orange",
        "href": "/academic",
    },
)


def category_cards() -> list[dict[str, str]]:
    """Return a fresh copy of the category card list."""
    return [dict(card) for card in CATEGORY_CARDS]
