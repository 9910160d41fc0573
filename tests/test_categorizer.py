"""Tests for core/categorizer.py — category validation and cards."""

from __future__ import annotations

import pytest

from core.categorizer import CATEGORY_CARDS, Category, category_cards, normalize_category


# ── Validation ─────────────────────────────────────────────────────────────────


class TestNormalizeCategory:
    @pytest.mark.parametrize("label", [c.value for c in Category])
    def test_canonical_labels_pass_through(self, label):
        assert normalize_category(label) == label

    def test_lowercase_is_accepted(self):
        assert normalize_category("finance") == "Finance"

    def test_uppercase_is_accepted(self):
        assert normalize_category("TECHNOLOGY") == "Technology"

    def test_quotes_and_punctuation_stripped(self):
        assert normalize_category(' "Travel". ') == "Travel"

    def test_label_prefix_stripped(self):
        assert normalize_category("Category: Health") == "Health"

    def test_unknown_label_is_none(self):
        assert normalize_category("Sports") is None

    def test_null_string_is_none(self):
        assert normalize_category("null") is None

    def test_empty_is_none(self):
        assert normalize_category("") is None

    def test_non_string_is_none(self):
        assert normalize_category(None) is None
        assert normalize_category(42) is None


# ── Cards ──────────────────────────────────────────────────────────────────────


class TestCategoryCards:
    def test_four_fixed_ids(self):
        assert [c["id"] for c in category_cards()] == ["finance", "travel", "shopping", "academic"]

    def test_cards_carry_display_metadata(self):
        for card in category_cards():
            assert set(card) == {"id", "name", "description", "icon", "color", "href"}

    def test_returned_list_is_a_copy(self):
        cards = category_cards()
        cards[0]["name"] = "Changed"
        assert CATEGORY_CARDS[0]["name"] == "Finance"
