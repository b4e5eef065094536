"""Helpers turning a UPC lookup result into item form prefill values."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from .models import Category
from .models_upc import UpcItem

_WEIGHT_PATTERN = re.compile(r"^([\d.]+)\s*([a-zA-Z]+)$")
_PUNCTUATION = re.compile(r"[^\w\s]")

MAX_LABELS = 7

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
        "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
        "to", "was", "will", "with", "this", "but", "they", "have",
        "had", "what", "said", "each", "which", "their", "time", "if",
        "up", "out", "many", "then", "them", "these", "so", "some", "her",
        "would", "make", "like", "into", "him", "two", "more", "very",
        "after", "words", "long", "than", "first", "been", "call", "who",
        "oil", "sit", "now", "find", "down", "day", "did", "get", "come",
        "made", "may", "part", "one", "refreshing", "free", "crisp", "beverage",
        "cocktail", "mixer", "fluid", "ounce", "bottle",
    }
)  # fmt: skip


def parse_weight(text: str | None) -> tuple[float, str] | None:
    """Parse "1.00lb", "500g" or "16 oz" into (value, lowercase unit)."""
    if not text or not isinstance(text, str):
        return None
    match = _WEIGHT_PATTERN.match(text.strip())
    if match is None:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    if value <= 0:
        return None
    return value, match.group(2).lower()


def map_category_to_code(text: str | None, categories: Sequence[Category]) -> str | None:
    """First category whose display name or code overlaps any level of "A > B > C"."""
    if not text or not categories:
        return None
    parts = [part.strip().lower() for part in text.split(">")]
    parts = [part for part in parts if part]
    for category in categories:
        candidates = [value.lower() for value in (category.display_name, category.code) if value]
        for part in parts:
            for candidate in candidates:
                if candidate in part or part in candidate:
                    return category.code
    return None


def extract_labels(description: str | None) -> str:
    if not description or not isinstance(description, str):
        return ""
    words = _PUNCTUATION.sub(" ", description.lower()).split()
    labels: list[str] = []
    for word in words:
        if len(word) <= 2 or word in STOP_WORDS or word in labels:
            continue
        labels.append(word)
        if len(labels) == MAX_LABELS:
            break
    return ", ".join(word[:1].upper() + word[1:] for word in labels)


def draft_fields_from_upc(item: UpcItem, categories: Sequence[Category] = ()) -> dict[str, Any]:
    """Form fields that can be filled from ``item``; empty values are left out."""
    fields: dict[str, Any] = {}
    if item.title:
        fields["item_name"] = item.title
    if item.brand:
        fields["brand"] = item.brand
    if item.description:
        fields["description"] = item.description
    if item.images:
        fields["image_url"] = item.images[0]
    category_code = map_category_to_code(item.category, categories)
    if category_code:
        fields["categories"] = category_code
    labels = extract_labels(item.description)
    if labels:
        fields["labels"] = labels
    weight = parse_weight(item.weight)
    if weight is not None:
        fields["weight"], fields["weight_unit"] = weight
    return fields
