"""
Category hint resolution.

DESIGN DECISION: Hints are an explicit enumerated vocabulary, each mapped
to one canonical category name. This is a deterministic rule table, not a
classifier.

Fallback order when resolving against an owner's visible categories:
1. The category named after the hint
2. The category named "Other"
3. The first category in list order
"""

from enum import Enum
from typing import Optional, Sequence

from expense_tracker.models.category import Category


class CategoryHint(str, Enum):
    """Known category hints."""
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    EDUCATION = "education"
    SHOPPING = "shopping"
    SERVICES = "services"
    OTHER = "other"


CANONICAL_CATEGORY_NAMES: dict[CategoryHint, str] = {
    CategoryHint.FOOD: "Food",
    CategoryHint.TRANSPORT: "Transport",
    CategoryHint.ENTERTAINMENT: "Entertainment",
    CategoryHint.HEALTH: "Health",
    CategoryHint.EDUCATION: "Education",
    CategoryHint.SHOPPING: "Shopping",
    CategoryHint.SERVICES: "Services",
    CategoryHint.OTHER: "Other",
}

FALLBACK_CATEGORY_NAME = CANONICAL_CATEGORY_NAMES[CategoryHint.OTHER]


def parse_hint(text: Optional[str]) -> Optional[CategoryHint]:
    """Match free text against the hint vocabulary, ignoring case and padding."""
    if not text:
        return None
    try:
        return CategoryHint(text.strip().lower())
    except ValueError:
        return None


def _find_by_name(categories: Sequence[Category], name: str) -> Optional[Category]:
    wanted = name.lower()
    for category in categories:
        if category.name.lower() == wanted:
            return category
    return None


def resolve_hint(
    categories: Sequence[Category],
    hint: Optional[str],
) -> Optional[Category]:
    """
    Pick a category for a hint from categories already in list order.

    Returns None only when there are no categories at all.
    """
    parsed = parse_hint(hint)
    if parsed is not None:
        match = _find_by_name(categories, CANONICAL_CATEGORY_NAMES[parsed])
        if match is not None:
            return match

    fallback = _find_by_name(categories, FALLBACK_CATEGORY_NAME)
    if fallback is not None:
        return fallback

    return categories[0] if categories else None
