from __future__ import annotations

from typing import FrozenSet, Iterable, Tuple

from models.email_message import EmailCategory

# Ordered decision table: the first rule whose markers intersect the message
# labels decides the category.
CATEGORY_RULES: Tuple[Tuple[FrozenSet[str], EmailCategory], ...] = (
    (frozenset({"CATEGORY_SOCIAL"}), EmailCategory.SOCIAL),
    (frozenset({"CATEGORY_PROMOTIONS"}), EmailCategory.PROMOTIONS),
    (frozenset({"CATEGORY_UPDATES", "CATEGORY_FORUMS"}), EmailCategory.NEWSLETTERS),
    (frozenset({"CATEGORY_PERSONAL"}), EmailCategory.PERSONAL),
)


def classify_labels(label_ids: Iterable[str]) -> EmailCategory:
    """Map Gmail label ids onto an :class:`EmailCategory`."""

    labels = set(label_ids or ())
    for markers, category in CATEGORY_RULES:
        if labels & markers:
            return category
    return EmailCategory.OTHER
