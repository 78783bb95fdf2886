from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from utils.formatting import format_bytes


class EmailCategory(str, Enum):
    """Fixed taxonomy a message is sorted into at fetch time."""

    NEWSLETTERS = "newsletters"
    SOCIAL = "social"
    PROMOTIONS = "promotions"
    PERSONAL = "personal"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class MessageRecord:
    """Header-level view of a Gmail message.

    Records are values: changing state means building a new record with the
    same ``id``.
    """

    id: str
    sender: str
    subject: str
    timestamp: datetime
    size_bytes: int
    is_read: bool
    category: EmailCategory

    def with_read_state(self, is_read: bool) -> MessageRecord:
        return replace(self, is_read=is_read)

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.size_bytes)
