from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple

from services.errors import SenderNotFoundError
from services.gmail_service import GmailGateway
from services.mailbox_store import MailboxStore
from services.metadata_service import message_headers

LOGGER = logging.getLogger(__name__)

UNSUBSCRIBE_HEADER = "List-Unsubscribe"
# Tried in order; the first pattern with a match wins.
UNSUBSCRIBE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"https?://[^\s,<>]+"),
    re.compile(r"mailto:[^\s,<>]+"),
)


@dataclass(frozen=True, slots=True)
class UnsubscribeResult:
    sender: str
    message_id: str
    link: Optional[str]

    @property
    def found(self) -> bool:
        return self.link is not None


def extract_unsubscribe_link(header: str) -> Optional[str]:
    for pattern in UNSUBSCRIBE_PATTERNS:
        match = pattern.search(header or "")
        if match:
            return match.group(0)
    return None


class BulkMutationCoordinator:
    """Apply sender-wide changes remotely, then reconcile the local store.

    Local state only changes after every remote call of an operation has
    succeeded. Errors propagate unchanged and are never retried.
    """

    def __init__(self, gateway: GmailGateway, store: MailboxStore, chunk_size: int = 50):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._gateway = gateway
        self._store = store
        self._chunk_size = chunk_size

    async def delete(self, sender: str) -> int:
        ids = [record.id for record in self._store.records_from(sender)]
        if not ids:
            LOGGER.debug("Nothing to delete for %s", sender)
            return 0

        # Gmail's batchDelete is not used for a single id.
        if len(ids) > 1:
            await self._gateway.batch_delete(ids)
        else:
            await self._gateway.delete_one(ids[0])

        self._store.remove(ids)
        LOGGER.info("Deleted %s emails from %s", len(ids), sender)
        return len(ids)

    async def mark_read(self, sender: str) -> int:
        ids = [record.id for record in self._store.records_from(sender) if not record.is_read]
        if not ids:
            LOGGER.debug("No unread emails from %s", sender)
            return 0

        chunks = _chunked(ids, self._chunk_size)
        tasks = [
            asyncio.ensure_future(self._gateway.batch_modify(chunk, remove_labels=["UNREAD"]))
            for chunk in chunks
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # No chunk may still be running once the failure reaches the caller.
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        self._store.replace(ids, lambda record: record.with_read_state(True))
        LOGGER.info("Marked %s emails from %s as read in %s chunk(s)", len(ids), sender, len(chunks))
        return len(ids)

    async def unsubscribe(self, sender: str) -> UnsubscribeResult:
        matches = self._store.records_from(sender)
        if not matches:
            raise SenderNotFoundError(sender)

        # One sample message: a sender uses the same unsubscribe mechanism throughout.
        sample = matches[0]
        raw = await self._gateway.get_message_metadata(sample.id, [UNSUBSCRIBE_HEADER])
        header = message_headers(raw).get(UNSUBSCRIBE_HEADER.lower())
        link = extract_unsubscribe_link(header) if header else None
        if link:
            LOGGER.info("Unsubscribe link for %s: %s", sender, link)
        else:
            LOGGER.info("No unsubscribe link found for %s", sender)
        return UnsubscribeResult(sender=sender, message_id=sample.id, link=link)


def _chunked(ids: Sequence[str], size: int) -> List[List[str]]:
    return [list(ids[start : start + size]) for start in range(0, len(ids), size)]

