from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from models.email_message import MessageRecord
from services.errors import InvalidResponseError
from services.gmail_service import GmailGateway
from services.metadata_service import MetadataFetcher

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Page:
    records: List[MessageRecord]
    next_token: Optional[str]

    @property
    def has_more(self) -> bool:
        return self.next_token is not None


class PageController:
    """Fetch one bounded page of the mailbox per call.

    Completion is signalled only by a missing ``next_token``. Callers must not
    start a fetch while another one for the same session is in flight.
    """

    def __init__(
        self,
        gateway: GmailGateway,
        fetcher: MetadataFetcher,
        page_size: int = 50,
        label_filter: Optional[str] = "INBOX",
    ):
        self._gateway = gateway
        self._fetcher = fetcher
        self.page_size = page_size
        self.label_filter = label_filter

    async def fetch_page(self, token: Optional[str] = None) -> Page:
        refs, next_token = await self._gateway.list_messages(token, self.page_size, self.label_filter)
        if len(refs) > self.page_size:
            raise InvalidResponseError("list", f"asked for {self.page_size} refs, got {len(refs)}")

        message_ids = []
        for ref in refs:
            message_id = ref.get("id") if isinstance(ref, dict) else None
            if not message_id:
                LOGGER.debug("Skipping message ref without id: %r", ref)
                continue
            message_ids.append(message_id)

        records = await self._fetcher.fetch_records(message_ids)
        LOGGER.info("Fetched page of %s emails (token=%s)", len(records), token)
        return Page(records=records, next_token=next_token)
