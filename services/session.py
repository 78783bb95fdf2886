from __future__ import annotations

import logging
from typing import Dict, List, Optional

from models.email_message import EmailCategory, MessageRecord
from services.errors import MailboxError, SenderNotFoundError
from services.mailbox_store import MailboxStore
from services.mutation_service import BulkMutationCoordinator, UnsubscribeResult
from services.pagination import PageController
from utils.formatting import format_bytes

LOGGER = logging.getLogger(__name__)


class MailboxSession:
    """State and intents exposed to the presentation layer.

    Busy flags are advisory: the caller is expected to check them before
    starting another fetch or mutation. Failures never escape an intent; they
    are kept on ``error``/``error_message`` until dismissed.
    """

    def __init__(
        self,
        pages: PageController,
        mutations: BulkMutationCoordinator,
        store: MailboxStore,
    ):
        self._pages = pages
        self._mutations = mutations
        self.store = store
        self.selected_category: Optional[EmailCategory] = None
        self.is_loading = False
        self.is_loading_next_page = False
        self.has_more_pages = True
        self.error: Optional[Exception] = None
        self.error_message: Optional[str] = None
        self._page_token: Optional[str] = None

    # Projections

    @property
    def emails(self) -> List[MessageRecord]:
        return list(self.store.records)

    @property
    def sender_stats(self) -> Dict[str, int]:
        return self.store.by_sender()

    @property
    def categorized_emails(self) -> Dict[EmailCategory, List[MessageRecord]]:
        return self.store.by_category()

    @property
    def unread_count(self) -> int:
        return self.store.unread_count()

    @property
    def total_storage_used(self) -> str:
        return format_bytes(self.store.total_size())

    def emails_for_category(self, category: EmailCategory) -> List[MessageRecord]:
        return self.store.records_in_category(category)

    def unread_emails(self) -> List[MessageRecord]:
        return self.store.unread_records()

    # Fetching

    async def fetch_emails(self) -> None:
        """Start over from the first page."""

        self.is_loading = True
        self.error_message = None
        self._page_token = None
        self.store.reset()
        try:
            page = await self._pages.fetch_page(None)
        except MailboxError as exc:
            self._fail(exc, "Failed to fetch emails")
        else:
            self.store.append(page.records)
            self._page_token = page.next_token
            self.has_more_pages = page.has_more
        finally:
            self.is_loading = False

    async def fetch_next_page(self) -> None:
        if not self.has_more_pages or self.is_loading_next_page:
            return

        self.is_loading_next_page = True
        self.error_message = None
        try:
            page = await self._pages.fetch_page(self._page_token)
        except MailboxError as exc:
            self._fail(exc, "Failed to fetch more emails")
        else:
            self.store.append(page.records)
            self._page_token = page.next_token
            self.has_more_pages = page.has_more
        finally:
            self.is_loading_next_page = False

    async def fetch_all(self, max_pages: Optional[int] = None) -> int:
        """Fetch the first page and keep paging until done; returns pages read."""

        await self.fetch_emails()
        pages = 0 if self.error_message else 1
        while pages and self.has_more_pages and (max_pages is None or pages < max_pages):
            await self.fetch_next_page()
            if self.error_message:
                break
            pages += 1
        return pages

    # Mutations

    async def delete_emails(self, sender: str) -> int:
        self.is_loading = True
        self.error_message = None
        try:
            return await self._mutations.delete(sender)
        except MailboxError as exc:
            self._fail(exc, "Failed to delete emails")
            return 0
        finally:
            self.is_loading = False

    async def mark_as_read(self, sender: str) -> int:
        self.is_loading = True
        self.error_message = None
        try:
            return await self._mutations.mark_read(sender)
        except MailboxError as exc:
            self._fail(exc, "Failed to mark emails as read")
            return 0
        finally:
            self.is_loading = False

    async def unsubscribe(self, sender: str) -> Optional[UnsubscribeResult]:
        self.is_loading = True
        self.error_message = None
        try:
            result = await self._mutations.unsubscribe(sender)
        except SenderNotFoundError as exc:
            self.error = exc
            self.error_message = "No emails found from this sender"
            return None
        except MailboxError as exc:
            self._fail(exc, "Failed to unsubscribe")
            return None
        finally:
            self.is_loading = False

        if not result.found:
            self.error_message = "No unsubscribe link found for this sender"
        return result

    # State management

    def dismiss_error(self) -> None:
        self.error = None
        self.error_message = None

    def reset(self) -> None:
        self.store.reset()
        self.selected_category = None
        self.error = None
        self.error_message = None
        self._page_token = None
        self.has_more_pages = True
        self.is_loading_next_page = False

    def _fail(self, exc: MailboxError, context: str) -> None:
        LOGGER.error("%s: %s", context, exc)
        self.error = exc
        self.error_message = f"{context}: {exc}"
