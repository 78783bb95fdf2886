from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.email_message import EmailCategory, MessageRecord
from services.errors import TransportError


def make_record(
    message_id: str,
    *,
    sender: str = "News <news@example.test>",
    subject: str = "Hello",
    size_bytes: int = 100,
    is_read: bool = False,
    category: EmailCategory = EmailCategory.OTHER,
) -> MessageRecord:
    return MessageRecord(
        id=message_id,
        sender=sender,
        subject=subject,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        size_bytes=size_bytes,
        is_read=is_read,
        category=category,
    )


def raw_metadata(
    message_id: str,
    *,
    sender: Optional[str] = "News <news@example.test>",
    subject: Optional[str] = "Hello",
    size: Any = 100,
    labels: Sequence[str] = ("INBOX", "UNREAD"),
    internal_date: Any = "1700000000000",
    extra_headers: Sequence[Tuple[str, str]] = (),
) -> Dict[str, Any]:
    headers = []
    if sender is not None:
        headers.append({"name": "From", "value": sender})
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    headers.extend({"name": name, "value": value} for name, value in extra_headers)
    return {
        "id": message_id,
        "labelIds": list(labels),
        "sizeEstimate": size,
        "internalDate": internal_date,
        "payload": {"headers": headers},
    }


class FakeGateway:
    """In-memory stand-in for :class:`GmailGateway` that records every call."""

    def __init__(self) -> None:
        self.pages: Dict[Optional[str], Tuple[List[Dict[str, Any]], Optional[str]]] = {}
        self.metadata: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.fail_on: Dict[str, Exception] = {}
        self.fail_ids: Dict[str, Exception] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def add_page(self, token: Optional[str], messages: Sequence[Dict[str, Any]], next_token: Optional[str]) -> None:
        self.pages[token] = ([{"id": raw["id"], "threadId": raw["id"]} for raw in messages], next_token)
        for raw in messages:
            self.metadata[raw["id"]] = raw

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    async def list_messages(self, page_token, page_size, label_filter):
        self.calls.append(("list", (page_token, page_size, label_filter)))
        self._maybe_fail("list")
        return self.pages[page_token]

    async def get_message_metadata(self, message_id, header_names):
        self.calls.append(("get", (message_id, tuple(header_names))))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            self._maybe_fail("get")
            if message_id in self.fail_ids:
                raise self.fail_ids[message_id]
            return self.metadata[message_id]
        finally:
            self.in_flight -= 1

    async def batch_delete(self, ids):
        self.calls.append(("batchDelete", list(ids)))
        self._maybe_fail("batchDelete")

    async def delete_one(self, message_id):
        self.calls.append(("delete", message_id))
        self._maybe_fail("delete")

    async def batch_modify(self, ids, add_labels=(), remove_labels=()):
        self.calls.append(("batchModify", (list(ids), list(add_labels), list(remove_labels))))
        await asyncio.sleep(0)
        self._maybe_fail("batchModify")

    def calls_named(self, operation: str) -> List[Any]:
        return [args for name, args in self.calls if name == operation]


def transport_error(operation: str = "test") -> TransportError:
    return TransportError(operation, "simulated outage", status=503)
