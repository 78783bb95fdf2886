from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Sequence

from models.email_message import MessageRecord
from services.email_classifier import classify_labels
from services.errors import InvalidResponseError
from services.gmail_service import GmailGateway

LOGGER = logging.getLogger(__name__)

# Only these headers are requested; message bodies are never downloaded.
METADATA_HEADERS: Sequence[str] = ("From", "Subject")
DEFAULT_SUBJECT = "No Subject"
DEFAULT_SENDER = "Unknown Sender"
UNREAD_LABEL = "UNREAD"


class MetadataFetcher:
    """Hydrate message refs into :class:`MessageRecord` values.

    Fetches run concurrently in groups of ``batch_size``; a group must finish
    before the next one starts. The first failing fetch aborts the whole call.
    """

    def __init__(self, gateway: GmailGateway, batch_size: int = 10):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._gateway = gateway
        self._batch_size = batch_size

    async def fetch_records(self, message_ids: Sequence[str]) -> List[MessageRecord]:
        records: List[MessageRecord] = []
        for start in range(0, len(message_ids), self._batch_size):
            batch = message_ids[start : start + self._batch_size]
            records.extend(await self._fetch_batch(batch))
        records.sort(key=lambda record: record.size_bytes, reverse=True)
        LOGGER.debug("Hydrated %s message records", len(records))
        return records

    async def _fetch_batch(self, batch: Sequence[str]) -> List[MessageRecord]:
        tasks = [asyncio.ensure_future(self._fetch_one(message_id)) for message_id in batch]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            # Let cancelled siblings settle before the error leaves the batch.
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _fetch_one(self, message_id: str) -> MessageRecord:
        raw = await self._gateway.get_message_metadata(message_id, METADATA_HEADERS)
        return parse_metadata(raw)


def parse_metadata(raw: Mapping[str, Any]) -> MessageRecord:
    """Normalize a ``format=metadata`` Gmail payload."""

    message_id = raw.get("id")
    if not message_id:
        raise InvalidResponseError("get", "message payload has no id")
    headers = message_headers(raw)
    labels = raw.get("labelIds") or []
    if not isinstance(labels, list):
        raise InvalidResponseError("get", f"labelIds of {message_id} is not a list")

    try:
        size = max(int(raw.get("sizeEstimate") or 0), 0)
        internal_ms = int(raw.get("internalDate") or 0)
    except (TypeError, ValueError) as exc:
        raise InvalidResponseError("get", f"bad numeric field on {message_id}: {exc}") from exc

    return MessageRecord(
        id=message_id,
        sender=headers.get("from") or DEFAULT_SENDER,
        subject=headers.get("subject") or DEFAULT_SUBJECT,
        timestamp=datetime.fromtimestamp(internal_ms / 1000, tz=timezone.utc),
        size_bytes=size,
        is_read=UNREAD_LABEL not in labels,
        category=classify_labels(labels),
    )


def message_headers(raw: Mapping[str, Any]) -> Dict[str, str]:
    """Return the payload headers of a Gmail message keyed by lower-case name."""

    message_id = raw.get("id")
    payload = raw.get("payload") or {}
    if not isinstance(payload, Mapping):
        raise InvalidResponseError("get", f"payload of {message_id} is not an object")
    headers = payload.get("headers") or []
    if not isinstance(headers, list):
        raise InvalidResponseError("get", f"headers of {message_id} are not a list")

    mapped: Dict[str, str] = {}
    for header in headers:
        if not isinstance(header, Mapping):
            raise InvalidResponseError("get", f"malformed header on {message_id}: {header!r}")
        name = header.get("name")
        value = header.get("value", "")
        if not isinstance(name, str) or not isinstance(value, str):
            raise InvalidResponseError("get", f"malformed header on {message_id}: {header!r}")
        # First occurrence wins, like a header lookup on the raw message.
        mapped.setdefault(name.lower(), value)
    return mapped
