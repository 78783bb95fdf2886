from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Tuple

from models.email_message import EmailCategory, MessageRecord

LOGGER = logging.getLogger(__name__)

Observer = Callable[["MailboxStore"], None]


class MailboxStore:
    """Canonical in-memory snapshot of the mailbox for one session.

    The snapshot is an immutable tuple swapped on every change, so readers
    never see a half-applied update. Aggregates are derived on each call.
    Observers run synchronously after each change.
    """

    def __init__(self) -> None:
        self._records: Tuple[MessageRecord, ...] = ()
        self._observers: List[Observer] = []

    @property
    def records(self) -> Tuple[MessageRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def append(self, records: Iterable[MessageRecord]) -> None:
        known = {record.id for record in self._records}
        fresh: List[MessageRecord] = []
        for record in records:
            if record.id in known:
                LOGGER.debug("Ignoring duplicate message %s", record.id)
                continue
            known.add(record.id)
            fresh.append(record)
        self._commit(self._records + tuple(fresh))

    def remove(self, ids: Iterable[str]) -> None:
        doomed = set(ids)
        self._commit(tuple(record for record in self._records if record.id not in doomed))

    def replace(self, ids: Iterable[str], transform: Callable[[MessageRecord], MessageRecord]) -> None:
        targets = set(ids)
        updated: List[MessageRecord] = []
        for record in self._records:
            if record.id in targets:
                new_record = transform(record)
                if new_record.id != record.id:
                    raise ValueError(f"transform changed message id {record.id} -> {new_record.id}")
                record = new_record
            updated.append(record)
        self._commit(tuple(updated))

    def reset(self) -> None:
        self._commit(())

    def by_sender(self) -> Dict[str, int]:
        return dict(Counter(record.sender for record in self._records))

    def by_category(self) -> Dict[EmailCategory, List[MessageRecord]]:
        grouped: Dict[EmailCategory, List[MessageRecord]] = {}
        for record in self._records:
            grouped.setdefault(record.category, []).append(record)
        return grouped

    def unread_count(self) -> int:
        return sum(1 for record in self._records if not record.is_read)

    def total_size(self) -> int:
        return sum(record.size_bytes for record in self._records)

    def records_from(self, sender: str) -> List[MessageRecord]:
        return [record for record in self._records if record.sender == sender]

    def records_in_category(self, category: EmailCategory) -> List[MessageRecord]:
        return [record for record in self._records if record.category == category]

    def unread_records(self) -> List[MessageRecord]:
        return [record for record in self._records if not record.is_read]

    def _commit(self, records: Tuple[MessageRecord, ...]) -> None:
        self._records = records
        for observer in list(self._observers):
            observer(self)
