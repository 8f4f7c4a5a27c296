"""In-memory session history of classification records.

The HistoryStore is the single source of truth for every view of a session:
dashboard statistics, the searchable log and the CSV export all read from
it. It is owned by the application context and handed to consumers
explicitly; there is no module-level instance.

Ordering:
    Most recent first. Appending inserts at index 0, never reorders and
    never deduplicates by content. There is no capacity bound, no delete
    and no clear: a session's history lives as long as the session.

Access:
    - Readers get immutable snapshots (tuples of frozen records).
    - Exactly one HistoryWriter exists per store. The application hands it
      to the orchestrator, which is the only component allowed to append.
    - Subscribers receive a RecordAdded event after each append.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator

from errors import DuplicateRecordError
from models.sentiment import AggregateStats, ClassificationRecord, SentimentLabel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordAdded:
    """Event published after a record was appended to the history."""

    record: ClassificationRecord
    position: int = 0


Subscriber = Callable[[RecordAdded], None]


def seed_records(now: datetime | None = None) -> list[ClassificationRecord]:
    """Illustrative records every new session starts with.

    Args:
        now: Session start time (defaults to now, UTC)

    Returns:
        Records in their display order
    """
    now = now or datetime.now(timezone.utc)
    return [
        ClassificationRecord(
            id="tx_12345",
            text="Excellent customer service, they answered all my questions in minutes.",
            label=SentimentLabel.POSITIVE,
            confidence=0.98,
            created_at=now - timedelta(hours=5),
            key_terms=("excellent", "service", "minutes"),
        ),
        ClassificationRecord(
            id="tx_67890",
            text="The product arrived late and the box was damaged. Very unhappy.",
            label=SentimentLabel.NEGATIVE,
            confidence=0.94,
            created_at=now - timedelta(hours=2),
            key_terms=("late", "damaged", "unhappy"),
        ),
        ClassificationRecord(
            id="tx_54321",
            text="It's fine for the price, but the quality could be better.",
            label=SentimentLabel.NEUTRAL,
            confidence=0.72,
            created_at=now - timedelta(hours=1),
            key_terms=("fine", "price", "quality"),
        ),
    ]


class HistoryWriter:
    """Append-only write handle into a HistoryStore."""

    def __init__(self, store: "HistoryStore"):
        self._store = store

    def append(self, record: ClassificationRecord) -> None:
        """Insert a record at the front of the history.

        Raises:
            DuplicateRecordError: If the record id is already present
        """
        self._store._insert_front(record)


class HistoryStore:
    """Ordered, most-recent-first collection of classification records.

    Example:
        >>> store = HistoryStore.with_seed_data()
        >>> writer = store.writer()
        >>> writer.append(record)
        >>> store.latest(1)[0] is record
        True
    """

    def __init__(self, seed: Iterable[ClassificationRecord] | None = None):
        """Create a store, optionally pre-filled in the given order.

        Raises:
            DuplicateRecordError: If the seed contains the same id twice
        """
        self._records: list[ClassificationRecord] = []
        self._ids: set[str] = set()
        self._subscribers: list[Subscriber] = []
        self._writer: HistoryWriter | None = None

        for record in seed or ():
            if record.id in self._ids:
                raise DuplicateRecordError(record.id)
            self._records.append(record)
            self._ids.add(record.id)

    @classmethod
    def with_seed_data(cls, now: datetime | None = None) -> "HistoryStore":
        """Create the default session store with example records."""
        return cls(seed_records(now))

    # === Write surface ===

    def writer(self) -> HistoryWriter:
        """Return the store's single write handle.

        Raises:
            RuntimeError: If the writer was already handed out
        """
        if self._writer is not None:
            raise RuntimeError("HistoryStore writer already claimed; only one writer is allowed")
        self._writer = HistoryWriter(self)
        return self._writer

    def _insert_front(self, record: ClassificationRecord) -> None:
        if record.id in self._ids:
            raise DuplicateRecordError(record.id)
        self._records.insert(0, record)
        self._ids.add(record.id)
        logger.debug("History append | id=%s size=%d", record.id, len(self._records))
        self._publish(RecordAdded(record=record))

    # === Subscriptions ===

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for RecordAdded events.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, event: RecordAdded) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                # The append already happened; a failing view must not undo it
                logger.error("History subscriber failed | id=%s error=%s", event.record.id, e, exc_info=True)

    # === Read surface ===

    def records(self) -> tuple[ClassificationRecord, ...]:
        """Snapshot of all records, most recent first."""
        return tuple(self._records)

    def latest(self, n: int) -> tuple[ClassificationRecord, ...]:
        """The first ``n`` records in read order (the n most recent)."""
        if n <= 0:
            return ()
        return tuple(self._records[:n])

    def tail(self, n: int) -> tuple[ClassificationRecord, ...]:
        """The last ``n`` records in read order."""
        if n <= 0:
            return ()
        return tuple(self._records[-n:])

    def get(self, record_id: str) -> ClassificationRecord | None:
        """Look up a record by id."""
        if record_id not in self._ids:
            return None
        return next(r for r in self._records if r.id == record_id)

    def stats(self) -> AggregateStats:
        """Aggregate statistics over the current contents."""
        return AggregateStats.from_records(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ClassificationRecord]:
        return iter(tuple(self._records))

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids
