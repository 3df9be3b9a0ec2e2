# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-memory ordered store of outbound message records.

The store is the single authority on which record is being attempted: a
record leaves the pending list when it is dequeued and sits in the in-flight
slot until the dispatcher requeues, restores or removes it. While the slot is
occupied no other record can be dequeued, so at most one record is ever in
the SENDING state.

Every operation is synchronous and contains no suspension point, so callers
running on the same event loop never observe a half-applied change.

Queue contents are not persisted; a restart starts from an empty store.
"""

from __future__ import annotations

import logging

from .models import Attachment, MessageRecord, MessageStatus

logger = logging.getLogger(__name__)


class QueueStore:
    """FIFO store of :class:`MessageRecord` with a single in-flight slot."""

    def __init__(self) -> None:
        self._pending: list[MessageRecord] = []
        self._in_flight: MessageRecord | None = None

    def __len__(self) -> int:
        return len(self._pending) + (1 if self._in_flight is not None else 0)

    # ------------------------------------------------------------------ intake
    def enqueue(
        self,
        destination: str,
        text: str | None = None,
        attachment: Attachment | None = None,
    ) -> str:
        """Append a new PENDING record at the tail and return its id."""
        record = MessageRecord(destination=destination, text=text, attachment=attachment)
        self._pending.append(record)
        logger.info("Message added to queue: %s (queue length=%d)", record.id, len(self._pending))
        return record.id

    # ---------------------------------------------------------------- dispatch
    def has_eligible(self) -> bool:
        """Return ``True`` when :meth:`dequeue_next_eligible` would return a record."""
        if self._in_flight is not None:
            return False
        return any(record.status is MessageStatus.PENDING for record in self._pending)

    def dequeue_next_eligible(self) -> MessageRecord | None:
        """Move the earliest PENDING record into the in-flight slot.

        Returns:
            The record, now marked SENDING, or None when the slot is busy or
            no pending record exists.
        """
        if self._in_flight is not None:
            return None
        for index, record in enumerate(self._pending):
            if record.status is MessageStatus.PENDING:
                del self._pending[index]
                record.status = MessageStatus.SENDING
                self._in_flight = record
                return record
        return None

    def requeue(self, record: MessageRecord) -> None:
        """Return a failed record to the tail of the queue for another attempt."""
        self._release(record)
        record.status = MessageStatus.PENDING
        self._pending.append(record)

    def restore(self, record: MessageRecord) -> None:
        """Put back an attempt that never reached the transport.

        The record goes to the head of the queue with its retry budget
        untouched, so it keeps its place in arrival order.
        """
        self._release(record)
        record.status = MessageStatus.PENDING
        self._pending.insert(0, record)

    def remove(self, message_id: str) -> MessageRecord | None:
        """Drop a record permanently, whether pending or in flight."""
        if self._in_flight is not None and self._in_flight.id == message_id:
            record = self._in_flight
            self._in_flight = None
            return record
        for index, record in enumerate(self._pending):
            if record.id == message_id:
                del self._pending[index]
                return record
        logger.warning("Message %s not found in queue when removing", message_id)
        return None

    def _release(self, record: MessageRecord) -> None:
        if self._in_flight is record:
            self._in_flight = None
        elif record in self._pending:
            # Already back in the pending list, avoid duplicating it.
            self._pending.remove(record)

    # ----------------------------------------------------------------- queries
    def get(self, message_id: str) -> MessageRecord | None:
        """Return the record with the given id, if it is still owned by the store."""
        if self._in_flight is not None and self._in_flight.id == message_id:
            return self._in_flight
        for record in self._pending:
            if record.id == message_id:
                return record
        return None

    @property
    def in_flight(self) -> MessageRecord | None:
        return self._in_flight

    def pending_ids(self) -> list[str]:
        return [record.id for record in self._pending]

    def status_counts(self) -> dict[str, int]:
        """Snapshot of the counters reported to observers."""
        return {
            "pending": sum(1 for record in self._pending if record.status is MessageStatus.PENDING),
            "in_flight": 1 if self._in_flight is not None else 0,
        }

    def clear(self) -> int:
        """Discard every pending record.

        The in-flight record, if any, is left alone: the attempt already
        handed to the transport is not aborted.
        """
        discarded = len(self._pending)
        self._pending.clear()
        logger.info("Message queue cleared (%d pending discarded)", discarded)
        return discarded


__all__ = ["QueueStore"]
