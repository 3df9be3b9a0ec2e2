# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outward notifications produced by the dispatch subsystem.

Events are a closed set of frozen dataclasses. They are published through an
:class:`EventChannel`, which hands every event to each subscriber's bounded
queue and, optionally, to a single async callable (mirroring the
``report_delivery_callable`` hook of the delivery reporter).

Example:
    Consuming events::

        async for event in proxy.events.subscribe():
            match event:
                case Delivered(message_id=mid, ack_id=ack):
                    ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from .models import ConnectionState, MessageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchStarted:
    """A record has been handed to the transport."""

    kind: ClassVar[str] = "dispatch_started"
    record: MessageRecord

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.record.to_dict()}


@dataclass(frozen=True)
class Delivered:
    """The transport acknowledged a record."""

    kind: ClassVar[str] = "delivered"
    message_id: str
    ack_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "id": self.message_id, "ack_id": self.ack_id}


@dataclass(frozen=True)
class Failed:
    """A single delivery attempt failed (the record may still be retried)."""

    kind: ClassVar[str] = "failed"
    message_id: str
    reason: str
    retry_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "id": self.message_id, "reason": self.reason, "retry_count": self.retry_count}


@dataclass(frozen=True)
class PermanentlyFailed:
    """The retry budget of a record is exhausted; the record was dropped."""

    kind: ClassVar[str] = "permanently_failed"
    message_id: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "id": self.message_id, "reason": self.reason}


@dataclass(frozen=True)
class ConnectionStateChanged:
    """The connection manager changed phase, challenge or counters."""

    kind: ClassVar[str] = "connection_state_changed"
    state: ConnectionState

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "state": self.state.to_dict()}


@dataclass(frozen=True)
class QueueStatus:
    """Periodic snapshot of the queue counters."""

    kind: ClassVar[str] = "queue_status"
    pending: int
    in_flight: int

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "pending": self.pending, "in_flight": self.in_flight}


Event = Union[DispatchStarted, Delivered, Failed, PermanentlyFailed, ConnectionStateChanged, QueueStatus]


@dataclass(eq=False)
class _Subscription:
    queue: asyncio.Queue[Event]
    kinds: frozenset[str] | None = field(default=None)

    def wants(self, event: Event) -> bool:
        return self.kinds is None or event.kind in self.kinds


class EventChannel:
    """Fan-out channel for :data:`Event` values.

    Each subscriber owns a bounded queue. Publishing waits at most
    ``put_timeout`` seconds per subscriber and then drops the event for that
    subscriber, so a stuck consumer never stalls the dispatcher.
    """

    def __init__(
        self,
        *,
        queue_size: int = 1000,
        put_timeout: float = 5.0,
        event_callable: Callable[[Event], Awaitable[None]] | None = None,
    ):
        self._queue_size = max(1, int(queue_size))
        self._put_timeout = put_timeout
        self._event_callable = event_callable
        self._subscriptions: list[_Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def open(self, kinds: set[str] | None = None) -> asyncio.Queue[Event]:
        """Register a subscriber queue and return it."""
        sub = _Subscription(asyncio.Queue(maxsize=self._queue_size), frozenset(kinds) if kinds else None)
        self._subscriptions.append(sub)
        return sub.queue

    def close(self, queue: asyncio.Queue[Event]) -> None:
        """Unregister a queue previously returned by :meth:`open`."""
        self._subscriptions = [sub for sub in self._subscriptions if sub.queue is not queue]

    async def subscribe(self, kinds: set[str] | None = None) -> AsyncIterator[Event]:
        """Yield published events until the consumer stops iterating."""
        queue = self.open(kinds)
        try:
            while True:
                yield await queue.get()
        finally:
            self.close(queue)

    async def publish(self, event: Event) -> None:
        """Deliver ``event`` to every interested subscriber and to the callable hook."""
        for sub in list(self._subscriptions):
            if not sub.wants(event):
                continue
            try:
                await asyncio.wait_for(sub.queue.put(event), timeout=self._put_timeout)
            except asyncio.TimeoutError:
                logger.error("Timed out while publishing %s event; dropping it for one subscriber", event.kind)
        if self._event_callable is not None:
            try:
                await self._event_callable(event)
            except Exception:
                logger.exception("Event callable failed for %s event", event.kind)


__all__ = [
    "ConnectionStateChanged",
    "Delivered",
    "DispatchStarted",
    "Event",
    "EventChannel",
    "Failed",
    "PermanentlyFailed",
    "QueueStatus",
]
