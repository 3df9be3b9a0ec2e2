# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Single-consumer dispatch loop.

The :class:`Dispatcher` is the only consumer of the :class:`QueueStore`.
Its loop is started by :meth:`Dispatcher.kick` whenever a message is
enqueued and ends on its own once no eligible record is left.

For each record the loop:

1. waits for the connection manager to be ready (records stay PENDING
   while the session is down);
2. dequeues the earliest pending record;
3. waits a random pacing interval drawn from ``[min_delay, max_delay]``,
   minus the time already elapsed since the previous hand-off;
4. hands the record to the transport and publishes :class:`DispatchStarted`;
5. awaits the outcome (bounded by ``send_timeout``), reconciles it, and
   waits ``settle_interval`` before looking at the next record.

Awaiting the outcome keeps exactly one attempt outstanding at any time.
Pacing still bounds the gap between two hand-offs.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from .errors import NotConnectedError, TransportFailure
from .events import Delivered, DispatchStarted, Event, EventChannel, Failed, PermanentlyFailed
from .models import MessageRecord, MessageStatus
from .queue_store import QueueStore
from .retry import RetryPolicy

if TYPE_CHECKING:
    from .connection import ConnectionManager
    from .prometheus import ProxyMetrics
    from .transport.base import Transport

logger = logging.getLogger(__name__)

DEFAULT_MIN_DELAY = 1.0
DEFAULT_MAX_DELAY = 5.0
DEFAULT_SETTLE_INTERVAL = 0.1
DEFAULT_SEND_TIMEOUT = 60.0


class Dispatcher:
    """Pace and attempt deliveries of queued records, one at a time."""

    def __init__(
        self,
        store: QueueStore,
        transport: Transport,
        connection: ConnectionManager,
        *,
        events: EventChannel | None = None,
        retry_policy: RetryPolicy | None = None,
        metrics: ProxyMetrics | None = None,
        min_delay: float = DEFAULT_MIN_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        settle_interval: float = DEFAULT_SETTLE_INTERVAL,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        log_delivery_activity: bool = False,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError(f"invalid pacing window [{min_delay}, {max_delay}]")
        self.store = store
        self.transport = transport
        self.connection = connection
        self.events = events
        self.retry_policy = retry_policy or RetryPolicy()
        self.metrics = metrics
        self.min_delay = float(min_delay)
        self.max_delay = float(max_delay)
        self.settle_interval = max(0.0, float(settle_interval))
        self.send_timeout = float(send_timeout)
        self._log_delivery_activity = bool(log_delivery_activity)
        self._rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep

        self._task: asyncio.Task | None = None
        self._last_handoff: float | None = None

    # ----------------------------------------------------------------- control
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def kick(self) -> None:
        """Start the loop if it is idle and there is work to do."""
        if self.running or not self.store.has_eligible():
            return
        self._task = asyncio.create_task(self._dispatch_loop(), name="dispatch-loop")

    async def join(self) -> None:
        """Wait for the current loop run to drain the queue."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel the loop. An attempt already handed to the transport is abandoned."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------- loop
    async def _dispatch_loop(self) -> None:
        logger.info("Starting queue processing")
        try:
            while True:
                if not self.connection.ready:
                    counts = self.store.status_counts()
                    logger.info("Transport not connected, holding %d pending message(s)", counts["pending"])
                    await self.connection.wait_ready()
                record = self.store.dequeue_next_eligible()
                if record is None:
                    break
                try:
                    await self._process(record)
                except asyncio.CancelledError:
                    if self.store.in_flight is record:
                        self.store.restore(record)
                        logger.info("Dispatch cancelled, message %s returned to the queue", record.id)
                    raise
                except Exception as exc:
                    logger.exception("Unhandled error while dispatching message %s: %s", record.id, exc)
                    if self.store.in_flight is record:
                        await self._on_failure(record, str(exc) or exc.__class__.__name__, code="error")
        finally:
            logger.info("Queue processing completed")

    def pacing_delay(self) -> float:
        """Seconds to wait before the next hand-off."""
        jitter = self._rng.uniform(self.min_delay, self.max_delay)
        if self._last_handoff is None:
            return jitter
        elapsed = self._clock() - self._last_handoff
        return max(0.0, jitter - elapsed)

    async def _process(self, record: MessageRecord) -> None:
        delay = self.pacing_delay()
        if delay > 0:
            logger.debug("Waiting %.2fs before sending next message", delay)
            await self._sleep(delay)

        if not self.connection.ready:
            self.store.restore(record)
            logger.warning("Message %s held back: transport disconnected during pacing", record.id)
            return

        # DispatchStarted is published only once the record is with the transport.
        attempt = asyncio.create_task(self._attempt(record), name=f"send-{record.id}")
        self._last_handoff = self._clock()

        try:
            await self._publish(DispatchStarted(replace(record)))
            if self.metrics:
                self.metrics.inc_dispatched()
            if self._log_delivery_activity:
                logger.info(
                    "Attempting delivery for message %s to %s (attempt %d/%d)",
                    record.id,
                    record.destination,
                    record.retry_count + 1,
                    self.retry_policy.max_attempts,
                )
            ack_id = await attempt
        except NotConnectedError:
            self.store.restore(record)
            logger.warning("Message %s not sent, transport not connected; holding it", record.id)
        except TransportFailure as exc:
            await self._on_failure(record, exc.reason, code=exc.code)
        except asyncio.TimeoutError:
            await self._on_failure(record, f"send timed out after {self.send_timeout:g}s", code="timeout")
        except Exception as exc:
            logger.exception("Failed to send message %s", record.id)
            await self._on_failure(record, str(exc) or exc.__class__.__name__, code="error")
        else:
            await self._on_delivered(record, ack_id)
        finally:
            if not attempt.done():
                attempt.cancel()

        if self.settle_interval > 0:
            await self._sleep(self.settle_interval)

    async def _attempt(self, record: MessageRecord) -> str:
        async with asyncio.timeout(self.send_timeout):
            ack_id = await self.transport.send(record.destination, record.text, record.attachment)
        if not ack_id:
            raise TransportFailure("Failed to send message: no acknowledgment received")
        return str(ack_id)

    # ---------------------------------------------------------- reconciliation
    async def _on_delivered(self, record: MessageRecord, ack_id: str) -> None:
        self.store.remove(record.id)
        record.status = MessageStatus.SENT
        self.connection.touch()
        if self.metrics:
            self.metrics.inc_delivered()
        logger.info("Message sent successfully: %s (ack=%s)", record.id, ack_id)
        await self._publish(Delivered(record.id, ack_id))

    async def _on_failure(self, record: MessageRecord, reason: str, *, code: str) -> None:
        decision = self.retry_policy.on_failure(record, reason)
        if self.metrics:
            self.metrics.inc_failed(code)
        await self._publish(Failed(record.id, reason, record.retry_count))
        if decision.retry:
            self.store.requeue(record)
            logger.warning(
                "Message failed, will retry: %s (attempt %d/%d): %s",
                record.id,
                decision.attempts,
                self.retry_policy.max_attempts,
                reason,
            )
            return
        self.store.remove(record.id)
        if self.metrics:
            self.metrics.inc_permanently_failed()
        logger.error("Message permanently failed: %s after %d attempts: %s", record.id, decision.attempts, reason)
        await self._publish(PermanentlyFailed(record.id, reason))

    async def _publish(self, event: Event) -> None:
        if self.events is not None:
            await self.events.publish(event)


__all__ = [
    "DEFAULT_MAX_DELAY",
    "DEFAULT_MIN_DELAY",
    "DEFAULT_SEND_TIMEOUT",
    "DEFAULT_SETTLE_INTERVAL",
    "Dispatcher",
]
