# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Dispatch proxy facade.

:class:`WaProxy` wires the queue store, the dispatcher, the retry policy and
the connection manager around one transport, validates messages at enqueue
time and exposes the command interface used by the HTTP API.

Example:
    Running the proxy programmatically::

        proxy = await WaProxy.create(config=ProxyConfig())
        message_id = proxy.enqueue("0501234567", "Hello")
        async for event in proxy.events.subscribe({"delivered"}):
            ...
        await proxy.stop()
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

from .addressing import AddressValidator, normalize_destination
from .connection import ConnectionManager
from .dispatcher import Dispatcher
from .errors import MessageValidationError, NotConnectedError
from .events import Event, EventChannel, QueueStatus
from .logger import get_logger
from .models import Attachment, AttachmentKind
from .prometheus import ProxyMetrics
from .proxy_config import ProxyConfig
from .queue_store import QueueStore
from .retry import RetryPolicy
from .transport import HttpBridgeTransport, Transport


class WaProxy:
    """Outbound message proxy for a single-session messaging transport.

    Attributes:
        config: Nested configuration.
        transport: Adapter owning the network session.
        store: Pending and in-flight records.
        events: Channel carrying delivery, connection and queue events.
        connection: Session lifecycle state machine.
        dispatcher: Single consumer of the store.
        metrics: Prometheus metrics collector.
    """

    def __init__(
        self,
        *,
        config: ProxyConfig | None = None,
        transport: Transport | None = None,
        metrics: ProxyMetrics | None = None,
        logger=None,
        validator: AddressValidator = normalize_destination,
        event_callable: Callable[[Event], Awaitable[None]] | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or ProxyConfig()
        self.logger = logger or get_logger()
        self.metrics = metrics or ProxyMetrics()
        self._validate = validator

        bridge = self.config.bridge
        self.transport = transport or HttpBridgeTransport(
            bridge.url,
            session_name=bridge.session,
            token=bridge.token,
            request_timeout=bridge.request_timeout,
            poll_timeout=bridge.poll_timeout,
        )
        self.store = QueueStore()
        self.events = EventChannel(
            queue_size=self.config.events.queue_size,
            put_timeout=self.config.events.put_timeout,
            event_callable=event_callable,
        )
        self.retry_policy = RetryPolicy(self.config.retry.max_attempts)

        conn = self.config.connection
        self.connection = ConnectionManager(
            self.transport,
            events=self.events,
            metrics=self.metrics,
            challenge_ttl=conn.challenge_ttl,
            max_reconnect_attempts=conn.max_reconnect_attempts,
            backoff_step=conn.backoff_step,
            backoff_cap=conn.backoff_cap,
        )

        pacing = self.config.pacing
        self.dispatcher = Dispatcher(
            self.store,
            self.transport,
            self.connection,
            events=self.events,
            retry_policy=self.retry_policy,
            metrics=self.metrics,
            min_delay=pacing.min_delay,
            max_delay=pacing.max_delay,
            settle_interval=pacing.settle_interval,
            send_timeout=pacing.send_timeout,
            log_delivery_activity=self.config.log_delivery_activity,
            rng=rng,
        )

        self._stop = asyncio.Event()
        self._task_status: asyncio.Task | None = None

    @classmethod
    async def create(cls, **kwargs) -> WaProxy:
        """Create a proxy and start it.

        Args:
            **kwargs: All arguments accepted by WaProxy.__init__().
        """
        instance = cls(**kwargs)
        await instance.start()
        return instance

    # ----------------------------------------------------------------- lifecycle
    async def start(self) -> None:
        """Open the transport session and start the queue status loop."""
        self.logger.debug("Starting WaProxy...")
        self._stop.clear()
        await self.connection.connect()
        self._task_status = asyncio.create_task(self._queue_status_loop(), name="queue-status-loop")
        self.dispatcher.kick()

    async def stop(self) -> None:
        """Stop background tasks and release the transport.

        Pending messages are discarded with the process; an attempt already
        handed to the transport is abandoned.
        """
        self._stop.set()
        if self._task_status is not None:
            await asyncio.gather(self._task_status, return_exceptions=True)
        await self.dispatcher.stop()
        await self.connection.shutdown()
        self.logger.info("WaProxy stopped (%d message(s) left in queue)", len(self.store))

    async def _queue_status_loop(self) -> None:
        interval = self.config.events.status_interval
        while not self._stop.is_set():
            await self.publish_queue_status()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def publish_queue_status(self) -> QueueStatus:
        """Refresh the queue gauges and publish a :class:`QueueStatus` event."""
        counts = self.store.status_counts()
        self.metrics.set_queue(counts["pending"], counts["in_flight"])
        event = QueueStatus(counts["pending"], counts["in_flight"])
        await self.events.publish(event)
        return event

    # ----------------------------------------------------------------- messaging
    def enqueue(
        self,
        destination: str,
        text: str | None = None,
        attachment: Attachment | None = None,
    ) -> str:
        """Validate a message, append it to the queue and wake the dispatcher.

        Returns:
            The id assigned to the new record.

        Raises:
            MessageValidationError: The destination is invalid or the message
                has neither text nor attachment. Nothing is queued.
        """
        canonical = self._validate(destination)
        if attachment is None and not (text and text.strip()):
            raise MessageValidationError("Message text or attachment is required")
        message_id = self.store.enqueue(canonical, text, attachment)
        counts = self.store.status_counts()
        self.metrics.set_queue(counts["pending"], counts["in_flight"])
        self.dispatcher.kick()
        return message_id

    @staticmethod
    def _parse_attachment(data: Any) -> Attachment | None:
        if data is None:
            return None
        if isinstance(data, Attachment):
            return data
        if not isinstance(data, dict):
            raise MessageValidationError("attachment must be an object")
        kind = data.get("kind") or data.get("type")
        try:
            kind = AttachmentKind(kind)
        except ValueError:
            raise MessageValidationError(f"Unsupported attachment kind: {kind!r}") from None
        path = data.get("path")
        if not path:
            raise MessageValidationError("attachment path is required")
        return Attachment(kind=kind, path=str(path), filename=data.get("filename"))

    # ------------------------------------------------------------------ commands
    async def handle_command(self, cmd: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute an external control command.

        Supported commands:
        - ``sendMessage``: validate and queue one message
        - ``queueStatus``: pending / in-flight counters
        - ``connectionStatus``: current connection state
        - ``getMessage``: look up a queued record
        - ``clearQueue``: discard pending records
        - ``logout``, ``reconnect``: session control

        Returns:
            dict: Command result with ``ok`` status and command-specific data.
        """
        payload = payload or {}
        match cmd:
            case "sendMessage":
                return self._send_message(payload)
            case "queueStatus":
                counts = self.store.status_counts()
                return {
                    "ok": True,
                    "pending": counts["pending"],
                    "in_flight": counts["in_flight"],
                    "total": len(self.store),
                    "processing": self.dispatcher.running,
                }
            case "connectionStatus":
                return {"ok": True, **self.connection.state().to_dict()}
            case "getMessage":
                record = self.store.get(str(payload.get("id") or ""))
                if record is None:
                    return {"ok": False, "error": "message not found"}
                return {"ok": True, "message": record.to_dict()}
            case "clearQueue":
                removed = self.store.clear()
                await self.publish_queue_status()
                return {"ok": True, "removed": removed}
            case "logout":
                await self.connection.logout()
                return {"ok": True}
            case "reconnect":
                await self.connection.connect()
                return {"ok": True}
            case _:
                return {"ok": False, "error": "unknown command"}

    def _send_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        destination = payload.get("destination") or payload.get("phone_number")
        text = payload.get("text")
        if self.config.require_connection and not self.connection.ready:
            exc = NotConnectedError("Transport is not connected, pair the session first")
            return {"ok": False, "error": str(exc), "code": exc.code}
        try:
            attachment = self._parse_attachment(payload.get("attachment"))
            message_id = self.enqueue(destination, text, attachment)
        except MessageValidationError as exc:
            self.logger.warning("Rejected message for %r: %s", destination, exc)
            return {"ok": False, "error": str(exc), "code": exc.code}
        return {"ok": True, "id": message_id, "queue_position": self.store.status_counts()["pending"]}


__all__ = ["WaProxy"]
