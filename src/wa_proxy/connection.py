# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transport session lifecycle and reconnection.

The :class:`ConnectionManager` consumes the event stream produced by
:meth:`Transport.initialize` and keeps the process-wide
:class:`~wa_proxy.models.ConnectionState`:

- ``challenge``: enter AWAITING_CHALLENGE, keep the pairing payload for
  ``challenge_ttl`` seconds (2 minutes by default). Expiry clears the
  payload but leaves the phase alone, since the session may still complete.
- ``open``: enter CONNECTED, clear the challenge, reset the reconnect counter.
- ``close``: enter DISCONNECTED. A ``logged_out`` or ``conflict`` cause is
  terminal and needs an operator (``connect()`` again). Any other cause
  schedules a reconnect after ``min(backoff_step * attempt, backoff_cap)``
  seconds, for at most ``max_reconnect_attempts`` consecutive attempts.

Senders only look at :attr:`ConnectionManager.ready`, which is true exactly
when the phase is CONNECTED.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from .events import ConnectionStateChanged, EventChannel
from .models import CLOSE_CONFLICT, CLOSE_LOGGED_OUT, ConnectionPhase, ConnectionState
from .transport.base import ChallengeIssued, Closed, Opened, Transport, TransportEvent

if TYPE_CHECKING:
    from .prometheus import ProxyMetrics

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGE_TTL = 120.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_BACKOFF_STEP = 5.0
DEFAULT_BACKOFF_CAP = 30.0


def reconnect_delay(attempt: int, step: float = DEFAULT_BACKOFF_STEP, cap: float = DEFAULT_BACKOFF_CAP) -> float:
    """Delay in seconds before reconnect attempt number ``attempt`` (1-based)."""
    return min(step * max(1, attempt), cap)


class ConnectionManager:
    """Own the transport session state machine.

    Attributes:
        transport: Adapter whose session is managed.
        events: Channel receiving :class:`ConnectionStateChanged` events.
        challenge_ttl: Seconds a pairing challenge stays valid.
        max_reconnect_attempts: Consecutive reconnects allowed before giving up.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        events: EventChannel | None = None,
        metrics: ProxyMetrics | None = None,
        challenge_ttl: float = DEFAULT_CHALLENGE_TTL,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        backoff_step: float = DEFAULT_BACKOFF_STEP,
        backoff_cap: float = DEFAULT_BACKOFF_CAP,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.events = events
        self.metrics = metrics
        self.challenge_ttl = float(challenge_ttl)
        self.max_reconnect_attempts = max(0, int(max_reconnect_attempts))
        self.backoff_step = float(backoff_step)
        self.backoff_cap = float(backoff_cap)
        self._sleep = sleep
        self._clock = clock

        self._state = ConnectionState(last_activity=clock())
        self._ready = asyncio.Event()
        self._closing = False
        self._session_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._challenge_task: asyncio.Task | None = None

    # ------------------------------------------------------------------ queries
    @property
    def ready(self) -> bool:
        """True iff the session is CONNECTED."""
        return self._state.ready

    @property
    def phase(self) -> ConnectionPhase:
        return self._state.phase

    def state(self) -> ConnectionState:
        """Return a copy of the current state."""
        return self._state.snapshot()

    async def wait_ready(self) -> None:
        """Suspend until the session becomes CONNECTED."""
        await self._ready.wait()

    def touch(self) -> None:
        """Record meaningful transport activity (e.g. an acknowledged send)."""
        self._state.last_activity = self._clock()

    # ---------------------------------------------------------------- lifecycle
    async def connect(self) -> None:
        """Open the session, or reopen it after a terminal close.

        Resets the reconnect counter and cancels any pending reconnect. A live
        session is dropped first, so the state reads DISCONNECTED until the new
        session reports in.
        """
        self._closing = False
        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self._state.reconnect_attempts = 0
        if self._session_task is not None and not self._session_task.done():
            self._cancel(self._session_task)
            self._cancel(self._challenge_task)
            self._challenge_task = None
            if self._state.phase is not ConnectionPhase.DISCONNECTED:
                logger.info("Replacing the current %s session", self.transport.name)
                self._enter_disconnected(self._state.last_close_cause)
                await self._publish_state()
        self._start_session()

    async def logout(self) -> None:
        """Log out of the transport and stay DISCONNECTED without reconnecting."""
        self._closing = True
        self._cancel(self._reconnect_task)
        self._cancel(self._challenge_task)
        try:
            await self.transport.logout()
            logger.info("Transport logged out successfully")
        except Exception as exc:
            logger.error("Failed to logout: %s", exc)
        self._cancel(self._session_task)
        self._enter_disconnected(CLOSE_LOGGED_OUT)
        await self._publish_state()

    async def shutdown(self) -> None:
        """Stop timers and the session task, then release the transport."""
        logger.info("Cleaning up connection manager")
        self._closing = True
        for task in (self._reconnect_task, self._challenge_task, self._session_task):
            self._cancel(task)
        await asyncio.gather(
            *(t for t in (self._reconnect_task, self._challenge_task, self._session_task) if t),
            return_exceptions=True,
        )
        try:
            await self.transport.shutdown()
        except Exception as exc:
            logger.warning("Transport shutdown failed: %s", exc)
        self._enter_disconnected(self._state.last_close_cause)

    def _start_session(self) -> None:
        self._cancel(self._session_task)
        self._session_task = asyncio.create_task(self._run_session(), name="transport-session")

    async def _run_session(self) -> None:
        """Consume one session's event stream until it closes."""
        logger.info("Initializing %s connection...", self.transport.name)
        closed = False
        try:
            async for event in self.transport.initialize():
                await self.handle_event(event)
                if isinstance(event, Closed):
                    closed = True
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to initialize %s: %s", self.transport.name, exc)
            await self.handle_event(Closed(f"initialize failed: {exc}"))
            return
        if not closed and not self._closing:
            await self.handle_event(Closed("session stream ended"))

    # ------------------------------------------------------------------- events
    async def handle_event(self, event: TransportEvent) -> None:
        """Apply one transport lifecycle event to the state machine."""
        match event:
            case ChallengeIssued(payload=payload):
                await self._on_challenge(payload)
            case Opened():
                await self._on_open()
            case Closed(cause=cause):
                await self._on_close(cause)
            case _:
                logger.warning("Ignoring unknown transport event: %r", event)

    async def _on_challenge(self, payload: str) -> None:
        self._cancel(self._challenge_task)
        self._state.phase = ConnectionPhase.AWAITING_CHALLENGE
        self._state.challenge = payload
        self._state.last_activity = self._clock()
        self._ready.clear()
        self._challenge_task = asyncio.create_task(self._expire_challenge(payload), name="challenge-expiry")
        logger.info("Pairing challenge issued")
        await self._publish_state()

    async def _expire_challenge(self, payload: str) -> None:
        await self._sleep(self.challenge_ttl)
        if self._state.challenge != payload:
            return
        self._state.challenge = None
        logger.info("Pairing challenge expired")
        await self._publish_state()

    async def _on_open(self) -> None:
        self._cancel(self._challenge_task)
        self._challenge_task = None
        self._state.phase = ConnectionPhase.CONNECTED
        self._state.challenge = None
        self._state.reconnect_attempts = 0
        self._state.last_close_cause = None
        self._state.last_activity = self._clock()
        self._ready.set()
        if self.metrics:
            self.metrics.set_connected(True)
        logger.info("%s connected successfully", self.transport.name)
        await self._publish_state()

    async def _on_close(self, cause: str) -> None:
        self._cancel(self._challenge_task)
        self._challenge_task = None
        self._enter_disconnected(cause)
        await self._publish_state()

        if cause == CLOSE_LOGGED_OUT:
            logger.info("Connection closed: logged out, not reconnecting")
            return
        if cause == CLOSE_CONFLICT:
            logger.warning("Session conflict detected - another session is using this identity")
            return
        if self._closing:
            return
        if self._state.reconnect_attempts < self.max_reconnect_attempts:
            self._schedule_reconnect()
        else:
            logger.warning("Max reconnection attempts reached, stopping reconnection attempts")

    def _enter_disconnected(self, cause: str | None) -> None:
        self._state.phase = ConnectionPhase.DISCONNECTED
        self._state.challenge = None
        self._state.last_close_cause = cause
        self._ready.clear()
        if self.metrics:
            self.metrics.set_connected(False)

    # --------------------------------------------------------------- reconnect
    def _schedule_reconnect(self) -> None:
        self._cancel(self._reconnect_task)
        self._state.reconnect_attempts += 1
        attempt = self._state.reconnect_attempts
        delay = reconnect_delay(attempt, self.backoff_step, self.backoff_cap)
        logger.info("Connection closed, reconnecting in %.1fs (attempt %d/%d)", delay, attempt, self.max_reconnect_attempts)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay, attempt), name="transport-reconnect")

    async def _reconnect_after(self, delay: float, attempt: int) -> None:
        await self._sleep(delay)
        if self._closing:
            return
        logger.info("Attempting to reconnect... (attempt %d/%d)", attempt, self.max_reconnect_attempts)
        if self.metrics:
            self.metrics.inc_reconnect()
        self._start_session()

    # ------------------------------------------------------------------ helpers
    async def _publish_state(self) -> None:
        if self.events is not None:
            await self.events.publish(ConnectionStateChanged(self._state.snapshot()))

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


__all__ = [
    "ConnectionManager",
    "DEFAULT_BACKOFF_CAP",
    "DEFAULT_BACKOFF_STEP",
    "DEFAULT_CHALLENGE_TTL",
    "DEFAULT_MAX_RECONNECT_ATTEMPTS",
    "reconnect_delay",
]
