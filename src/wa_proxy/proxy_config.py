# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration dataclasses for WaProxy.

Provides nested configuration structure for clean parameter organization:
- proxy.config.pacing.min_delay
- proxy.config.retry.max_attempts
- proxy.config.connection.max_reconnect_attempts
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PacingConfig:
    """Dispatch pacing settings."""

    min_delay: float = 1.0
    """Lower bound in seconds of the random gap between two hand-offs."""

    max_delay: float = 5.0
    """Upper bound in seconds of the random gap between two hand-offs."""

    settle_interval: float = 0.1
    """Pause in seconds after reconciling an outcome."""

    send_timeout: float = 60.0
    """Seconds to wait for a send outcome before counting it as failed."""


@dataclass
class RetryConfig:
    """Retry behavior settings."""

    max_attempts: int = 3
    """Total delivery attempts allowed per message."""


@dataclass
class ConnectionConfig:
    """Transport session lifecycle settings."""

    challenge_ttl: float = 120.0
    """Seconds a pairing challenge stays valid."""

    max_reconnect_attempts: int = 10
    """Consecutive reconnects before the manager gives up."""

    backoff_step: float = 5.0
    """Reconnect delay grows by this many seconds per attempt."""

    backoff_cap: float = 30.0
    """Upper bound of the reconnect delay."""


@dataclass
class BridgeConfig:
    """HTTP bridge settings."""

    url: str = "http://localhost:3000"
    """Base URL of the WhatsApp Web bridge."""

    session: str = "default"
    """Bridge session name."""

    token: str | None = None
    """Bearer token for bridge authentication."""

    request_timeout: float = 30.0
    """Timeout in seconds for a single bridge request."""

    poll_timeout: float = 25.0
    """Long-poll duration in seconds for bridge events."""


@dataclass
class EventsConfig:
    """Event channel settings."""

    queue_size: int = 1000
    """Maximum events buffered per subscriber."""

    put_timeout: float = 5.0
    """Seconds to wait for a slow subscriber before dropping an event."""

    status_interval: float = 5.0
    """Seconds between two queue status events."""


@dataclass
class ProxyConfig:
    """Main configuration container for WaProxy.

    Groups all configuration into logical nested structures:
    - pacing: Gaps between hand-offs and send timeout
    - retry: Attempt budget
    - connection: Challenge expiry and reconnect backoff
    - bridge: Transport endpoint
    - events: Subscriber queues and status interval

    Example:
        config = ProxyConfig(
            pacing=PacingConfig(min_delay=2.0, max_delay=6.0),
            bridge=BridgeConfig(url="http://bridge:3000"),
        )
        proxy = WaProxy.create(config=config)
    """

    pacing: PacingConfig = field(default_factory=PacingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    events: EventsConfig = field(default_factory=EventsConfig)

    require_connection: bool = False
    """Reject new messages with 503 while the transport is not connected."""

    log_delivery_activity: bool = False
    """Log every delivery attempt at INFO level."""


__all__ = [
    "BridgeConfig",
    "ConnectionConfig",
    "EventsConfig",
    "PacingConfig",
    "ProxyConfig",
    "RetryConfig",
]
