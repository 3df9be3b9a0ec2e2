# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Paced dispatch proxy for a single-session WhatsApp Web transport.

This package accepts outbound messages (text and an optional attachment),
queues them in memory and delivers them one at a time through a transport
that allows only one authenticated session, with randomised pacing, bounded
retries and automatic reconnection.

Components:
    WaProxy: Facade wiring the queue, dispatcher and connection manager.
    QueueStore: Ordered in-memory store with a single in-flight slot.
    Dispatcher: Single-consumer pacing and delivery loop.
    ConnectionManager: Session state machine with challenge expiry and backoff.
    HttpBridgeTransport: Transport adapter for an HTTP WhatsApp Web bridge.
    ProxyConfig: Hierarchical configuration dataclasses.

Example:
    Create and run the service::

        from wa_proxy import WaProxy
        from wa_proxy.api import create_app

        proxy = WaProxy()
        app = create_app(proxy, api_token="secret")

        # Or via CLI
        # wa-proxy serve --port 8000
"""

from .connection import ConnectionManager
from .dispatcher import Dispatcher
from .errors import InvalidDestinationError, MessageValidationError, NotConnectedError, TransportFailure
from .events import EventChannel
from .models import Attachment, AttachmentKind, ConnectionPhase, ConnectionState, MessageRecord, MessageStatus
from .proxy import WaProxy
from .proxy_config import ProxyConfig
from .queue_store import QueueStore
from .retry import RetryPolicy
from .transport import HttpBridgeTransport, Transport

__version__ = "0.1.0"

__all__ = [
    "Attachment",
    "AttachmentKind",
    "ConnectionManager",
    "ConnectionPhase",
    "ConnectionState",
    "Dispatcher",
    "EventChannel",
    "HttpBridgeTransport",
    "InvalidDestinationError",
    "MessageRecord",
    "MessageStatus",
    "MessageValidationError",
    "NotConnectedError",
    "ProxyConfig",
    "QueueStore",
    "RetryPolicy",
    "Transport",
    "TransportFailure",
    "WaProxy",
]
