# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transport adapters for the dispatch proxy."""

from .base import ChallengeIssued, Closed, Opened, Transport, TransportEvent
from .http_bridge import HttpBridgeTransport

__all__ = [
    "ChallengeIssued",
    "Closed",
    "HttpBridgeTransport",
    "Opened",
    "Transport",
    "TransportEvent",
]
