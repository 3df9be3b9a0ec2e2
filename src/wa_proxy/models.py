# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Data model shared by the queue, the dispatcher and the connection manager.

Message records are plain mutable dataclasses owned by the queue store.
The connection state is mutated only by the connection manager; everybody
else receives copies through :meth:`ConnectionState.snapshot`.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any


class MessageStatus(str, Enum):
    """Lifecycle status of a message record."""

    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class AttachmentKind(str, Enum):
    """Media variants supported by the transport."""

    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"


class ConnectionPhase(str, Enum):
    """Phases of the transport session lifecycle."""

    DISCONNECTED = "disconnected"
    AWAITING_CHALLENGE = "awaiting_challenge"
    CONNECTED = "connected"


# Close causes the connection manager treats as terminal.
CLOSE_LOGGED_OUT = "logged_out"
CLOSE_CONFLICT = "conflict"


@dataclass(frozen=True)
class Attachment:
    """Reference to a file already stored on disk by an external collaborator."""

    kind: AttachmentKind
    path: str
    filename: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "path": self.path, "filename": self.filename}


@dataclass
class MessageRecord:
    """Unit of work held by the queue store.

    Attributes:
        id: Opaque token assigned at enqueue time.
        destination: Canonical destination address.
        text: Message body, used as caption when an attachment is present.
        attachment: Optional single attachment.
        status: Current lifecycle status.
        retry_count: Number of failed attempts so far.
        enqueued_at: Unix timestamp of the enqueue call.
        last_error: Reason of the last failed attempt, if any.
    """

    destination: str
    text: str | None = None
    attachment: Attachment | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: MessageStatus = MessageStatus.PENDING
    retry_count: int = 0
    enqueued_at: float = field(default_factory=time.time)
    last_error: str | None = None

    @property
    def caption(self) -> str | None:
        """Text to send alongside the attachment (None without one)."""
        if self.attachment is None:
            return None
        return self.text if self.text and self.text.strip() else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "destination": self.destination,
            "text": self.text,
            "attachment": self.attachment.to_dict() if self.attachment else None,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "enqueued_at": self.enqueued_at,
            "last_error": self.last_error,
        }


@dataclass
class ConnectionState:
    """Process-wide transport session state.

    ``challenge`` is only ever set while ``phase`` is AWAITING_CHALLENGE.
    """

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    challenge: str | None = None
    reconnect_attempts: int = 0
    last_activity: float = field(default_factory=time.time)
    last_close_cause: str | None = None

    @property
    def ready(self) -> bool:
        return self.phase is ConnectionPhase.CONNECTED

    def snapshot(self) -> ConnectionState:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["ready"] = self.ready
        return data


__all__ = [
    "Attachment",
    "AttachmentKind",
    "CLOSE_CONFLICT",
    "CLOSE_LOGGED_OUT",
    "ConnectionPhase",
    "ConnectionState",
    "MessageRecord",
    "MessageStatus",
]
