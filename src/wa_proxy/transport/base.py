# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transport adapter contract.

A transport owns the single authenticated session with the messaging
network. It reports lifecycle changes as an async stream of events and
performs send attempts. It keeps no delivery bookkeeping of its own: which
record is being attempted is tracked by the queue store only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import ClassVar, Union

from ..models import Attachment


@dataclass(frozen=True)
class ChallengeIssued:
    """The transport needs pairing; ``payload`` is shown to the operator (QR code)."""

    type: ClassVar[str] = "challenge"
    payload: str


@dataclass(frozen=True)
class Opened:
    """The session is authenticated and usable."""

    type: ClassVar[str] = "open"


@dataclass(frozen=True)
class Closed:
    """The session was closed; ``cause`` is ``logged_out``, ``conflict`` or free text."""

    type: ClassVar[str] = "close"
    cause: str


TransportEvent = Union[ChallengeIssued, Opened, Closed]


class Transport(ABC):
    """Interface every transport adapter satisfies."""

    name: str = "transport"

    @abstractmethod
    def initialize(self) -> AsyncIterator[TransportEvent]:
        """Open a session and return the stream of its lifecycle events.

        The stream ends after a :class:`Closed` event. Calling
        ``initialize`` again opens a new session.
        """

    @abstractmethod
    async def send(
        self,
        destination: str,
        text: str | None = None,
        attachment: Attachment | None = None,
    ) -> str:
        """Attempt one delivery and return the transport acknowledgment id.

        Raises:
            NotConnectedError: The session is not usable.
            TransportFailure: The attempt failed or was rejected.
        """

    async def logout(self) -> None:
        """Invalidate the session credentials (best effort)."""

    async def shutdown(self) -> None:
        """Release resources held by the adapter (best effort)."""


__all__ = ["ChallengeIssued", "Closed", "Opened", "Transport", "TransportEvent"]
