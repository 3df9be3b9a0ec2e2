# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transport adapter talking to a WhatsApp Web bridge over HTTP.

The bridge owns the actual web socket session and exposes it as a small REST
surface rooted at ``{url}/sessions/{session}/``:

- ``POST start`` opens (or resumes) the session;
- ``GET events`` long-polls lifecycle events (``qr``, ``open``, ``close``);
- ``POST messages`` sends one message and returns its key;
- ``POST logout`` invalidates the stored credentials.

Media files are read from disk and shipped base64-encoded in the message
payload.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import aiohttp

from ..addressing import to_jid
from ..errors import NotConnectedError, TransportFailure
from ..models import CLOSE_CONFLICT, CLOSE_LOGGED_OUT, Attachment, AttachmentKind
from .base import ChallengeIssued, Closed, Opened, Transport, TransportEvent

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "avi": "video/x-msvideo",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

# Bridge answers with one of these while the session is not usable.
NOT_CONNECTED_STATUSES = frozenset({409, 503})


def mime_type_for(path: str) -> str:
    """Guess the MIME type of ``path`` from its extension."""
    ext = Path(path).suffix.lstrip(".").lower()
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


def classify_close(status_code: int | None, reason: str | None) -> str:
    """Map a bridge ``close`` payload to a close cause."""
    text = (reason or "").strip()
    lowered = text.lower()
    if status_code == 401 or lowered in {"logged_out", "loggedout", "logged out"}:
        return CLOSE_LOGGED_OUT
    if "conflict" in lowered or "replaced" in lowered:
        return CLOSE_CONFLICT
    if text:
        return text
    return f"closed (status {status_code})" if status_code is not None else "closed"


class HttpBridgeTransport(Transport):
    """:class:`Transport` implementation backed by an HTTP bridge.

    Attributes:
        url: Base URL of the bridge.
        session_name: Name of the bridge session (one per proxy instance).
        token: Optional bearer token sent on every request.
    """

    name = "whatsapp-bridge"

    def __init__(
        self,
        url: str,
        *,
        session_name: str = "default",
        token: str | None = None,
        request_timeout: float = 30.0,
        poll_timeout: float = 25.0,
        poll_interval: float = 1.0,
    ):
        self.url = url.rstrip("/")
        self.session_name = session_name
        self.token = token
        self.request_timeout = float(request_timeout)
        self.poll_timeout = float(poll_timeout)
        self.poll_interval = float(poll_interval)
        self._session: aiohttp.ClientSession | None = None
        self._connected = False

    # ------------------------------------------------------------------ http
    def _endpoint(self, suffix: str) -> str:
        return f"{self.url}/sessions/{self.session_name}/{suffix.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers())
        return self._session

    # ------------------------------------------------------------- lifecycle
    async def initialize(self) -> AsyncIterator[TransportEvent]:
        """Start the bridge session and stream its lifecycle events."""
        self._connected = False
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with session.post(self._endpoint("start"), timeout=timeout) as resp:
            resp.raise_for_status()
        logger.info("Bridge session %s started", self.session_name)

        poll_timeout = aiohttp.ClientTimeout(total=self.poll_timeout + self.request_timeout)
        while True:
            try:
                async with session.get(
                    self._endpoint("events"),
                    params={"timeout": str(int(self.poll_timeout))},
                    timeout=poll_timeout,
                ) as resp:
                    resp.raise_for_status()
                    payload = await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                self._connected = False
                yield Closed(f"bridge unreachable: {exc}")
                return

            events = payload if isinstance(payload, list) else []
            for raw in events:
                event = self.parse_event(raw)
                if event is None:
                    continue
                if isinstance(event, Opened):
                    self._connected = True
                elif isinstance(event, Closed):
                    self._connected = False
                yield event
                if isinstance(event, Closed):
                    return
            if not events:
                await asyncio.sleep(self.poll_interval)

    @staticmethod
    def parse_event(raw: Any) -> TransportEvent | None:
        """Convert one bridge event payload into a transport event."""
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed bridge event: %r", raw)
            return None
        kind = raw.get("type")
        match kind:
            case "qr":
                qr = raw.get("qr")
                if not qr:
                    logger.warning("Bridge sent a qr event without payload")
                    return None
                return ChallengeIssued(str(qr))
            case "open":
                return Opened()
            case "close":
                return Closed(classify_close(raw.get("status_code"), raw.get("reason")))
            case _:
                logger.debug("Ignoring bridge event of type %r", kind)
                return None

    async def logout(self) -> None:
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with session.post(self._endpoint("logout"), timeout=timeout) as resp:
            resp.raise_for_status()
        self._connected = False

    async def shutdown(self) -> None:
        self._connected = False
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------ send
    async def send(
        self,
        destination: str,
        text: str | None = None,
        attachment: Attachment | None = None,
    ) -> str:
        if not self._connected:
            raise NotConnectedError()
        payload: dict[str, Any] = {"to": to_jid(destination)}
        if attachment is not None:
            payload["media"] = await self._media_payload(attachment, text)
        elif text:
            payload["text"] = text
        else:
            raise TransportFailure("Message has neither text nor attachment")

        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with session.post(self._endpoint("messages"), json=payload, timeout=timeout) as resp:
                if resp.status in NOT_CONNECTED_STATUSES:
                    self._connected = False
                    raise NotConnectedError(f"Bridge session not connected (status {resp.status})")
                if resp.status >= 400:
                    body = await resp.text()
                    raise TransportFailure(f"Bridge rejected message ({resp.status}): {body[:200]}", status=resp.status)
                data = await resp.json()
        except aiohttp.ClientError as exc:
            raise TransportFailure(f"Bridge request failed: {exc}") from exc

        key = data.get("key") if isinstance(data, dict) else None
        ack_id = key.get("id") if isinstance(key, dict) else None
        if not ack_id:
            raise TransportFailure("Failed to send message: no acknowledgment received")
        return str(ack_id)

    async def _media_payload(self, attachment: Attachment, text: str | None) -> dict[str, Any]:
        path = Path(attachment.path)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise TransportFailure(f"Media file not found: {attachment.path}") from exc
        except OSError as exc:
            raise TransportFailure(f"Cannot read media file {attachment.path}: {exc}") from exc
        logger.debug("Media file loaded: %s (%d bytes)", attachment.path, len(content))

        media: dict[str, Any] = {
            "type": attachment.kind.value,
            "filename": attachment.filename or path.name,
            "mimetype": mime_type_for(attachment.path),
            "data": base64.b64encode(content).decode("ascii"),
        }
        if text and text.strip() and attachment.kind is not AttachmentKind.AUDIO:
            media["caption"] = text
        return media


__all__ = ["HttpBridgeTransport", "classify_close", "mime_type_for"]
