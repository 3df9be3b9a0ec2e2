# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Python client for interacting with running wa-proxy instances.

Usage:
    >>> from wa_proxy.client import WaProxyClient
    >>> async with WaProxyClient("http://localhost:8000", token="secret") as proxy:
    ...     await proxy.send("0501234567", "Hello")
    {'ok': True, 'id': '...', 'queue_position': 1}
"""

from __future__ import annotations

from typing import Any

import aiohttp


class WaProxyClientError(RuntimeError):
    """Raised when the server answers with an error status."""

    def __init__(self, status: int, detail: Any):
        self.status = status
        self.detail = detail
        super().__init__(f"HTTP {status}: {detail}")


class WaProxyClient:
    """Client for the wa-proxy control API.

    Attributes:
        url: Base URL of the wa-proxy server.
        token: API token sent in the ``X-API-Token`` header.
    """

    def __init__(self, url: str = "http://localhost:8000", token: str | None = None, timeout: float = 30.0):
        self.url = url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> WaProxyClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        """Build request headers."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["X-API-Token"] = self.token
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, data: dict[str, Any] | None = None) -> Any:
        session = self._get_session()
        async with session.request(method, f"{self.url}{path}", json=data) as resp:
            if resp.status >= 400:
                try:
                    body = await resp.json()
                    detail = body.get("detail", body) if isinstance(body, dict) else body
                except (aiohttp.ContentTypeError, ValueError):
                    detail = await resp.text()
                raise WaProxyClientError(resp.status, detail)
            if resp.content_type == "application/json":
                return await resp.json()
            return await resp.text()

    async def status(self) -> dict[str, Any]:
        """Get the transport connection state."""
        return await self._request("GET", "/status")

    async def queue_status(self) -> dict[str, Any]:
        return await self._request("GET", "/queue-status")

    async def send(
        self,
        destination: str,
        text: str | None = None,
        attachment: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Queue a message and return the server response (with the message id)."""
        payload: dict[str, Any] = {"destination": destination}
        if text is not None:
            payload["text"] = text
        if attachment is not None:
            payload["attachment"] = attachment
        return await self._request("POST", "/send-message", payload)

    async def message(self, message_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/message/{message_id}")

    async def logout(self) -> dict[str, Any]:
        return await self._request("POST", "/logout")

    async def reconnect(self) -> dict[str, Any]:
        return await self._request("POST", "/reconnect")

    async def clear_queue(self) -> dict[str, Any]:
        return await self._request("POST", "/clear-queue")

    async def health(self) -> bool:
        """Check if the server answers."""
        try:
            result = await self.status()
        except (aiohttp.ClientError, WaProxyClientError):
            return False
        return bool(result.get("ok", False))


__all__ = ["WaProxyClient", "WaProxyClientError"]
