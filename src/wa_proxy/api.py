# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""
FastAPI application factory and HTTP schemas for the dispatch proxy.

The module exposes a `create_app` function that builds the REST API used to
queue messages and control the transport session, and defines the pydantic
payloads that document the behaviour of each command. Authentication is
enforced through a configurable API token carried in the ``X-API-Token``
header.
"""

from typing import Any, AsyncContextManager, Callable, Dict, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, status
from fastapi.responses import Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from .proxy import WaProxy

app = FastAPI(title="WhatsApp Dispatch Proxy")
service: WaProxy | None = None
API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)
app.state.api_token = None


async def require_token(api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    If a token has been configured through :func:`create_app` and a request
    provides either a missing or different value, a ``401`` error is raised.
    When no token is configured the dependency is effectively bypassed.
    """
    expected = getattr(app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


class CommandStatus(BaseModel):
    """Base schema shared by most responses produced by the service."""
    ok: bool
    error: Optional[str] = None


class BasicOkResponse(CommandStatus):
    pass


class AttachmentPayload(BaseModel):
    """Reference to a media file already stored on the proxy host."""
    kind: Literal["image", "document", "video", "audio"]
    path: str
    filename: Optional[str] = None


class SendMessagePayload(BaseModel):
    """Payload accepted by the ``sendMessage`` command."""
    model_config = ConfigDict(populate_by_name=True)
    destination: str = Field(alias="phone_number")
    text: Optional[str] = Field(default=None, alias="message")
    attachment: Optional[AttachmentPayload] = None


class SendMessageResponse(CommandStatus):
    id: str
    queue_position: int


class QueueStatusResponse(CommandStatus):
    pending: int
    in_flight: int
    total: int
    processing: bool


class ConnectionStatusResponse(CommandStatus):
    """Connection state as returned by ``connectionStatus``."""
    phase: Literal["disconnected", "awaiting_challenge", "connected"]
    ready: bool
    challenge: Optional[str] = None
    reconnect_attempts: int
    last_activity: float
    last_close_cause: Optional[str] = None


class MessageInfo(BaseModel):
    """Queued message as returned by ``getMessage``."""
    id: str
    destination: str
    text: Optional[str] = None
    attachment: Optional[Dict[str, Any]] = None
    status: str
    retry_count: int
    enqueued_at: float
    last_error: Optional[str] = None


class MessageResponse(CommandStatus):
    message: MessageInfo


class ClearQueueResponse(CommandStatus):
    removed: int


def _require_service() -> WaProxy:
    if not service:
        raise HTTPException(500, "Service not initialized")
    return service


def create_app(
    svc: WaProxy,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        Instance of :class:`wa_proxy.proxy.WaProxy` that implements the
        business logic for each command.
    api_token:
        Optional secret used to protect every endpoint. When provided, the
        ``X-API-Token`` header must match this value on every request.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    global service
    service = svc

    if lifespan is not None:
        api = FastAPI(title="WhatsApp Dispatch Proxy", lifespan=lifespan)
    else:
        api = app

    # require_token reads the module-level app state
    app.state.api_token = api_token
    api.state.api_token = api_token
    router = APIRouter(tags=["commands"], dependencies=[auth_dependency])

    @router.get("/status", response_model=ConnectionStatusResponse, response_model_exclude_none=True)
    async def connection_status():
        """Return the transport connection state, including any pending pairing challenge."""
        result = await _require_service().handle_command("connectionStatus", {})
        return ConnectionStatusResponse.model_validate(result)

    @router.get("/queue-status", response_model=QueueStatusResponse, response_model_exclude_none=True)
    async def queue_status():
        """Return the queue counters."""
        result = await _require_service().handle_command("queueStatus", {})
        return QueueStatusResponse.model_validate(result)

    @router.post("/send-message", response_model=SendMessageResponse, response_model_exclude_none=True)
    async def send_message(payload: SendMessagePayload):
        """Validate a message and push it into the dispatch queue."""
        data = payload.model_dump(exclude_none=True)
        result = await _require_service().handle_command("sendMessage", data)
        if result.get("ok") is not True:
            code = status.HTTP_503_SERVICE_UNAVAILABLE if result.get("code") == "not_connected" else 400
            raise HTTPException(status_code=code, detail={"error": result.get("error"), "code": result.get("code")})
        return SendMessageResponse.model_validate(result)

    @router.get("/message/{message_id}", response_model=MessageResponse, response_model_exclude_none=True)
    async def get_message(message_id: str):
        """Return a message that is still pending or in flight."""
        result = await _require_service().handle_command("getMessage", {"id": message_id})
        if result.get("ok") is not True:
            raise HTTPException(status.HTTP_404_NOT_FOUND, result.get("error") or "message not found")
        return MessageResponse.model_validate(result)

    @router.post("/logout", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def logout():
        """Log the transport session out; it stays disconnected until ``/reconnect``."""
        result = await _require_service().handle_command("logout", {})
        return BasicOkResponse.model_validate(result)

    @router.post("/reconnect", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def reconnect():
        """Open a new transport session and reset the reconnect counter."""
        result = await _require_service().handle_command("reconnect", {})
        return BasicOkResponse.model_validate(result)

    @router.post("/clear-queue", response_model=ClearQueueResponse, response_model_exclude_none=True)
    async def clear_queue():
        """Discard pending messages. The message being sent, if any, is not aborted."""
        result = await _require_service().handle_command("clearQueue", {})
        return ClearQueueResponse.model_validate(result)

    @router.get("/metrics")
    async def metrics():
        """Expose Prometheus metrics collected by the dispatcher."""
        return Response(content=_require_service().metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    api.include_router(router)
    return api
