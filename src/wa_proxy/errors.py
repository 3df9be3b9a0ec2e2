# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the dispatch subsystem.

Only validation errors ever reach the caller of ``WaProxy.enqueue``. The
other errors are raised by transports and consumed by the dispatcher, which
turns them into delivery events.

Each exception carries a stable ``code`` used in API responses and logs.
"""


class MessageValidationError(ValueError):
    """Raised when a message cannot enter the queue (bad destination or payload)."""

    code = "validation_error"

    def __init__(self, message: str = "Invalid message payload"):
        super().__init__(message)


class InvalidDestinationError(MessageValidationError):
    """Raised by the address normaliser when a destination is not usable."""

    code = "invalid_destination"

    def __init__(self, raw: str | None = None):
        self.raw = raw
        super().__init__(f"Invalid destination: {raw!r}" if raw and str(raw).strip() else "Missing destination")


class NotConnectedError(RuntimeError):
    """Raised when a send is attempted while the transport session is not usable."""

    code = "not_connected"

    def __init__(self, message: str = "Transport not connected"):
        super().__init__(message)


class TransportFailure(RuntimeError):
    """Raised when the transport rejects or fails a send attempt."""

    code = "transport_failure"

    def __init__(self, reason: str, *, status: int | None = None):
        self.reason = reason
        self.status = status
        super().__init__(reason)


__all__ = [
    "InvalidDestinationError",
    "MessageValidationError",
    "NotConnectedError",
    "TransportFailure",
]
