"""Exception taxonomy for the RustPBX client SDK.

Errors from open/send/close and the one-shot HTTP calls are raised to the
caller. Errors inside a connection's receive loop never raise; they are
delivered to the active handler as synthetic ``error`` events instead.
"""

from __future__ import annotations


class RustPBXError(Exception):
    """Base class for all SDK errors."""

    pass


class ConnectError(RustPBXError, ConnectionError):
    """Dial or handshake failure (WebSocket or HTTP)."""

    pass


class ClosedError(RustPBXError, ConnectionError):
    """Operation on a connection whose lifetime has ended."""

    pass


class SendError(RustPBXError):
    """Transport write failure. Fatal for the connection."""

    pass


class PBXTimeoutError(RustPBXError, TimeoutError):
    """A deadline elapsed on handshake, write, event wait or HTTP call."""

    pass


class DecodeError(RustPBXError, ValueError):
    """A frame or response body could not be decoded."""

    pass


class ProtocolError(RustPBXError):
    """A one-shot collaborator call returned an unexpected status."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CallNotFoundError(ProtocolError):
    """The call to terminate does not exist on the service."""

    pass
