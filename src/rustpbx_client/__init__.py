"""RustPBX client SDK.

Drive a RustPBX call-control service over a persistent WebSocket session:

    async with Client("http://localhost:8080") as client:
        conn = await client.connect_call()
        conn.on_event(handle_event)
        await conn.invite(CallOption(callee="sip:bob@example.com"))
        await conn.wait_for_event(EventType.ANSWER, timeout=30)
        await conn.close()

Also wraps the service's one-shot HTTP API (active calls, kill, ICE servers,
LLM proxy) and the WebRTC SDP exchange endpoints.
"""

from .client import Client, ConnectionOptions, EndpointTarget, resolve_target
from .config import ClientConfig
from .connection import (
    CLOSE_GRACE_PERIOD,
    READ_TIMEOUT,
    WRITE_TIMEOUT,
    Connection,
    EventHandler,
)
from .errors import (
    CallNotFoundError,
    ClosedError,
    ConnectError,
    DecodeError,
    PBXTimeoutError,
    ProtocolError,
    RustPBXError,
    SendError,
)
from .protocol import (
    CallOption,
    Codec,
    Event,
    EventType,
    ICEServer,
    Provider,
    ReferOption,
    SynthesisOption,
    TranscriptionOption,
)
from .webrtc import IceCandidate, WebRTCClient

__all__ = [
    # Client
    "Client",
    "ClientConfig",
    "ConnectionOptions",
    "EndpointTarget",
    "resolve_target",
    # Connection
    "Connection",
    "EventHandler",
    "WRITE_TIMEOUT",
    "READ_TIMEOUT",
    "CLOSE_GRACE_PERIOD",
    # Protocol
    "Event",
    "EventType",
    "CallOption",
    "Codec",
    "Provider",
    "ReferOption",
    "SynthesisOption",
    "TranscriptionOption",
    "ICEServer",
    # WebRTC
    "WebRTCClient",
    "IceCandidate",
    # Errors
    "RustPBXError",
    "ConnectError",
    "ClosedError",
    "SendError",
    "PBXTimeoutError",
    "DecodeError",
    "ProtocolError",
    "CallNotFoundError",
]
