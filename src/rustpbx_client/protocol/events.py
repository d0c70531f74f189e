"""Event definitions for the session protocol.

Events are service-to-client notifications, one per inbound frame, keyed by
the ``event`` discriminator:

    {"event": "asrFinal", "trackId": "track-1", "timestamp": 1700000000000,
     "index": 3, "text": "I'd like to book a table"}

Every field apart from the discriminator is optional. Fields this SDK does
not model are kept as extras so newer service versions decode without loss.
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any

from pydantic import ConfigDict, ValidationError

from ..errors import DecodeError
from .wire import WireModel


class EventType(str, Enum):
    """Inbound discriminators the SDK knows about."""

    # Call progress
    INCOMING = "incoming"
    ANSWER = "answer"
    RINGING = "ringing"
    HANGUP = "hangup"

    # Speech recognition
    ASR_FINAL = "asrFinal"
    ASR_DELTA = "asrDelta"

    # Voice activity
    SPEAKING = "speaking"
    SILENCE = "silence"

    DTMF = "dtmf"
    ERROR = "error"


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class Event(WireModel):
    """A notification from the service.

    ``track_id`` is the correlation identifier: it ties the event to the
    media track (and thereby the call leg) that produced it.
    """

    model_config = ConfigDict(extra="allow")

    event: str
    track_id: str | None = None
    timestamp: int | None = None

    # Call progress
    caller: str | None = None
    callee: str | None = None
    sdp: str | None = None
    early_media: bool | None = None
    reason: str | None = None
    initiator: str | None = None

    # Transcription
    index: int | None = None
    start_time: int | None = None
    end_time: int | None = None
    text: str | None = None

    duration: int | None = None  # milliseconds
    digit: str | None = None

    # Errors
    sender: str | None = None
    error: str | None = None
    code: int | None = None

    data: Any = None  # open escape field for forward-compatible payloads

    @property
    def correlation_id(self) -> str | None:
        return self.track_id

    def is_error(self) -> bool:
        return self.event == EventType.ERROR.value

    def silence_exceeds(self, threshold_ms: int) -> bool:
        """True only for a silence event strictly longer than ``threshold_ms``."""
        if self.event != EventType.SILENCE.value or self.duration is None:
            return False
        return self.duration > threshold_ms

    @classmethod
    def decode(cls, raw: str | bytes) -> Event:
        """Decode one inbound text frame.

        Raises:
            DecodeError: If the frame is not a JSON object with a string
                ``event`` field.
        """
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Invalid event frame: {e}") from e

        if not isinstance(parsed, dict):
            raise DecodeError(f"Event frame must be a JSON object, got {type(parsed).__name__}")

        try:
            return cls.model_validate(parsed)
        except ValidationError as e:
            raise DecodeError(f"Invalid event frame: {e}") from e

    @classmethod
    def error_event(
        cls,
        error: str,
        code: int | None = None,
        sender: str | None = None,
    ) -> Event:
        """Create a locally synthesized error event."""
        return cls(
            event=EventType.ERROR.value,
            timestamp=now_ms(),
            error=error,
            code=code,
            sender=sender,
        )
