"""Command definitions for the session protocol.

Commands are client-to-service frames. Each one is a flat JSON object keyed
by the ``command`` discriminator, with variant-specific optional fields:

    {"command": "tts", "text": "Hello", "playId": "greeting"}

Unset fields are omitted from the wire, never sent as null. ``RawCommand``
carries an open map for command shapes this SDK does not model yet; it is
sent as-is without validation.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Literal

from pydantic import ValidationError

from ..errors import DecodeError
from .options import CallOption, ReferOption
from .wire import WireModel


class CommandType(str, Enum):
    """All typed outbound discriminators."""

    # Call setup
    INVITE = "invite"
    ACCEPT = "accept"
    REJECT = "reject"
    CANDIDATE = "candidate"

    # Media
    TTS = "tts"
    PLAY = "play"
    INTERRUPT = "interrupt"
    PAUSE = "pause"
    RESUME = "resume"

    # Call control
    HANGUP = "hangup"
    REFER = "refer"
    MUTE = "mute"
    UNMUTE = "unmute"

    # Conversation context
    HISTORY = "history"


class Command(WireModel):
    """Base for typed commands."""

    command: str

    @property
    def name(self) -> str:
        """The wire discriminator."""
        return self.command


class InviteCommand(Command):
    """Initiate an outbound call."""

    command: Literal["invite"] = "invite"
    option: CallOption | None = None


class AcceptCommand(Command):
    """Accept an incoming call."""

    command: Literal["accept"] = "accept"
    option: CallOption | None = None


class RejectCommand(Command):
    """Reject an incoming call."""

    command: Literal["reject"] = "reject"
    reason: str | None = None
    code: int | None = None


class CandidateCommand(Command):
    """Trickle ICE candidates for WebRTC negotiation."""

    command: Literal["candidate"] = "candidate"
    candidates: list[str]


class TTSCommand(Command):
    """Speak text on the call."""

    command: Literal["tts"] = "tts"
    text: str
    speaker: str | None = None
    play_id: str | None = None
    auto_hangup: bool | None = None
    streaming: bool | None = None
    end_of_stream: bool | None = None


class PlayCommand(Command):
    """Play audio from a URL."""

    command: Literal["play"] = "play"
    url: str
    auto_hangup: bool | None = None


class InterruptCommand(Command):
    command: Literal["interrupt"] = "interrupt"


class PauseCommand(Command):
    command: Literal["pause"] = "pause"


class ResumeCommand(Command):
    command: Literal["resume"] = "resume"


class HangupCommand(Command):
    """Terminate the call."""

    command: Literal["hangup"] = "hangup"
    reason: str | None = None
    initiator: str | None = None


class ReferCommand(Command):
    """Transfer the call to another target."""

    command: Literal["refer"] = "refer"
    target: str
    options: ReferOption | None = None


class MuteCommand(Command):
    command: Literal["mute"] = "mute"
    track_id: str


class UnmuteCommand(Command):
    command: Literal["unmute"] = "unmute"
    track_id: str


class HistoryCommand(Command):
    """Append a turn to the service-side conversation history."""

    command: Literal["history"] = "history"
    speaker: str
    text: str


class RawCommand(WireModel):
    """Untyped command carrying an open map payload.

    The payload is sent verbatim; validation is left to the service.
    """

    payload: dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.payload.get("command", ""))

    def to_wire(self) -> dict[str, Any]:
        return dict(self.payload)


AnyCommand = Command | RawCommand

_VARIANTS: dict[CommandType, type[Command]] = {
    CommandType.INVITE: InviteCommand,
    CommandType.ACCEPT: AcceptCommand,
    CommandType.REJECT: RejectCommand,
    CommandType.CANDIDATE: CandidateCommand,
    CommandType.TTS: TTSCommand,
    CommandType.PLAY: PlayCommand,
    CommandType.INTERRUPT: InterruptCommand,
    CommandType.PAUSE: PauseCommand,
    CommandType.RESUME: ResumeCommand,
    CommandType.HANGUP: HangupCommand,
    CommandType.REFER: ReferCommand,
    CommandType.MUTE: MuteCommand,
    CommandType.UNMUTE: UnmuteCommand,
    CommandType.HISTORY: HistoryCommand,
}


def variant_for(name: str | CommandType) -> type[Command] | None:
    """Typed command class for a discriminator, or None if unknown."""
    try:
        return _VARIANTS[CommandType(name)]
    except ValueError:
        return None


def encode_command(command: AnyCommand) -> str:
    """Serialize a command to its JSON wire text."""
    return json.dumps(command.to_wire())


def decode_command(data: str | bytes | dict[str, Any]) -> AnyCommand:
    """Parse a wire frame back into a command.

    Known discriminators yield their typed variant; anything else yields a
    ``RawCommand`` holding the original map.

    Raises:
        DecodeError: If the frame is not a JSON object or a known variant
            fails validation.
    """
    if isinstance(data, dict):
        parsed: Any = data
    else:
        try:
            parsed = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Invalid command frame: {e}") from e

    if not isinstance(parsed, dict):
        raise DecodeError(f"Command frame must be a JSON object, got {type(parsed).__name__}")

    name = parsed.get("command")
    variant = variant_for(name) if isinstance(name, str) else None
    if variant is None:
        return RawCommand(payload=parsed)

    try:
        return variant.model_validate(parsed)
    except ValidationError as e:
        raise DecodeError(f"Invalid {variant.__name__}: {e}") from e
