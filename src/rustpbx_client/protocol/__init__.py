"""Wire protocol for RustPBX session connections.

Both directions use flat JSON objects keyed by a discriminator:
- Commands: client -> service, keyed by ``command``
- Events: service -> client, keyed by ``event``

Unset optional fields are omitted from the wire.
"""

from .commands import (
    AcceptCommand,
    AnyCommand,
    CandidateCommand,
    Command,
    CommandType,
    HangupCommand,
    HistoryCommand,
    InterruptCommand,
    InviteCommand,
    MuteCommand,
    PauseCommand,
    PlayCommand,
    RawCommand,
    ReferCommand,
    RejectCommand,
    ResumeCommand,
    TTSCommand,
    UnmuteCommand,
    decode_command,
    encode_command,
    variant_for,
)
from .events import Event, EventType
from .options import (
    CallInfo,
    CallListResponse,
    CallOption,
    CallType,
    Codec,
    EouOption,
    EOUType,
    ICEServer,
    Provider,
    RecorderOption,
    ReferOption,
    SipOption,
    SynthesisOption,
    TranscriptionOption,
    TTSEmotion,
    VADOption,
    VADType,
)

__all__ = [
    # Commands
    "Command",
    "CommandType",
    "AnyCommand",
    "InviteCommand",
    "AcceptCommand",
    "RejectCommand",
    "CandidateCommand",
    "TTSCommand",
    "PlayCommand",
    "InterruptCommand",
    "PauseCommand",
    "ResumeCommand",
    "HangupCommand",
    "ReferCommand",
    "MuteCommand",
    "UnmuteCommand",
    "HistoryCommand",
    "RawCommand",
    "encode_command",
    "decode_command",
    "variant_for",
    # Events
    "Event",
    "EventType",
    # Options
    "CallOption",
    "RecorderOption",
    "VADOption",
    "TranscriptionOption",
    "SynthesisOption",
    "SipOption",
    "EouOption",
    "ReferOption",
    "CallType",
    "Codec",
    "VADType",
    "Provider",
    "EOUType",
    "TTSEmotion",
    "CallInfo",
    "CallListResponse",
    "ICEServer",
]
