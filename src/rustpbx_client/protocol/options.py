"""Call option models and collaborator response types.

These are the nested payloads carried by ``invite``/``accept``/``refer``
commands, plus the JSON shapes returned by the service's one-shot HTTP
endpoints. Every field is optional; unset fields never reach the wire.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from .wire import WireModel


class CallType(str, Enum):
    """Kind of call session on the service."""

    WEBRTC = "webrtc"
    SIP = "sip"
    WEBSOCKET = "websocket"


class Codec(str, Enum):
    """Audio codecs understood by the media pipeline."""

    PCMU = "pcmu"  # G.711 mu-law
    PCMA = "pcma"  # G.711 A-law
    G722 = "g722"
    PCM = "pcm"


class VADType(str, Enum):
    """Voice activity detection engines."""

    WEBRTC = "webrtc"
    SILERO = "silero"
    TEN = "ten"


class Provider(str, Enum):
    """ASR/TTS service providers."""

    TENCENT = "tencent"
    VOICEAPI = "voiceapi"


class EOUType(str, Enum):
    """End-of-utterance detection engines."""

    TENCENT = "tencent"


class TTSEmotion(str, Enum):
    """Speaking styles accepted by the TTS providers."""

    NEUTRAL = "neutral"
    SAD = "sad"
    HAPPY = "happy"
    ANGRY = "angry"
    FEAR = "fear"
    NEWS = "news"
    STORY = "story"
    RADIO = "radio"
    POETRY = "poetry"
    CALL = "call"
    SAJIAO = "sajiao"
    DISGUSTED = "disgusted"
    AMAZE = "amaze"
    PEACEFUL = "peaceful"
    EXCITING = "exciting"
    AOJIAO = "aojiao"
    JIESHUO = "jieshuo"


class RecorderOption(WireModel):
    """Call recording configuration."""

    recorder_file: str | None = None
    sample_rate: int | None = Field(default=None, alias="samplerate")
    ptime: str | None = None


class VADOption(WireModel):
    """Voice activity detection configuration."""

    type: VADType | None = None
    aggressiveness: int | None = None


class TranscriptionOption(WireModel):
    """ASR configuration."""

    provider: Provider | None = None
    model: str | None = None
    language: str | None = None
    app_id: str | None = None
    secret_id: str | None = None
    secret_key: str | None = None
    model_type: str | None = None
    buffer_size: int | None = None
    sample_rate: int | None = Field(default=None, alias="samplerate")
    endpoint: str | None = None
    extra: dict[str, Any] | None = None


class SynthesisOption(WireModel):
    """TTS configuration."""

    sample_rate: int | None = Field(default=None, alias="samplerate")
    provider: Provider | None = None
    speed: float | None = None
    app_id: str | None = None
    secret_id: str | None = None
    secret_key: str | None = None
    volume: int | None = None
    speaker: str | None = None
    codec: str | None = None
    subtitle: bool | None = None
    emotion: TTSEmotion | None = None
    endpoint: str | None = None
    extra: dict[str, Any] | None = None


class SipOption(WireModel):
    """SIP credentials and extra headers."""

    username: str | None = None
    password: str | None = None
    realm: str | None = None
    headers: dict[str, str] | None = None


class EouOption(WireModel):
    """End-of-utterance detection configuration."""

    type: EOUType | None = None
    endpoint: str | None = None
    secret_key: str | None = None
    secret_id: str | None = None
    timeout: int | None = None


class ReferOption(WireModel):
    """Call transfer configuration."""

    bypass: bool | None = None
    timeout: int | None = None
    moh: str | None = None
    auto_hangup: bool | None = None


class CallOption(WireModel):
    """Main call configuration sent with ``invite`` and ``accept``.

    Example:
        CallOption(
            caller="agent@example.com",
            callee="user@example.com",
            codec=Codec.PCMU,
            asr=TranscriptionOption(provider=Provider.TENCENT, language="en"),
        )
    """

    denoise: bool | None = None
    offer: str | None = None
    callee: str | None = None
    caller: str | None = None
    recorder: RecorderOption | None = None
    vad: VADOption | None = None
    asr: TranscriptionOption | None = None
    tts: SynthesisOption | None = None
    handshake_timeout: str | None = None
    enable_ipv6: bool | None = None
    sip: SipOption | None = None
    extra: dict[str, Any] | None = None
    codec: Codec | None = None
    eou: EouOption | None = None


# =============================================================================
# Collaborator response types
# =============================================================================


class CallInfo(WireModel):
    """One active call as reported by ``/call/lists``."""

    id: str
    call_type: CallType | str | None = Field(default=None, alias="call_type")
    created_at: datetime | None = Field(default=None, alias="created_at")
    option: CallOption | None = None


class CallListResponse(WireModel):
    """Response body of ``/call/lists``."""

    calls: list[CallInfo] = Field(default_factory=list)


class ICEServer(WireModel):
    """A STUN/TURN server descriptor from ``/iceservers``."""

    urls: list[str] = Field(default_factory=list)
    username: str | None = None
    credential: str | None = None
