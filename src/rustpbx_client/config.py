"""Client configuration.

One ClientConfig is built by the caller and passed to ``Client``; nothing
here is process-global.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "http://localhost:8080"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {value!r}") from e


@dataclass(frozen=True)
class ClientConfig:
    """Settings shared by every connection a Client opens."""

    # Service address; http(s) or ws(s), scheme translated as needed
    base_url: str = DEFAULT_BASE_URL

    # WebSocket handshake deadline
    open_timeout: float = 30.0

    # Deadline for one-shot HTTP requests
    http_timeout: float = 30.0

    # Default for the ``dump`` query parameter (service-side event recording)
    dump: bool = False

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a config from ``RUSTPBX_*`` environment variables.

        RUSTPBX_URL, RUSTPBX_OPEN_TIMEOUT, RUSTPBX_HTTP_TIMEOUT, RUSTPBX_DUMP.
        Unset variables keep their defaults.
        """
        return cls(
            base_url=os.environ.get("RUSTPBX_URL") or DEFAULT_BASE_URL,
            open_timeout=_env_float("RUSTPBX_OPEN_TIMEOUT", 30.0),
            http_timeout=_env_float("RUSTPBX_HTTP_TIMEOUT", 30.0),
            dump=_env_flag("RUSTPBX_DUMP"),
        )
