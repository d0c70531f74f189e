"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection.

    Frames pushed with ``feed`` come out of ``recv``; sent frames are
    recorded. ``close`` ends the stream the way a completed close handshake
    does, so a pending ``recv`` raises.
    """

    def __init__(self) -> None:
        self.incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[str] = []
        self.close_calls: list[tuple[int, str]] = []
        self.closed = False
        self.send_error: Exception | None = None
        self.send_delay = 0.0

    def feed(self, frame: str | bytes | dict[str, Any]) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.incoming.put_nowait(frame)

    def fail(self, error: Exception) -> None:
        """Make the next ``recv`` raise ``error``."""
        self.incoming.put_nowait(error)

    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    async def send(self, message: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error is not None:
            raise self.send_error
        if self.closed:
            raise ConnectionError("socket is closed")
        self.sent.append(message)

    async def recv(self) -> str | bytes:
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(ConnectionError("received 1000 (OK); then sent 1000 (OK)"))


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def dialer(fake_ws: FakeWebSocket):
    """A dialer that hands out ``fake_ws`` and records the dialed URLs."""

    async def dial(url: str) -> FakeWebSocket:
        dial.urls.append(url)
        return fake_ws

    dial.urls = []
    return dial
