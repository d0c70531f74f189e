"""Persistent session connection to the RustPBX call-control service.

A Connection owns one WebSocket for its whole lifetime:

- A single background task reads frames, decodes them into Events and hands
  each one to the active handler.
- ``send`` serializes commands; writes are serialized by a lock so frames
  (including the close frame) never interleave.
- ``close`` is idempotent and performs a bounded cooperative shutdown.

Errors inside the receive loop never propagate to callers. They reach the
handler as synthetic ``error`` events instead.

Usage:
    conn = await Connection.open("ws://localhost:8080/call?id=abc&dump=false")
    conn.on_event(print)
    await conn.tts_simple("Hello")
    answer = await conn.wait_for_event("answer", timeout=30)
    await conn.close()
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

import websockets

from .errors import ClosedError, ConnectError, DecodeError, PBXTimeoutError, SendError
from .protocol.commands import (
    AcceptCommand,
    AnyCommand,
    CandidateCommand,
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
    encode_command,
)
from .protocol.events import Event, EventType
from .protocol.options import CallOption, ReferOption

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OPEN_TIMEOUT = 30.0
WRITE_TIMEOUT = 10.0
CLOSE_GRACE_PERIOD = 5.0
READ_TIMEOUT = 60.0  # inactivity deadline; expiry is fatal

EventHandler = Callable[[Event], Awaitable[None] | None]


class WebSocketLike(Protocol):
    """The subset of a websockets client connection this module relies on."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


Dialer = Callable[[str], Awaitable[WebSocketLike]]


async def dial_websocket(url: str) -> WebSocketLike:
    """Default dialer: a websockets client connection with keepalive pings."""
    return await websockets.connect(
        url,
        ping_interval=20,
        ping_timeout=20,
        open_timeout=None,
        close_timeout=CLOSE_GRACE_PERIOD,
    )


class _Stopped:
    pass


_STOPPED = _Stopped()


async def _until_stopped(aw: Awaitable[T], stop: asyncio.Event, timeout: float) -> T | _Stopped:
    """Await ``aw`` unless ``stop`` fires first.

    Returns the result of ``aw`` (re-raising its exception), or ``_STOPPED``.
    Raises the builtin TimeoutError if neither completes within ``timeout``.
    A result that lands together with the stop signal wins.
    """
    work = asyncio.ensure_future(aw)
    stopped = asyncio.ensure_future(stop.wait())
    try:
        done, _ = await asyncio.wait(
            {work, stopped},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for fut in (work, stopped):
            if not fut.done():
                fut.cancel()

    if work in done:
        return work.result()
    if stopped in done:
        return _STOPPED
    raise TimeoutError


class _Waiter:
    """Handler wrapper installed by ``wait_for_event``.

    Forwards every event to the handler it replaced and hands the first
    match to the waiting caller. Once finished it only forwards.
    """

    def __init__(self, wanted: str, previous: EventHandler | None):
        self.wanted = wanted
        self.previous = previous
        self.finished = False
        self.rendezvous: asyncio.Queue[Event] = asyncio.Queue(maxsize=1)

    def __call__(self, event: Event) -> Awaitable[None] | None:
        if not self.finished and event.event == self.wanted:
            with contextlib.suppress(asyncio.QueueFull):
                self.rendezvous.put_nowait(event)
        if self.previous is not None:
            return self.previous(event)
        return None


def _unwind(handler: EventHandler | None) -> EventHandler | None:
    """Skip wrappers whose waits already ended."""
    while isinstance(handler, _Waiter) and handler.finished:
        handler = handler.previous
    return handler


class Connection:
    """One logical duplex channel to the call-control service.

    Build with ``Connection.open()`` (or ``Client.connect_*``); the receive
    loop is already running when it returns. The session id is fixed at
    build time.
    """

    def __init__(self, ws: WebSocketLike, url: str = "", session_id: str | None = None):
        self._ws = ws
        self._url = url
        self._session_id = session_id

        # Guards _handler, _closed, _close_started and _failure. Never held
        # across an await or while a handler runs.
        self._state_lock = threading.Lock()
        self._handler: EventHandler | None = None
        self._closed = False
        self._close_started = False
        self._failure: str | None = None  # set once by the first fatal error

        self._write_lock = asyncio.Lock()
        self._stop = asyncio.Event()  # connection lifetime signal
        self._done = asyncio.Event()  # receive loop exited
        self._shutdown = asyncio.Event()  # first close() finished
        self._reader_task: asyncio.Task[None] | None = None

    @classmethod
    async def open(
        cls,
        url: str,
        *,
        session_id: str | None = None,
        timeout: float = DEFAULT_OPEN_TIMEOUT,
        dialer: Dialer | None = None,
    ) -> Connection:
        """Dial ``url`` and start the receive loop.

        Raises:
            PBXTimeoutError: If the handshake does not complete in ``timeout``.
            ConnectError: If dialing or the handshake fails.
        """
        dial = dialer or dial_websocket
        try:
            ws = await asyncio.wait_for(dial(url), timeout=timeout)
        except TimeoutError as e:
            raise PBXTimeoutError(
                f"WebSocket handshake with {url} did not complete within {timeout}s"
            ) from e
        except Exception as e:
            raise ConnectError(f"Failed to dial WebSocket {url}: {e}") from e

        connection = cls(ws, url=url, session_id=session_id)
        connection._start()
        logger.info(f"Connected to {url}")
        return connection

    def _start(self) -> None:
        if self._reader_task is not None:
            raise RuntimeError("Receive loop already started")
        self._reader_task = asyncio.create_task(self._read_loop())

    # =========================================================================
    # State
    # =========================================================================

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        with self._state_lock:
            return self._closed

    def on_event(self, handler: EventHandler | None) -> None:
        """Replace the active event handler (``None`` clears it).

        The handler runs inside the receive loop, one event at a time. It may
        be a plain function or a coroutine function; slow work should be
        offloaded since it delays decoding of the next frame.
        """
        with self._state_lock:
            self._handler = handler

    def _current_handler(self) -> EventHandler | None:
        with self._state_lock:
            return self._handler

    def _fail(self, message: str) -> bool:
        """Enter the closed state after a fatal transport error.

        Returns False if the connection was already closed. The receive loop
        delivers the final error event once it has stopped.
        """
        with self._state_lock:
            if self._closed:
                return False
            self._closed = True
            self._failure = message
        logger.error(message)
        self._stop.set()
        return True

    # =========================================================================
    # Receive loop
    # =========================================================================

    async def _read_loop(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    frame = await _until_stopped(self._ws.recv(), self._stop, READ_TIMEOUT)
                except TimeoutError:
                    self._fail(f"WebSocket read error: no frame received for {READ_TIMEOUT}s")
                    return
                except Exception as e:
                    # A read error after close() is the expected end of the stream
                    self._fail(f"WebSocket read error: {e}")
                    return

                if isinstance(frame, _Stopped):
                    return
                if isinstance(frame, bytes):
                    logger.debug(f"Ignoring binary frame ({len(frame)} bytes)")
                    continue

                await self._handle_frame(frame)
        finally:
            with self._state_lock:
                failure = self._failure
            if failure is not None:
                await self._dispatch(Event.error_event(failure))
            self._done.set()
            if failure is not None:
                await self._release_transport()

    async def _handle_frame(self, frame: str) -> None:
        try:
            event = Event.decode(frame)
        except DecodeError as e:
            logger.warning(f"Failed to parse event: {e}")
            await self._dispatch(Event.error_event(f"failed to parse event: {e}"))
            return

        logger.debug(f"Received event: {event.event}")
        await self._dispatch(event)

    async def _dispatch(self, event: Event) -> None:
        handler = self._current_handler()
        if handler is None:
            return
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Event handler raised while handling '{event.event}'")

    async def _release_transport(self) -> None:
        try:
            await asyncio.wait_for(self._ws.close(), timeout=CLOSE_GRACE_PERIOD)
        except Exception as e:
            logger.debug(f"Transport teardown after failure: {e}")

    # =========================================================================
    # Send path
    # =========================================================================

    async def send(self, command: AnyCommand) -> None:
        """Serialize and transmit one command.

        Raises:
            ClosedError: If the connection is closing or closed.
            SendError: If serialization or the transport write fails.
            PBXTimeoutError: If the write does not finish within WRITE_TIMEOUT.
        """
        if self.closed:
            raise ClosedError("connection is closed")

        try:
            payload = encode_command(command)
        except (TypeError, ValueError) as e:
            raise SendError(f"failed to marshal command: {e}") from e

        try:
            async with self._write_lock:
                if self.closed:
                    raise ClosedError("connection is closed")
                await asyncio.wait_for(self._ws.send(payload), timeout=WRITE_TIMEOUT)
        except ClosedError:
            raise
        except TimeoutError as e:
            self._fail(f"WebSocket write did not complete within {WRITE_TIMEOUT}s")
            raise PBXTimeoutError(
                f"write of '{command.name}' did not complete within {WRITE_TIMEOUT}s"
            ) from e
        except Exception as e:
            if not self._fail(f"WebSocket write error: {e}"):
                raise ClosedError("connection is closed") from e
            raise SendError(f"failed to send command: {e}") from e

        logger.debug(f"Sent command: {command.name}")

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Close the connection. Safe to call any number of times.

        The first call stops the receive loop, sends a normal-closure frame
        and waits up to CLOSE_GRACE_PERIOD for the handshake and loop exit
        before tearing the transport down. Concurrent calls wait for that to
        finish; later calls return immediately.
        """
        with self._state_lock:
            first = not self._close_started
            self._close_started = True
            self._closed = True

        if not first:
            await self._shutdown.wait()
            return

        try:
            self._stop.set()
            loop = asyncio.get_running_loop()
            deadline = loop.time() + CLOSE_GRACE_PERIOD

            try:
                await asyncio.wait_for(self._send_close_frame(), timeout=CLOSE_GRACE_PERIOD)
            except Exception as e:
                logger.debug(f"Close handshake did not complete cleanly: {e}")

            reader = self._reader_task
            # close() may be awaited from a handler running inside the reader
            if reader is not None and reader is not asyncio.current_task() and not reader.done():
                remaining = max(0.0, deadline - loop.time())
                try:
                    await asyncio.wait_for(self._done.wait(), timeout=remaining)
                except TimeoutError:
                    reader.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await reader

            logger.info(f"Connection closed ({self._url or self._session_id})")
        finally:
            self._shutdown.set()

    async def wait_closed(self) -> None:
        """Wait until the connection's lifetime ends (close or fatal error)."""
        await self._stop.wait()

    async def _send_close_frame(self) -> None:
        async with self._write_lock:
            await self._ws.close(code=1000, reason="")

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # =========================================================================
    # Wait-for-event
    # =========================================================================

    async def wait_for_event(self, event_type: str | EventType, timeout: float) -> Event:
        """Wait for the next event with the given discriminator.

        A temporary handler is installed that forwards every event to the
        previously active handler and additionally hands the first match to
        this waiter. The previous handler is restored on every outcome.

        Raises:
            PBXTimeoutError: If no match arrives within ``timeout`` seconds.
            ClosedError: If the connection ends first.
        """
        wanted = event_type.value if isinstance(event_type, EventType) else event_type

        with self._state_lock:
            if self._closed:
                raise ClosedError(f"connection closed while waiting for event: {wanted}")
            waiter = _Waiter(wanted, self._handler)
            self._handler = waiter

        try:
            result = await _until_stopped(waiter.rendezvous.get(), self._stop, timeout)
        except TimeoutError as e:
            raise PBXTimeoutError(f"timeout waiting for event: {wanted}") from e
        finally:
            with self._state_lock:
                waiter.finished = True
                # Only unwind our own wrapper; a handler set meanwhile stays.
                if self._handler is waiter:
                    self._handler = _unwind(waiter.previous)

        if isinstance(result, _Stopped):
            raise ClosedError(f"connection closed while waiting for event: {wanted}")
        return result

    # =========================================================================
    # Commands
    # =========================================================================

    async def invite(self, option: CallOption | None = None) -> None:
        """Initiate an outbound call."""
        await self.send(InviteCommand(option=option))

    async def accept(self, option: CallOption | None = None) -> None:
        """Accept an incoming call."""
        await self.send(AcceptCommand(option=option))

    async def reject(self, reason: str | None = None, code: int | None = None) -> None:
        await self.send(RejectCommand(reason=reason, code=code))

    async def candidate(self, candidates: list[str]) -> None:
        """Send ICE candidates for WebRTC negotiation."""
        await self.send(CandidateCommand(candidates=candidates))

    async def tts(
        self,
        text: str,
        speaker: str | None = None,
        play_id: str | None = None,
        *,
        auto_hangup: bool | None = None,
        streaming: bool | None = None,
        end_of_stream: bool | None = None,
    ) -> None:
        """Speak ``text`` on the call.

        With ``streaming=True`` successive calls sharing a ``play_id`` append
        to one utterance; ``end_of_stream=True`` finishes it.
        """
        await self.send(
            TTSCommand(
                text=text,
                speaker=speaker,
                play_id=play_id,
                auto_hangup=auto_hangup,
                streaming=streaming,
                end_of_stream=end_of_stream,
            )
        )

    async def tts_simple(self, text: str) -> None:
        await self.tts(text)

    async def play(self, url: str, auto_hangup: bool | None = None) -> None:
        """Play audio from ``url``."""
        await self.send(PlayCommand(url=url, auto_hangup=auto_hangup))

    async def interrupt(self) -> None:
        """Stop current audio playback."""
        await self.send(InterruptCommand())

    async def pause(self) -> None:
        await self.send(PauseCommand())

    async def resume(self) -> None:
        await self.send(ResumeCommand())

    async def hangup(self, reason: str | None = None, initiator: str | None = None) -> None:
        await self.send(HangupCommand(reason=reason, initiator=initiator))

    async def hangup_simple(self) -> None:
        await self.hangup("normal_clearing", "caller")

    async def refer(self, target: str, options: ReferOption | None = None) -> None:
        """Transfer the call to ``target``."""
        await self.send(ReferCommand(target=target, options=options))

    async def mute(self, track_id: str) -> None:
        await self.send(MuteCommand(track_id=track_id))

    async def unmute(self, track_id: str) -> None:
        await self.send(UnmuteCommand(track_id=track_id))

    async def history(self, speaker: str, text: str) -> None:
        """Add a turn to the service-side conversation context."""
        await self.send(HistoryCommand(speaker=speaker, text=text))

    async def send_raw_command(self, payload: dict[str, Any]) -> None:
        """Send an arbitrary command map without validation."""
        await self.send(RawCommand(payload=payload))
