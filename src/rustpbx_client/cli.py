"""RustPBX client CLI.

Usage:
    rustpbx-client calls                      # List active calls
    rustpbx-client kill <call_id>             # Terminate a call
    rustpbx-client iceservers                 # Show STUN/TURN servers
    rustpbx-client listen                     # Open a session, print events
    rustpbx-client listen --endpoint sip --accept
    rustpbx-client --url https://pbx.example.com calls --format json

The service address comes from --url, else RUSTPBX_URL, else
http://localhost:8080.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime

import click

from .client import Client, ConnectionOptions
from .config import ClientConfig
from .connection import Connection, EventHandler
from .errors import RustPBXError
from .protocol.events import Event, EventType

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

DEFAULT_SILENCE_MS = 10000


def format_datetime(dt: datetime | None) -> str:
    """Format datetime for display."""
    if dt is None:
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M")


def _run(coro_factory: Callable[[], Awaitable[None]]) -> None:
    """Run a coroutine, turning SDK errors into a clean exit status."""
    try:
        asyncio.run(coro_factory())
    except RustPBXError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--url", envvar="RUSTPBX_URL", default=None, help="Service base URL")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, url: str | None, verbose: bool) -> None:
    """RustPBX client - drive a RustPBX call-control service."""
    # Logs go to stderr; stdout carries command output
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = ClientConfig.from_env()
    if url:
        config = replace(config, base_url=url)
    ctx.obj = config


@main.command("calls")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def calls(config: ClientConfig, output_format: str) -> None:
    """List calls currently active on the service."""

    async def run() -> None:
        async with Client(config=config) as client:
            result = await client.list_calls()

        if output_format == FORMAT_JSON:
            click.echo(json.dumps(result.to_wire()["calls"], indent=2))
            return

        if not result.calls:
            click.echo("No active calls.")
            return

        click.echo(f"{'ID':<38} {'Type':<10} {'Created':<17}")
        click.echo("-" * 67)
        for call in result.calls:
            click.echo(
                f"{call.id:<38} {str(call.call_type or '?'):<10} "
                f"{format_datetime(call.created_at):<17}"
            )
        click.echo(f"\nTotal: {len(result.calls)} call(s)")

    _run(run)


@main.command("kill")
@click.argument("call_id")
@click.pass_obj
def kill(config: ClientConfig, call_id: str) -> None:
    """Forcefully terminate an active call."""

    async def run() -> None:
        async with Client(config=config) as client:
            await client.kill_call(call_id)
        click.echo(f"Killed call {call_id}")

    _run(run)


@main.command("iceservers")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def iceservers(config: ClientConfig, output_format: str) -> None:
    """Show the ICE (STUN/TURN) servers for WebRTC."""

    async def run() -> None:
        async with Client(config=config) as client:
            servers = await client.get_ice_servers()

        if output_format == FORMAT_JSON:
            click.echo(json.dumps([s.to_wire() for s in servers], indent=2))
            return

        for server in servers:
            urls = ", ".join(server.urls)
            if server.username:
                click.echo(f"{urls}  (username: {server.username})")
            else:
                click.echo(urls)

    _run(run)


def make_listen_handler(
    conn: Connection,
    *,
    accept: bool = False,
    silence_prompt: str | None = None,
    silence_ms: int = DEFAULT_SILENCE_MS,
) -> EventHandler:
    """Build the ``listen`` handler: print each event as a JSON line.

    Optionally accepts incoming calls, and speaks ``silence_prompt`` when a
    silence event lasts longer than ``silence_ms``.
    """

    async def handle(event: Event) -> None:
        click.echo(json.dumps(event.to_wire()))

        if accept and event.event == EventType.INCOMING.value:
            await conn.accept()
        elif silence_prompt and event.silence_exceeds(silence_ms):
            await conn.tts(silence_prompt)

    return handle


@main.command("listen")
@click.option(
    "--endpoint",
    type=click.Choice(["call", "webrtc", "sip"]),
    default="call",
    help="Session endpoint to connect to",
)
@click.option("--session-id", default=None, help="Session ID (generated if omitted)")
@click.option("--dump/--no-dump", default=None, help="Ask the service to record events")
@click.option("--accept", is_flag=True, help="Auto-accept incoming calls")
@click.option("--silence-prompt", default=None, help="Text to speak after long silence")
@click.option(
    "--silence-ms",
    default=DEFAULT_SILENCE_MS,
    show_default=True,
    help="Silence duration (ms) that triggers --silence-prompt",
)
@click.pass_obj
def listen(
    config: ClientConfig,
    endpoint: str,
    session_id: str | None,
    dump: bool | None,
    accept: bool,
    silence_prompt: str | None,
    silence_ms: int,
) -> None:
    """Open a session and print every event as a JSON line.

    Runs until the service ends the session or Ctrl+C.
    """

    async def run() -> None:
        async with Client(config=config) as client:
            connect = {
                "call": client.connect_call,
                "webrtc": client.connect_webrtc,
                "sip": client.connect_sip,
            }[endpoint]
            conn = await connect(ConnectionOptions(session_id=session_id, dump=dump))

            async with conn:
                click.echo(f"Session {conn.session_id} open on {conn.url}", err=True)
                conn.on_event(
                    make_listen_handler(
                        conn,
                        accept=accept,
                        silence_prompt=silence_prompt,
                        silence_ms=silence_ms,
                    )
                )
                await conn.wait_closed()

    try:
        _run(run)
    except KeyboardInterrupt:
        click.echo("\nSession closed", err=True)


if __name__ == "__main__":
    main()
