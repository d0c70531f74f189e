"""RustPBX client: endpoint resolution, session connections, one-shot calls.

The Client turns a base address into WebSocket targets for the three call
endpoints and opens Connections on them. It also wraps the service's small
HTTP API (active calls, kill, ICE servers, LLM proxy); those calls are plain
request/response with their own timeout and share nothing with open
connections.

Usage:
    async with Client("http://localhost:8080") as client:
        conn = await client.connect_call(ConnectionOptions(dump=True))
        calls = await client.list_calls()
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, TypeVar
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from .config import ClientConfig
from .connection import Connection, Dialer
from .errors import CallNotFoundError, ConnectError, DecodeError, PBXTimeoutError, ProtocolError
from .protocol.options import CallListResponse, ICEServer

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

CALL_PATH = "/call"
WEBRTC_PATH = "/call/webrtc"
SIP_PATH = "/call/sip"
LLM_PROXY_PREFIX = "/llm/v1/"

_WS_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}
_HTTP_SCHEMES = {"ws": "http", "wss": "https", "http": "http", "https": "https"}

_ice_servers_adapter = TypeAdapter(list[ICEServer])


@dataclass
class ConnectionOptions:
    """Per-connection options.

    ``session_id`` is used verbatim when given; otherwise a UUID is minted.
    ``dump`` asks the service to record the session's events; ``None`` takes
    the client's configured default.
    """

    session_id: str | None = None
    dump: bool | None = None


@dataclass(frozen=True)
class EndpointTarget:
    """A resolved WebSocket endpoint. Used once to open a connection."""

    scheme: str
    host: str
    path: str
    query: tuple[tuple[str, str], ...]

    @property
    def params(self) -> dict[str, str]:
        return dict(self.query)

    @property
    def session_id(self) -> str:
        return self.params["id"]

    @property
    def url(self) -> str:
        return urlunsplit((self.scheme, self.host, self.path, urlencode(self.query), ""))


def _split_base(base_url: str, schemes: dict[str, str]) -> tuple[str, str, str]:
    """Split a base address into (translated scheme, host, path prefix).

    Addresses without a recognized scheme fall back to the insecure one.
    """
    insecure = schemes["http"]
    if "://" not in base_url:
        base_url = f"{insecure}://{base_url}"
    parts = urlsplit(base_url)
    scheme = schemes.get(parts.scheme.lower(), insecure)
    return scheme, parts.netloc, parts.path.rstrip("/")


def resolve_target(
    base_url: str,
    path: str,
    session_id: str | None = None,
    dump: bool = False,
) -> EndpointTarget:
    """Derive the WebSocket target for ``path`` on ``base_url``.

    ``http`` maps to ``ws`` and ``https`` to ``wss``. The ``id`` and ``dump``
    query parameters are always present.
    """
    scheme, host, prefix = _split_base(base_url, _WS_SCHEMES)
    sid = session_id or str(uuid.uuid4())
    query = (("dump", "true" if dump else "false"), ("id", sid))
    return EndpointTarget(scheme=scheme, host=host, path=prefix + path, query=query)


class Client:
    """Entry point for the SDK.

    Holds the shared defaults (base address, timeouts, dump flag) and an
    optional HTTP client for the one-shot calls. Pass ``http_client`` to reuse
    your own ``httpx.AsyncClient``; the Client only closes one it created.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        config: ClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        dialer: Dialer | None = None,
    ):
        config = config or ClientConfig()
        if base_url is not None:
            config = replace(config, base_url=base_url)
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._dialer = dialer

    @property
    def http_base_url(self) -> str:
        """Base address for the HTTP API (ws/wss translated back to http/https)."""
        scheme, host, prefix = _split_base(self.base_url, _HTTP_SCHEMES)
        return urlunsplit((scheme, host, prefix, "", ""))

    # =========================================================================
    # Session connections
    # =========================================================================

    def resolve_target(self, path: str, options: ConnectionOptions | None = None) -> EndpointTarget:
        options = options or ConnectionOptions()
        dump = self.config.dump if options.dump is None else options.dump
        return resolve_target(self.base_url, path, options.session_id, dump)

    async def connect_call(self, options: ConnectionOptions | None = None) -> Connection:
        """Open a session on the general call endpoint (``/call``)."""
        return await self._connect(CALL_PATH, options)

    async def connect_webrtc(self, options: ConnectionOptions | None = None) -> Connection:
        """Open a session on the WebRTC endpoint (``/call/webrtc``)."""
        return await self._connect(WEBRTC_PATH, options)

    async def connect_sip(self, options: ConnectionOptions | None = None) -> Connection:
        """Open a session on the SIP endpoint (``/call/sip``)."""
        return await self._connect(SIP_PATH, options)

    async def _connect(self, path: str, options: ConnectionOptions | None) -> Connection:
        target = self.resolve_target(path, options)
        logger.debug(f"Opening session {target.session_id} on {target.path}")
        return await Connection.open(
            target.url,
            session_id=target.session_id,
            timeout=self.config.open_timeout,
            dialer=self._dialer,
        )

    # =========================================================================
    # One-shot HTTP calls
    # =========================================================================

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.http_timeout)
        return self._http_client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = self.http_base_url + path
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        try:
            return await self._get_http_client().request(
                method,
                url,
                json=json,
                content=content,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            raise PBXTimeoutError(f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise ConnectError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _check_status(response: httpx.Response) -> None:
        if response.status_code != 200:
            raise ProtocolError(
                f"API request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

    @staticmethod
    def _decode(response: httpx.Response, model: type[M]) -> M:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DecodeError(f"failed to decode response: {e}") from e

    async def list_calls(self) -> CallListResponse:
        """List the calls currently active on the service."""
        response = await self._request("GET", "/call/lists")
        self._check_status(response)
        return self._decode(response, CallListResponse)

    async def kill_call(self, call_id: str) -> None:
        """Forcefully terminate an active call.

        Raises:
            CallNotFoundError: If the service does not know ``call_id``.
        """
        response = await self._request("POST", f"/call/kill/{call_id}")
        if response.status_code == 404:
            raise CallNotFoundError(
                f"call with ID {call_id} not found",
                status_code=404,
                body=response.text,
            )
        self._check_status(response)
        logger.info(f"Killed call {call_id}")

    async def get_ice_servers(self) -> list[ICEServer]:
        """Fetch the STUN/TURN servers to use for WebRTC."""
        response = await self._request("GET", "/iceservers")
        self._check_status(response)
        try:
            return _ice_servers_adapter.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            raise DecodeError(f"failed to decode response: {e}") from e

    async def proxy_llm_request(
        self,
        path: str,
        method: str = "POST",
        *,
        json: Any = None,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Forward a request to the service's LLM-compatible proxy.

        ``path`` is relative to ``/llm/v1/`` (e.g. ``chat/completions``). The
        raw response is returned unchecked so callers can handle provider
        errors themselves.
        """
        return await self._request(
            method,
            LLM_PROXY_PREFIX + path.lstrip("/"),
            json=json,
            content=content,
            headers=headers,
        )

    async def close(self) -> None:
        """Release the HTTP client if this Client created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
