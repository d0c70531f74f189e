"""Tests for the Client: endpoint resolution, connecting and HTTP calls."""

import asyncio
import json
import uuid

import httpx
import pytest

from rustpbx_client.client import Client, ConnectionOptions, resolve_target
from rustpbx_client.config import ClientConfig
from rustpbx_client.errors import (
    CallNotFoundError,
    ConnectError,
    DecodeError,
    PBXTimeoutError,
    ProtocolError,
)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestResolveTarget:
    """Test WebSocket target derivation."""

    @pytest.mark.parametrize(
        ("base_url", "expected_scheme"),
        [
            ("http://pbx.local:8080", "ws"),
            ("https://pbx.local", "wss"),
            ("ws://pbx.local", "ws"),
            ("wss://pbx.local", "wss"),
            ("HTTPS://pbx.local", "wss"),
            ("pbx.local:8080", "ws"),
            ("ftp://pbx.local", "ws"),
        ],
    )
    def test_scheme_translation(self, base_url, expected_scheme):
        """HTTP schemes should map to their WebSocket counterparts."""
        target = resolve_target(base_url, "/call", "abc")

        assert target.scheme == expected_scheme

    def test_url_shape(self):
        """The URL should carry the path, id and dump parameters."""
        target = resolve_target("http://localhost:8080", "/call", "abc", dump=True)

        assert target.url == "ws://localhost:8080/call?dump=true&id=abc"
        assert target.session_id == "abc"
        assert target.params == {"dump": "true", "id": "abc"}

    def test_path_prefix_is_kept(self):
        """A base path should prefix the endpoint path."""
        target = resolve_target("https://example.com/pbx/", "/call/sip", "abc")

        assert target.host == "example.com"
        assert target.path == "/pbx/call/sip"
        assert target.url == "wss://example.com/pbx/call/sip?dump=false&id=abc"

    def test_dump_defaults_to_false(self):
        """dump should always be present, false unless requested."""
        assert resolve_target("http://h", "/call", "abc").params["dump"] == "false"

    def test_generated_session_ids(self):
        """Without an id, each resolution should mint a fresh UUID."""
        first = resolve_target("http://h", "/call").session_id
        second = resolve_target("http://h", "/call").session_id

        assert first != second
        assert uuid.UUID(first).version == 4

    def test_session_id_used_verbatim(self):
        """A supplied session id should not be altered."""
        assert resolve_target("http://h", "/call", "my id/1").session_id == "my id/1"


class TestClientConnect:
    """Test opening connections through the Client."""

    def test_options_dump_overrides_config(self):
        """Per-connection dump should win over the configured default."""
        client = Client(config=ClientConfig(base_url="http://h", dump=True))

        inherited = client.resolve_target("/call", ConnectionOptions(session_id="s"))
        overridden = client.resolve_target("/call", ConnectionOptions(session_id="s", dump=False))

        assert inherited.params["dump"] == "true"
        assert overridden.params["dump"] == "false"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("connect_call", "/call"),
            ("connect_webrtc", "/call/webrtc"),
            ("connect_sip", "/call/sip"),
        ],
    )
    async def test_connect_endpoints(self, fake_ws, dialer, method, path):
        """Each connect method should dial its endpoint."""
        client = Client("https://pbx.example.com", dialer=dialer)

        conn = await getattr(client, method)(ConnectionOptions(session_id="sess-9"))

        assert dialer.urls == [f"wss://pbx.example.com{path}?dump=false&id=sess-9"]
        assert conn.session_id == "sess-9"
        await conn.close()

    @pytest.mark.asyncio
    async def test_connect_uses_open_timeout(self):
        """The configured open timeout should bound the handshake."""

        async def hang(url):
            await asyncio.sleep(10)

        client = Client(config=ClientConfig(open_timeout=0.05), dialer=hang)

        with pytest.raises(PBXTimeoutError):
            await client.connect_call()


class TestHttpCalls:
    """Test the one-shot HTTP API."""

    def test_http_base_url_translates_ws(self):
        """ws/wss base addresses should be used as http/https for HTTP calls."""
        assert Client("wss://pbx.example.com/").http_base_url == "https://pbx.example.com"
        assert Client("ws://localhost:8080").http_base_url == "http://localhost:8080"

    @pytest.mark.asyncio
    async def test_list_calls(self):
        """list_calls should GET /call/lists and decode the body."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "calls": [
                        {
                            "id": "call-1",
                            "call_type": "sip",
                            "created_at": "2024-05-01T10:30:00Z",
                            "option": {"caller": "alice", "callee": "bob"},
                        }
                    ]
                },
            )

        async with Client("http://pbx:8080", http_client=mock_client(handler)) as client:
            result = await client.list_calls()

        assert requests[0].method == "GET"
        assert str(requests[0].url) == "http://pbx:8080/call/lists"
        assert requests[0].headers["content-type"] == "application/json"
        assert len(result.calls) == 1
        call = result.calls[0]
        assert call.id == "call-1"
        assert call.call_type == "sip"
        assert call.created_at.year == 2024
        assert call.option.caller == "alice"

    @pytest.mark.asyncio
    async def test_list_calls_error_status(self):
        """A non-200 status should raise ProtocolError."""

        def handler(request):
            return httpx.Response(500, text="internal")

        client = Client("http://pbx", http_client=mock_client(handler))

        with pytest.raises(ProtocolError) as exc_info:
            await client.list_calls()

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "internal"

    @pytest.mark.asyncio
    async def test_only_200_is_success(self):
        """Other 2xx statuses should also raise ProtocolError."""

        def handler(request):
            return httpx.Response(202, json=[])

        client = Client("http://pbx", http_client=mock_client(handler))

        with pytest.raises(ProtocolError) as exc_info:
            await client.get_ice_servers()

        assert exc_info.value.status_code == 202

    @pytest.mark.asyncio
    async def test_list_calls_bad_body(self):
        """An undecodable body should raise DecodeError."""

        def handler(request):
            return httpx.Response(200, text="not json")

        client = Client("http://pbx", http_client=mock_client(handler))

        with pytest.raises(DecodeError):
            await client.list_calls()

    @pytest.mark.asyncio
    async def test_kill_call(self):
        """kill_call should POST to /call/kill/{id}."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        client = Client("http://pbx", http_client=mock_client(handler))
        await client.kill_call("call-1")

        assert requests[0].method == "POST"
        assert requests[0].url.path == "/call/kill/call-1"

    @pytest.mark.asyncio
    async def test_kill_unknown_call(self):
        """A 404 should raise CallNotFoundError."""

        def handler(request):
            return httpx.Response(404, text="not found")

        client = Client("http://pbx", http_client=mock_client(handler))

        with pytest.raises(CallNotFoundError, match="call-x"):
            await client.kill_call("call-x")

    @pytest.mark.asyncio
    async def test_get_ice_servers(self):
        """get_ice_servers should decode the server list."""

        def handler(request):
            assert request.url.path == "/iceservers"
            return httpx.Response(
                200,
                json=[
                    {"urls": ["stun:stun.example.com:3478"]},
                    {"urls": ["turn:turn.example.com"], "username": "u", "credential": "p"},
                ],
            )

        client = Client("http://pbx", http_client=mock_client(handler))
        servers = await client.get_ice_servers()

        assert servers[0].urls == ["stun:stun.example.com:3478"]
        assert servers[0].username is None
        assert servers[1].credential == "p"

    @pytest.mark.asyncio
    async def test_proxy_llm_request(self):
        """proxy_llm_request should forward under /llm/v1/ and return the raw response."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(502, json={"error": "upstream"})

        client = Client("http://pbx", http_client=mock_client(handler))
        response = await client.proxy_llm_request(
            "/chat/completions",
            json={"model": "m", "messages": []},
            headers={"Authorization": "Bearer k"},
        )

        assert response.status_code == 502
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/llm/v1/chat/completions"
        assert requests[0].headers["authorization"] == "Bearer k"
        assert json.loads(requests[0].content) == {"model": "m", "messages": []}

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Network failures should raise ConnectError."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = Client("http://pbx", http_client=mock_client(handler))

        with pytest.raises(ConnectError):
            await client.list_calls()

    @pytest.mark.asyncio
    async def test_timeout(self):
        """HTTP timeouts should raise PBXTimeoutError."""

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = Client("http://pbx", http_client=mock_client(handler))

        with pytest.raises(PBXTimeoutError):
            await client.get_ice_servers()

    @pytest.mark.asyncio
    async def test_close_keeps_injected_http_client(self):
        """close() should not close an HTTP client the caller owns."""
        http_client = mock_client(lambda request: httpx.Response(200, json={"calls": []}))

        async with Client("http://pbx", http_client=http_client):
            pass

        assert not http_client.is_closed
        await http_client.aclose()
