"""Tests for the WebRTC signaling client."""

import json

import httpx
import pytest

from rustpbx_client.errors import ConnectError, DecodeError, ProtocolError
from rustpbx_client.webrtc import IceCandidate, WebRTCClient


def make_client(handler) -> WebRTCClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebRTCClient("http://pbx:8080/", http_client=http_client)


class TestWebRTCClient:
    """Test the offer/answer and ICE exchange."""

    @pytest.mark.asyncio
    async def test_send_offer(self):
        """send_offer should post the SDP and decode the answer."""
        bodies = []

        def handler(request):
            assert str(request.url) == "http://pbx:8080/webrtc/offer"
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "sdp": {"type": "answer", "sdp": "v=0 answer"},
                    "session_id": "rtc-1",
                    "ice_candidates": [{"candidate": "cand", "sdpMLineIndex": 0, "sdpMid": "0"}],
                },
            )

        client = make_client(handler)
        answer = await client.send_offer("v=0 offer", session_id="rtc-1", metadata={"k": "v"})

        assert bodies[0] == {
            "sdp": {"type": "offer", "sdp": "v=0 offer"},
            "session_id": "rtc-1",
            "metadata": {"k": "v"},
        }
        assert answer.session_id == "rtc-1"
        assert answer.sdp.sdp_type == "answer"
        assert answer.sdp.sdp == "v=0 answer"
        assert answer.ice_candidates[0].sdp_m_line_index == 0
        assert answer.ice_candidates[0].sdp_mid == "0"

    @pytest.mark.asyncio
    async def test_send_offer_minimal_body(self):
        """Optional fields should be left out of the offer."""
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200, json={"sdp": {"type": "answer", "sdp": "a"}, "session_id": "generated"}
            )

        answer = await make_client(handler).send_offer("o")

        assert bodies[0] == {"sdp": {"type": "offer", "sdp": "o"}}
        assert answer.ice_candidates is None

    @pytest.mark.asyncio
    async def test_send_ice_candidate(self):
        """Candidates should be posted with their camelCase fields."""
        bodies = []

        def handler(request):
            assert request.url.path == "/webrtc/ice-candidate"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"session_id": "rtc-1", "status": "ok"})

        result = await make_client(handler).send_ice_candidate(
            "rtc-1", IceCandidate(candidate="cand", sdp_m_line_index=1)
        )

        assert bodies[0] == {
            "session_id": "rtc-1",
            "candidate": {"candidate": "cand", "sdpMLineIndex": 1},
        }
        assert result.status == "ok"

    @pytest.mark.asyncio
    async def test_close_session(self):
        """close_session should post the session id and reason."""
        bodies = []

        def handler(request):
            assert request.url.path == "/webrtc/close"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"session_id": "rtc-1", "status": "closed"})

        result = await make_client(handler).close_session("rtc-1", reason="done")

        assert bodies[0] == {"session_id": "rtc-1", "reason": "done"}
        assert result.status == "closed"

    @pytest.mark.asyncio
    async def test_error_response(self):
        """A structured error body should become a ProtocolError."""

        def handler(request):
            return httpx.Response(400, json={"error": "bad sdp", "code": 400})

        with pytest.raises(ProtocolError, match=r"Server error: bad sdp \(code: 400\)") as exc_info:
            await make_client(handler).send_offer("o")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unstructured_error_response(self):
        """A plain error body should still become a ProtocolError."""

        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(ProtocolError, match="status 503"):
            await make_client(handler).close_session("rtc-1")

    @pytest.mark.asyncio
    async def test_bad_success_body(self):
        """A 200 with an unexpected body should raise DecodeError."""

        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(DecodeError):
            await make_client(handler).close_session("rtc-1")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Network failures should raise ConnectError."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ConnectError):
            await make_client(handler).send_offer("o")

    @pytest.mark.asyncio
    async def test_http_client_created_on_first_request(self, monkeypatch):
        """The owned HTTP client should be created lazily and released by close()."""
        client = WebRTCClient("http://pbx:8080")
        assert client._http_client is None

        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"session_id": "rtc-1", "status": "closed"})
        )
        real_client = httpx.AsyncClient
        monkeypatch.setattr(
            httpx, "AsyncClient", lambda **kwargs: real_client(transport=transport, **kwargs)
        )

        await client.close_session("rtc-1")
        created = client._http_client
        assert created is not None

        await client.close()
        assert created.is_closed
        assert client._http_client is None
