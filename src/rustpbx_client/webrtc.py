"""WebRTC SDP offer/answer exchange over HTTP.

A request/response convenience for clients that negotiate WebRTC media
without a session connection: post an SDP offer, get the answer back, trickle
ICE candidates, close the session. Independent of ``Connection``.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConnectError, DecodeError, PBXTimeoutError, ProtocolError

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


class SdpSessionDescription(BaseModel):
    """An SDP blob with its role (``offer`` or ``answer``)."""

    model_config = ConfigDict(populate_by_name=True)

    sdp_type: str = Field(alias="type")
    sdp: str


class IceCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate: str
    sdp_m_line_index: int | None = Field(default=None, alias="sdpMLineIndex")
    sdp_mid: str | None = Field(default=None, alias="sdpMid")


class SdpAnswerResponse(BaseModel):
    sdp: SdpSessionDescription
    session_id: str
    ice_candidates: list[IceCandidate] | None = None
    metadata: Any = None


class IceCandidateResponse(BaseModel):
    session_id: str
    status: str


class CloseSessionResponse(BaseModel):
    session_id: str
    status: str


class ErrorResponse(BaseModel):
    """Error body returned by the WebRTC endpoints."""

    error: str
    code: int
    session_id: str | None = None


class WebRTCClient:
    """HTTP client for the ``/webrtc/*`` signaling endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        self._owns_http_client = http_client is None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def send_offer(
        self,
        offer_sdp: str,
        session_id: str | None = None,
        metadata: Any = None,
    ) -> SdpAnswerResponse:
        """Send an SDP offer and return the service's answer."""
        body: dict[str, Any] = {"sdp": {"type": "offer", "sdp": offer_sdp}}
        if session_id is not None:
            body["session_id"] = session_id
        if metadata is not None:
            body["metadata"] = metadata

        logger.info(f"Sending SDP offer to {self.base_url}/webrtc/offer")
        answer = await self._post("/webrtc/offer", body, SdpAnswerResponse)
        logger.info(f"Received SDP answer for session {answer.session_id}")
        return answer

    async def send_ice_candidate(
        self,
        session_id: str,
        candidate: IceCandidate,
    ) -> IceCandidateResponse:
        """Trickle one ICE candidate to the service."""
        body = {
            "session_id": session_id,
            "candidate": candidate.model_dump(by_alias=True, exclude_none=True),
        }
        logger.debug(f"Sending ICE candidate for session {session_id}")
        return await self._post("/webrtc/ice-candidate", body, IceCandidateResponse)

    async def close_session(
        self,
        session_id: str,
        reason: str | None = None,
    ) -> CloseSessionResponse:
        """Close a WebRTC session on the service."""
        body: dict[str, Any] = {"session_id": session_id}
        if reason is not None:
            body["reason"] = reason
        logger.info(f"Closing WebRTC session {session_id}")
        return await self._post("/webrtc/close", body, CloseSessionResponse)

    async def _post(self, path: str, body: dict[str, Any], model: type[R]) -> R:
        url = self.base_url + path
        try:
            response = await self._get_http_client().post(url, json=body)
        except httpx.TimeoutException as e:
            raise PBXTimeoutError(f"POST {url} timed out") from e
        except httpx.HTTPError as e:
            raise ConnectError(f"POST {url} failed: {e}") from e

        if not response.is_success:
            raise self._error_from(response)

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DecodeError(f"failed to decode response: {e}") from e

    @staticmethod
    def _error_from(response: httpx.Response) -> ProtocolError:
        try:
            error = ErrorResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            return ProtocolError(
                f"Server error: status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return ProtocolError(
            f"Server error: {error.error} (code: {error.code})",
            status_code=response.status_code,
            body=response.text,
        )

    async def close(self) -> None:
        """Release the HTTP client if this WebRTCClient created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> WebRTCClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
