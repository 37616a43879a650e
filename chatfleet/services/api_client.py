from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Type, TypeVar
import httpx
from pydantic import BaseModel, ValidationError
from chatfleet.config import API_BASE, HTTP_CONNECT_TIMEOUT, HTTP_TIMEOUT, STREAM_READ_TIMEOUT
from chatfleet.errors import ApiError, AuthError
from chatfleet.models.schemas import ChatRequest, ErrorEnvelope, JobStatusPayload
from chatfleet.obs.decorators import traced
from chatfleet.obs.logging_setup import get_logger
from chatfleet.obs.otel import propagation_headers

logger = get_logger(__name__)
M = TypeVar("M", bound=BaseModel)

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class ApiClient:
    """Thin async wrapper over the ChatFleet HTTP API."""

    def __init__(
        self,
        base_url: str = API_BASE,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or httpx.Timeout(HTTP_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT)
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_url(self, path: str) -> str:
        trimmed = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{trimmed}"

    def _headers(self, token: Optional[str], extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {**JSON_HEADERS, **propagation_headers(), **(extra or {})}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @traced("api_request")
    async def request(
        self,
        path: str,
        method: str = "GET",
        token: Optional[str] = None,
        body: Any = None,
        schema: Optional[Type[M]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Issue one JSON request and return the decoded body.

        Args:
            path: API path relative to the base URL
            method: HTTP method
            token: Bearer credential, omitted from the request when None
            body: JSON-serializable request body
            schema: Optional pydantic model the response must validate against
            headers: Extra request headers
        """
        response = await self._client.request(
            method,
            self.build_url(path),
            json=body,
            headers=self._headers(token, headers),
        )

        if response.status_code == 401:
            raise AuthError()

        if not response.is_success:
            envelope, raw_envelope = _parse_envelope(response)
            message = (
                envelope.error.message
                if envelope is not None
                else f"Request failed with status {response.status_code}"
            )
            raise ApiError(message, status=response.status_code, envelope=raw_envelope)

        if response.status_code == 204 or response.headers.get("Content-Length") == "0":
            return None

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise ApiError("Unexpected response content type", status=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError("Invalid JSON response", status=response.status_code) from e

        if schema is None:
            return data

        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise ApiError("Response validation failed", status=response.status_code) from e

    async def get_job(self, token: str, job_id: str) -> JobStatusPayload:
        """Fetch the current status of a background job."""
        return await self.request(f"/jobs/{job_id}", token=token, schema=JobStatusPayload)

    @asynccontextmanager
    async def open_chat_stream(self, token: str, payload: ChatRequest) -> AsyncIterator[httpx.Response]:
        """
        Open the chat push-stream and yield the unread response.

        Non-success statuses are raised with the response body as the
        message. Connection and read failures, including a stream that stays
        silent past the read timeout, surface as ``ApiError`` with no status.
        """
        headers = self._headers(token, {"Accept": "text/event-stream"})
        timeout = httpx.Timeout(
            HTTP_TIMEOUT,
            connect=HTTP_CONNECT_TIMEOUT,
            read=STREAM_READ_TIMEOUT,
        )

        try:
            async with self._client.stream(
                "POST",
                self.build_url("/chat/stream"),
                json=payload.model_dump(mode="json", exclude_none=True),
                headers=headers,
                timeout=timeout,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    text = response.text
                    if response.status_code == 401:
                        raise AuthError(text or "Authentication required", status=401)
                    raise ApiError(
                        text or f"Chat stream failed with status {response.status_code}",
                        status=response.status_code,
                    )
                yield response
        except httpx.TransportError as e:
            logger.error("Chat stream transport failure", error=str(e))
            raise ApiError(f"Chat stream connection failed: {e}", status=None) from e


def _parse_envelope(response: httpx.Response) -> Tuple[Optional[ErrorEnvelope], Optional[Dict[str, Any]]]:
    try:
        data = response.json()
    except ValueError:
        return None, None
    if not isinstance(data, dict) or not data.get("error"):
        return None, None
    try:
        return ErrorEnvelope.model_validate(data), data
    except ValidationError:
        return None, None
