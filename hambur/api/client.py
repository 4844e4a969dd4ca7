"""Transport client -- streams chat completion responses over httpx.

Only the wire is handled here: the request is posted with stream=True
and the body is handed back as raw byte chunks in arrival order.
Decoding is the StreamDecoder's job.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from hambur.providers import Endpoint

logger = logging.getLogger(__name__)

# Cap on how much of an error body is echoed back to the user
_ERROR_BODY_LIMIT = 500


class TransportError(Exception):
    """The request could not be sent, or the response body could not be read."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def describe_http_error(status_code: int, reason: str, body: str, api_key_env: str) -> str:
    """Human-readable message for a non-2xx completions response."""
    body = body[:_ERROR_BODY_LIMIT]
    if status_code == 401:
        return (
            f"Authentication failed (401): the API key may be invalid or expired. "
            f"Check the {api_key_env} environment variable.\nResponse: {body}"
        )
    if status_code == 429:
        return f"Too many requests (429): API rate limit exceeded.\nResponse: {body}"
    return f"API request failed ({status_code}): {reason or 'unknown error'}\nResponse: {body}"


class ChatClient:
    """Streams chat completions from one endpoint.

    Owns its httpx.AsyncClient unless one is passed in (tests pass a
    client built on httpx.MockTransport).
    """

    def __init__(
        self,
        endpoint: Endpoint,
        timeout_connect: float = 10.0,
        timeout_read: float = 120.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._owns_http = http is None
        if http is None:
            timeout = httpx.Timeout(
                connect=timeout_connect,
                read=timeout_read,
                write=10.0,
                pool=10.0,
            )
            http = httpx.AsyncClient(
                timeout=timeout,
                limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
            )
        self._http = http

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    def build_payload(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        return {
            "model": self._endpoint.model,
            "messages": messages,
            "stream": True,
        }

    async def stream_chunks(self, messages: list[dict[str, str]]) -> AsyncIterator[bytes]:
        """POST the conversation and yield the response body chunk by chunk.

        Raises TransportError on connection failures, non-2xx status, and
        network errors while reading the body.
        """
        headers = {
            "authorization": f"Bearer {self._endpoint.api_key}",
            "content-type": "application/json",
            "accept": "text/event-stream",
        }
        payload = self.build_payload(messages)

        start = time.monotonic()
        chunks = 0
        try:
            async with self._http.stream(
                "POST", self._endpoint.api_base, json=payload, headers=headers
            ) as response:
                logger.debug(
                    "Response %d after %.3fs", response.status_code, time.monotonic() - start
                )
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        describe_http_error(
                            response.status_code,
                            response.reason_phrase,
                            body,
                            self._endpoint.api_key_env,
                        ),
                        status_code=response.status_code,
                    )

                async for chunk in response.aiter_bytes():
                    if chunk:
                        chunks += 1
                        yield chunk
        except httpx.TimeoutException as e:
            raise TransportError(f"API request timed out: {type(e).__name__}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"API request failed: {type(e).__name__}: {e}\nCheck the network connection and API endpoint"
            ) from e
        finally:
            logger.debug("Read %d chunks in %.3fs", chunks, time.monotonic() - start)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._owns_http:
            await self._http.aclose()
