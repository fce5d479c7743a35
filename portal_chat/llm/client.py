"""
HTTP client for the portal chat endpoint.

Posts the conversation, maps refused streams onto typed errors before any
byte of the body is decoded, and feeds the SSE body to the delta decoder.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import httpx

from portal_chat.history.models import ChatMessage
from portal_chat.logging_utils import handle_chat_errors

from .exceptions import QuotaExceededError, RateLimitError, StreamStartError
from .models import ChatRequest, EndpointConfig
from .streaming.decoder import SSEDeltaDecoder
from .streaming.models import DecoderStats

logger = logging.getLogger(__name__)

HTTP_PAYMENT_REQUIRED = 402
HTTP_TOO_MANY_REQUESTS = 429
MAX_ERROR_BODY_CHARS = 500
MAX_ERROR_BODY_BYTES = 4096


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a delta-seconds ``Retry-After`` header; dates are ignored."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _error_body(raw: bytes) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        text = raw.decode("utf-8", errors="replace")
        return {"body": text[:MAX_ERROR_BODY_CHARS]}
    return body if isinstance(body, dict) else {"body": body}


async def read_error_body(response: httpx.Response) -> bytes:
    """
    Read at most ``MAX_ERROR_BODY_BYTES`` of a refused response.

    A body that fails mid-read yields whatever arrived; the status alone
    decides the error type.
    """
    body = b""
    try:
        async for chunk in response.aiter_bytes():
            body += chunk
            if len(body) >= MAX_ERROR_BODY_BYTES:
                break
    except httpx.HTTPError as e:
        logger.warning(
            f"Could not read error body for HTTP {response.status_code}: {e}"
        )
    return body[:MAX_ERROR_BODY_BYTES]


def stream_start_error(
    response: httpx.Response, body: bytes | None = None
) -> StreamStartError:
    """
    Build the typed error for a response that did not start a stream.

    ``body`` is the prefix read from a streamed response; an already
    loaded response supplies its own content.
    """
    status = response.status_code
    response_data = _error_body(response.content if body is None else body)

    if status == HTTP_TOO_MANY_REQUESTS:
        return RateLimitError(
            f"Chat endpoint rate limited the request (HTTP {status})",
            retry_after=_parse_retry_after(response.headers.get("retry-after")),
            status_code=status,
            response_data=response_data,
        )
    if status == HTTP_PAYMENT_REQUIRED:
        return QuotaExceededError(
            f"Chat endpoint quota exhausted (HTTP {status})",
            status_code=status,
            response_data=response_data,
        )
    return StreamStartError(
        f"Failed to start stream (HTTP {status})",
        status_code=status,
        response_data=response_data,
    )


class ChatEndpointClient:
    """Streams assistant replies from the chat endpoint."""

    def __init__(
        self,
        config: EndpointConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=config.write_timeout,
                pool=config.pool_timeout,
            ),
            transport=transport,
        )
        self.decoder = SSEDeltaDecoder(encoding=config.encoding)

    @handle_chat_errors("stream_chat")
    async def stream_chat(
        self,
        messages: list[ChatMessage],
        on_delta: Callable[[str], None],
        on_done: Callable[[], None],
    ) -> DecoderStats:
        """
        Send ``messages`` and decode the streamed reply.

        Raises RateLimitError (429), QuotaExceededError (402) or
        StreamStartError (any other non-success) before either callback
        can run. Transport failures surface as StreamingError.
        """
        payload = ChatRequest(messages=messages).model_dump()

        async with self.client.stream(
            "POST", self.config.path, json=payload
        ) as response:
            if not response.is_success:
                body = await read_error_body(response)
                error = stream_start_error(response, body)
                logger.error(
                    f"Chat endpoint refused stream: HTTP {response.status_code}"
                )
                raise error

            stats = await self.decoder.decode(
                response.aiter_bytes(), on_delta, on_done
            )

        return stats

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> ChatEndpointClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
