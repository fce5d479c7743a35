"""
Chat endpoint integration.

This package provides:
- Typed errors for refused and failed streams
- Request and endpoint configuration models
- SSE delta decoding (``portal_chat.llm.streaming``)
- The httpx endpoint client (``portal_chat.llm.client``)
"""

from __future__ import annotations

from .exceptions import (
    ChatError,
    InvalidMessageError,
    QuotaExceededError,
    RateLimitError,
    StreamingError,
    StreamStartError,
    TurnInProgressError,
)
from .models import ChatRequest, EndpointConfig

__all__ = [
    # Exceptions
    "ChatError",
    # Models
    "ChatRequest",
    "EndpointConfig",
    "InvalidMessageError",
    "QuotaExceededError",
    "RateLimitError",
    "StreamStartError",
    "StreamingError",
    "TurnInProgressError",
]
