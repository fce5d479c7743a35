"""
Error handling for chat endpoint operations.

Every error carries a user-facing message so the caller can present it
directly after rolling back the optimistic conversation state:
- Stream start failures with status-specific messages (429, 402, other)
- Retry guidance for rate limits
- Streaming failures once a stream has started
- Session misuse (overlapping turns, empty input)
"""

from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "Failed to get response. Please try again."


class ChatError(Exception):
    """Base chat error with rich context."""

    default_user_message = GENERIC_FAILURE_MESSAGE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}
        self.user_message = user_message or self.default_user_message


class StreamStartError(ChatError):
    """The chat endpoint refused to start a stream (non-success status)."""


class RateLimitError(StreamStartError):
    """Rate limit error with retry information."""

    default_user_message = "Rate limit exceeded. Please try again later."

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class QuotaExceededError(StreamStartError):
    """The AI service is unavailable for this project (payment/quota)."""

    default_user_message = "AI service unavailable. Please contact support."


class StreamingError(ChatError):
    """Streaming-specific errors."""


class TurnInProgressError(ChatError):
    """A turn is already streaming for this conversation."""

    default_user_message = "Please wait for the current response to finish."


class InvalidMessageError(ChatError):
    """User input rejected before any request is made."""

    default_user_message = "Please enter a message."
