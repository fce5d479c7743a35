"""
Conversation utilities for building chat endpoint requests.
"""

from __future__ import annotations

import logging

from portal_chat.history.models import ChatMessage

logger = logging.getLogger(__name__)


def build_request_messages(
    messages: list[ChatMessage],
    max_messages: int = 0,
) -> list[ChatMessage]:
    """
    Build the ``messages`` array sent to the chat endpoint.

    Args:
        messages: Conversation in chronological order, newest user message last
        max_messages: Keep only the most recent messages (0 keeps everything)

    Returns:
        Copies of the windowed messages, so later in-place updates to the
        conversation do not leak into the request.
    """
    if max_messages < 0:
        raise ValueError("max_messages must be >= 0")

    window = messages
    if max_messages and len(messages) > max_messages:
        window = messages[-max_messages:]
        # Never open the window with a reply whose question was cut off
        while window and window[0].role == "assistant":
            window = window[1:]
        logger.debug(
            f"Trimmed conversation from {len(messages)} to {len(window)} messages"
        )

    return [message.model_copy() for message in window]
