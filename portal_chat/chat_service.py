"""
Chat session for the portal assistant widget.

This module owns the conversation for one chat window:
- Input validation before any request is made
- Optimistic user message append
- In-place accumulation of the streaming assistant reply
- One in-flight turn per conversation
- Rollback of the optimistic message when a turn fails
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from portal_chat.history.conversation_utils import build_request_messages
from portal_chat.history.models import ChatMessage
from portal_chat.llm.exceptions import InvalidMessageError, TurnInProgressError
from portal_chat.llm.streaming.models import DecoderStats
from portal_chat.logging_utils import ContextualLogger, operation_context


class ChatSession:
    """
    Conversation orchestrator for a single chat window.

    1. Validates and appends your message
    2. Streams the assistant reply into the conversation as it arrives
    3. Removes the optimistic message again if the turn fails
    """

    class ChatSessionConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        client: Any  # ChatEndpointClient
        conversation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
        max_input_chars: int = Field(default=4000, ge=1)
        max_history_messages: int = Field(default=0, ge=0)

    def __init__(self, session_config: ChatSession.ChatSessionConfig):
        self.client = session_config.client
        self.conversation_id = session_config.conversation_id
        self.max_input_chars = session_config.max_input_chars
        self.max_history_messages = session_config.max_history_messages

        self._messages: list[ChatMessage] = []
        self._in_flight = False
        self._turns = 0
        self.last_stats: DecoderStats | None = None
        self.log = ContextualLogger({"conversation_id": self.conversation_id})

    @property
    def messages(self) -> list[ChatMessage]:
        """Snapshot of the conversation in chronological order."""
        return [message.model_copy() for message in self._messages]

    @property
    def is_streaming(self) -> bool:
        return self._in_flight

    def reset(self) -> None:
        """Clear the conversation. Not allowed while a turn is streaming."""
        if self._in_flight:
            raise TurnInProgressError("Cannot reset while a reply is streaming")
        self._messages.clear()

    def _validate_input(self, text: str) -> None:
        if not text.strip():
            raise InvalidMessageError("Message is empty")
        if len(text) > self.max_input_chars:
            raise InvalidMessageError(
                f"Message is {len(text)} characters, limit is "
                f"{self.max_input_chars}",
                user_message=(
                    f"Messages must be at most {self.max_input_chars} characters."
                ),
            )

    async def send(
        self,
        text: str,
        on_delta: Callable[[str], None] | None = None,
    ) -> ChatMessage:
        """
        Send one user message and stream the assistant reply.

        Args:
            text: The user's message, stored as typed
            on_delta: Optional observer called with each text delta after it
                has been applied to the conversation

        Returns:
            Copy of the final assistant message (empty content when the
            stream carried no text)

        Raises:
            InvalidMessageError: Empty or oversize input; nothing is sent
            TurnInProgressError: Another turn is still streaming
            ChatError: The turn failed; the optimistic message was removed
        """
        if self._in_flight:
            raise TurnInProgressError(
                "A reply is already streaming for this conversation"
            )
        self._validate_input(text)
        self._in_flight = True
        self._turns += 1
        turn_log = self.log.bind(turn=self._turns)

        user_message = ChatMessage(role="user", content=text)
        self._messages.append(user_message)
        request_messages = build_request_messages(
            self._messages, self.max_history_messages
        )

        assistant: ChatMessage | None = None
        done = False

        def apply_delta(delta: str) -> None:
            nonlocal assistant
            if done:
                return
            if assistant is None:
                assistant = ChatMessage(role="assistant", content="")
                self._messages.append(assistant)
            assistant.content += delta
            if on_delta is not None:
                on_delta(delta)

        def mark_done() -> None:
            nonlocal done
            done = True

        try:
            async with operation_context(
                "chat_turn",
                context={"conversation_id": self.conversation_id, "turn": self._turns},
            ):
                self.last_stats = await self.client.stream_chat(
                    request_messages, apply_delta, mark_done
                )
        except BaseException:
            self._rollback(user_message, assistant)
            turn_log.warning(
                "Rolled back failed turn",
                had_reply=assistant is not None,
                messages=len(self._messages),
            )
            raise
        finally:
            self._in_flight = False

        reply = assistant or ChatMessage(role="assistant", content="")
        turn_log.debug("Turn completed", reply_chars=len(reply.content))
        return reply.model_copy()

    def _rollback(
        self, user_message: ChatMessage, assistant: ChatMessage | None
    ) -> None:
        """Remove the turn's assistant message, or its user message if none."""
        target = assistant if assistant is not None else user_message
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index] is target:
                del self._messages[index]
                return
