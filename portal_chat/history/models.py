# portal_chat/history/models.py
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

Role = Literal["user", "assistant"]


class ChatMessage(BaseModel):
    """
    One message of a conversation.

    Only the assistant message of the turn currently streaming has its
    content mutated; every other message is left as appended.
    """
    role: Role
    content: str
