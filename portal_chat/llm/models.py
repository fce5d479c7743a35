"""
Chat endpoint dataclasses.

This module provides the request and connection models for the chat
endpoint client:
- Endpoint configuration (URL, path, timeouts)
- Request body structure
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from portal_chat.history.models import ChatMessage

DEFAULT_CHAT_PATH = "/functions/v1/ai-chat"


class ChatRequest(BaseModel):
    """Body of ``POST {base_url}{path}``."""
    messages: list[ChatMessage]


@dataclass(frozen=True)
class EndpointConfig:
    """Chat endpoint connection settings."""
    base_url: str
    api_key: str
    path: str = DEFAULT_CHAT_PATH

    # Connection settings
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    # Stream decoding
    encoding: str = "utf-8"

    @classmethod
    def from_dict(cls, config: dict[str, Any], api_key: str) -> EndpointConfig:
        """Build from the ``chat.endpoint`` YAML section."""
        for key in ("base_url", "path"):
            if not config.get(key):
                raise ValueError(
                    f"Required chat endpoint parameter '{key}' not found. "
                    "chat.endpoint must be explicitly configured."
                )
        timeout = config.get("timeout", {})
        return cls(
            base_url=config["base_url"],
            api_key=api_key,
            path=config["path"],
            connect_timeout=float(timeout.get("connect", cls.connect_timeout)),
            read_timeout=float(timeout.get("read", cls.read_timeout)),
            write_timeout=float(timeout.get("write", cls.write_timeout)),
            pool_timeout=float(timeout.get("pool", cls.pool_timeout)),
            encoding=config.get("encoding", cls.encoding),
        )
