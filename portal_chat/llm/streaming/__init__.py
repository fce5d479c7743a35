"""
Streaming functionality for the chat endpoint.

This module contains:
- SSE line classification
- Incremental delta decoding across chunk boundaries
- Decoder statistics for monitoring
"""

from __future__ import annotations

from .decoder import SSEDeltaDecoder, classify_line, decode, extract_delta_content
from .models import DecoderPhase, DecoderState, DecoderStats, LineKind

__all__ = [
    "DecoderPhase",
    "DecoderState",
    "DecoderStats",
    "LineKind",
    "SSEDeltaDecoder",
    "classify_line",
    "decode",
    "extract_delta_content",
]
