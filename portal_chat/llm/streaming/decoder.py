"""
SSE delta decoder for chat completion streams.

Turns a raw byte stream of newline-delimited Server-Sent-Events into an
ordered sequence of text deltas, hiding transport chunking, partial lines,
split multi-byte characters and comment/keep-alive lines from the caller.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncGenerator, AsyncIterable, Callable, Iterator
from typing import Any

import structlog

from ..exceptions import StreamingError
from .models import (
    DATA_PREFIX,
    DONE_SENTINEL,
    ClassifiedLine,
    DecoderState,
    DecoderStats,
    LineKind,
)

logger = structlog.get_logger(__name__)


def classify_line(line: str) -> ClassifiedLine:
    """Classify one complete line (trailing CR already removed)."""
    if not line.strip() or line.startswith(":"):
        return ClassifiedLine(LineKind.SKIP)
    if not line.startswith(DATA_PREFIX):
        return ClassifiedLine(LineKind.SKIP)

    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return ClassifiedLine(LineKind.DONE)
    if not payload:
        # Empty data line is a heartbeat
        return ClassifiedLine(LineKind.SKIP)
    return ClassifiedLine(LineKind.FRAME, payload)


def extract_delta_content(frame: Any) -> str | None:
    """Return ``choices[0].delta.content`` when it is a non-empty string."""
    if not isinstance(frame, dict):
        return None
    choices = frame.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class SSEDeltaDecoder:
    """
    Decoder for ``data: {json}`` chat completion streams.

    State lives in a fresh ``DecoderState`` per call, so one decoder can be
    shared by any number of sessions. Stats are returned by ``decode``;
    ``iter_deltas`` callers pass their own ``DecoderState`` to read them.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def decode(
        self,
        stream: AsyncIterable[bytes] | None,
        on_delta: Callable[[str], None],
        on_done: Callable[[], None],
    ) -> DecoderStats:
        """
        Decode ``stream`` invoking ``on_delta`` per text delta, in order.

        ``on_done`` fires exactly once, after the sentinel or the natural
        end of the stream. Raises StreamingError without invoking either
        callback when there is no body to read.
        """
        state = DecoderState()
        async for delta in self._deltas(stream, state):
            on_delta(delta)
        on_done()
        return state.stats()

    async def iter_deltas(
        self,
        stream: AsyncIterable[bytes] | None,
        state: DecoderState | None = None,
    ) -> AsyncGenerator[str]:
        """Yield text deltas from ``stream`` until the sentinel or end of data."""
        async for delta in self._deltas(
            stream, state if state is not None else DecoderState()
        ):
            yield delta

    async def _deltas(
        self, stream: AsyncIterable[bytes] | None, state: DecoderState
    ) -> AsyncGenerator[str]:
        if stream is None:
            raise StreamingError("No response body")
        text_decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")

        async for chunk in stream:
            if not chunk:
                continue
            state.chunks += 1
            state.buffer += text_decoder.decode(chunk)
            for delta in self._drain_lines(state):
                yield delta
            if state.terminated:
                break

        if not state.terminated:
            state.buffer += text_decoder.decode(b"", final=True)
            for delta in self._flush_remaining(state):
                yield delta

        logger.debug("Stream decoded", **vars(state.stats()))

    def _drain_lines(self, state: DecoderState) -> Iterator[str]:
        """Emit deltas for every complete line currently buffered."""
        text = state.take_text()

        while not state.terminated:
            newline_index = text.find("\n")
            if newline_index == -1:
                break
            line = text[:newline_index]
            text = text[newline_index + 1:]
            line = line.removesuffix("\r")

            classified = classify_line(line)
            if classified.kind is LineKind.SKIP:
                continue
            if classified.kind is LineKind.DONE:
                state.terminate()
                break

            try:
                frame = json.loads(classified.payload)
            except json.JSONDecodeError:
                # Hold the line back until more bytes arrive
                state.pending_line = line
                state.rebuffered_lines += 1
                logger.debug(
                    "Rebuffered unparsable line",
                    line_length=len(line),
                    rebuffered_lines=state.rebuffered_lines,
                )
                break

            state.frames += 1
            if (content := extract_delta_content(frame)) is not None:
                state.deltas += 1
                yield content

        state.buffer = text

    def _flush_remaining(self, state: DecoderState) -> Iterator[str]:
        """Final pass at end of data; unparsable fragments are dropped."""
        text = state.take_text()
        if not text.strip():
            return

        for raw_line in text.split("\n"):
            line = raw_line.removesuffix("\r")
            classified = classify_line(line)
            if classified.kind is LineKind.SKIP:
                continue
            if classified.kind is LineKind.DONE:
                state.terminate()
                break

            try:
                frame = json.loads(classified.payload)
            except json.JSONDecodeError:
                state.dropped_fragments += 1
                logger.warning(
                    "Dropped unparsable trailing fragment",
                    fragment_length=len(line),
                    dropped_fragments=state.dropped_fragments,
                )
                continue

            state.frames += 1
            if (content := extract_delta_content(frame)) is not None:
                state.deltas += 1
                yield content


async def decode(
    stream: AsyncIterable[bytes] | None,
    on_delta: Callable[[str], None],
    on_done: Callable[[], None],
    *,
    encoding: str = "utf-8",
) -> DecoderStats:
    """Decode one stream with a throwaway ``SSEDeltaDecoder``."""
    return await SSEDeltaDecoder(encoding).decode(stream, on_delta, on_done)
