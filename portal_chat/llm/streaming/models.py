"""
Streaming-specific dataclasses for the SSE delta decoder.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class DecoderPhase(Enum):
    """Decoder states; the only transition is STREAMING -> TERMINATED."""
    STREAMING = "streaming"
    TERMINATED = "terminated"


class LineKind(Enum):
    """Classification of a single SSE line."""
    SKIP = "skip"
    DONE = "done"
    FRAME = "frame"


@dataclass
class DecoderState:
    """Mutable state for one stream; created per turn and never reused."""
    buffer: str = ""
    pending_line: str | None = None
    phase: DecoderPhase = DecoderPhase.STREAMING

    # Monitoring counters
    chunks: int = 0
    frames: int = 0
    deltas: int = 0
    rebuffered_lines: int = 0
    dropped_fragments: int = 0

    @property
    def terminated(self) -> bool:
        return self.phase is DecoderPhase.TERMINATED

    def terminate(self) -> None:
        self.phase = DecoderPhase.TERMINATED

    def take_text(self) -> str:
        """Return pending line (if any) followed by the buffer, clearing both."""
        text = self.buffer
        if self.pending_line is not None:
            text = self.pending_line + "\n" + text
            self.pending_line = None
        self.buffer = ""
        return text

    def stats(self) -> DecoderStats:
        return DecoderStats(
            chunks=self.chunks,
            frames=self.frames,
            deltas=self.deltas,
            rebuffered_lines=self.rebuffered_lines,
            dropped_fragments=self.dropped_fragments,
            saw_sentinel=self.terminated,
        )


@dataclass(frozen=True)
class DecoderStats:
    """Statistics snapshot for a finished stream."""
    chunks: int = 0
    frames: int = 0
    deltas: int = 0
    rebuffered_lines: int = 0
    dropped_fragments: int = 0
    saw_sentinel: bool = False


@dataclass(frozen=True)
class ClassifiedLine:
    """Result of classifying one complete line."""
    kind: LineKind
    payload: str = ""
