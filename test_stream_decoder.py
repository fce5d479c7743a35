#!/usr/bin/env python3
"""
Tests for the SSE delta decoder.

Covers chunk reassembly, comment/keep-alive handling, the [DONE] sentinel,
split multi-byte characters and the end-of-stream flush.
"""

import json
import random

import pytest
import structlog
from structlog.testing import capture_logs

from portal_chat.llm.exceptions import StreamingError
from portal_chat.llm.streaming import decoder as decoder_module
from portal_chat.llm.streaming import (
    DecoderState,
    LineKind,
    SSEDeltaDecoder,
    classify_line,
    decode,
    extract_delta_content,
)


def frame(content: str | None = None, **delta) -> str:
    if content is not None:
        delta["content"] = content
    payload = json.dumps({"choices": [{"delta": delta}]}, ensure_ascii=False)
    return f"data: {payload}\n"


async def byte_stream(*chunks: bytes):
    for chunk in chunks:
        yield chunk


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class Recorder:
    """Collects callback invocations in order."""

    def __init__(self):
        self.events: list[tuple[str, str | None]] = []

    def on_delta(self, delta: str) -> None:
        self.events.append(("delta", delta))

    def on_done(self) -> None:
        self.events.append(("done", None))

    @property
    def deltas(self) -> list[str]:
        return [value for kind, value in self.events if kind == "delta"]

    @property
    def done_count(self) -> int:
        return sum(1 for kind, _ in self.events if kind == "done")


async def run_decoder(*chunks: bytes) -> tuple[Recorder, object]:
    recorder = Recorder()
    stats = await decode(byte_stream(*chunks), recorder.on_delta, recorder.on_done)
    return recorder, stats


class TestBasicDecoding:
    """Deltas, ordering and completion."""

    @pytest.mark.asyncio
    async def test_hello_example(self):
        body = (frame("Hel") + frame("lo") + "data: [DONE]\n").encode()
        recorder, stats = await run_decoder(body)

        assert recorder.events == [("delta", "Hel"), ("delta", "lo"), ("done", None)]
        assert "".join(recorder.deltas) == "Hello"
        assert stats.saw_sentinel is True
        assert stats.deltas == 2

    @pytest.mark.asyncio
    async def test_done_called_once_on_natural_end(self):
        recorder, stats = await run_decoder(frame("a").encode(), frame("b").encode())

        assert recorder.deltas == ["a", "b"]
        assert recorder.done_count == 1
        assert recorder.events[-1] == ("done", None)
        assert stats.saw_sentinel is False

    @pytest.mark.asyncio
    async def test_empty_stream_still_completes(self):
        recorder, stats = await run_decoder()

        assert recorder.events == [("done", None)]
        assert stats.chunks == 0

    @pytest.mark.asyncio
    async def test_delta_applied_before_next_chunk_is_read(self):
        events: list[str] = []

        async def tracking_stream():
            for index, chunk in enumerate([frame("Hel"), frame("lo")]):
                events.append(f"read {index}")
                yield chunk.encode()

        await decode(
            tracking_stream(),
            lambda delta: events.append(f"delta {delta}"),
            lambda: events.append("done"),
        )

        assert events == ["read 0", "delta Hel", "read 1", "delta lo", "done"]

    @pytest.mark.asyncio
    async def test_no_body_fails_without_callbacks(self):
        recorder = Recorder()

        with pytest.raises(StreamingError, match="No response body"):
            await decode(None, recorder.on_delta, recorder.on_done)

        assert recorder.events == []


class TestLineHandling:
    """Comments, blank lines, prefixes and frame shapes."""

    @pytest.mark.asyncio
    async def test_keep_alive_and_blank_lines_produce_no_delta(self):
        recorder, _ = await run_decoder(b": keep-alive\n", b"\n", b"\r\n")

        assert recorder.deltas == []
        assert recorder.done_count == 1

    @pytest.mark.asyncio
    async def test_non_data_fields_are_skipped(self):
        body = ("event: message\nid: 7\nretry: 1000\n" + frame("x")).encode()
        recorder, _ = await run_decoder(body)

        assert recorder.deltas == ["x"]

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self):
        body = frame("one").replace("\n", "\r\n") + "data: [DONE]\r\n"
        recorder, stats = await run_decoder(body.encode())

        assert recorder.deltas == ["one"]
        assert stats.saw_sentinel is True

    @pytest.mark.asyncio
    async def test_frames_without_text_are_ignored(self):
        body = (
            frame(role="assistant")
            + frame("")
            + 'data: {"choices":[{"delta":{},"finish_reason":"stop"}]}\n'
            + 'data: {"choices":[]}\n'
            + 'data: {"usage":{"total_tokens":3}}\n'
            + "data: [1, 2]\n"
            + frame("kept")
        )
        recorder, stats = await run_decoder(body.encode())

        assert recorder.deltas == ["kept"]
        assert stats.frames == 7
        assert stats.deltas == 1

    def test_classify_line(self):
        assert classify_line("").kind is LineKind.SKIP
        assert classify_line("   ").kind is LineKind.SKIP
        assert classify_line(": ping").kind is LineKind.SKIP
        assert classify_line("data:{}").kind is LineKind.SKIP
        assert classify_line("data: ").kind is LineKind.SKIP
        assert classify_line("data: [DONE]  ").kind is LineKind.DONE

        classified = classify_line('data:  {"a": 1} ')
        assert classified.kind is LineKind.FRAME
        assert classified.payload == '{"a": 1}'

    def test_extract_delta_content(self):
        assert extract_delta_content({"choices": [{"delta": {"content": "hi"}}]}) == "hi"
        assert extract_delta_content({"choices": [{"delta": {"content": 5}}]}) is None
        assert extract_delta_content({"choices": [{"delta": None}]}) is None
        assert extract_delta_content({"choices": ["x"]}) is None
        assert extract_delta_content({}) is None
        assert extract_delta_content("text") is None


class TestChunkBoundaries:
    """Reassembly across arbitrary transport chunking."""

    BODY = (
        ": connected\n\n"
        + frame("Bonjour ")
        + frame("à tous ")
        + "\r\n"
        + frame("… ça va? ")
        + frame("🙂")
        + frame("日本語")
        + "data: [DONE]\n"
    ).encode()

    @pytest.mark.asyncio
    async def test_rechunking_does_not_change_output(self):
        whole, _ = await run_decoder(self.BODY)
        single_bytes, _ = await run_decoder(*split_every(self.BODY, 1))

        rng = random.Random(1234)
        chunks, position = [], 0
        while position < len(self.BODY):
            size = rng.randint(1, 17)
            chunks.append(self.BODY[position:position + size])
            position += size
        random_sizes, _ = await run_decoder(*chunks)

        expected = ["Bonjour ", "à tous ", "… ça va? ", "🙂", "日本語"]
        assert whole.deltas == expected
        assert single_bytes.deltas == expected
        assert random_sizes.deltas == expected
        assert whole.done_count == single_bytes.done_count == random_sizes.done_count == 1

    @pytest.mark.asyncio
    async def test_json_split_mid_object(self):
        line = frame("split").encode()
        middle = line.index(b'"delta"')
        recorder, stats = await run_decoder(line[:middle], line[middle:])

        assert recorder.deltas == ["split"]
        assert stats.rebuffered_lines == 0
        assert stats.dropped_fragments == 0

    @pytest.mark.asyncio
    async def test_multibyte_character_split_at_boundary(self):
        line = frame("é🙂").encode()
        e_start = line.index("é".encode())
        emoji_start = line.index("🙂".encode())
        chunks = [
            line[:e_start + 1],
            line[e_start + 1:emoji_start + 1],
            line[emoji_start + 1:emoji_start + 3],
            line[emoji_start + 3:],
        ]
        recorder, _ = await run_decoder(*chunks)

        assert recorder.deltas == ["é🙂"]
        assert "�" not in "".join(recorder.deltas)

    @pytest.mark.asyncio
    async def test_last_line_without_newline_is_flushed(self):
        body = frame("a") + frame("b").rstrip("\n")
        recorder, stats = await run_decoder(body.encode())

        assert recorder.deltas == ["a", "b"]
        assert stats.dropped_fragments == 0


class TestSentinel:
    """Nothing is applied after [DONE]."""

    @pytest.mark.asyncio
    async def test_bytes_after_done_in_same_chunk_are_ignored(self):
        body = (frame("a") + "data: [DONE]\n" + frame("late")).encode()
        recorder, _ = await run_decoder(body)

        assert recorder.deltas == ["a"]
        assert recorder.events[-1] == ("done", None)

    @pytest.mark.asyncio
    async def test_later_chunks_are_not_read_after_done(self):
        reads: list[int] = []

        async def stream():
            for index, chunk in enumerate(
                [frame("a"), "data: [DONE]\n", frame("late"), frame("later")]
            ):
                reads.append(index)
                yield chunk.encode()

        recorder = Recorder()
        stats = await decode(stream(), recorder.on_delta, recorder.on_done)

        assert recorder.deltas == ["a"]
        assert recorder.done_count == 1
        assert reads == [0, 1]
        assert stats.saw_sentinel is True

    @pytest.mark.asyncio
    async def test_done_without_trailing_newline_stops_flush(self):
        body = (frame("a") + "data: [DONE]").encode()
        recorder, stats = await run_decoder(body)

        assert recorder.deltas == ["a"]
        assert stats.saw_sentinel is True

    @pytest.mark.asyncio
    async def test_done_in_flush_hides_following_lines(self):
        # Unparsable line keeps the rest buffered until the final pass
        body = ("data: {broken\n" + "data: [DONE]\n" + frame("late")).encode()
        recorder, stats = await run_decoder(body)

        assert recorder.deltas == []
        assert stats.saw_sentinel is True
        assert stats.dropped_fragments == 1


class TestUnparsableLines:
    """Re-buffering mid-stream and dropping at end of stream."""

    @pytest.mark.asyncio
    async def test_trailing_garbage_is_dropped_and_counted(self):
        body = (frame("ok") + 'data: {"choices": [{"del').encode()
        recorder, stats = await run_decoder(body)

        assert recorder.deltas == ["ok"]
        assert recorder.done_count == 1
        assert stats.dropped_fragments == 1

    @pytest.mark.asyncio
    async def test_unparsable_line_is_rebuffered_not_surfaced(self):
        chunks = [
            (frame("a") + "data: {not json\n").encode(),
            frame("b").encode(),
            frame("c").encode(),
        ]
        recorder, stats = await run_decoder(*chunks)

        assert recorder.deltas == ["a", "b", "c"]
        assert recorder.events[-1] == ("done", None)
        assert stats.rebuffered_lines >= 1
        assert stats.dropped_fragments == 1

    @pytest.mark.asyncio
    async def test_rebuffered_line_is_retried_on_each_chunk(self):
        decoder = SSEDeltaDecoder()
        state = DecoderState()
        seen = [
            delta
            async for delta in decoder.iter_deltas(
                byte_stream(b"data: {oops\n", frame("after").encode()), state
            )
        ]

        assert seen == ["after"]
        assert state.rebuffered_lines == 2
        assert state.dropped_fragments == 1

    @pytest.mark.asyncio
    async def test_dropped_fragment_is_logged_as_warning(self, monkeypatch):
        body = (frame("ok") + "data: {\"choices\": [").encode()

        with capture_logs() as logs:
            # Fresh proxy so the captured processors apply
            monkeypatch.setattr(
                decoder_module, "logger", structlog.get_logger(decoder_module.__name__)
            )
            recorder, stats = await run_decoder(body)

        assert recorder.deltas == ["ok"]
        warnings = [entry for entry in logs if entry["log_level"] == "warning"]
        assert len(warnings) == 1
        assert warnings[0]["event"] == "Dropped unparsable trailing fragment"
        assert warnings[0]["dropped_fragments"] == stats.dropped_fragments == 1


class TestIterDeltas:
    """Async-iterator form of the decoder."""

    @pytest.mark.asyncio
    async def test_iter_deltas_matches_callbacks(self):
        body = (frame("x") + ": ping\n" + frame("y") + "data: [DONE]\n").encode()
        decoder = SSEDeltaDecoder()

        chunks = split_every(body, 5)
        state = DecoderState()
        deltas = [d async for d in decoder.iter_deltas(byte_stream(*chunks), state)]

        assert deltas == ["x", "y"]
        assert state.stats().saw_sentinel is True
        assert state.chunks == len(chunks)

    @pytest.mark.asyncio
    async def test_decoder_instance_is_reusable_across_turns(self):
        decoder = SSEDeltaDecoder()
        first, second = Recorder(), Recorder()

        first_stats = await decoder.decode(
            byte_stream(b"data: {partial"), first.on_delta, first.on_done
        )
        second_stats = await decoder.decode(
            byte_stream(frame("fresh").encode()), second.on_delta, second.on_done
        )

        assert first.deltas == []
        assert second.deltas == ["fresh"]
        assert first_stats.dropped_fragments == 1
        assert second_stats.dropped_fragments == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
