"""Incremental server-sent-event decoder for the Messages streaming API.

Bytes are fed in as they arrive from the socket; complete ``\\n``-terminated
lines are split off and turned into typed ``StreamEvent`` values. Partial
lines stay buffered until the rest arrives.

The buffer is capped: if an unterminated line grows past ``buffer_limit``
bytes, the oldest bytes are dropped. That line is lost, but memory stays
bounded and the next well-formed line decodes normally.
"""

import json
import logging
from typing import Any

from docchat.domain.entities import (
    MessageStart,
    MessageStop,
    Ping,
    StreamError,
    StreamEvent,
    TextDelta,
    Unknown,
)

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_LIMIT = 10_000

_EVENT_PREFIX = "event:"
_DATA_PREFIX = "data:"
_COMMENT_PREFIX = ":"


def decode_payload(event_type: str, data: dict[str, Any]) -> StreamEvent:
    """Map one decoded ``data:`` object onto a ``StreamEvent`` variant."""
    if event_type == "message_start":
        return MessageStart()

    if event_type == "content_block_delta":
        delta = data.get("delta")
        if isinstance(delta, dict) and delta.get("type") == "text_delta":
            text = delta.get("text")
            if isinstance(text, str):
                return TextDelta(text=text)
        return Unknown(event_type=event_type)

    if event_type == "message_stop":
        return MessageStop()

    if event_type == "error":
        error = data.get("error")
        if isinstance(error, dict):
            return StreamError(
                message=str(error.get("message") or "Unknown stream error"),
                error_type=str(error.get("type") or ""),
            )
        return StreamError(message=str(error or "Unknown stream error"))

    if event_type == "ping":
        return Ping()

    return Unknown(event_type=event_type)


class StreamDecoder:
    """Byte buffer → line → event state machine for one response stream.

    After a terminal event (``MessageStop`` or ``StreamError``) the decoder
    is finished and ignores any further input.
    """

    def __init__(self, *, buffer_limit: int = DEFAULT_BUFFER_LIMIT):
        self._buffer = bytearray()
        self._buffer_limit = buffer_limit
        self._pending_event_type: str | None = None
        self._finished = False
        self.malformed_count = 0
        self.dropped_bytes = 0

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[StreamEvent]:
        """Consume ``data`` and return every event completed by it, in order."""
        if self._finished or not data:
            return []

        self._buffer.extend(data)
        events: list[StreamEvent] = []

        while not self._finished:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw_line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            self._collect(raw_line, events)

        if len(self._buffer) > self._buffer_limit:
            overflow = len(self._buffer) - self._buffer_limit
            del self._buffer[:overflow]
            self.dropped_bytes += overflow
            logger.warning(
                "SSE buffer exceeded %d bytes; dropped %d bytes from the front",
                self._buffer_limit,
                overflow,
            )

        return events

    def finish(self) -> list[StreamEvent]:
        """Flush at end of input.

        Parses any unterminated remainder once, then reports implicit
        completion with a ``MessageStop`` if no terminal event was seen.
        """
        if self._finished:
            return []

        events: list[StreamEvent] = []
        remainder = bytes(self._buffer)
        self._buffer.clear()
        if remainder.strip():
            self._collect(remainder, events)

        if not self._finished:
            logger.info("Stream ended without message_stop; treating as complete")
            events.append(MessageStop())
            self._finished = True
        return events

    # ── Helpers ──────────────────────────────────────────────────────

    def _collect(self, raw_line: bytes, events: list[StreamEvent]) -> None:
        event = self._parse_line(raw_line)
        if event is None:
            return
        events.append(event)
        if event.terminal:
            self._finished = True
            self._buffer.clear()

    def _parse_line(self, raw_line: bytes) -> StreamEvent | None:
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
        if not line.strip() or line.startswith(_COMMENT_PREFIX):
            return None

        if line.startswith(_EVENT_PREFIX):
            self._pending_event_type = line[len(_EVENT_PREFIX):].strip()
            return None

        if not line.startswith(_DATA_PREFIX):
            logger.debug("Ignoring unsupported SSE field: %.80s", line)
            return None

        payload = line[len(_DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            self.malformed_count += 1
            logger.warning("Skipping malformed SSE payload: %.200s", payload)
            self._pending_event_type = None
            return None

        event_type = data.get("type") or self._pending_event_type or ""
        self._pending_event_type = None
        return decode_payload(str(event_type), data)
