"""Typed events decoded from the model's server-sent-event stream.

Each wire payload is decoded field by field into one of these variants;
anything unrecognised becomes ``Unknown`` rather than an open-ended dict.
"""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class StreamEvent:
    """Base class of all stream events."""

    kind: ClassVar[str] = "unknown"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class MessageStart(StreamEvent):
    kind: ClassVar[str] = "message_start"


@dataclass(frozen=True)
class TextDelta(StreamEvent):
    kind: ClassVar[str] = "text_delta"

    text: str = ""


@dataclass(frozen=True)
class MessageStop(StreamEvent):
    kind: ClassVar[str] = "message_stop"
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class StreamError(StreamEvent):
    """An error reported by the server inside the event stream."""

    kind: ClassVar[str] = "error"
    terminal: ClassVar[bool] = True

    message: str = ""
    error_type: str = ""


@dataclass(frozen=True)
class Ping(StreamEvent):
    kind: ClassVar[str] = "ping"


@dataclass(frozen=True)
class Unknown(StreamEvent):
    """Any well-formed payload this core does not act on (ignored by callers)."""

    kind: ClassVar[str] = "unknown"

    event_type: str = ""
