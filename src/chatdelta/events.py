"""Events emitted while a completion streams in."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chatdelta.message import Message
from chatdelta.streaming import Delta


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class DeltaEvent(StreamEvent):
    """A fragment as it arrived, already merged into its message."""

    delta: Delta = field(default_factory=Delta)
    choice_index: int = 0


@dataclass
class MessageCompleteEvent(StreamEvent):
    """A fully accumulated message, one per choice, at the end of a stream.

    These are always the last events yielded.  ``finish_reason`` is
    ``None`` when the stream ended without the provider reporting one.
    """

    message: Message = field(default_factory=Message)
    choice_index: int = 0
    finish_reason: str | None = None
    usage: Any = None
