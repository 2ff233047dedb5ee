"""Streaming primitives for chat-completion responses.

Transports decode each streamed event into a :class:`Delta`.  The
:class:`StreamAccumulator` merges deltas into one
:class:`~chatdelta.message.Message` per choice.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from chatdelta.message import Message, MessageRole

logger = logging.getLogger(__name__)


class FunctionCallDelta(BaseModel):
    """A fragment of a function call."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """A fragment of a tool call, addressed by its position in the list."""

    model_config = ConfigDict(extra="ignore")

    index: int | None = None
    id: str | None = None
    type: str | None = None
    function: FunctionCallDelta | None = None


class Delta(BaseModel):
    """One increment of a streaming message.

    ``None`` means the increment carries nothing new for that field.
    """

    model_config = ConfigDict(extra="ignore")

    role: MessageRole | None = None
    content: str | None = None
    name: str | None = None
    tool_calls: list[ToolCallDelta | None] | None = None
    function_call: FunctionCallDelta | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _known_role(cls, value: Any) -> Any:
        if value is None or isinstance(value, MessageRole):
            return value
        try:
            return MessageRole(value)
        except ValueError:
            logger.warning(f"Ignoring unknown role {value!r} in delta")
            return None

    @classmethod
    def from_openai(cls, delta: Any) -> Delta:
        """Build a Delta from an ``openai`` ``ChoiceDelta``.

        Mappings and plain objects with the same attributes are accepted
        too; fields this package does not model are ignored.
        """
        if delta is None:
            return cls()
        if isinstance(delta, BaseModel):
            delta = delta.model_dump()
        if isinstance(delta, Mapping):
            return cls.model_validate(delta)
        return cls.model_validate(delta, from_attributes=True)


class StreamAccumulator:
    """Assembles complete messages from the deltas of a streamed completion.

    One message is kept per choice index, so ``n > 1`` completions are
    reassembled side by side.
    """

    def __init__(self) -> None:
        self._messages: dict[int, Message] = {}
        self.finish_reasons: dict[int, str] = {}
        self.usage: Any = None
        self.model: str | None = None

    def feed(
        self,
        delta: Delta | None,
        index: int = 0,
        finish_reason: str | None = None,
    ) -> Message:
        if index not in self._messages:
            self._messages[index] = Message()
        msg = self._messages[index].merge(delta)
        if finish_reason is not None:
            logger.debug(f"Choice {index} finished: {finish_reason}")
            self.finish_reasons[index] = finish_reason
        return msg

    def feed_chunk(self, chunk: Any) -> list[tuple[int, Delta]]:
        """Feed every choice of an ``openai`` ``ChatCompletionChunk``.

        Returns the ``(choice_index, delta)`` pairs that were applied.
        """
        if getattr(chunk, "model", None):
            self.model = chunk.model
        if getattr(chunk, "usage", None) is not None:
            self.usage = chunk.usage
        applied = []
        for choice in getattr(chunk, "choices", None) or []:
            delta = Delta.from_openai(choice.delta)
            self.feed(delta, choice.index, choice.finish_reason)
            applied.append((choice.index, delta))
        return applied

    @property
    def message(self) -> Message:
        return self._messages.get(0, Message())

    def choices(self) -> list[tuple[int, Message]]:
        """Return ``(choice_index, message)`` pairs in index order."""
        return [(i, self._messages[i]) for i in sorted(self._messages)]

    def finalize(self) -> list[Message]:
        """Return accumulated messages in choice-index order."""
        return [self._messages[i] for i in sorted(self._messages)]
