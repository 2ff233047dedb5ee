"""Chat messages and their streaming merge rules.

A :class:`Message` is either received whole or rebuilt by merging
:class:`~chatdelta.streaming.Delta` fragments into it, one at a time, in
arrival order.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Literal, Union

from pydantic import BaseModel, Field, field_serializer

if TYPE_CHECKING:
    from chatdelta.streaming import Delta, FunctionCallDelta, ToolCallDelta

logger = logging.getLogger(__name__)

# Largest gap a single fragment may open between the last known tool call
# and its own index.
MAX_TOOL_CALL_GAP = 64


class MessageRole(Enum):
    SYSTEM = "system"
    DEVELOPER = "developer"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------

class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""

    def __str__(self) -> str:
        return self.text


class ImageUrl(BaseModel):
    url: str
    detail: Literal["auto", "low", "high"] | None = None


class ImageUrlContent(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl

    def __str__(self) -> str:
        return self.image_url.url


ContentPart = Annotated[
    Union[TextContent, ImageUrlContent], Field(discriminator="type")
]


# ---------------------------------------------------------------------------
# Function and tool calls
# ---------------------------------------------------------------------------

class FunctionCall(BaseModel):
    """A function invocation whose arguments may still be arriving."""

    name: str | None = None
    arguments: str | None = None

    @classmethod
    def from_delta(cls, delta: FunctionCallDelta) -> FunctionCall:
        return cls().merge(delta)

    def merge(self, delta: FunctionCallDelta | None) -> FunctionCall:
        if delta is None:
            return self
        if _present(delta.name):
            self.name = delta.name
        if delta.arguments is not None:
            self.arguments = (self.arguments or "") + delta.arguments
        return self

    def parse_arguments(self) -> dict | None:
        """Decode the accumulated arguments as a JSON object.

        Returns ``None`` when nothing has arrived, or when the payload
        is not a JSON object (e.g. a stream cut short mid-argument).
        """
        if not self.arguments:
            return None
        try:
            params = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in arguments for {self.name}: {e}")
            return None
        if not isinstance(params, dict):
            logger.warning(
                f"Arguments for {self.name} are not a JSON object: {params!r}"
            )
            return None
        return params


class ToolCall(BaseModel):
    """A tool call the model asked for."""

    id: str | None = None
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)

    @classmethod
    def from_delta(cls, delta: ToolCallDelta) -> ToolCall:
        return cls().merge(delta)

    def merge(self, delta: ToolCallDelta | None) -> ToolCall:
        if delta is None:
            return self
        if self.id is None and _present(delta.id):
            self.id = delta.id
        if _present(delta.type):
            self.type = delta.type
        self.function.merge(delta.function)
        return self


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------

class Message(BaseModel):
    """A chat message, complete or still being streamed in.

    ``content`` is either plain text or a list of structured parts, never
    both. Streaming only ever produces plain text; structured parts come
    from messages built by hand.

    Example::

        msg = Message()
        for delta in deltas:
            msg.merge(delta)
        print(msg.role, str(msg), msg.tool_calls)
    """

    role: MessageRole | None = None
    content: str | list[ContentPart] | None = None
    name: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    function_call: FunctionCall | None = None

    @field_serializer("role")
    def serialize_role(self, role: MessageRole | None, _info) -> str | None:
        return role.value if role is not None else None

    @classmethod
    def from_delta(cls, delta: Delta | None) -> Message:
        """Start a message from the first fragment of a stream."""
        return cls().merge(delta)

    def __str__(self) -> str:
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(str(part) for part in self.content)

    @property
    def text(self) -> str:
        return str(self)

    def merge(self, delta: Delta | None) -> Message:
        """Apply one streaming fragment to this message in place.

        Role is kept from the first fragment that names one, text and
        argument chunks are appended, and non-blank names replace the
        current one. Fields a fragment leaves as ``None`` are untouched.
        """
        if delta is None:
            return self

        if self.role is None and delta.role is not None:
            self.role = delta.role

        if delta.content:
            self._append_text(delta.content)

        if _present(delta.name):
            self.name = delta.name

        if delta.tool_calls and any(tc is not None for tc in delta.tool_calls):
            self._merge_tool_calls(delta.tool_calls)

        if delta.function_call is not None:
            if self.function_call is None:
                self.function_call = FunctionCall.from_delta(delta.function_call)
            else:
                self.function_call.merge(delta.function_call)

        return self

    def _append_text(self, chunk: str) -> None:
        if self.content is None or isinstance(self.content, str):
            self.content = (self.content or "") + chunk
            return
        if self.content and isinstance(self.content[-1], TextContent):
            self.content[-1].text += chunk
        else:
            self.content.append(TextContent(text=chunk))

    def _merge_tool_calls(self, deltas: list[ToolCallDelta | None]) -> None:
        if self.tool_calls is None:
            self.tool_calls = []
        for delta in deltas:
            if delta is None:
                continue
            if delta.index is None:
                self.tool_calls.append(ToolCall.from_delta(delta))
                continue
            if delta.index < 0:
                logger.warning(
                    f"Dropping tool call fragment with index {delta.index}"
                )
                continue
            if delta.index - len(self.tool_calls) > MAX_TOOL_CALL_GAP:
                logger.warning(
                    f"Dropping tool call fragment with index {delta.index}: "
                    f"{len(self.tool_calls)} tool call(s) known so far"
                )
                continue
            self._tool_call_at(delta.index).merge(delta)

    def _tool_call_at(self, index: int) -> ToolCall:
        # Position always equals stream index: gaps are padded with
        # placeholders that a later fragment for that index fills in.
        missing = index + 1 - len(self.tool_calls)
        if missing > 1:
            logger.debug(
                f"Tool call index {index} arrived early; "
                f"padding {missing - 1} slot(s)"
            )
        for _ in range(missing):
            self.tool_calls.append(ToolCall())
        return self.tool_calls[index]

    def to_openai(self) -> dict:
        """Dump in the shape the chat-completions API accepts."""
        return self.model_dump(exclude_none=True)
