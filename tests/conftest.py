from dataclasses import dataclass, field

import pytest

from chatdelta.message import MessageRole
from chatdelta.streaming import Delta, FunctionCallDelta, ToolCallDelta


# ---------------------------------------------------------------------------
# Fake chunk dataclasses (mirror the OpenAI streaming chunk shape)
# ---------------------------------------------------------------------------

@dataclass
class FakeFunctionDelta:
    name: str | None = None
    arguments: str | None = None


@dataclass
class FakeToolCallDelta:
    index: int
    id: str | None = None
    type: str | None = None
    function: FakeFunctionDelta | None = None


@dataclass
class FakeChoiceDelta:
    role: str | None = None
    content: str | None = None
    tool_calls: list[FakeToolCallDelta] | None = None
    function_call: FakeFunctionDelta | None = None
    refusal: str | None = None


@dataclass
class FakeChoice:
    delta: FakeChoiceDelta
    index: int = 0
    finish_reason: str | None = None


@dataclass
class FakeUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class FakeChunk:
    choices: list[FakeChoice] = field(default_factory=list)
    model: str = "mock-model"
    usage: FakeUsage | None = None


class FakeStream:
    """Async iterator over pre-built chunks, like ``AsyncStream``."""

    def __init__(self, chunks: list[FakeChunk]):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


# ---------------------------------------------------------------------------
# Chunk builder helpers
# ---------------------------------------------------------------------------

def text_chunk(
    content: str,
    role: str | None = None,
    index: int = 0,
    finish_reason: str | None = None,
) -> FakeChunk:
    """Chunk carrying a single text delta."""
    return FakeChunk(choices=[FakeChoice(
        delta=FakeChoiceDelta(role=role, content=content),
        index=index, finish_reason=finish_reason,
    )])


def tool_call_chunk(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> FakeChunk:
    """Chunk carrying a single tool-call fragment."""
    return FakeChunk(choices=[FakeChoice(delta=FakeChoiceDelta(
        tool_calls=[FakeToolCallDelta(
            index=index, id=call_id,
            type="function" if call_id else None,
            function=FakeFunctionDelta(name=name, arguments=arguments),
        )],
    ))])


def finish_chunk(reason: str = "stop", index: int = 0) -> FakeChunk:
    return FakeChunk(choices=[FakeChoice(
        delta=FakeChoiceDelta(), index=index, finish_reason=reason,
    )])


def usage_chunk(prompt_tokens: int, completion_tokens: int) -> FakeChunk:
    """Trailing chunk sent when ``include_usage`` is requested."""
    return FakeChunk(choices=[], usage=FakeUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    ))


def tool_delta(
    index: int | None,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> Delta:
    """Delta carrying one tool-call fragment."""
    return Delta(tool_calls=[ToolCallDelta(
        index=index, id=call_id,
        function=FunctionCallDelta(name=name, arguments=arguments),
    )])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def weather_deltas():
    """The canonical streamed tool-call exchange."""
    return [
        Delta(role=MessageRole.ASSISTANT),
        Delta(content="Hel"),
        Delta(content="lo"),
        tool_delta(0, name="get_weather"),
        tool_delta(0, arguments='{"city":'),
        tool_delta(0, arguments='"NYC"}'),
    ]


@pytest.fixture
def weather_chunks():
    """The same exchange as OpenAI-shaped chunks, ending with usage."""
    return [
        text_chunk("", role="assistant"),
        text_chunk("Hel"),
        text_chunk("lo"),
        tool_call_chunk(0, call_id="call_1", name="get_weather"),
        tool_call_chunk(0, arguments='{"city":'),
        tool_call_chunk(0, arguments='"NYC"}'),
        finish_chunk("tool_calls"),
        usage_chunk(12, 7),
    ]
