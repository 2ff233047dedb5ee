from chatdelta.events import DeltaEvent, MessageCompleteEvent, StreamEvent
from chatdelta.instrumentation import instrument, uninstrument
from chatdelta.message import (
    FunctionCall,
    ImageUrl,
    ImageUrlContent,
    Message,
    MessageRole,
    TextContent,
    ToolCall,
)
from chatdelta.provider import (
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouter,
)
from chatdelta.streaming import (
    Delta,
    FunctionCallDelta,
    StreamAccumulator,
    ToolCallDelta,
)

__all__ = [
    "Delta",
    "DeltaEvent",
    "FunctionCall",
    "FunctionCallDelta",
    "ImageUrl",
    "ImageUrlContent",
    "Message",
    "MessageCompleteEvent",
    "MessageRole",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenRouter",
    "StreamAccumulator",
    "StreamEvent",
    "TextContent",
    "ToolCall",
    "ToolCallDelta",
    "instrument",
    "uninstrument",
]
