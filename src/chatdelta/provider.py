import logging
import os
from collections.abc import AsyncIterator

from openai import APIError, AsyncOpenAI

from chatdelta.events import DeltaEvent, MessageCompleteEvent, StreamEvent
from chatdelta.instrumentation import trace_stream
from chatdelta.message import Message
from chatdelta.streaming import StreamAccumulator

logger = logging.getLogger(__name__)


def _dump(message: Message | dict) -> dict:
    if isinstance(message, Message):
        return message.to_openai()
    return message


class ModelProvider:
    """Streams chat completions and reassembles them into messages.

    Subclasses provide ``self.client``, an ``AsyncOpenAI``-compatible
    client, and a ``system`` name used for tracing.
    """

    system = "openai"

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    async def stream(
            self,
            model: str,
            messages: list[Message | dict],
            tools: list[dict] | None = None,
            **kwargs,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a completion, yielding each delta as it is merged.

        Ends with one :class:`MessageCompleteEvent` per choice.  Extra
        keyword arguments are passed through to the API; ``stream`` is
        always sent as ``True``.
        """
        if kwargs.pop("stream", True) is not True:
            raise ValueError("responses are always streamed; drop the stream argument")
        stream_options = {"include_usage": True, **(kwargs.pop("stream_options", None) or {})}
        request = {
            **kwargs,
            "model": model,
            "messages": [_dump(m) for m in messages],
            "stream": True,
            "stream_options": stream_options,
        }
        if tools:
            request["tools"] = tools
            request.setdefault("tool_choice", "auto")

        acc = StreamAccumulator()
        async with trace_stream(self.system, model) as trace:
            try:
                response = await self.client.chat.completions.create(**request)
                async for chunk in response:
                    for index, delta in acc.feed_chunk(chunk):
                        trace.delta(index, acc.finish_reasons.get(index))
                        yield DeltaEvent(delta=delta, choice_index=index)
            except APIError as e:
                trace.fail(e)
                raise
            trace.complete(acc)

        choices = acc.choices()

        if not acc.finish_reasons:
            logger.warning(f"Stream from {model} ended without a finish reason")
        logger.debug(f"Stream from {model} finished with {len(choices)} choice(s)")
        for index, msg in choices:
            yield MessageCompleteEvent(
                message=msg,
                choice_index=index,
                finish_reason=acc.finish_reasons.get(index),
                usage=acc.usage,
            )

    async def complete(
            self,
            model: str,
            messages: list[Message | dict],
            tools: list[dict] | None = None,
            **kwargs,
    ) -> Message:
        """Drain ``stream()`` and return the first choice's message."""
        result: Message | None = None
        async for event in self.stream(model, messages, tools, **kwargs):
            if isinstance(event, MessageCompleteEvent) and result is None:
                result = event.message
        return result if result is not None else Message()


class OpenAIProvider(ModelProvider):

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        client = AsyncOpenAI(
            api_key=api_key,
            max_retries=5,
            timeout=600.0
        )
        super().__init__(client)


class OpenAICompatibleProvider(ModelProvider):
    """Any server speaking the OpenAI chat-completions protocol."""

    def __init__(
            self,
            base_url: str,
            api_key: str | None = None,
            api_key_env: str = "OPENAI_API_KEY",
            system: str = "openai",
    ):
        if not api_key:
            api_key = os.getenv(api_key_env) or "DUMMY"
        self.base_url = base_url.rstrip("/")
        self.system = system
        client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key,
            max_retries=5,
            timeout=600.0
        )
        super().__init__(client)


class OpenRouter(OpenAICompatibleProvider):

    def __init__(self, api_key: str | None = None):
        super().__init__(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
            api_key_env="OPENROUTER_API_KEY",
            system="openrouter",
        )
