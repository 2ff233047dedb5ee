"""OpenTelemetry tracing for streamed completions.

Tracing is off until ``chatdelta.instrument()`` is called.  Only then is
``opentelemetry-api`` imported (``pip install chatdelta[otel]``).

Each stream gets one ``chat`` span.  A :class:`StreamTrace` rides along
with the stream and writes to it:

- ``chatdelta.time_to_first_delta``: seconds until the first delta arrived.
- a ``gen_ai.choice.finish`` event per choice, when its finish reason lands.
- token usage, response model and finish reasons once the stream ends.
- ``chatdelta.tool_call.count`` and ``chatdelta.tool_call.unfilled``: tool
  calls assembled, and placeholder slots no fragment ever filled in.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatdelta.streaming import StreamAccumulator

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "chatdelta") -> None:
    """Trace every streamed completion from now on.

    Set up your TracerProvider first; without one, spans are created
    against the API's no-op provider and discarded.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    try:
        from opentelemetry import trace
    except ImportError as e:
        raise ImportError(
            "Tracing needs opentelemetry-api: pip install chatdelta[otel]"
        ) from e
    _tracer = trace.get_tracer(tracer_name)
    logger.info(f"Tracing streamed completions with tracer {tracer_name!r}")


def uninstrument() -> None:
    global _tracer
    _tracer = None


class StreamTrace:
    """Writes the lifecycle of one stream onto its span.

    Every method is a no-op when ``span`` is ``None``, so callers never
    have to check whether tracing is on.
    """

    def __init__(self, span=None):
        self.span = span
        self._started = time.monotonic()
        self._seen_first_delta = False
        self._finished: set[int] = set()

    def delta(self, choice_index: int, finish_reason: str | None = None) -> None:
        if self.span is None:
            return
        if not self._seen_first_delta:
            self._seen_first_delta = True
            self.span.set_attribute(
                "chatdelta.time_to_first_delta",
                time.monotonic() - self._started,
            )
        if finish_reason is not None and choice_index not in self._finished:
            self._finished.add(choice_index)
            self.span.add_event(
                "gen_ai.choice.finish",
                {
                    "gen_ai.choice.index": choice_index,
                    "gen_ai.response.finish_reason": finish_reason,
                },
            )

    def complete(self, acc: StreamAccumulator) -> None:
        if self.span is None:
            return
        usage = acc.usage
        if getattr(usage, "prompt_tokens", None) is not None:
            self.span.set_attribute("gen_ai.usage.input_tokens", usage.prompt_tokens)
        if getattr(usage, "completion_tokens", None) is not None:
            self.span.set_attribute("gen_ai.usage.output_tokens", usage.completion_tokens)
        if acc.model:
            self.span.set_attribute("gen_ai.response.model", acc.model)
        if acc.finish_reasons:
            self.span.set_attribute(
                "gen_ai.response.finish_reasons",
                [acc.finish_reasons[i] for i in sorted(acc.finish_reasons)],
            )

        tool_calls = [tc for m in acc.finalize() for tc in m.tool_calls or []]
        unfilled = sum(
            1 for tc in tool_calls
            if tc.id is None and tc.function.name is None
        )
        self.span.set_attribute("chatdelta.tool_call.count", len(tool_calls))
        self.span.set_attribute("chatdelta.tool_call.unfilled", unfilled)
        if unfilled:
            logger.warning(
                f"{unfilled} tool call slot(s) were never filled in"
            )

    def fail(self, exception: BaseException) -> None:
        if self.span is None:
            return
        from opentelemetry.trace import StatusCode

        self.span.set_status(StatusCode.ERROR, str(exception))
        self.span.record_exception(exception)
        self.span.set_attribute("error.type", type(exception).__qualname__)


@asynccontextmanager
async def trace_stream(system: str, model: str):
    """Open the ``chat`` span for one stream and yield its StreamTrace."""
    if _tracer is None:
        yield StreamTrace()
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield StreamTrace(span)
