"""Trace capture around a single dispatch call."""

from dataclasses import dataclass
from typing import Any

from beartype import beartype
from loguru import logger

from dispatch_profiling._protocols import CancellationSignal, Dispatcher, Tracer


@dataclass(frozen=True)
class TraceCapture:
    """Response of a traced dispatch and the handle the tracer produced.

    ``trace`` is whatever ``Tracer.start_trace`` returned, None when tracing
    is disabled.
    """

    response: Any
    trace: Any


@beartype
async def capture_trace(
    dispatcher: Dispatcher,
    tracer: Tracer,
    request: Any,
    cancel_event: CancellationSignal | None = None,
) -> TraceCapture:
    """Dispatch ``request`` inside a trace.

    Order of tracer calls: ``start_trace`` before dispatch, then
    ``complete_trace(success=True)``; on failure ``record_exception`` then
    ``complete_trace(success=False)`` and the original exception is re-raised.
    """
    trace = tracer.start_trace(request)
    try:
        response = await dispatcher.send(request, cancel_event)
    except BaseException as exc:
        logger.debug(f"Traced dispatch of {type(request).__name__} failed: {exc!r}")
        tracer.record_exception(exc)
        tracer.complete_trace(success=False)
        raise

    tracer.complete_trace(success=True)
    return TraceCapture(response=response, trace=trace)
