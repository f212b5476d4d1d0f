"""Test doubles for the external collaborators (dispatcher, tracer, memory)."""

import asyncio
from typing import Any

import pytest


class FakeMemory:
    """Returns scripted byte readings and remembers how it was called."""

    def __init__(self, readings: list[int] | None = None) -> None:
        self._readings = list(readings) if readings is not None else []
        self.calls: list[bool] = []

    def current_allocated_bytes(self, force_collection: bool) -> int:
        self.calls.append(force_collection)
        if self._readings:
            return self._readings.pop(0)
        return 0


class EchoDispatcher:
    """Returns the request back, optionally after a delay or by raising."""

    def __init__(self, delay: float = 0.0, error: BaseException | None = None) -> None:
        self.delay = delay
        self.error = error
        self.sent: list[Any] = []

    async def send(self, request: Any, cancel_event: Any = None) -> Any:
        self.sent.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return request


class RecordingTracer:
    """Records the order of tracer calls."""

    def __init__(self, handle: Any = "trace-1") -> None:
        self.handle = handle
        self.events: list[tuple[str, Any]] = []

    def start_trace(self, request: Any) -> Any:
        self.events.append(("start", request))
        return self.handle

    def record_exception(self, exception: BaseException) -> None:
        self.events.append(("exception", exception))

    def complete_trace(self, success: bool) -> None:
        self.events.append(("complete", success))


class Ping:
    pass


@pytest.fixture
def fake_memory() -> FakeMemory:
    return FakeMemory()


@pytest.fixture
def dispatcher() -> EchoDispatcher:
    return EchoDispatcher()


@pytest.fixture
def tracer() -> RecordingTracer:
    return RecordingTracer()
