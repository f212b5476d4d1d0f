"""Boundaries to the collaborators this package measures but does not own."""

from collections.abc import Awaitable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CancellationSignal(Protocol):
    """Cooperative cancellation flag. ``asyncio.Event`` and ``threading.Event`` both fit."""

    def is_set(self) -> bool: ...


@runtime_checkable
class Dispatcher(Protocol):
    """Sends a request to its handler and returns the response (or None for commands)."""

    def send(
        self, request: Any, cancel_event: CancellationSignal | None = None
    ) -> Awaitable[Any]: ...


@runtime_checkable
class Tracer(Protocol):
    """Records one trace around a dispatch call.

    The handle returned by ``start_trace`` is opaque here and may be None when
    tracing is disabled.
    """

    def start_trace(self, request: Any) -> Any: ...

    def record_exception(self, exception: BaseException) -> None: ...

    def complete_trace(self, success: bool) -> None: ...


@runtime_checkable
class MemorySnapshot(Protocol):
    """Reports the bytes currently held by the process."""

    def current_allocated_bytes(self, force_collection: bool) -> int: ...
