"""Error taxonomy for dispatch_profiling.

Argument and state errors are raised before any mutation, so a failing call
leaves the object exactly as it was. Failures of the measured operation are
never wrapped: they reach the caller as the original exception object.
Cancellation uses the runtime's own ``asyncio.CancelledError``.
"""


class ProfilingError(Exception):
    """Base class for every error raised by this package."""


class ArgumentError(ProfilingError, ValueError):
    """Invalid argument passed to a constructor or method."""

    def __init__(self, param_name: str, message: str) -> None:
        self.param_name = param_name
        super().__init__(f"{message} (parameter: {param_name})")


class InvalidStateError(ProfilingError, RuntimeError):
    """Illegal state transition on a session or profiler."""


class ProfilerNotStartedError(InvalidStateError):
    """A profiler was asked to record while no session is active."""
