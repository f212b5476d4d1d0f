"""dispatch-profiling: Benchmarking and profiling utilities for request dispatch code.

Provides:
- BenchmarkRunner: Runs an async operation N times and reduces the timings
- ProfileSession: Thread-safe recording window for per-operation metrics
- PerformanceProfiler: Registry of named sessions with an active session
- ProfileReport: Threshold warnings plus console/JSON/CSV renderings
- capture_trace: Wraps one dispatch call in a tracer start/complete pair
- OperationTimer, AccumulatingTimer, profile_operation: Timing helpers

Usage:
    from dispatch_profiling import BenchmarkRunner, ProfileSession, profile_operation

    result = await BenchmarkRunner().run(lambda: dispatcher.send(request), iterations=200)
    result.log_summary()

    session = ProfileSession("checkout")
    session.start()
    with profile_operation("PlaceOrder", session):
        place_order()
    session.stop()
"""

from dispatch_profiling._benchmark import DEFAULT_ITERATIONS, BenchmarkResult, BenchmarkRunner
from dispatch_profiling._core import (
    AccumulatingTimer,
    MetricsCollector,
    OperationMetrics,
    OperationsView,
    OperationTimer,
    ProfileSession,
    SessionState,
    profile_operation,
)
from dispatch_profiling._errors import (
    ArgumentError,
    InvalidStateError,
    ProfilerNotStartedError,
    ProfilingError,
)
from dispatch_profiling._memory import ProcessMemorySnapshot
from dispatch_profiling._profiler import PerformanceProfiler
from dispatch_profiling._protocols import CancellationSignal, Dispatcher, MemorySnapshot, Tracer
from dispatch_profiling._report import PerformanceThresholds, ProfileReport, format_bytes
from dispatch_profiling._stats import DurationStatistics, reduce_durations, reduce_nanoseconds
from dispatch_profiling._trace import TraceCapture, capture_trace

__all__ = [
    "DEFAULT_ITERATIONS",
    "AccumulatingTimer",
    "ArgumentError",
    "BenchmarkResult",
    "BenchmarkRunner",
    "CancellationSignal",
    "Dispatcher",
    "DurationStatistics",
    "InvalidStateError",
    "MemorySnapshot",
    "MetricsCollector",
    "OperationMetrics",
    "OperationTimer",
    "OperationsView",
    "PerformanceProfiler",
    "PerformanceThresholds",
    "ProcessMemorySnapshot",
    "ProfileReport",
    "ProfileSession",
    "ProfilerNotStartedError",
    "ProfilingError",
    "SessionState",
    "TraceCapture",
    "Tracer",
    "capture_trace",
    "format_bytes",
    "profile_operation",
    "reduce_durations",
    "reduce_nanoseconds",
]

__version__ = "0.1.0"
