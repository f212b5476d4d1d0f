"""Sequential async benchmark runner.

The runner awaits one invocation at a time; running iterations in parallel
would make each sample include time spent waiting on the others.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from beartype import beartype
from loguru import logger

from dispatch_profiling._errors import ArgumentError
from dispatch_profiling._memory import ProcessMemorySnapshot
from dispatch_profiling._protocols import CancellationSignal, Dispatcher, MemorySnapshot
from dispatch_profiling._stats import clamp, reduce_nanoseconds

DEFAULT_ITERATIONS = 100


@dataclass(frozen=True)
class BenchmarkResult:
    """Immutable summary of one benchmark run. Times are in seconds.

    ``total_allocated_bytes`` is the post-run memory reading minus the
    pre-run baseline, clamped to zero. A collection during the run can push
    the raw delta below zero; the clamp hides such decreases.
    """

    request_type: str
    handler_type: str
    iterations: int
    total_time: float
    min_time: float
    max_time: float
    standard_deviation: float
    total_allocated_bytes: int
    timestamp: datetime

    @property
    def mean_time(self) -> float:
        """``total_time / iterations``, kept within ``[min_time, max_time]``."""
        return clamp(self.total_time / self.iterations, self.min_time, self.max_time)

    @property
    def requests_per_second(self) -> float:
        if self.total_time <= 0:
            return 0.0
        return self.iterations / self.total_time

    def log_summary(self) -> None:
        """Log the statistics of this run via loguru."""
        label = self.request_type or "operation"
        if self.handler_type:
            label = f"{label} -> {self.handler_type}"

        logger.info(f"Benchmark: {label} ({self.iterations} iterations)")
        logger.info(
            f"  mean={self.mean_time * 1000:.3f}ms "
            f"min={self.min_time * 1000:.3f}ms "
            f"max={self.max_time * 1000:.3f}ms "
            f"stddev={self.standard_deviation * 1000:.3f}ms"
        )
        logger.info(
            f"  total={self.total_time:.3f}s "
            f"throughput={self.requests_per_second:.1f} req/s "
            f"allocated={self.total_allocated_bytes}B"
        )


class BenchmarkRunner:
    """Runs an async operation N times and reduces the timings.

    Args:
        memory: Memory provider; defaults to a psutil-backed ProcessMemorySnapshot.

    Example:
        runner = BenchmarkRunner()
        result = await runner.run(lambda: dispatcher.send(GetUser(id=1)), iterations=500)
        result.log_summary()
    """

    @beartype
    def __init__(self, memory: MemorySnapshot | None = None) -> None:
        self._memory = memory if memory is not None else ProcessMemorySnapshot()

    @beartype
    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        iterations: int = DEFAULT_ITERATIONS,
        cancel_event: CancellationSignal | None = None,
        *,
        request_type: str = "",
        handler_type: str = "",
    ) -> BenchmarkResult:
        """Invoke ``operation`` ``iterations`` times, one after another.

        The cancellation signal is checked before each iteration; an
        in-flight invocation is always awaited to completion.

        Raises:
            ArgumentError: if ``iterations`` is not positive.
            asyncio.CancelledError: if ``cancel_event`` is set at an iteration
                boundary. Samples gathered so far are discarded.
            Exception: whatever ``operation`` raises, unchanged.
        """
        if iterations <= 0:
            raise ArgumentError("iterations", f"Iterations must be positive: {iterations}")

        timestamp = datetime.now(timezone.utc)
        memory_before = self._memory.current_allocated_bytes(force_collection=True)

        samples_ns: list[int] = []
        for i in range(iterations):
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError(
                    f"Benchmark cancelled before iteration {i + 1} of {iterations}"
                )
            start_ns = time.perf_counter_ns()
            await operation()
            samples_ns.append(time.perf_counter_ns() - start_ns)

        memory_after = self._memory.current_allocated_bytes(force_collection=False)
        stats = reduce_nanoseconds(samples_ns)

        result = BenchmarkResult(
            request_type=request_type,
            handler_type=handler_type,
            iterations=iterations,
            total_time=stats.total,
            min_time=stats.minimum,
            max_time=stats.maximum,
            standard_deviation=stats.standard_deviation,
            total_allocated_bytes=max(0, memory_after - memory_before),
            timestamp=timestamp,
        )
        logger.debug(
            f"Benchmark {request_type or 'operation'} finished: "
            f"{iterations} iterations in {stats.total:.4f}s"
        )
        return result

    @beartype
    async def run_request(
        self,
        dispatcher: Dispatcher,
        request: Any,
        iterations: int = DEFAULT_ITERATIONS,
        cancel_event: CancellationSignal | None = None,
    ) -> BenchmarkResult:
        """Benchmark ``dispatcher.send(request)``, labelling the result by type names."""
        return await self.run(
            lambda: dispatcher.send(request, cancel_event),
            iterations,
            cancel_event,
            request_type=type(request).__name__,
            handler_type=type(dispatcher).__name__,
        )
