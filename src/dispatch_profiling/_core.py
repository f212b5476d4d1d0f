"""Core profiling utilities.

Design by Contract:
- Durations MUST be non-negative
- Allocation counts MUST be non-negative
- Session names and operation names MUST be non-empty
- Violations raise ArgumentError / InvalidStateError before any mutation

Public callables use beartype for runtime type enforcement.
Memory tracking goes through a MemorySnapshot provider (psutil by default).
"""

import math
import threading
import time
from collections.abc import Awaitable, Callable, Generator, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, TypeVar, overload

from beartype import beartype
from loguru import logger

from dispatch_profiling._errors import ArgumentError, InvalidStateError
from dispatch_profiling._memory import ProcessMemorySnapshot, allocated_blocks
from dispatch_profiling._protocols import MemorySnapshot
from dispatch_profiling._stats import ns_to_seconds

T = TypeVar("T")


def _require_name(value: str | None, param_name: str) -> str:
    if not value:
        raise ArgumentError(param_name, "Value must be a non-empty string")
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OperationMetrics:
    """One measured unit of work.

    Attributes:
        name: Operation name (non-empty)
        duration: Elapsed time in seconds (MUST be >= 0)
        memory_used: Memory attributed to the operation in bytes (may be 0)
        allocations: Interpreter allocations attributed to the operation (MUST be >= 0)
        start_time: Wall-clock start of the measured call, if known
        end_time: End of the measured call, if known (start_time + duration
            when built by OperationTimer)
    """

    name: str
    duration: float = 0.0
    memory_used: int = 0
    allocations: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise ArgumentError("name", f"Name must be a string, got {type(self.name).__name__}")
        _require_name(self.name, "name")
        for field_name, allowed in (
            ("duration", (int, float)),
            ("memory_used", (int,)),
            ("allocations", (int,)),
        ):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, allowed):
                raise ArgumentError(
                    field_name, f"Expected {' or '.join(t.__name__ for t in allowed)}, "
                    f"got {type(value).__name__}"
                )
        for field_name in ("start_time", "end_time"):
            value = getattr(self, field_name)
            if value is not None and not isinstance(value, datetime):
                raise ArgumentError(
                    field_name, f"Expected datetime or None, got {type(value).__name__}"
                )
        if not math.isfinite(self.duration) or self.duration < 0:
            raise ArgumentError("duration", f"Duration must be non-negative: {self.duration}")
        object.__setattr__(self, "duration", float(self.duration))
        if self.allocations < 0:
            raise ArgumentError(
                "allocations", f"Allocations must be non-negative: {self.allocations}"
            )

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000.0

    @property
    def memory_per_ms(self) -> float:
        """Bytes per millisecond, 0.0 for a zero-length operation."""
        if self.duration <= 0:
            return 0.0
        return self.memory_used / self.duration_ms

    @property
    def allocations_per_ms(self) -> float:
        """Allocations per millisecond, 0.0 for a zero-length operation."""
        if self.duration <= 0:
            return 0.0
        return self.allocations / self.duration_ms


class SessionState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class OperationsView(Sequence[OperationMetrics]):
    """Read-only live view over a session's operations.

    Shares storage and lock with the owning session, so a cached reference
    keeps reflecting later appends. Iteration walks a snapshot taken under
    the lock.
    """

    def __init__(self, items: list[OperationMetrics], lock: threading.Lock) -> None:
        self._items = items
        self._lock = lock

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @overload
    def __getitem__(self, index: int) -> OperationMetrics: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[OperationMetrics, ...]: ...

    def __getitem__(self, index: int | slice) -> OperationMetrics | tuple[OperationMetrics, ...]:
        with self._lock:
            if isinstance(index, slice):
                return tuple(self._items[index])
            return self._items[index]

    def __iter__(self) -> Iterator[OperationMetrics]:
        with self._lock:
            snapshot = tuple(self._items)
        return iter(snapshot)

    def __repr__(self) -> str:
        with self._lock:
            return f"OperationsView({self._items!r})"


class ProfileSession:
    """Thread-safe recording window for per-operation metrics.

    Lifecycle: NOT_STARTED -> start() -> RUNNING -> stop() -> STOPPED.
    ``add_operation`` and ``clear`` are valid in every state. A stopped
    session may be started again, which opens a fresh window.

    One lock guards state, timestamps, the operation list and both running
    sums, so a reader never sees a list length that disagrees with the sums.

    Example:
        session = ProfileSession("checkout")
        session.start()
        session.add_operation(OperationMetrics("GetCart", duration=0.012, memory_used=2048))
        session.stop()
        session.log_checkpoint("After checkout")
    """

    @beartype
    def __init__(self, session_name: str | None) -> None:
        self._session_name = _require_name(session_name, "session_name")
        self._lock = threading.Lock()
        self._state = SessionState.NOT_STARTED
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._start_perf: float = 0.0
        self._end_perf: float = 0.0
        self._operations: list[OperationMetrics] = []
        self._operations_view = OperationsView(self._operations, self._lock)
        self._total_memory_used = 0
        self._total_allocations = 0

    @property
    def session_name(self) -> str:
        return self._session_name

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state is SessionState.RUNNING

    @property
    def start_time(self) -> datetime | None:
        with self._lock:
            return self._start_time

    @property
    def end_time(self) -> datetime | None:
        """Stop instant, None until the session has been stopped.

        Derived as ``start_time + duration`` from the monotonic clock, so
        ``end_time - start_time`` equals ``duration`` (to the microsecond).
        """
        with self._lock:
            return self._end_time

    @property
    def operations(self) -> OperationsView:
        return self._operations_view

    @property
    def total_memory_used(self) -> int:
        with self._lock:
            return self._total_memory_used

    @property
    def total_allocations(self) -> int:
        with self._lock:
            return self._total_allocations

    @property
    def duration(self) -> float:
        """Seconds covered by the window: live while running, fixed once stopped."""
        with self._lock:
            if self._state is SessionState.RUNNING:
                return time.perf_counter() - self._start_perf
            if self._state is SessionState.STOPPED:
                return self._end_perf - self._start_perf
            return 0.0

    @property
    def average_operation_duration(self) -> float:
        with self._lock:
            if not self._operations:
                return 0.0
            return math.fsum(op.duration for op in self._operations) / len(self._operations)

    def start(self) -> None:
        with self._lock:
            if self._state is SessionState.RUNNING:
                raise InvalidStateError(f"Session '{self._session_name}' is already running")
            self._start_time = _utcnow()
            self._start_perf = time.perf_counter()
            self._end_time = None
            self._end_perf = 0.0
            self._state = SessionState.RUNNING
        logger.debug(f"Profile session '{self._session_name}' started")

    def stop(self) -> None:
        with self._lock:
            if self._state is not SessionState.RUNNING:
                raise InvalidStateError(f"Session '{self._session_name}' is not running")
            self._end_perf = time.perf_counter()
            elapsed = self._end_perf - self._start_perf
            self._end_time = self._start_time + timedelta(seconds=elapsed)
            self._state = SessionState.STOPPED
        logger.debug(f"Profile session '{self._session_name}' stopped after {elapsed:.3f}s")

    @beartype
    def add_operation(self, metrics: OperationMetrics | None) -> None:
        """Append one record and update the running sums (thread-safe)."""
        if metrics is None:
            raise ArgumentError("metrics", "Operation metrics are required")

        with self._lock:
            self._operations.append(metrics)
            self._total_memory_used += metrics.memory_used
            self._total_allocations += metrics.allocations

    def clear(self) -> None:
        """Drop all recorded operations. Lifecycle state is left as is."""
        with self._lock:
            self._operations.clear()
            self._total_memory_used = 0
            self._total_allocations = 0
        logger.debug(f"Profile session '{self._session_name}' cleared")

    def snapshot(self) -> tuple[tuple[OperationMetrics, ...], int, int]:
        """Consistent (operations, total_memory_used, total_allocations) triple."""
        with self._lock:
            return tuple(self._operations), self._total_memory_used, self._total_allocations

    @beartype
    def get_results(self) -> dict[str, dict[str, float]]:
        """Aggregate recorded operations by name.

        Returns:
            Dictionary mapping operation names to metrics dict with keys:
            count, total_time, mean_time, min_time, max_time, memory_used,
            allocations. Names appear in first-recorded order.
        """
        operations, _, _ = self.snapshot()

        grouped: dict[str, list[OperationMetrics]] = {}
        for op in operations:
            grouped.setdefault(op.name, []).append(op)

        results: dict[str, dict[str, float]] = {}
        for name, ops in grouped.items():
            durations = [op.duration for op in ops]
            total_time = math.fsum(durations)
            results[name] = {
                "count": float(len(ops)),
                "total_time": total_time,
                "mean_time": total_time / len(ops),
                "min_time": min(durations),
                "max_time": max(durations),
                "memory_used": float(sum(op.memory_used for op in ops)),
                "allocations": float(sum(op.allocations for op in ops)),
            }
        return results

    @beartype
    def log_checkpoint(self, checkpoint_name: str) -> None:
        """Log condensed profiling snapshot via loguru.

        Useful for long-running sessions where you want incremental visibility
        without building a full report.

        Args:
            checkpoint_name: Name for this checkpoint (e.g., "After warmup")
        """
        results = self.get_results()
        if not results:
            logger.info(f"[CHECKPOINT: {checkpoint_name}] No profiling data yet")
            return

        logger.info(
            f"[CHECKPOINT: {checkpoint_name}] {self._session_name}: "
            f"{self.duration:.2f}s elapsed, {len(self._operations_view)} operations"
        )
        for name, metrics in results.items():
            logger.info(
                f"  {name}: {metrics['count']:.0f}x, "
                f"mean={metrics['mean_time'] * 1000:.3f}ms, "
                f"max={metrics['max_time'] * 1000:.3f}ms, "
                f"mem={metrics['memory_used']:.0f}B, "
                f"allocs={metrics['allocations']:.0f}"
            )

    def __repr__(self) -> str:
        return f"ProfileSession({self._session_name!r}, state={self.state.value})"


class OperationTimer:
    """Context manager for timing one block with memory tracking.

    Args:
        name: Operation name recorded in the resulting metrics
        track_memory: If True, measure RSS and allocated-block deltas (default: True)
        memory: Memory provider; defaults to a psutil-backed ProcessMemorySnapshot

    Attributes:
        elapsed: Time elapsed in seconds (>= 0, perf_counter based)
        memory_used: RSS growth in bytes, clamped to >= 0
        allocations: Growth in interpreter allocated blocks, clamped to >= 0
        metrics: OperationMetrics built on exit (None until then)

    Example:
        with OperationTimer("LoadOrders") as timer:
            orders = load_orders()
        session.add_operation(timer.metrics)
    """

    @beartype
    def __init__(
        self,
        name: str,
        track_memory: bool = True,
        memory: MemorySnapshot | None = None,
    ) -> None:
        self.name = _require_name(name, "name")
        self.track_memory = track_memory
        self._memory = memory
        self.elapsed: float = 0.0
        self.memory_used: int = 0
        self.allocations: int = 0
        self.metrics: OperationMetrics | None = None
        self._start_ns: int = 0
        self._start_time: datetime | None = None
        self._start_memory: int = 0
        self._start_blocks: int = 0

    def __enter__(self) -> "OperationTimer":
        if self.track_memory:
            if self._memory is None:
                self._memory = ProcessMemorySnapshot()
            self._start_memory = self._memory.current_allocated_bytes(force_collection=False)
            self._start_blocks = allocated_blocks()

        self._start_time = _utcnow()
        self._start_ns = time.perf_counter_ns()
        return self

    def __exit__(self, *args: Any) -> None:
        end_ns = time.perf_counter_ns()
        self.elapsed = ns_to_seconds(end_ns - self._start_ns)
        end_time = self._start_time + timedelta(seconds=self.elapsed)

        if self.track_memory and self._memory is not None:
            end_memory = self._memory.current_allocated_bytes(force_collection=False)
            self.memory_used = max(0, end_memory - self._start_memory)
            self.allocations = max(0, allocated_blocks() - self._start_blocks)

        self.metrics = OperationMetrics(
            name=self.name,
            duration=self.elapsed,
            memory_used=self.memory_used,
            allocations=self.allocations,
            start_time=self._start_time,
            end_time=end_time,
        )


class AccumulatingTimer:
    """Lightweight accumulating timer for hot-path profiling.

    Uses only time.perf_counter_ns() instead of psutil. Create once before a
    loop, use as context manager per iteration, then flush to a ProfileSession
    after the loop as a single aggregated operation.

    Usage:
        timer = AccumulatingTimer("Dispatch")
        for request in requests:
            with timer:
                handle(request)
        timer.flush(session)

    Design by Contract:
        - label must be non-empty string
        - total >= 0 always (perf_counter is monotonic)
        - flush() resets state (safe for reuse across windows)
    """

    @beartype
    def __init__(self, label: str) -> None:
        self.label: str = _require_name(label, "label")
        self._total_ns: int = 0
        self._count: int = 0
        self._start_ns: int = 0

    def __enter__(self) -> "AccumulatingTimer":
        self._start_ns = time.perf_counter_ns()
        return self

    def __exit__(self, *args: Any) -> None:
        self._total_ns += time.perf_counter_ns() - self._start_ns
        self._count += 1

    @property
    def total(self) -> float:
        return ns_to_seconds(self._total_ns)

    @property
    def count(self) -> int:
        return self._count

    @beartype
    def flush(self, session: ProfileSession, allocations: int = 0) -> tuple[float, int]:
        """Append the accumulated time to ``session`` as one operation and reset.

        Args:
            session: Target ProfileSession
            allocations: Allocation count to attribute to the aggregate (MUST be >= 0)

        Returns:
            Tuple of (flushed_total_seconds, flushed_invocation_count).
        """
        metrics = OperationMetrics(name=self.label, duration=self.total, allocations=allocations)
        flushed = (metrics.duration, self._count)
        session.add_operation(metrics)
        self.reset()
        return flushed

    def reset(self) -> None:
        """Reset accumulated timing without flushing."""
        self._total_ns = 0
        self._count = 0


class MetricsCollector:
    """Runs a callable under an OperationTimer and returns its result with the metrics.

    Void callables yield ``None`` as the result. Exceptions raised by the
    callable propagate unchanged and no metrics are produced.
    """

    @beartype
    def __init__(self, memory: MemorySnapshot | None = None) -> None:
        self._memory = memory if memory is not None else ProcessMemorySnapshot()

    @beartype
    def collect(
        self, name: str, operation: Callable[[], T] | None
    ) -> tuple[T, OperationMetrics]:
        if operation is None:
            raise ArgumentError("operation", "An operation to measure is required")

        with OperationTimer(name, memory=self._memory) as timer:
            result = operation()
        assert timer.metrics is not None
        return result, timer.metrics

    @beartype
    async def collect_async(
        self, name: str, operation: Callable[[], Awaitable[T]] | None
    ) -> tuple[T, OperationMetrics]:
        if operation is None:
            raise ArgumentError("operation", "An operation to measure is required")

        with OperationTimer(name, memory=self._memory) as timer:
            result = await operation()
        assert timer.metrics is not None
        return result, timer.metrics


@beartype
@contextmanager
def profile_operation(
    name: str,
    session: ProfileSession | None,
    memory: MemorySnapshot | None = None,
) -> Generator[OperationTimer, None, None]:
    """Context manager for profiling with automatic session recording.

    When session is None, the wrapped code still executes but nothing is recorded.
    This eliminates the need for ``if session:`` / ``else:`` branching at call sites.
    If the block raises, the exception propagates and nothing is recorded.

    Args:
        name: Operation name recorded in the session
        session: ProfileSession to record into, or None for no-op
        memory: Memory provider passed to the timer

    Yields:
        OperationTimer instance for accessing elapsed time and memory
    """
    with OperationTimer(name, track_memory=session is not None, memory=memory) as timer:
        yield timer
    if session is not None and timer.metrics is not None:
        session.add_operation(timer.metrics)
