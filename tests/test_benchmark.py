"""Tests for BenchmarkRunner and BenchmarkResult."""

import asyncio
import itertools
import threading
from datetime import datetime, timezone

import pytest
from beartype.roar import BeartypeCallHintParamViolation
from conftest import EchoDispatcher, FakeMemory, Ping

from dispatch_profiling import (
    DEFAULT_ITERATIONS,
    ArgumentError,
    BenchmarkResult,
    BenchmarkRunner,
)


class CountingOperation:
    def __init__(self, value=None, delay: float = 0.0) -> None:
        self.calls = 0
        self.value = value
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.value


@pytest.fixture
def step_clock(monkeypatch):
    """Install a perf_counter_ns that advances ``step_ns`` per reading."""

    def install(step_ns: int) -> None:
        ticks = itertools.count(0, step_ns)
        monkeypatch.setattr(
            "dispatch_profiling._benchmark.time.perf_counter_ns", lambda: next(ticks)
        )

    return install


@pytest.fixture
def fixed_clock(step_clock):
    """perf_counter_ns that advances exactly 1ms per reading."""
    step_clock(1_000_000)


def _result(**overrides) -> BenchmarkResult:
    fields = dict(
        request_type="Ping",
        handler_type="PingHandler",
        iterations=4,
        total_time=2.0,
        min_time=0.25,
        max_time=1.0,
        standard_deviation=0.3,
        total_allocated_bytes=128,
        timestamp=datetime.now(timezone.utc),
    )
    fields.update(overrides)
    return BenchmarkResult(**fields)


class TestBenchmarkResult:
    def test_mean_and_throughput(self):
        result = _result()
        assert result.mean_time == pytest.approx(0.5)
        assert result.requests_per_second == pytest.approx(2.0)

    def test_zero_total_time_throughput_is_zero(self):
        result = _result(total_time=0.0, min_time=0.0, max_time=0.0, standard_deviation=0.0)
        assert result.requests_per_second == 0.0

    def test_mean_time_is_kept_within_min_and_max(self):
        # 0.30000000000000004 / 3 rounds one float step above 0.1
        result = _result(iterations=3, total_time=0.1 + 0.2, min_time=0.1, max_time=0.1)
        assert result.total_time / result.iterations > result.max_time
        assert result.mean_time == 0.1

    def test_log_summary(self):
        _result().log_summary()
        _result(request_type="", handler_type="").log_summary()


class TestBenchmarkRunner:
    @pytest.mark.asyncio
    async def test_invokes_operation_exactly_k_times(self):
        operation = CountingOperation()
        result = await BenchmarkRunner(FakeMemory()).run(operation, iterations=17)
        assert operation.calls == 17
        assert result.iterations == 17

    @pytest.mark.asyncio
    async def test_default_iteration_count(self):
        operation = CountingOperation(value="response")
        result = await BenchmarkRunner(FakeMemory()).run(operation)
        assert operation.calls == DEFAULT_ITERATIONS == 100
        assert result.iterations == 100

    @pytest.mark.asyncio
    @pytest.mark.parametrize("iterations", [0, -5])
    async def test_non_positive_iterations_raise_before_running(self, iterations):
        operation = CountingOperation()
        memory = FakeMemory()
        with pytest.raises(ArgumentError, match="iterations"):
            await BenchmarkRunner(memory).run(operation, iterations=iterations)
        assert operation.calls == 0
        assert memory.calls == []

    @pytest.mark.asyncio
    async def test_beartype_rejects_non_int_iterations(self):
        with pytest.raises(BeartypeCallHintParamViolation):
            await BenchmarkRunner(FakeMemory()).run(CountingOperation(), iterations="10")

    @pytest.mark.asyncio
    async def test_statistics_from_constant_samples(self, fixed_clock):
        result = await BenchmarkRunner(FakeMemory()).run(CountingOperation(), iterations=100)
        assert result.min_time == pytest.approx(0.001)
        assert result.max_time == pytest.approx(0.001)
        assert result.total_time == pytest.approx(0.1)
        assert result.mean_time == pytest.approx(result.total_time / 100)
        assert result.standard_deviation == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("step_ns", [13_961, 6_982, 333, 1_000_003])
    @pytest.mark.parametrize("iterations", [3, 7, 100])
    async def test_mean_stays_within_min_and_max(self, step_clock, step_ns, iterations):
        step_clock(step_ns)
        result = await BenchmarkRunner(FakeMemory()).run(CountingOperation(), iterations=iterations)
        assert result.min_time <= result.mean_time <= result.max_time
        assert result.min_time == result.max_time == step_ns / 1_000_000_000
        assert result.mean_time == result.min_time

    @pytest.mark.asyncio
    async def test_one_millisecond_operation_has_low_spread(self):
        result = await BenchmarkRunner(FakeMemory()).run(
            CountingOperation(delay=0.001), iterations=20
        )
        assert result.min_time > 0
        assert result.min_time <= result.mean_time <= result.max_time
        assert result.standard_deviation <= result.max_time - result.min_time

    @pytest.mark.asyncio
    async def test_allocated_bytes_is_after_minus_before(self):
        memory = FakeMemory([1_000, 5_096])
        result = await BenchmarkRunner(memory).run(CountingOperation(), iterations=3)
        assert result.total_allocated_bytes == 4_096
        assert memory.calls == [True, False]

    @pytest.mark.asyncio
    async def test_negative_memory_delta_is_clamped(self):
        memory = FakeMemory([9_000, 1_000])
        result = await BenchmarkRunner(memory).run(CountingOperation(), iterations=3)
        assert result.total_allocated_bytes == 0

    @pytest.mark.asyncio
    async def test_timestamp_is_taken_before_first_iteration(self):
        before = datetime.now(timezone.utc)
        result = await BenchmarkRunner(FakeMemory()).run(CountingOperation(delay=0.001), iterations=3)
        assert before <= result.timestamp
        assert result.timestamp <= datetime.now(timezone.utc)

    @pytest.mark.asyncio
    async def test_labels_are_copied_to_result(self):
        result = await BenchmarkRunner(FakeMemory()).run(
            CountingOperation(), iterations=2, request_type="GetUser", handler_type="UserHandler"
        )
        assert result.request_type == "GetUser"
        assert result.handler_type == "UserHandler"

    @pytest.mark.asyncio
    async def test_operation_error_propagates_unchanged(self):
        error = RuntimeError("handler exploded")
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            if calls == 3:
                raise error

        with pytest.raises(RuntimeError) as excinfo:
            await BenchmarkRunner(FakeMemory()).run(failing, iterations=10)
        assert excinfo.value is error
        assert calls == 3

    @pytest.mark.asyncio
    async def test_cancelled_before_start_runs_nothing(self):
        cancel = asyncio.Event()
        cancel.set()
        operation = CountingOperation()
        with pytest.raises(asyncio.CancelledError):
            await BenchmarkRunner(FakeMemory()).run(operation, iterations=5, cancel_event=cancel)
        assert operation.calls == 0

    @pytest.mark.asyncio
    async def test_cancellation_is_checked_between_iterations(self):
        cancel = threading.Event()
        calls = 0

        async def cancels_on_third():
            nonlocal calls
            calls += 1
            if calls == 3:
                cancel.set()

        with pytest.raises(asyncio.CancelledError):
            await BenchmarkRunner(FakeMemory()).run(
                cancels_on_third, iterations=10, cancel_event=cancel
            )
        assert calls == 3

    @pytest.mark.asyncio
    async def test_iterations_never_overlap(self):
        in_flight = 0
        peak = 0

        async def tracked():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1

        await BenchmarkRunner(FakeMemory()).run(tracked, iterations=25)
        assert peak == 1

    @pytest.mark.asyncio
    async def test_real_memory_provider(self):
        result = await BenchmarkRunner().run(CountingOperation(value=[0] * 100), iterations=5)
        assert result.total_allocated_bytes >= 0


class TestRunRequest:
    @pytest.mark.asyncio
    async def test_dispatches_request_and_labels_by_type(self):
        dispatcher = EchoDispatcher()
        request = Ping()
        result = await BenchmarkRunner(FakeMemory()).run_request(dispatcher, request, iterations=8)

        assert dispatcher.sent == [request] * 8
        assert result.request_type == "Ping"
        assert result.handler_type == "EchoDispatcher"
        assert result.iterations == 8

    @pytest.mark.asyncio
    async def test_dispatch_error_propagates(self):
        error = LookupError("no handler")
        dispatcher = EchoDispatcher(error=error)
        with pytest.raises(LookupError) as excinfo:
            await BenchmarkRunner(FakeMemory()).run_request(dispatcher, Ping(), iterations=3)
        assert excinfo.value is error
        assert len(dispatcher.sent) == 1
