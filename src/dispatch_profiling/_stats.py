"""Reduction of duration samples into summary statistics.

The benchmark runner keeps its samples as integer nanoseconds from
``time.perf_counter_ns()`` and reduces them with ``reduce_nanoseconds``: the
total is an exact integer sum and seconds are produced only at the end.
``reduce_durations`` accepts float seconds and sums with ``math.fsum``.
In both, the mean is clamped into ``[minimum, maximum]`` because the final
division can round one float step past the extremes.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

from beartype import beartype

from dispatch_profiling._errors import ArgumentError

NANOS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True)
class DurationStatistics:
    """Summary of N duration samples (seconds).

    ``standard_deviation`` is the population value (divides by N).
    """

    count: int
    total: float
    minimum: float
    maximum: float
    mean: float
    standard_deviation: float


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


def _require_samples(samples: Sequence) -> int:
    if len(samples) == 0:
        raise ArgumentError("samples", "At least one duration sample is required")
    return len(samples)


@beartype
def reduce_durations(samples: Sequence[float]) -> DurationStatistics:
    """Reduce a non-empty sequence of float-second samples to total/min/max/mean/stddev.

    Raises:
        ArgumentError: if ``samples`` is empty.
    """
    count = _require_samples(samples)
    total = math.fsum(samples)
    minimum, maximum = min(samples), max(samples)
    mean = clamp(total / count, minimum, maximum)
    variance = math.fsum((s - mean) ** 2 for s in samples) / count

    return DurationStatistics(
        count=count,
        total=total,
        minimum=minimum,
        maximum=maximum,
        mean=mean,
        standard_deviation=math.sqrt(variance),
    )


@beartype
def reduce_nanoseconds(samples_ns: Sequence[int]) -> DurationStatistics:
    """Same reduction over integer nanosecond samples, converted to seconds last.

    Raises:
        ArgumentError: if ``samples_ns`` is empty.
    """
    count = _require_samples(samples_ns)
    total_ns = sum(samples_ns)
    mean_ns = total_ns / count
    variance_ns = math.fsum((s - mean_ns) ** 2 for s in samples_ns) / count

    minimum = ns_to_seconds(min(samples_ns))
    maximum = ns_to_seconds(max(samples_ns))
    return DurationStatistics(
        count=count,
        total=ns_to_seconds(total_ns),
        minimum=minimum,
        maximum=maximum,
        mean=clamp(mean_ns / NANOS_PER_SECOND, minimum, maximum),
        standard_deviation=math.sqrt(variance_ns) / NANOS_PER_SECOND,
    )


def ns_to_seconds(nanos: int) -> float:
    return nanos / NANOS_PER_SECOND
