"""Threshold checks and text renderings of a ProfileSession."""

import csv
import io
import json
from dataclasses import dataclass

from beartype import beartype
from loguru import logger

from dispatch_profiling._core import ProfileSession

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


@dataclass(frozen=True)
class PerformanceThresholds:
    """Optional limits checked by ProfileReport. ``None`` disables a check.

    Durations are seconds, memory is bytes.
    """

    max_duration: float | None = None
    max_memory: int | None = None
    max_allocations: int | None = None
    max_operation_duration: float | None = None
    max_operation_memory: int | None = None


@beartype
def format_bytes(num_bytes: int | float) -> str:
    """Human readable byte count using base-1024 units (e.g. ``2.00 GB``)."""
    value = float(num_bytes)
    for unit in _BYTE_UNITS:
        if abs(value) < 1024 or unit == _BYTE_UNITS[-1]:
            break
        value /= 1024
    if unit == "B":
        return f"{value:.0f} B"
    return f"{value:.2f} {unit}"


class ProfileReport:
    """Point-in-time report over a session.

    Warnings are evaluated once, at construction, against ``thresholds``.

    Example:
        report = ProfileReport(session, PerformanceThresholds(max_operation_duration=0.05))
        print(report.to_console())
    """

    @beartype
    def __init__(
        self,
        session: ProfileSession,
        thresholds: PerformanceThresholds | None = None,
    ) -> None:
        self.session = session
        self.thresholds = thresholds if thresholds is not None else PerformanceThresholds()
        self.warnings: list[str] = self._evaluate()

    def _evaluate(self) -> list[str]:
        t = self.thresholds
        operations, total_memory, total_allocations = self.session.snapshot()
        duration = self.session.duration
        warnings: list[str] = []

        if t.max_duration is not None and duration > t.max_duration:
            warnings.append(
                f"Session duration {duration * 1000:.2f}ms exceeds threshold "
                f"{t.max_duration * 1000:.2f}ms"
            )
        if t.max_memory is not None and total_memory > t.max_memory:
            warnings.append(
                f"Total memory usage {format_bytes(total_memory)} exceeds threshold "
                f"{format_bytes(t.max_memory)}"
            )
        if t.max_allocations is not None and total_allocations > t.max_allocations:
            warnings.append(
                f"Total allocations {total_allocations} exceeds threshold {t.max_allocations}"
            )

        for op in operations:
            if t.max_operation_duration is not None and op.duration > t.max_operation_duration:
                warnings.append(
                    f"Operation '{op.name}' duration {op.duration_ms:.2f}ms exceeds threshold "
                    f"{t.max_operation_duration * 1000:.2f}ms"
                )
            if t.max_operation_memory is not None and op.memory_used > t.max_operation_memory:
                warnings.append(
                    f"Operation '{op.name}' memory usage {format_bytes(op.memory_used)} "
                    f"exceeds threshold {format_bytes(t.max_operation_memory)}"
                )

        if warnings:
            logger.debug(
                f"Report for '{self.session.session_name}' raised {len(warnings)} warning(s)"
            )
        return warnings

    def _console_lines(self) -> list[str]:
        operations, total_memory, total_allocations = self.session.snapshot()
        lines = [
            f"Performance Profile Report: {self.session.session_name}",
            "=" * 60,
            f"Session Duration: {self.session.duration * 1000:.2f}ms",
            f"Total Memory Used: {format_bytes(total_memory)}",
            f"Total Allocations: {total_allocations}",
            f"Average Operation Duration: {self.session.average_operation_duration * 1000:.2f}ms",
            f"Operations Count: {len(operations)}",
        ]

        if operations:
            lines.append("")
            lines.append(f"{'Operation':<40} {'Duration':>12} {'Memory':>12} {'Allocs':>10}")
            lines.append("-" * 77)
            for op in operations:
                lines.append(
                    f"{op.name:<40} {op.duration_ms:>10.2f}ms "
                    f"{format_bytes(op.memory_used):>12} {op.allocations:>10}"
                )

        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)

        return lines

    def to_console(self) -> str:
        return "\n".join(self._console_lines()) + "\n"

    def to_json(self) -> str:
        operations, total_memory, total_allocations = self.session.snapshot()
        payload = {
            "SessionName": self.session.session_name,
            "StartTime": self.session.start_time,
            "EndTime": self.session.end_time,
            "DurationMs": self.session.duration * 1000,
            "TotalMemoryUsed": total_memory,
            "TotalAllocations": total_allocations,
            "AverageOperationDurationMs": self.session.average_operation_duration * 1000,
            "Operations": [
                {
                    "Name": op.name,
                    "DurationMs": op.duration_ms,
                    "MemoryUsed": op.memory_used,
                    "Allocations": op.allocations,
                }
                for op in operations
            ],
            "Warnings": list(self.warnings),
        }
        return json.dumps(payload, indent=2, default=str)

    def to_csv(self) -> str:
        operations, total_memory, total_allocations = self.session.snapshot()
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")

        writer.writerow(["Session Summary"])
        writer.writerow(["SessionName", "DurationMs", "TotalMemoryUsed", "TotalAllocations"])
        writer.writerow(
            [
                self.session.session_name,
                f"{self.session.duration * 1000:.3f}",
                total_memory,
                total_allocations,
            ]
        )
        writer.writerow([])

        writer.writerow(["Operations"])
        writer.writerow(["Name", "DurationMs", "MemoryUsed", "Allocations"])
        for op in operations:
            writer.writerow([op.name, f"{op.duration_ms:.3f}", op.memory_used, op.allocations])

        if self.warnings:
            writer.writerow([])
            writer.writerow(["Warnings"])
            for warning in self.warnings:
                writer.writerow([warning])

        return buffer.getvalue()

    @beartype
    def log_summary(self, title: str = "PROFILE REPORT") -> None:
        """Log the console rendering line by line via loguru.

        Args:
            title: Header title for the summary block
        """
        logger.info("")
        logger.info("=" * 77)
        logger.info(f"{title:^77}")
        for line in self._console_lines():
            logger.info(line)
        logger.info("=" * 77)
        logger.info("")
