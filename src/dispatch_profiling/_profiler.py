"""Registry of named profile sessions with a single active session."""

import threading
from collections.abc import Awaitable, Callable
from typing import TypeVar

from beartype import beartype
from loguru import logger

from dispatch_profiling._core import MetricsCollector, ProfileSession, _require_name
from dispatch_profiling._errors import InvalidStateError, ProfilerNotStartedError
from dispatch_profiling._protocols import MemorySnapshot
from dispatch_profiling._report import PerformanceThresholds, ProfileReport

T = TypeVar("T")


class PerformanceProfiler:
    """Owns named ProfileSessions and records operations into the active one.

    Starting a session makes it active; stopping or removing the active
    session leaves the profiler with no active session. Thread-safe.

    Example:
        profiler = PerformanceProfiler()
        profiler.start_session("load-test")
        user = await profiler.profile_async("GetUser", lambda: dispatcher.send(GetUser(1)))
        profiler.stop_session("load-test")
        print(profiler.generate_report("load-test").to_console())
    """

    @beartype
    def __init__(self, memory: MemorySnapshot | None = None) -> None:
        self._collector = MetricsCollector(memory)
        self._sessions: dict[str, ProfileSession] = {}
        self._active: ProfileSession | None = None
        self._lock = threading.Lock()

    @property
    def active_session(self) -> ProfileSession | None:
        with self._lock:
            return self._active

    @property
    def sessions(self) -> dict[str, ProfileSession]:
        """Copy of the registry; later changes to the profiler do not show up in it."""
        with self._lock:
            return dict(self._sessions)

    @beartype
    def start_session(self, session_name: str | None) -> ProfileSession:
        name = _require_name(session_name, "session_name")
        with self._lock:
            if name in self._sessions:
                raise InvalidStateError(f"Session '{name}' already exists")
            session = ProfileSession(name)
            session.start()
            self._sessions[name] = session
            self._active = session
        return session

    @beartype
    def stop_session(self, session_name: str) -> None:
        with self._lock:
            session = self._sessions.get(session_name)
            if session is None:
                raise InvalidStateError(f"Session '{session_name}' not found")
            session.stop()
            if self._active is session:
                self._active = None

    def stop_active_session(self) -> None:
        with self._lock:
            if self._active is None:
                raise InvalidStateError("No active session to stop")
            self._active.stop()
            self._active = None

    @beartype
    def get_session(self, session_name: str) -> ProfileSession | None:
        with self._lock:
            return self._sessions.get(session_name)

    @beartype
    def remove_session(self, session_name: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_name, None)
            if session is None:
                return False
            if self._active is session:
                self._active = None
        logger.debug(f"Removed profile session '{session_name}'")
        return True

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._active = None

    def _require_active(self) -> ProfileSession:
        session = self.active_session
        if session is None:
            raise ProfilerNotStartedError("Profiler has no active session; call start_session() first")
        return session

    @beartype
    def profile(self, name: str, operation: Callable[[], T]) -> T:
        """Run ``operation`` and record its metrics into the active session."""
        session = self._require_active()
        result, metrics = self._collector.collect(name, operation)
        session.add_operation(metrics)
        return result

    @beartype
    async def profile_async(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Await ``operation`` and record its metrics into the active session."""
        session = self._require_active()
        result, metrics = await self._collector.collect_async(name, operation)
        session.add_operation(metrics)
        return result

    @beartype
    def generate_report(
        self,
        session_name: str,
        thresholds: PerformanceThresholds | None = None,
    ) -> ProfileReport:
        session = self.get_session(session_name)
        if session is None:
            raise InvalidStateError(f"Session '{session_name}' not found")
        return ProfileReport(session, thresholds)

    @beartype
    def generate_active_report(
        self, thresholds: PerformanceThresholds | None = None
    ) -> ProfileReport:
        session = self.active_session
        if session is None:
            raise InvalidStateError("No active session to report on")
        return ProfileReport(session, thresholds)
