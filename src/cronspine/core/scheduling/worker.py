"""Periodic trigger - runs a batch pass on a fixed interval.

A deployment can invoke ``cronspine trigger`` from the system crontab, or
keep a long-lived ``cronspine worker`` that ticks on its own. The worker
follows the beat-as-poller split: a backend controls WHEN ticks happen,
the runner controls WHAT happens on each tick.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                              │
│                                                                              │
│   start(tick, interval)                                                      │
│      └── daemon thread:                                                      │
│            while not stop_event.wait(interval):                              │
│                tick_count += 1; last_tick = now()                            │
│                tick()                                                        │
│   stop(timeout=None)                                                         │
│      └── stop_event.set(); thread.join(timeout)   (None: until tick ends)    │
│                                                                              │
│  CronWorker.tick() → runner.process_jobs()   (never raises)                  │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from cronspine.core.logging import get_logger
from cronspine.core.scheduling.runner import CronRunner, RunResult
from cronspine.core.status import StatusEnum

logger = get_logger(__name__)

TickCallback = Callable[[], None]


@runtime_checkable
class TriggerBackend(Protocol):
    """Timing backend: calls ``tick_callback`` every ``interval_seconds``."""

    name: str

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        ...

    def stop(self, timeout: float | None = None) -> bool:
        """Stop ticking; True once no tick is running."""
        ...

    def health(self) -> dict[str, Any]:
        """At least ``healthy``, ``backend``, ``tick_count``, ``last_tick``."""
        ...


class ThreadSchedulerBackend:
    """Threading-based trigger backend.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.start(lambda: print("Tick!"), interval_seconds=5.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, run_immediately: bool = False) -> None:
        """Initialize thread backend.

        Args:
            run_immediately: Tick once as soon as the thread starts instead
                of waiting a full interval first.
        """
        self.run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 60.0
        self._started = False
        self._lock = threading.Lock()

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        """Start the trigger loop in a daemon thread."""
        if self._started:
            logger.warning("backend_already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _tick() -> None:
            with self._lock:
                self._tick_count += 1
                self._last_tick = datetime.now(UTC)
            try:
                tick_callback()
            except Exception as e:
                logger.exception("tick_failed", error=str(e))

        def _loop() -> None:
            logger.info("backend_started", backend=self.name, interval_seconds=interval_seconds)
            if self.run_immediately and not self._stop_event.is_set():
                _tick()
            while not self._stop_event.wait(interval_seconds):
                _tick()
            logger.info("backend_stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name="cronspine-worker")
        self._thread.start()
        self._started = True

    def stop(self, timeout: float | None = None) -> bool:
        """Stop the loop and wait for an in-flight tick to finish.

        Args:
            timeout: Seconds to wait for the thread; None waits as long as
                the current batch pass takes.

        Returns:
            True when the thread has exited. On False the backend still
            counts as running and ``stop`` may be called again.
        """
        if not self._started:
            return True

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("backend_thread_still_alive", backend=self.name, timeout=timeout)
                return False

        self._started = False
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the loop is stopped; True if it stopped within ``timeout``."""
        return self._stop_event.wait(timeout)

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick


class CronWorker:
    """Drives a :class:`CronRunner` from a trigger backend.

    Example:
        >>> worker = CronWorker(runner, ThreadSchedulerBackend(), interval_seconds=60)
        >>> worker.start()
        >>> worker.health()["healthy"]
        True
        >>> worker.stop()
    """

    def __init__(
        self,
        runner: CronRunner,
        backend: TriggerBackend | None = None,
        interval_seconds: float = 60.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.runner = runner
        self.backend = backend or ThreadSchedulerBackend()
        self.interval_seconds = interval_seconds
        self.last_result: RunResult | None = None
        self.ticks_locked = 0
        self.ticks_failed = 0

    def start(self) -> None:
        self.backend.start(self.tick, self.interval_seconds)

    def stop(self, timeout: float | None = None) -> bool:
        """Stop ticking; see :meth:`ThreadSchedulerBackend.stop`."""
        return self.backend.stop(timeout)

    def tick(self) -> RunResult | None:
        """Run one batch pass; failures are logged, never raised."""
        try:
            result = self.runner.process_jobs()
        except Exception as e:
            self.ticks_failed += 1
            logger.exception("worker_tick_failed", error=str(e))
            return None

        if result.status == StatusEnum.LOCKED:
            self.ticks_locked += 1
        self.last_result = result
        return result

    @property
    def is_running(self) -> bool:
        return bool(getattr(self.backend, "is_running", False))

    def health(self) -> dict[str, Any]:
        stats = self.runner.stats
        return {
            **self.backend.health(),
            "ticks_locked": self.ticks_locked,
            "ticks_failed": self.ticks_failed,
            "jobs_processed": stats.jobs_processed,
            "jobs_skipped": stats.jobs_skipped,
            "jobs_failed": stats.jobs_failed,
            "last_status": self.last_result.status.name if self.last_result else None,
        }


__all__ = ["TickCallback", "TriggerBackend", "ThreadSchedulerBackend", "CronWorker"]
