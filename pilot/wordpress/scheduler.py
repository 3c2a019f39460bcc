"""Background scheduler that syncs due feeds on a fixed tick."""

import logging
import threading

from pilot.wordpress.sync import ScheduledSyncSummary, SyncRunner

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Calls ``SyncRunner.run_due`` every ``tick_seconds`` on a daemon thread."""

    def __init__(self, runner: SyncRunner, tick_seconds: float):
        self._runner = runner
        self._tick_seconds = tick_seconds
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._last_summary: ScheduledSyncSummary | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_summary(self) -> ScheduledSyncSummary | None:
        with self._lock:
            return self._last_summary

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="wordpress-sync-scheduler")
        self._thread.start()
        logger.info("WordPress sync scheduler started (tick %ss)", self._tick_seconds)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("WordPress sync scheduler stopped")

    def tick(self) -> ScheduledSyncSummary:
        """Run one pass now."""
        summary = self._runner.run_due()
        with self._lock:
            self._last_summary = summary
        return summary

    def _loop(self) -> None:
        while not self._stop.wait(self._tick_seconds):
            try:
                self.tick()
            except Exception:
                logger.warning("Scheduled WordPress sync pass failed", exc_info=True)


# ── Singleton for app lifecycle ────────────────────────────────────────────────

_scheduler: SyncScheduler | None = None


def start_sync_scheduler(runner: SyncRunner, tick_seconds: float) -> SyncScheduler:
    """Start the global sync scheduler singleton."""
    global _scheduler
    if _scheduler is not None:
        return _scheduler
    _scheduler = SyncScheduler(runner=runner, tick_seconds=tick_seconds)
    _scheduler.start()
    return _scheduler


def stop_sync_scheduler() -> None:
    """Stop the global sync scheduler."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None
