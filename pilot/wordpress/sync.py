"""Per-role sync execution and the scheduled pass over all connections."""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from pilot.wordpress.config import WordPressSyncConfig, load_wordpress_sync_config
from pilot.wordpress.contracts import ROLES, Role
from pilot.wordpress.errors import (
    ConnectionNotFound,
    ConnectionStoreError,
    SyncFailed,
    SyncInProgress,
    WordPressSyncError,
)
from pilot.wordpress.importer import BaseImporter
from pilot.wordpress.schedule import is_due
from pilot.wordpress.store import ConnectionStore

logger = logging.getLogger(__name__)

ROLE_LABELS: dict[Role, str] = {"community": "Communities", "property": "Properties"}


@dataclass(frozen=True)
class RoleSyncOutcome:
    run_id: str
    connection_id: str
    role: Role
    full: bool
    item_count: int
    last_sync: datetime


@dataclass
class ScheduledSyncSummary:
    community_syncs: int = 0
    property_syncs: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0


class SyncRunner:
    """Runs imports with at most one sync per (connection, role) at a time.

    Different roles, and different connections, sync independently.
    """

    def __init__(
        self,
        store: ConnectionStore,
        importer: BaseImporter,
        config: WordPressSyncConfig | None = None,
    ):
        self._store = store
        self._importer = importer
        self._config = config or load_wordpress_sync_config()
        self._locks: dict[tuple[str, Role], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def is_running(self, connection_id: str, role: Role) -> bool:
        return self._lock_for(connection_id, role).locked()

    @contextmanager
    def paused(self, connection_id: str) -> Iterator[None]:
        """Hold every role lock of a connection so no sync can start or finish meanwhile.

        Raises ``SyncInProgress`` instead of waiting when a sync is already running.
        """
        held: list[threading.Lock] = []
        try:
            for role in ROLES:
                lock = self._lock_for(connection_id, role)
                if not lock.acquire(blocking=False):
                    raise SyncInProgress(f"{ROLE_LABELS[role]} sync is running; try again when it finishes.")
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()

    def run(
        self,
        connection_id: str,
        role: Role,
        *,
        full: bool = False,
        extraction_mode: str | None = None,
    ) -> RoleSyncOutcome:
        """Quick sync (``full=False``) or full resync for one role; rejects overlapping runs."""
        lock = self._lock_for(connection_id, role)
        if not lock.acquire(blocking=False):
            raise SyncInProgress(f"{ROLE_LABELS[role]} sync is already running.")
        try:
            return self._run_locked(connection_id, role, full=full, extraction_mode=extraction_mode)
        finally:
            lock.release()

    def run_due(self, now: datetime | None = None) -> ScheduledSyncSummary:
        """Sync every role whose interval has elapsed, across all connections."""
        started = time.monotonic()
        now = now or datetime.now(UTC)
        summary = ScheduledSyncSummary()

        configs = self._store.list_connection_configs()
        logger.info("Checking %d WordPress connections for due syncs", len(configs))
        for config in configs:
            for role in ROLES:
                if not is_due(config, role, now):
                    continue
                logger.info(
                    "Connection %s: %s sync is due (interval: %s, last: %s)",
                    config.connection_id,
                    role,
                    config.interval_for(role),
                    config.last_sync_for(role) or "never",
                )
                try:
                    self.run(config.connection_id, role)
                except SyncInProgress:
                    summary.skipped += 1
                    continue
                except WordPressSyncError as exc:
                    summary.errors.append(f"Connection {config.connection_id} {role} sync: {exc}")
                    continue
                if role == "community":
                    summary.community_syncs += 1
                else:
                    summary.property_syncs += 1

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Scheduled sync complete in %dms: %d community syncs, %d property syncs, %d skipped, %d errors",
            summary.duration_ms,
            summary.community_syncs,
            summary.property_syncs,
            summary.skipped,
            len(summary.errors),
        )
        return summary

    def _run_locked(
        self,
        connection_id: str,
        role: Role,
        *,
        full: bool,
        extraction_mode: str | None,
    ) -> RoleSyncOutcome:
        config = self._store.load_connection_config(connection_id)
        if config is None:
            raise ConnectionNotFound("This agent has no WordPress connection.")
        endpoint = config.endpoint_for(role)
        if not endpoint:
            raise SyncFailed(f"No {ROLE_LABELS[role]} endpoint is mapped.")

        mode = extraction_mode or self._config.extraction_mode
        run_id = str(uuid4())
        self._store.create_sync_run(
            run_id=run_id,
            connection_id=connection_id,
            role=role,
            full=full,
            extraction_mode=mode,
        )
        logger.info(
            "Starting %s %s sync for %s from %s using /%s",
            "full" if full else "quick",
            role,
            connection_id,
            config.site_url,
            endpoint,
        )

        try:
            result = self._importer.import_role(config, role, endpoint, extraction_mode=mode, full=full)
            self._store.record_sync(connection_id, role, last_sync=result.last_sync, count=result.item_count)
            self._store.finalize_sync_run(run_id=run_id, status="success", item_count=result.item_count)
        except WordPressSyncError as exc:
            self._record_failure(connection_id, role, run_id, str(exc))
            if isinstance(exc, SyncFailed):
                raise
            raise SyncFailed(str(exc)) from exc
        except Exception as exc:
            self._record_failure(connection_id, role, run_id, f"Unexpected error: {exc}")
            raise

        return RoleSyncOutcome(
            run_id=run_id,
            connection_id=connection_id,
            role=role,
            full=full,
            item_count=result.item_count,
            last_sync=result.last_sync,
        )

    def _record_failure(self, connection_id: str, role: Role, run_id: str, message: str) -> None:
        logger.warning("%s sync failed for %s: %s", role, connection_id, message)
        try:
            self._store.finalize_sync_run(run_id=run_id, status="failed", error=message)
        except ConnectionStoreError:
            logger.warning("Could not finalize sync run %s", run_id, exc_info=True)
        try:
            self._store.record_sync_failure(connection_id, role, message)
        except ConnectionStoreError:
            # Connection may have been disconnected while the import ran.
            logger.warning("Could not record %s sync failure for %s", role, connection_id, exc_info=True)

    def _lock_for(self, connection_id: str, role: Role) -> threading.Lock:
        key = (connection_id, role)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock
