"""Sync cadence math and last-sync display."""

from datetime import UTC, datetime, timedelta

from pilot.wordpress.contracts import ConnectionConfig, Role, SyncInterval

_INTERVAL_HOURS: dict[SyncInterval, int] = {
    "hourly_1": 1,
    "hourly_2": 2,
    "hourly_3": 3,
    "hourly_4": 4,
    "hourly_6": 6,
    "hourly_8": 8,
    "hourly_12": 12,
    "daily": 24,
}


def interval_delta(interval: SyncInterval) -> timedelta | None:
    """Return the cadence, or None for manual-only roles."""
    hours = _INTERVAL_HOURS.get(interval)
    if hours is None:
        return None
    return timedelta(hours=hours)


def next_due(last_sync: datetime | None, interval: SyncInterval, now: datetime | None = None) -> datetime | None:
    """Next automatic sync time; a role that never synced is due immediately."""
    delta = interval_delta(interval)
    if delta is None:
        return None
    if last_sync is None:
        return now or datetime.now(UTC)
    return _as_utc(last_sync) + delta


def is_due(config: ConnectionConfig, role: Role, now: datetime | None = None) -> bool:
    """True when the role has an endpoint, an automatic cadence and is past due."""
    if not config.endpoint_for(role):
        return False
    now = now or datetime.now(UTC)
    due_at = next_due(config.last_sync_for(role), config.interval_for(role), now=now)
    if due_at is None:
        return False
    return _as_utc(now) >= due_at


def format_last_sync(last_sync: datetime | None, now: datetime | None = None) -> str:
    """Relative label such as "Just now", "5m ago", "3h ago", "2d ago"."""
    if last_sync is None:
        return "Never"

    now = now or datetime.now(UTC)
    diff_minutes = int((_as_utc(now) - _as_utc(last_sync)).total_seconds() // 60)
    if diff_minutes < 1:
        return "Just now"
    if diff_minutes < 60:
        return f"{diff_minutes}m ago"

    diff_hours = diff_minutes // 60
    if diff_hours < 24:
        return f"{diff_hours}h ago"
    return f"{diff_hours // 24}d ago"


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
