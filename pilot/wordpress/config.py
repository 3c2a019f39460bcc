"""Runtime configuration for WordPress discovery, import and scheduling."""

from dataclasses import dataclass
from os import getenv


@dataclass(frozen=True)
class WordPressSyncConfig:
    """Environment-tunable limits for remote calls and the scheduler."""

    http_timeout_seconds: float = 15.0
    per_page: int = 100
    max_pages: int = 50
    cursor_overlap_hours: int = 14
    scheduler_enabled: bool = True
    scheduler_tick_seconds: int = 300
    user_agent: str = "Pilot/1.0"
    disconnect_confirmation: str = "DELETE"
    extraction_mode: str = "standard"


def load_wordpress_sync_config() -> WordPressSyncConfig:
    """Load WordPress sync configuration from environment variables."""
    extraction_mode = getenv("PILOT_WP_EXTRACTION_MODE", "standard").strip().lower()
    if extraction_mode not in {"standard", "ai"}:
        extraction_mode = "standard"

    return WordPressSyncConfig(
        http_timeout_seconds=_read_float("PILOT_WP_HTTP_TIMEOUT_SECONDS", 15.0),
        # WordPress caps per_page at 100.
        per_page=min(_read_int("PILOT_WP_PER_PAGE", 100), 100),
        max_pages=_read_int("PILOT_WP_MAX_PAGES", 50),
        cursor_overlap_hours=_read_int("PILOT_WP_CURSOR_OVERLAP_HOURS", 14),
        scheduler_enabled=getenv("PILOT_WP_SCHEDULER_ENABLED", "true").strip().lower() not in {"0", "false", "no"},
        scheduler_tick_seconds=_read_int("PILOT_WP_SCHEDULER_TICK_SECONDS", 300),
        user_agent=getenv("PILOT_WP_USER_AGENT", "Pilot/1.0").strip() or "Pilot/1.0",
        disconnect_confirmation=getenv("PILOT_WP_DISCONNECT_CONFIRMATION", "DELETE").strip() or "DELETE",
        extraction_mode=extraction_mode,
    )


def _read_int(name: str, default: int) -> int:
    """Parse positive integers from env vars with safe defaults."""
    raw = getenv(name)
    if raw is None:
        return default

    try:
        parsed = int(raw)
    except ValueError:
        return default

    return parsed if parsed > 0 else default


def _read_float(name: str, default: float) -> float:
    raw = getenv(name)
    if raw is None:
        return default

    try:
        parsed = float(raw)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
