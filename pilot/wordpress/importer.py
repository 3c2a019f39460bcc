"""Import collaborator: pull one feed's posts into synced records."""

import html
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from pilot.wordpress.client import WordPressClient
from pilot.wordpress.contracts import ConnectionConfig, Role
from pilot.wordpress.errors import SyncFailed
from pilot.wordpress.store import ConnectionStore

logger = logging.getLogger(__name__)

Extractor = Callable[[Role, dict[str, Any]], dict[str, Any]]

_TAG_PATTERN = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class ImportResult:
    """Standardized import result."""

    item_count: int
    last_sync: datetime
    created: int = 0
    updated: int = 0
    deleted: int = 0


class BaseImporter:
    """Importer base interface."""

    def import_role(
        self,
        config: ConnectionConfig,
        role: Role,
        endpoint: str,
        *,
        extraction_mode: str,
        full: bool,
    ) -> ImportResult:
        """Run one incremental (``full=False``) or rebuilding (``full=True``) import."""
        _ = (config, role, endpoint, extraction_mode, full)
        raise NotImplementedError


class WordPressImporter(BaseImporter):
    """Paged REST import; incremental runs only fetch posts modified since the last sync."""

    def __init__(
        self,
        store: ConnectionStore,
        client: WordPressClient | None = None,
        extractors: dict[str, Extractor] | None = None,
    ):
        self._store = store
        self._client = client or WordPressClient()
        self._extractors: dict[str, Extractor] = {"standard": extract_standard, **(extractors or {})}

    def import_role(
        self,
        config: ConnectionConfig,
        role: Role,
        endpoint: str,
        *,
        extraction_mode: str,
        full: bool,
    ) -> ImportResult:
        extractor = self._extractors.get(extraction_mode)
        if extractor is None:
            raise SyncFailed(f"{extraction_mode} extraction is not configured")

        started = datetime.now(UTC)
        modified_after = None if full else config.last_sync_for(role)
        posts = self._fetch_posts(config.site_url, endpoint, modified_after=modified_after)
        # A post edited while paging can show up twice; keep its latest copy.
        items = list({item["remote_id"]: item for item in (extractor(role, post) for post in posts)}.values())

        if full:
            previous = self._store.count_records(config.connection_id, role)
            total = self._store.replace_records(
                config.connection_id, role, items, extraction_mode=extraction_mode
            )
            logger.info(
                "Full %s import for %s: %d records (previously %d)",
                role,
                config.connection_id,
                total,
                previous,
            )
            return ImportResult(
                item_count=total,
                last_sync=started,
                created=total,
                deleted=previous,
            )

        created, updated = self._store.upsert_records(
            config.connection_id, role, items, extraction_mode=extraction_mode
        )
        total = self._store.count_records(config.connection_id, role)
        logger.info(
            "Incremental %s import for %s: %d created, %d updated, %d total",
            role,
            config.connection_id,
            created,
            updated,
            total,
        )
        return ImportResult(item_count=total, last_sync=started, created=created, updated=updated)

    def _fetch_posts(self, site_url: str, endpoint: str, *, modified_after: datetime | None) -> list[dict[str, Any]]:
        per_page = self._client.config.per_page
        url = f"{site_url}/wp-json/wp/v2/{endpoint.strip('/')}"
        posts: list[dict[str, Any]] = []
        cursor = None
        if modified_after is not None:
            # WordPress compares against post_modified in site-local time.
            overlap = timedelta(hours=self._client.config.cursor_overlap_hours)
            cursor = (_as_utc(modified_after) - overlap).strftime("%Y-%m-%dT%H:%M:%S")

        for page in range(1, self._client.config.max_pages + 1):
            params: dict[str, Any] = {"per_page": per_page, "page": page, "orderby": "modified", "order": "asc"}
            if cursor is not None:
                params["modified_after"] = cursor
            try:
                response = self._client.get(url, params=params)
            except httpx.HTTPError as exc:
                raise SyncFailed(f"Could not reach {site_url}: {exc}") from exc

            # WordPress answers 400 rest_post_invalid_page_number past the last page.
            if response.status_code == 400 and page > 1:
                break
            if response.status_code == 404:
                raise SyncFailed(f'Endpoint "/{endpoint}" not found on {site_url}')
            if response.status_code != 200:
                raise SyncFailed(f"WordPress API returned status {response.status_code}")

            try:
                batch = response.json()
            except ValueError as exc:
                raise SyncFailed("Invalid response format from WordPress API") from exc
            if not isinstance(batch, list):
                raise SyncFailed("Invalid response format from WordPress API")

            posts.extend(post for post in batch if isinstance(post, dict) and post.get("id") is not None)

            total_pages = _int_header(response.headers, "X-WP-TotalPages")
            if len(batch) < per_page or (total_pages is not None and page >= total_pages):
                break
        else:
            logger.warning("Stopped %s import at %d pages", endpoint, self._client.config.max_pages)

        return posts


def extract_standard(role: Role, post: dict[str, Any]) -> dict[str, Any]:
    """Map a WordPress post to a synced record without any AI assistance."""
    title = _rendered(post.get("title"))
    payload: dict[str, Any] = {
        "role": role,
        "type": post.get("type"),
        "status": post.get("status"),
        "excerpt": _plain_text(_rendered(post.get("excerpt"))),
        "content": _plain_text(_rendered(post.get("content")))[:20000],
    }
    if isinstance(post.get("acf"), dict):
        payload["acf"] = post["acf"]

    return {
        "remote_id": str(post["id"]),
        "slug": post.get("slug"),
        "title": html.unescape(title) if title else None,
        "link": post.get("link"),
        "modified_at": _parse_wp_datetime(post.get("modified_gmt") or post.get("modified")),
        "payload": payload,
    }


def _rendered(field: Any) -> str:
    if isinstance(field, dict):
        return str(field.get("rendered") or "")
    return str(field or "")


def _plain_text(markup: str) -> str:
    return " ".join(html.unescape(_TAG_PATTERN.sub(" ", markup)).split())


def _parse_wp_datetime(raw: Any) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw))
    except ValueError:
        return None
    return _as_utc(parsed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _int_header(headers: httpx.Headers, name: str) -> int | None:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
