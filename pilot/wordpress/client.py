"""Thin httpx wrapper for WordPress REST API calls."""

import re
from typing import Any

import httpx

from pilot.wordpress.config import WordPressSyncConfig, load_wordpress_sync_config

_API_SUFFIXES = (
    "/wp-json/wp/v2/community",
    "/wp-json/wp/v2/communities",
    "/wp-json/wp/v2",
    "/wp-json",
)
_SCHEME = re.compile(r"^https?://", flags=re.IGNORECASE)


def normalize_site_url(url: str) -> str:
    """Add a scheme, drop trailing slashes and any pasted REST API path."""
    normalized = url.strip()
    if not normalized:
        return normalized
    if not _SCHEME.match(normalized):
        normalized = f"https://{normalized}"
    normalized = normalized.rstrip("/")

    for suffix in _API_SUFFIXES:
        if normalized.lower().endswith(suffix):
            normalized = normalized[: -len(suffix)]
            break
    return normalized


def display_site_url(url: str) -> str:
    return _SCHEME.sub("", url).rstrip("/")


class WordPressClient:
    """GET-only JSON client bound to one configuration."""

    def __init__(
        self,
        config: WordPressSyncConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self._config = config or load_wordpress_sync_config()
        self._transport = transport

    @property
    def config(self) -> WordPressSyncConfig:
        return self._config

    def get(self, url: str, *, params: dict | None = None) -> httpx.Response:
        """Issue a GET; transport errors propagate as ``httpx.HTTPError``."""
        headers = {"Accept": "application/json", "User-Agent": self._config.user_agent}
        with httpx.Client(
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            return client.get(url, headers=headers, params=params)

    def get_json(self, url: str, *, params: dict | None = None) -> tuple[Any, httpx.Headers]:
        response = self.get(url, params=params)
        response.raise_for_status()
        return response.json(), response.headers


def total_from_headers(headers: httpx.Headers) -> int | None:
    """Read WordPress's ``X-WP-Total`` item count."""
    raw = headers.get("X-WP-Total")
    if raw is None:
        return None
    try:
        return max(int(raw), 0)
    except ValueError:
        return None
