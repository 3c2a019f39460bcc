"""In-process collaborators for WordPress workflow and sync tests."""

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pilot.wordpress.contracts import ConnectionConfig, DiscoveredEndpoint, DiscoveredEndpointSet, Role
from pilot.wordpress.discovery import BaseDiscoveryClient
from pilot.wordpress.errors import DiscoveryUnreachable, SyncFailed
from pilot.wordpress.importer import BaseImporter, ImportResult
from pilot.wordpress.store import ConnectionStore


def endpoint(rest_base: str, classification: str | None, confidence: float | None) -> DiscoveredEndpoint:
    return DiscoveredEndpoint(
        slug=rest_base,
        display_name=rest_base.title(),
        rest_base=rest_base,
        classification=classification,
        confidence=confidence,
    )


def community_and_listing() -> DiscoveredEndpointSet:
    """``community`` (community, 0.9) and ``listing`` (home, 0.8)."""
    return DiscoveredEndpointSet(
        community_endpoints=[endpoint("community", "community", 0.9)],
        home_endpoints=[endpoint("listing", "home", 0.8)],
    )


class FakeDiscovery(BaseDiscoveryClient):
    def __init__(
        self,
        endpoint_set: DiscoveredEndpointSet | None = None,
        *,
        unreachable: str | None = None,
        before_discover: Callable[[], None] | None = None,
    ):
        self.endpoint_set = endpoint_set if endpoint_set is not None else community_and_listing()
        self.unreachable = unreachable
        self.before_discover = before_discover
        self.calls: list[tuple[str, str]] = []

    def test_connection(self, site_url: str) -> None:
        self.calls.append(("test", site_url))
        if self.unreachable:
            raise DiscoveryUnreachable(self.unreachable)

    def discover(self, site_url: str) -> DiscoveredEndpointSet:
        self.calls.append(("discover", site_url))
        if self.before_discover is not None:
            self.before_discover()
        return self.endpoint_set


class FakeImporter(BaseImporter):
    """Writes canned items through the store; can block until released."""

    def __init__(self, store: ConnectionStore, items: dict[Role, list[dict[str, Any]]] | None = None):
        self.store = store
        self.items = items or {}
        self.error: str | None = None
        self.block = False
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: list[dict[str, Any]] = []

    def import_role(
        self,
        config: ConnectionConfig,
        role: Role,
        endpoint: str,
        *,
        extraction_mode: str,
        full: bool,
    ) -> ImportResult:
        self.calls.append({"role": role, "endpoint": endpoint, "full": full, "extraction_mode": extraction_mode})
        started = datetime.now(UTC)
        if self.block:
            self.started.set()
            self.release.wait(timeout=5)
        if self.error:
            raise SyncFailed(self.error)

        items = self.items.get(role, [])
        if full:
            count = self.store.replace_records(config.connection_id, role, items, extraction_mode=extraction_mode)
        else:
            self.store.upsert_records(config.connection_id, role, items, extraction_mode=extraction_mode)
            count = self.store.count_records(config.connection_id, role)
        return ImportResult(item_count=count, last_sync=started)


def record(remote_id: int, title: str) -> dict[str, Any]:
    return {
        "remote_id": str(remote_id),
        "slug": title.lower().replace(" ", "-"),
        "title": title,
        "link": f"https://example.com/{remote_id}",
        "modified_at": None,
        "payload": {"title": title},
    }
