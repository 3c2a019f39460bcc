"""Runtime wiring for WordPress connection components."""

import threading

from db.url import db_url
from pilot.wordpress.client import WordPressClient
from pilot.wordpress.config import load_wordpress_sync_config
from pilot.wordpress.discovery import BaseDiscoveryClient, WordPressDiscoveryClient
from pilot.wordpress.importer import BaseImporter, WordPressImporter
from pilot.wordpress.service import ConnectionService
from pilot.wordpress.store import ConnectionStore
from pilot.wordpress.sync import SyncRunner

_connection_store: ConnectionStore | None = None
_discovery_client: BaseDiscoveryClient | None = None
_importer: BaseImporter | None = None
_sync_runner: SyncRunner | None = None
_services: dict[str, ConnectionService] = {}
_services_lock = threading.Lock()


def _resolve_db_url(override: str | None = None) -> str:
    if override:
        return override
    if db_url:
        return db_url
    return "sqlite+pysqlite:///./pilot.db"


def get_connection_store(database_url: str | None = None) -> ConnectionStore:
    """Return process-wide connection store singleton."""
    if database_url is not None:
        return ConnectionStore(database_url=database_url)

    global _connection_store
    if _connection_store is None:
        _connection_store = ConnectionStore(database_url=_resolve_db_url())
    return _connection_store


def get_discovery_client() -> BaseDiscoveryClient:
    global _discovery_client
    if _discovery_client is None:
        _discovery_client = WordPressDiscoveryClient(client=WordPressClient())
    return _discovery_client


def get_sync_runner() -> SyncRunner:
    """Return process-wide sync runner; its per-role locks must be shared."""
    global _importer, _sync_runner
    if _sync_runner is None:
        store = get_connection_store()
        if _importer is None:
            _importer = WordPressImporter(store=store, client=WordPressClient())
        _sync_runner = SyncRunner(store=store, importer=_importer, config=load_wordpress_sync_config())
    return _sync_runner


def get_connection_service(connection_id: str, *, cache: bool = True) -> ConnectionService:
    """Return the workflow service for one connection, created on first use.

    With ``cache=False`` (read-only lookups) a service for an id that has no
    stored connection is built for the call and not kept.
    """
    with _services_lock:
        service = _services.get(connection_id)
        if service is None:
            service = ConnectionService(
                connection_id=connection_id,
                store=get_connection_store(),
                discovery=get_discovery_client(),
                runner=get_sync_runner(),
            )
            if cache or service.state.config is not None:
                _services[connection_id] = service
        return service


def configure_runtime(
    *,
    store: ConnectionStore | None = None,
    discovery: BaseDiscoveryClient | None = None,
    importer: BaseImporter | None = None,
) -> None:
    """Replace the collaborators and drop cached services (CLI flags, tests)."""
    global _connection_store, _discovery_client, _importer, _sync_runner
    with _services_lock:
        _connection_store = store
        _discovery_client = discovery
        _importer = importer
        _sync_runner = None
        _services.clear()
