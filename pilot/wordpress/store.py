"""Persistence layer for WordPress connections, sync history and synced records."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Connection,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    delete,
    desc,
    func,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from db.session import get_engine
from pilot.wordpress.contracts import ROLE_PREFIX, ConnectionConfig, Role, SyncInterval
from pilot.wordpress.errors import ConnectionNotFound, ConnectionStoreError

logger = logging.getLogger(__name__)

wordpress_metadata = MetaData()

connections = Table(
    "wordpress_connections",
    wordpress_metadata,
    Column("connection_id", String(128), primary_key=True),
    # Mapping group
    Column("site_url", Text, nullable=False),
    Column("community_endpoint", String(255), nullable=True),
    Column("home_endpoint", String(255), nullable=True),
    # Schedule group
    Column("community_sync_interval", String(16), nullable=False, default="manual"),
    Column("home_sync_interval", String(16), nullable=False, default="manual"),
    # Sync group
    Column("community_last_sync", DateTime(timezone=True), nullable=True),
    Column("home_last_sync", DateTime(timezone=True), nullable=True),
    Column("community_count", Integer, nullable=False, default=0),
    Column("home_count", Integer, nullable=False, default=0),
    Column("community_last_error", Text, nullable=True),
    Column("home_last_error", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

sync_runs = Table(
    "wordpress_sync_runs",
    wordpress_metadata,
    Column("run_id", String(64), primary_key=True),
    Column("connection_id", String(128), nullable=False, index=True),
    Column("role", String(16), nullable=False),
    Column("full_sync", Boolean, nullable=False, default=False),
    Column("extraction_mode", String(16), nullable=False),
    Column("status", String(16), nullable=False),
    Column("item_count", Integer, nullable=False, default=0),
    Column("error", Text, nullable=True),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True), nullable=True),
)

records = Table(
    "wordpress_records",
    wordpress_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("connection_id", String(128), nullable=False, index=True),
    Column("role", String(16), nullable=False),
    Column("remote_id", String(64), nullable=False),
    Column("slug", String(255), nullable=True),
    Column("title", Text, nullable=True),
    Column("link", Text, nullable=True),
    Column("modified_at", DateTime(timezone=True), nullable=True),
    Column("payload_json", Text, nullable=True),
    Column("extraction_mode", String(16), nullable=False),
    Column("synced_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("connection_id", "role", "remote_id", name="uq_wordpress_records_remote"),
)


class ConnectionStore:
    """Persistence API for connection config and sync bookkeeping.

    Config writes are split by field group (mapping, schedule, sync) so a
    finishing sync never overwrites an endpoint edit made meanwhile.
    """

    def __init__(self, database_url: str):
        self._engine = get_engine(database_url)
        self._schema_ready = False

    def ensure_schema(self) -> None:
        """Create WordPress tables if needed."""
        if self._schema_ready:
            return
        try:
            wordpress_metadata.create_all(self._engine, checkfirst=True)
            self._schema_ready = True
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to create WordPress tables: {exc}") from exc

    # -- connection config ---------------------------------------------------

    def load_connection_config(self, connection_id: str) -> ConnectionConfig | None:
        """Return the stored config, or None when the agent is not connected."""
        self.ensure_schema()
        stmt = select(connections).where(connections.c.connection_id == connection_id)
        try:
            with self._engine.begin() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to read connection {connection_id}: {exc}") from exc
        if row is None:
            return None
        return _config_from_row(row)

    def list_connection_configs(self) -> list[ConnectionConfig]:
        """Return every stored connection, oldest first."""
        self.ensure_schema()
        try:
            with self._engine.begin() as conn:
                rows = conn.execute(select(connections).order_by(connections.c.created_at)).mappings().all()
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to list connections: {exc}") from exc
        return [_config_from_row(row) for row in rows]

    def save_connection_config(self, config: ConnectionConfig) -> None:
        """Insert or fully overwrite one connection row."""
        self.ensure_schema()
        now = datetime.now(UTC)
        payload = config.model_dump()
        payload["created_at"] = config.created_at or now
        payload["updated_at"] = now
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    connections.update()
                    .where(connections.c.connection_id == config.connection_id)
                    .values(**{k: v for k, v in payload.items() if k != "created_at"})
                )
                if result.rowcount == 0:
                    conn.execute(insert(connections).values(**payload))
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to save connection: {exc}") from exc

    def save_mapping(self, config: ConnectionConfig) -> None:
        """Write the mapping group; inserts the row on first confirmation.

        A new site URL drops every synced record and resets sync bookkeeping
        for both roles. A changed endpoint does the same for its role only,
        so the next quick sync starts from scratch.
        """
        self.ensure_schema()
        now = datetime.now(UTC)
        try:
            with self._engine.begin() as conn:
                stored = (
                    conn.execute(
                        select(connections.c.site_url, connections.c.community_endpoint, connections.c.home_endpoint)
                        .where(connections.c.connection_id == config.connection_id)
                    )
                    .mappings()
                    .first()
                )
                if stored is None:
                    payload = config.model_dump()
                    payload["created_at"] = config.created_at or now
                    payload["updated_at"] = now
                    conn.execute(insert(connections).values(**payload))
                    return

                values: dict[str, Any] = {
                    "site_url": config.site_url,
                    "community_endpoint": config.community_endpoint,
                    "home_endpoint": config.home_endpoint,
                    "updated_at": now,
                }
                if stored["site_url"] != config.site_url:
                    changed_roles = list(ROLE_PREFIX)
                else:
                    changed_roles = [
                        role
                        for role, prefix in ROLE_PREFIX.items()
                        if stored[f"{prefix}_endpoint"] != values[f"{prefix}_endpoint"]
                    ]
                for role in changed_roles:
                    values.update(_reset_role_values(role))
                    _delete_role_records(conn, config.connection_id, role)
                conn.execute(
                    connections.update().where(connections.c.connection_id == config.connection_id).values(**values)
                )
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to save mapping: {exc}") from exc
        if changed_roles:
            logger.info("Reset %s sync state for connection %s", ", ".join(changed_roles), config.connection_id)

    def update_endpoint(self, connection_id: str, role: Role, rest_base: str | None) -> None:
        """Change one role's endpoint (mapping group).

        Switching to another content type also clears that role's records and
        sync bookkeeping in the same transaction.
        """
        self.ensure_schema()
        column = f"{ROLE_PREFIX[role]}_endpoint"
        try:
            with self._engine.begin() as conn:
                current = conn.execute(
                    select(connections.c[column]).where(connections.c.connection_id == connection_id)
                ).first()
                if current is None:
                    raise ConnectionStoreError(f"Connection {connection_id} not found")
                values: dict[str, Any] = {column: rest_base, "updated_at": datetime.now(UTC)}
                if current[0] != rest_base:
                    values.update(_reset_role_values(role))
                    _delete_role_records(conn, connection_id, role)
                conn.execute(connections.update().where(connections.c.connection_id == connection_id).values(**values))
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to update endpoint: {exc}") from exc

    def save_schedule(self, connection_id: str, role: Role, interval: SyncInterval) -> None:
        """Change one role's sync interval (schedule group)."""
        self._update_columns(
            connection_id,
            {f"{ROLE_PREFIX[role]}_sync_interval": interval},
            action="update sync interval",
        )

    def record_sync(self, connection_id: str, role: Role, *, last_sync: datetime, count: int) -> None:
        """Store a successful sync (sync group)."""
        prefix = ROLE_PREFIX[role]
        self._update_columns(
            connection_id,
            {
                f"{prefix}_last_sync": last_sync,
                f"{prefix}_count": count,
                f"{prefix}_last_error": None,
            },
            action="record sync",
        )

    def record_sync_failure(self, connection_id: str, role: Role, error: str) -> None:
        """Store a failed sync for this role only (sync group)."""
        self._update_columns(
            connection_id,
            {f"{ROLE_PREFIX[role]}_last_error": error[:2000]},
            action="record sync failure",
        )

    def delete_connection_config(self, connection_id: str, cascade_delete: bool) -> int:
        """Remove the connection; with cascade also its synced records. Returns deleted record count."""
        self.ensure_schema()
        deleted_records = 0
        try:
            with self._engine.begin() as conn:
                if cascade_delete:
                    deleted_records = conn.execute(
                        delete(records).where(records.c.connection_id == connection_id)
                    ).rowcount or 0
                    conn.execute(delete(sync_runs).where(sync_runs.c.connection_id == connection_id))
                conn.execute(delete(connections).where(connections.c.connection_id == connection_id))
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to delete connection: {exc}") from exc
        if cascade_delete:
            logger.info("Deleted %d synced records for connection %s", deleted_records, connection_id)
        return deleted_records

    # -- sync history --------------------------------------------------------

    def create_sync_run(
        self,
        *,
        run_id: str,
        connection_id: str,
        role: Role,
        full: bool,
        extraction_mode: str,
    ) -> None:
        """Insert a running sync attempt."""
        self.ensure_schema()
        payload = {
            "run_id": run_id,
            "connection_id": connection_id,
            "role": role,
            "full_sync": full,
            "extraction_mode": extraction_mode,
            "status": "running",
            "item_count": 0,
            "started_at": datetime.now(UTC),
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(sync_runs).values(**payload))
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to create sync run: {exc}") from exc

    def finalize_sync_run(self, *, run_id: str, status: str, item_count: int = 0, error: str | None = None) -> None:
        """Complete a sync attempt."""
        self.ensure_schema()
        values = {
            "status": status,
            "item_count": item_count,
            "error": error,
            "finished_at": datetime.now(UTC),
        }
        try:
            with self._engine.begin() as conn:
                result = conn.execute(sync_runs.update().where(sync_runs.c.run_id == run_id).values(**values))
                if result.rowcount == 0:
                    raise ConnectionStoreError(f"Sync run {run_id} not found")
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to finalize sync run: {exc}") from exc

    def list_sync_runs(self, connection_id: str, *, role: Role | None = None, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent sync attempts first."""
        self.ensure_schema()
        stmt = select(sync_runs).where(sync_runs.c.connection_id == connection_id)
        if role is not None:
            stmt = stmt.where(sync_runs.c.role == role)
        stmt = stmt.order_by(desc(sync_runs.c.started_at)).limit(limit)
        try:
            with self._engine.begin() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings().all()]
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to list sync runs: {exc}") from exc

    # -- synced records ------------------------------------------------------

    def upsert_records(
        self,
        connection_id: str,
        role: Role,
        items: list[dict[str, Any]],
        *,
        extraction_mode: str,
    ) -> tuple[int, int]:
        """Insert new and update changed records. Returns (created, updated)."""
        self.ensure_schema()
        now = datetime.now(UTC)
        created = 0
        updated = 0
        try:
            with self._engine.begin() as conn:
                _require_connection(conn, connection_id)
                for item in items:
                    values = _record_values(item, extraction_mode=extraction_mode, synced_at=now)
                    result = conn.execute(
                        records.update()
                        .where(
                            and_(
                                records.c.connection_id == connection_id,
                                records.c.role == role,
                                records.c.remote_id == values["remote_id"],
                            )
                        )
                        .values(**values)
                    )
                    if result.rowcount == 0:
                        conn.execute(insert(records).values(connection_id=connection_id, role=role, **values))
                        created += 1
                    else:
                        updated += 1
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to upsert records: {exc}") from exc
        return created, updated

    def replace_records(
        self,
        connection_id: str,
        role: Role,
        items: list[dict[str, Any]],
        *,
        extraction_mode: str,
    ) -> int:
        """Drop all records for the role and insert ``items`` in one transaction."""
        self.ensure_schema()
        now = datetime.now(UTC)
        try:
            with self._engine.begin() as conn:
                _require_connection(conn, connection_id)
                _delete_role_records(conn, connection_id, role)
                rows = [
                    {
                        "connection_id": connection_id,
                        "role": role,
                        **_record_values(item, extraction_mode=extraction_mode, synced_at=now),
                    }
                    for item in items
                ]
                if rows:
                    conn.execute(insert(records), rows)
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to replace records: {exc}") from exc
        return len(items)

    def count_records(self, connection_id: str, role: Role | None = None) -> int:
        self.ensure_schema()
        stmt = select(func.count()).select_from(records).where(records.c.connection_id == connection_id)
        if role is not None:
            stmt = stmt.where(records.c.role == role)
        try:
            with self._engine.begin() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to count records: {exc}") from exc

    def list_records(self, connection_id: str, role: Role, *, limit: int = 100) -> list[dict[str, Any]]:
        """Return synced records with decoded payloads."""
        self.ensure_schema()
        stmt = (
            select(records)
            .where(and_(records.c.connection_id == connection_id, records.c.role == role))
            .order_by(records.c.remote_id)
            .limit(limit)
        )
        try:
            with self._engine.begin() as conn:
                rows = conn.execute(stmt).mappings().all()
            result: list[dict[str, Any]] = []
            for row in rows:
                data = dict(row)
                raw_payload = data.pop("payload_json", None)
                data["payload"] = json.loads(raw_payload) if raw_payload else {}
                result.append(data)
            return result
        except (SQLAlchemyError, json.JSONDecodeError) as exc:
            raise ConnectionStoreError(f"Failed to list records: {exc}") from exc

    def _update_columns(self, connection_id: str, values: dict[str, Any], *, action: str) -> None:
        self.ensure_schema()
        values = {**values, "updated_at": datetime.now(UTC)}
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    connections.update().where(connections.c.connection_id == connection_id).values(**values)
                )
        except SQLAlchemyError as exc:
            raise ConnectionStoreError(f"Failed to {action}: {exc}") from exc
        if result.rowcount == 0:
            raise ConnectionStoreError(f"Connection {connection_id} not found")


def _config_from_row(row: Any) -> ConnectionConfig:
    data = dict(row)
    for key, value in data.items():
        if isinstance(value, datetime) and value.tzinfo is None:
            data[key] = value.replace(tzinfo=UTC)
    return ConnectionConfig.model_validate(data)


def _reset_role_values(role: Role) -> dict[str, Any]:
    prefix = ROLE_PREFIX[role]
    return {f"{prefix}_last_sync": None, f"{prefix}_count": 0, f"{prefix}_last_error": None}


def _delete_role_records(conn: Connection, connection_id: str, role: Role) -> int:
    result = conn.execute(delete(records).where(and_(records.c.connection_id == connection_id, records.c.role == role)))
    return result.rowcount or 0


def _require_connection(conn: Connection, connection_id: str) -> None:
    exists = conn.execute(
        select(connections.c.connection_id).where(connections.c.connection_id == connection_id)
    ).first()
    if exists is None:
        raise ConnectionNotFound(f"Connection {connection_id} was removed; synced records were not written.")


def _record_values(item: dict[str, Any], *, extraction_mode: str, synced_at: datetime) -> dict[str, Any]:
    return {
        "remote_id": str(item["remote_id"]),
        "slug": item.get("slug"),
        "title": item.get("title"),
        "link": item.get("link"),
        "modified_at": item.get("modified_at"),
        "payload_json": json.dumps(item.get("payload", {}), default=str),
        "extraction_mode": extraction_mode,
        "synced_at": synced_at,
    }
