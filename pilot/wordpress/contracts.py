"""Domain records and API contracts for the WordPress data source."""

from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field


Role = Literal["community", "property"]
Classification = Literal["community", "home", "unknown"]
ConnectionStep = Literal["url_entry", "testing", "discovering", "mapping", "connected"]
SyncInterval = Literal[
    "manual",
    "hourly_1",
    "hourly_2",
    "hourly_3",
    "hourly_4",
    "hourly_6",
    "hourly_8",
    "hourly_12",
    "daily",
]
ExtractionMode = Literal["standard", "ai"]
SyncRunStatus = Literal["running", "success", "failed"]

ROLES: tuple[Role, ...] = ("community", "property")

SYNC_INTERVAL_OPTIONS: tuple[tuple[SyncInterval, str], ...] = (
    ("manual", "Manual only"),
    ("hourly_1", "Every hour"),
    ("hourly_2", "Every 2 hours"),
    ("hourly_3", "Every 3 hours"),
    ("hourly_4", "Every 4 hours"),
    ("hourly_6", "Every 6 hours"),
    ("hourly_8", "Every 8 hours"),
    ("hourly_12", "Every 12 hours"),
    ("daily", "Daily"),
)

# Stored column prefix per role; the property feed is persisted as "home".
ROLE_PREFIX: dict[Role, str] = {"community": "community", "property": "home"}

_ROLE_ALIASES: dict[str, Role] = {
    "community": "community",
    "communities": "community",
    "property": "property",
    "properties": "property",
    "home": "property",
    "homes": "property",
}


def parse_role(value: str) -> Role:
    """Normalize a role name, accepting the legacy "home" spelling."""
    role = _ROLE_ALIASES.get(value.strip().lower())
    if role is None:
        raise ValueError(f"Unknown role: {value}")
    return role


def parse_sync_interval(value: str) -> SyncInterval:
    """Validate a sync interval value."""
    normalized = value.strip().lower()
    for option, _label in SYNC_INTERVAL_OPTIONS:
        if option == normalized:
            return option
    raise ValueError(f"Unknown sync interval: {value}")


class DiscoveredEndpoint(BaseModel):
    """One custom content type exposed by the remote REST API."""

    slug: str
    display_name: str
    rest_base: str = Field(min_length=1)
    classification: Classification | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    signals: list[str] = Field(default_factory=list)
    approximate_post_count: int | None = Field(default=None, ge=0)


class DiscoveredEndpointSet(BaseModel):
    """Discovery output grouped by the collaborator's global classification."""

    community_endpoints: list[DiscoveredEndpoint] = Field(default_factory=list)
    home_endpoints: list[DiscoveredEndpoint] = Field(default_factory=list)
    unclassified_endpoints: list[DiscoveredEndpoint] = Field(default_factory=list)

    def candidates(self) -> list[DiscoveredEndpoint]:
        """Full candidate pool in discovery order, deduplicated by rest_base."""
        seen: set[str] = set()
        pool: list[DiscoveredEndpoint] = []
        for endpoint in [*self.community_endpoints, *self.home_endpoints, *self.unclassified_endpoints]:
            if endpoint.rest_base in seen:
                continue
            seen.add(endpoint.rest_base)
            pool.append(endpoint)
        return pool

    def is_empty(self) -> bool:
        return not (self.community_endpoints or self.home_endpoints or self.unclassified_endpoints)

    def contains(self, rest_base: str) -> bool:
        return any(endpoint.rest_base == rest_base for endpoint in self.candidates())


class ConnectionConfig(BaseModel):
    """Persisted WordPress connection for one agent."""

    connection_id: str = Field(min_length=1, max_length=128)
    site_url: str = Field(min_length=1)
    community_endpoint: str | None = None
    home_endpoint: str | None = None
    community_sync_interval: SyncInterval = "manual"
    home_sync_interval: SyncInterval = "manual"
    community_last_sync: datetime | None = None
    home_last_sync: datetime | None = None
    community_count: int = Field(default=0, ge=0)
    home_count: int = Field(default=0, ge=0)
    community_last_error: str | None = None
    home_last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def endpoint_for(self, role: Role) -> str | None:
        return getattr(self, f"{ROLE_PREFIX[role]}_endpoint")

    def interval_for(self, role: Role) -> SyncInterval:
        return getattr(self, f"{ROLE_PREFIX[role]}_sync_interval")

    def last_sync_for(self, role: Role) -> datetime | None:
        return getattr(self, f"{ROLE_PREFIX[role]}_last_sync")

    def count_for(self, role: Role) -> int:
        return getattr(self, f"{ROLE_PREFIX[role]}_count")

    def last_error_for(self, role: Role) -> str | None:
        return getattr(self, f"{ROLE_PREFIX[role]}_last_error")

    def has_conflict(self) -> bool:
        """True when both roles import the same remote content type."""
        return bool(self.community_endpoint) and self.community_endpoint == self.home_endpoint


class ScoredCandidateOut(BaseModel):
    """One ranked candidate for a role."""

    rest_base: str
    display_name: str
    classification: Classification | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    band: str
    classified_as_other_role: bool = False
    signals: list[str] = Field(default_factory=list)
    approximate_post_count: int | None = None


class RoleMappingOut(BaseModel):
    """Ranked candidates and current choice for one role."""

    role: Role
    candidates: list[ScoredCandidateOut] = Field(default_factory=list)
    suggested: str | None = None
    effective: str | None = None
    skipped: bool = False


class MappingResponse(BaseModel):
    """Mapping step payload."""

    connection_id: str
    step: ConnectionStep
    site_url: str
    notice: str | None = None
    community: RoleMappingOut | None = None
    property: RoleMappingOut | None = None
    conflict: bool = False
    warnings: list[str] = Field(default_factory=list)
    can_confirm: bool = False
    discovered_at: datetime | None = None


class RoleSyncStatus(BaseModel):
    """Schedule and last-sync bookkeeping for one role."""

    role: Role
    endpoint: str | None = None
    interval: SyncInterval
    last_sync: datetime | None = None
    last_sync_label: str
    next_due: datetime | None = None
    count: int = 0
    last_error: str | None = None
    syncing: bool = False


class ConnectionStatusResponse(BaseModel):
    """Current workflow step and stored configuration."""

    connection_id: str
    step: ConnectionStep
    site_url: str = ""
    connected: bool
    error: str | None = None
    notice: str | None = None
    conflict: bool = False
    roles: list[RoleSyncStatus] = Field(default_factory=list)


class SubmitUrlRequest(BaseModel):
    """Site URL submitted for discovery."""

    url: str = Field(min_length=1, max_length=2048)


class SelectEndpointRequest(BaseModel):
    """Explicit operator choice for one role while mapping."""

    role: str
    rest_base: str | None = None
    skip: bool = False


class ConfirmMappingRequest(BaseModel):
    """Mapping confirmation payload; an empty body confirms the selection made through ``select``."""

    community_endpoint: str | None = None
    property_endpoint: str | None = None
    skip: list[str] = Field(default_factory=list)


class ConfirmMappingResponse(BaseModel):
    """Result of a confirmed mapping."""

    accepted: bool
    conflict: bool = False
    warnings: list[str] = Field(default_factory=list)
    status: ConnectionStatusResponse


class UpdateEndpointRequest(BaseModel):
    """Manual endpoint override for a connected site."""

    rest_base: str | None = Field(default=None, max_length=255)


class UpdateIntervalRequest(BaseModel):
    """Sync cadence change for one role."""

    interval: SyncInterval


class TriggerSyncRequest(BaseModel):
    """Manual quick sync or full resync request."""

    full: bool = False
    extraction_mode: ExtractionMode | None = None


class SyncRoleResponse(BaseModel):
    """Outcome of one role sync."""

    run_id: str = Field(default_factory=lambda: str(uuid4()))
    role: Role
    accepted: bool
    full: bool = False
    item_count: int = 0
    last_sync: datetime | None = None
    message: str


class DisconnectRequest(BaseModel):
    """Disconnect payload; cascade requires the typed confirmation word."""

    delete_synced_data: bool = False
    confirmation: str | None = Field(default=None, max_length=64)


class DisconnectResponse(BaseModel):
    accepted: bool
    deleted_records: int = 0
    status: ConnectionStatusResponse


class SyncIntervalOption(BaseModel):
    value: SyncInterval
    label: str


class ScheduledSyncResponse(BaseModel):
    """Summary of one pass over all connections."""

    success: bool
    community_syncs: int = 0
    property_syncs: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
