"""Connection workflow as a pure state machine.

Each transition takes the current ``WorkflowState`` and returns a
``Transition`` holding the next state plus the side effects a driver must
run (connection test, discovery, persistence). Results of those effects are
fed back through ``connection_tested`` / ``endpoints_discovered`` /
``discovery_failed`` together with the generation they were started under;
a result from an older generation is reported as stale and changes nothing.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from pilot.wordpress.contracts import (
    ROLE_PREFIX,
    ConnectionConfig,
    ConnectionStep,
    DiscoveredEndpointSet,
    Role,
)
from pilot.wordpress.errors import (
    ConfirmationInvalid,
    ConnectionNotFound,
    DisconnectCascadeDenied,
    OperationInProgress,
)
from pilot.wordpress.mapping import can_confirm

PENDING_STEPS: frozenset[ConnectionStep] = frozenset({"testing", "discovering"})
EMPTY_DISCOVERY_NOTICE = (
    "No custom post types found. This site may not have the REST API enabled "
    "or no custom post types are registered."
)


@dataclass(frozen=True)
class CheckConnection:
    site_url: str
    generation: int


@dataclass(frozen=True)
class Discover:
    site_url: str
    generation: int


@dataclass(frozen=True)
class SaveMapping:
    config: ConnectionConfig


@dataclass(frozen=True)
class DeleteConnection:
    connection_id: str
    cascade: bool


Effect = CheckConnection | Discover | SaveMapping | DeleteConnection


@dataclass(frozen=True)
class WorkflowState:
    """Process-local workflow state for one connection."""

    connection_id: str
    step: ConnectionStep = "url_entry"
    site_url: str = ""
    config: ConnectionConfig | None = None
    endpoints: DiscoveredEndpointSet | None = None
    discovered_at: datetime | None = None
    selections: Mapping[Role, str | None] = field(default_factory=dict)
    generation: int = 0
    error: str | None = None
    notice: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.step in PENDING_STEPS


@dataclass(frozen=True)
class Transition:
    state: WorkflowState
    effects: tuple[Effect, ...] = ()
    stale: bool = False


def initial_state(connection_id: str, config: ConnectionConfig | None) -> WorkflowState:
    """Reconstruct the step from stored config: present means connected."""
    if config is None:
        return WorkflowState(connection_id=connection_id)
    return WorkflowState(
        connection_id=connection_id,
        step="connected",
        site_url=config.site_url,
        config=config,
    )


def submit(state: WorkflowState, site_url: str) -> Transition:
    """Start the connection test for a submitted URL."""
    _require_not_pending(state)
    if state.step != "url_entry":
        raise OperationInProgress(f"Cannot submit a site URL while {_describe(state.step)}.")

    url = site_url.strip()
    if not url:
        return Transition(state=replace(state, error="Enter a WordPress site URL."))

    generation = state.generation + 1
    next_state = replace(
        state,
        step="testing",
        site_url=url,
        endpoints=None,
        discovered_at=None,
        selections={},
        generation=generation,
        error=None,
        notice=None,
    )
    return Transition(state=next_state, effects=(CheckConnection(site_url=url, generation=generation),))


def connection_tested(state: WorkflowState, generation: int, error: str | None = None) -> Transition:
    """Continue to discovery, or return to URL entry with the failure message."""
    if state.step != "testing" or generation != state.generation:
        return Transition(state=state, stale=True)
    if error:
        return Transition(state=replace(state, step="url_entry", error=error))
    return Transition(
        state=replace(state, step="discovering"),
        effects=(Discover(site_url=state.site_url, generation=generation),),
    )


def endpoints_discovered(
    state: WorkflowState,
    generation: int,
    endpoint_set: DiscoveredEndpointSet,
    discovered_at: datetime | None = None,
) -> Transition:
    """Replace any previous set with this one and move to mapping."""
    if state.step != "discovering" or generation != state.generation:
        return Transition(state=state, stale=True)
    return Transition(
        state=replace(
            state,
            step="mapping",
            endpoints=endpoint_set,
            discovered_at=discovered_at or datetime.now(UTC),
            selections={},
            error=None,
            notice=EMPTY_DISCOVERY_NOTICE if endpoint_set.is_empty() else None,
        )
    )


def discovery_failed(state: WorkflowState, generation: int, error: str) -> Transition:
    if state.step != "discovering" or generation != state.generation:
        return Transition(state=state, stale=True)
    return Transition(state=replace(state, step="url_entry", error=error))


def select_endpoint(state: WorkflowState, role: Role, rest_base: str | None, *, skip: bool = False) -> Transition:
    """Record an explicit choice; ``skip`` means "don't sync", no rest_base clears the choice."""
    if state.step != "mapping" or state.endpoints is None:
        raise ConfirmationInvalid("Endpoints can only be selected while mapping.")

    selections = dict(state.selections)
    if skip:
        selections[role] = None
    elif rest_base is None:
        selections.pop(role, None)
    elif state.endpoints.contains(rest_base):
        selections[role] = rest_base
    else:
        raise ConfirmationInvalid(f"Endpoint {rest_base} was not discovered on this site.")
    return Transition(state=replace(state, selections=selections))


def cancel(state: WorkflowState) -> Transition:
    """Abandon discovery or mapping; stored config is left as it is.

    Cancelling URL entry opened by ``edit`` returns to the connected view.
    """
    if state.step == "url_entry" and state.config is not None:
        return Transition(
            state=replace(state, step="connected", site_url=state.config.site_url, error=None, notice=None)
        )
    if state.step not in {"testing", "discovering", "mapping"}:
        return Transition(state=state)
    return Transition(
        state=replace(
            state,
            step="url_entry",
            endpoints=None,
            discovered_at=None,
            selections={},
            generation=state.generation + 1,
            error=None,
            notice=None,
        )
    )


def confirm(
    state: WorkflowState,
    community_endpoint: str | None,
    property_endpoint: str | None,
    *,
    skip: Iterable[Role] = (),
    now: datetime | None = None,
) -> Transition:
    """Accept the mapping and emit the config to persist."""
    if state.step != "mapping" or state.endpoints is None:
        raise ConfirmationInvalid("There is no discovered mapping to confirm.")

    skipped = frozenset(skip)
    for endpoint in (community_endpoint, property_endpoint):
        if endpoint is not None and not state.endpoints.contains(endpoint):
            raise ConfirmationInvalid(f"Endpoint {endpoint} was not discovered on this site.")
    if not can_confirm(community_endpoint, property_endpoint, skipped=skipped):
        raise ConfirmationInvalid("Select an endpoint for at least one feed, or choose not to sync either.")

    config = _mapped_config(state, community_endpoint, property_endpoint, now or datetime.now(UTC))
    next_state = replace(
        state,
        step="connected",
        site_url=config.site_url,
        config=config,
        endpoints=None,
        discovered_at=None,
        selections={},
        error=None,
        notice=None,
    )
    return Transition(state=next_state, effects=(SaveMapping(config=config),))


def edit(state: WorkflowState) -> Transition:
    """Reopen URL entry with the stored URL; config is kept until re-confirm or disconnect."""
    _require_not_pending(state)
    if state.step != "connected" or state.config is None:
        return Transition(state=state)
    return Transition(
        state=replace(state, step="url_entry", site_url=state.config.site_url, error=None, notice=None)
    )


def disconnect(
    state: WorkflowState,
    *,
    delete_synced_data: bool,
    confirmation: str | None,
    expected_confirmation: str,
) -> Transition:
    """Drop the connection; cascading deletes need the typed confirmation word."""
    _require_not_pending(state)
    if state.step == "mapping":
        raise OperationInProgress("Confirm or cancel the endpoint mapping before disconnecting.")
    if state.config is None:
        raise ConnectionNotFound("This agent has no WordPress connection.")
    if delete_synced_data and (confirmation or "").strip() != expected_confirmation:
        raise DisconnectCascadeDenied(f'Type "{expected_confirmation}" to delete synced data.')

    next_state = WorkflowState(connection_id=state.connection_id, generation=state.generation + 1)
    return Transition(
        state=next_state,
        effects=(DeleteConnection(connection_id=state.connection_id, cascade=delete_synced_data),),
    )


def with_config(state: WorkflowState, config: ConnectionConfig | None) -> WorkflowState:
    """Refresh the stored config snapshot without touching the step."""
    return replace(state, config=config)


def _mapped_config(
    state: WorkflowState,
    community_endpoint: str | None,
    property_endpoint: str | None,
    now: datetime,
) -> ConnectionConfig:
    previous = state.config
    if previous is None:
        return ConnectionConfig(
            connection_id=state.connection_id,
            site_url=state.site_url,
            community_endpoint=community_endpoint,
            home_endpoint=property_endpoint,
            created_at=now,
            updated_at=now,
        )

    changes: dict = {
        "site_url": state.site_url,
        "community_endpoint": community_endpoint,
        "home_endpoint": property_endpoint,
        "updated_at": now,
    }
    site_changed = previous.site_url != state.site_url
    for prefix in ROLE_PREFIX.values():
        # Incremental cursors only hold for the same site and content type.
        if site_changed or getattr(previous, f"{prefix}_endpoint") != changes[f"{prefix}_endpoint"]:
            changes[f"{prefix}_last_sync"] = None
            changes[f"{prefix}_count"] = 0
            changes[f"{prefix}_last_error"] = None
    return previous.model_copy(update=changes)


def _require_not_pending(state: WorkflowState) -> None:
    if state.is_pending:
        raise OperationInProgress(f"Please wait, {_describe(state.step)}.")


def _describe(step: ConnectionStep) -> str:
    return {
        "url_entry": "entering a site URL",
        "testing": "testing the connection",
        "discovering": "discovering endpoints",
        "mapping": "mapping endpoints",
        "connected": "connected",
    }[step]
