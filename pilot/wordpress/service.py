"""Connection service: runs workflow transitions and their side effects."""

import logging
import re
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from pilot.wordpress import workflow
from pilot.wordpress.client import normalize_site_url
from pilot.wordpress.config import WordPressSyncConfig, load_wordpress_sync_config
from pilot.wordpress.contracts import (
    ROLES,
    ConfirmMappingResponse,
    ConnectionStatusResponse,
    DisconnectResponse,
    MappingResponse,
    Role,
    RoleMappingOut,
    RoleSyncStatus,
    ScoredCandidateOut,
    SyncRoleResponse,
    parse_sync_interval,
)
from pilot.wordpress.discovery import BaseDiscoveryClient
from pilot.wordpress.errors import (
    ConfirmationInvalid,
    ConnectionNotFound,
    DiscoveryUnreachable,
)
from pilot.wordpress.mapping import CONFLICT_WARNING, RoleMapping, resolve_mapping
from pilot.wordpress.schedule import format_last_sync, next_due
from pilot.wordpress.store import ConnectionStore
from pilot.wordpress.sync import ROLE_LABELS, SyncRunner
from pilot.wordpress.workflow import (
    CheckConnection,
    DeleteConnection,
    Discover,
    Effect,
    SaveMapping,
    Transition,
    WorkflowState,
)

logger = logging.getLogger(__name__)

_REST_BASE_PATTERN = re.compile(r"^[a-z0-9_-]+$", flags=re.IGNORECASE)


class ConnectionService:
    """Operations for one agent's WordPress connection.

    State changes happen under a short lock; network calls run outside it.
    While a test or discovery is pending every other workflow operation is
    rejected with ``OperationInProgress``, except cancel.
    """

    def __init__(
        self,
        connection_id: str,
        store: ConnectionStore,
        discovery: BaseDiscoveryClient,
        runner: SyncRunner,
        config: WordPressSyncConfig | None = None,
    ):
        self._connection_id = connection_id
        self._store = store
        self._discovery = discovery
        self._runner = runner
        self._config = config or load_wordpress_sync_config()
        self._lock = threading.Lock()
        self._state = workflow.initial_state(connection_id, store.load_connection_config(connection_id))

    @property
    def state(self) -> WorkflowState:
        return self._state

    # -- workflow ------------------------------------------------------------

    def submit_url(self, url: str) -> ConnectionStatusResponse:
        """Test the site, discover its endpoints and move to mapping."""
        effects = self._apply(lambda state: workflow.submit(state, normalize_site_url(url)))
        while effects:
            effect, *rest = effects
            effects = [*self._run_network_effect(effect), *rest]
        return self.status()

    def select_endpoint(self, role: Role, rest_base: str | None, *, skip: bool = False) -> MappingResponse:
        self._apply(lambda state: workflow.select_endpoint(state, role, rest_base, skip=skip))
        return self.mapping_view()

    def mapping_view(self) -> MappingResponse:
        state = self._state
        response = MappingResponse(
            connection_id=state.connection_id,
            step=state.step,
            site_url=state.site_url,
            notice=state.notice,
            discovered_at=state.discovered_at,
        )
        if state.step != "mapping" or state.endpoints is None:
            return response

        view = resolve_mapping(state.endpoints, state.selections)
        response.community = _role_mapping_out(view.roles["community"])
        response.property = _role_mapping_out(view.roles["property"])
        response.conflict = view.conflict
        response.warnings = list(view.warnings)
        response.can_confirm = view.can_confirm
        return response

    def confirm_mapping(
        self,
        community_endpoint: str | None,
        property_endpoint: str | None,
        skip: Iterable[Role] = (),
    ) -> ConfirmMappingResponse:
        """Persist the mapping; the workflow stays in mapping if the write fails."""
        skipped = frozenset(skip)
        with self._runner.paused(self._connection_id), self._lock:
            transition = workflow.confirm(self._state, community_endpoint, property_endpoint, skip=skipped)
            self._run_storage_effects(transition.effects)
            stored = self._store.load_connection_config(self._connection_id)
            self._state = workflow.with_config(transition.state, stored or transition.state.config)

        config = self._state.config
        conflict = config is not None and config.has_conflict()
        logger.info(
            "Connection %s mapped %s: community=%s property=%s",
            self._connection_id,
            self._state.site_url,
            community_endpoint or "-",
            property_endpoint or "-",
        )
        return ConfirmMappingResponse(
            accepted=True,
            conflict=conflict,
            warnings=[CONFLICT_WARNING] if conflict else [],
            status=self.status(),
        )

    def confirm_selection(self) -> ConfirmMappingResponse:
        """Confirm the effective selection shown by ``mapping_view``, skipped feeds included."""
        view = self.mapping_view()
        if view.community is None or view.property is None:
            raise ConfirmationInvalid("There is no discovered mapping to confirm.")
        skip = [mapping.role for mapping in (view.community, view.property) if mapping.skipped]
        return self.confirm_mapping(view.community.effective, view.property.effective, skip=skip)

    def cancel_mapping(self) -> ConnectionStatusResponse:
        self._apply(workflow.cancel)
        return self.status()

    def edit_connection(self) -> ConnectionStatusResponse:
        self._apply(workflow.edit)
        return self.status()

    def disconnect(self, delete_synced_data: bool = False, confirmation: str | None = None) -> DisconnectResponse:
        """Remove the stored config; synced records only go with the typed confirmation.

        Rejected with ``SyncInProgress`` while either feed is syncing.
        """
        with self._runner.paused(self._connection_id), self._lock:
            transition = workflow.disconnect(
                self._state,
                delete_synced_data=delete_synced_data,
                confirmation=confirmation,
                expected_confirmation=self._config.disconnect_confirmation,
            )
            deleted = self._run_storage_effects(transition.effects)
            self._state = transition.state

        logger.info(
            "Disconnected %s (synced data %s, %d records removed)",
            self._connection_id,
            "deleted" if delete_synced_data else "kept",
            deleted,
        )
        return DisconnectResponse(accepted=True, deleted_records=deleted, status=self.status())

    # -- connected settings --------------------------------------------------

    def update_endpoint(self, role: Role, rest_base: str | None) -> ConnectionStatusResponse:
        """Point one role at a different content type; empty clears it."""
        value = (rest_base or "").strip().strip("/") or None
        if value is not None and not _REST_BASE_PATTERN.match(value):
            raise ConfirmationInvalid(f"{rest_base} is not a valid REST endpoint name.")
        with self._runner.paused(self._connection_id), self._lock:
            self._require_config()
            self._store.update_endpoint(self._connection_id, role, value)
            self._reload_config()
        return self.status()

    def update_sync_interval(self, role: Role, interval: str) -> ConnectionStatusResponse:
        try:
            value = parse_sync_interval(interval)
        except ValueError as exc:
            raise ConfirmationInvalid(str(exc)) from exc
        with self._lock:
            self._require_config()
            self._store.save_schedule(self._connection_id, role, value)
            self._reload_config()
        return self.status()

    def trigger_sync(self, role: Role, full: bool = False, extraction_mode: str | None = None) -> SyncRoleResponse:
        """Manual quick sync or full resync; rejected while the same role is syncing."""
        self._require_config()
        try:
            outcome = self._runner.run(self._connection_id, role, full=full, extraction_mode=extraction_mode)
        finally:
            with self._lock:
                self._reload_config()

        label = ROLE_LABELS[role]
        verb = "Resynced" if full else "Synced"
        return SyncRoleResponse(
            run_id=outcome.run_id,
            role=role,
            accepted=True,
            full=full,
            item_count=outcome.item_count,
            last_sync=outcome.last_sync,
            message=f"{verb} {outcome.item_count} {label.lower()}.",
        )

    def status(self) -> ConnectionStatusResponse:
        """Current step plus per-feed sync state read fresh from the store."""
        with self._lock:
            self._reload_config()
            state = self._state
        config = state.config
        now = datetime.now(UTC)
        roles: list[RoleSyncStatus] = []
        if config is not None:
            for role in ROLES:
                last_sync = config.last_sync_for(role)
                interval = config.interval_for(role)
                roles.append(
                    RoleSyncStatus(
                        role=role,
                        endpoint=config.endpoint_for(role),
                        interval=interval,
                        last_sync=last_sync,
                        last_sync_label=format_last_sync(last_sync, now),
                        next_due=next_due(last_sync, interval, now) if config.endpoint_for(role) else None,
                        count=config.count_for(role),
                        last_error=config.last_error_for(role),
                        syncing=self._runner.is_running(self._connection_id, role),
                    )
                )
        return ConnectionStatusResponse(
            connection_id=state.connection_id,
            step=state.step,
            site_url=state.site_url,
            connected=config is not None,
            error=state.error,
            notice=state.notice,
            conflict=config is not None and config.has_conflict(),
            roles=roles,
        )

    # -- effects -------------------------------------------------------------

    def _apply(self, step: Callable[[WorkflowState], Transition]) -> list[Effect]:
        return list(self._transition(step).effects)

    def _transition(self, step: Callable[[WorkflowState], Transition]) -> Transition:
        with self._lock:
            transition = step(self._state)
            if transition.stale:
                logger.debug("Discarded stale result for %s", self._connection_id)
                return Transition(state=self._state, stale=True)
            self._state = transition.state
            return transition

    def _run_network_effect(self, effect: Effect) -> list[Effect]:
        """Run a connection test or discovery and feed the result back.

        A failure from a cancelled or superseded attempt is dropped silently.
        """
        if not isinstance(effect, (CheckConnection, Discover)):
            raise TypeError(f"Unsupported workflow effect: {effect!r}")

        generation = effect.generation
        try:
            if isinstance(effect, CheckConnection):
                self._discovery.test_connection(effect.site_url)
                return self._apply(lambda state: workflow.connection_tested(state, generation))
            endpoint_set = self._discovery.discover(effect.site_url)
            return self._apply(lambda state: workflow.endpoints_discovered(state, generation, endpoint_set))
        except DiscoveryUnreachable as exc:
            if self._fail_pending(effect, str(exc)):
                raise
            return []
        except Exception:
            self._fail_pending(effect, "Unexpected error while contacting the site.")
            raise

    def _fail_pending(self, effect: CheckConnection | Discover, message: str) -> bool:
        if isinstance(effect, CheckConnection):
            transition = self._transition(lambda state: workflow.connection_tested(state, effect.generation, message))
        else:
            transition = self._transition(lambda state: workflow.discovery_failed(state, effect.generation, message))
        if not transition.stale:
            logger.warning("WordPress %s failed for %s: %s", type(effect).__name__, effect.site_url, message)
        return not transition.stale

    def _run_storage_effects(self, effects: Iterable[Effect]) -> int:
        deleted = 0
        for effect in effects:
            if isinstance(effect, SaveMapping):
                self._store.save_mapping(effect.config)
            elif isinstance(effect, DeleteConnection):
                deleted += self._store.delete_connection_config(effect.connection_id, cascade_delete=effect.cascade)
            else:
                raise TypeError(f"Unsupported workflow effect: {effect!r}")
        return deleted

    def _require_config(self) -> None:
        if self._state.config is None:
            raise ConnectionNotFound("This agent has no WordPress connection.")

    def _reload_config(self) -> None:
        config = self._store.load_connection_config(self._connection_id)
        if config is None and self._state.step == "connected":
            # Removed by another process.
            self._state = workflow.initial_state(self._connection_id, None)
            return
        self._state = workflow.with_config(self._state, config)


def _role_mapping_out(mapping: RoleMapping) -> RoleMappingOut:
    return RoleMappingOut(
        role=mapping.role,
        candidates=[
            ScoredCandidateOut(
                rest_base=candidate.endpoint.rest_base,
                display_name=candidate.endpoint.display_name,
                classification=candidate.endpoint.classification,
                confidence=candidate.confidence,
                band=candidate.band,
                classified_as_other_role=candidate.classified_as_other_role,
                signals=candidate.endpoint.signals,
                approximate_post_count=candidate.endpoint.approximate_post_count,
            )
            for candidate in mapping.candidates
        ],
        suggested=mapping.suggested,
        effective=mapping.effective,
        skipped=mapping.skipped,
    )
