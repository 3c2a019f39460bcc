"""FastAPI router for WordPress connection endpoints."""

from fastapi import APIRouter, HTTPException, status

from pilot.wordpress.contracts import (
    SYNC_INTERVAL_OPTIONS,
    ConfirmMappingRequest,
    ConfirmMappingResponse,
    ConnectionStatusResponse,
    DisconnectRequest,
    DisconnectResponse,
    MappingResponse,
    Role,
    ScheduledSyncResponse,
    SelectEndpointRequest,
    SubmitUrlRequest,
    SyncIntervalOption,
    SyncRoleResponse,
    TriggerSyncRequest,
    UpdateEndpointRequest,
    UpdateIntervalRequest,
    parse_role,
)
from pilot.wordpress.errors import (
    ConfirmationInvalid,
    ConnectionNotFound,
    ConnectionStoreError,
    DisconnectCascadeDenied,
    DiscoveryUnreachable,
    OperationInProgress,
    SyncFailed,
    SyncInProgress,
    WordPressSyncError,
)
from pilot.wordpress.runtime import get_connection_service, get_sync_runner

wordpress_router = APIRouter(prefix="/v1/wordpress", tags=["wordpress"])

_STATUS_BY_ERROR: tuple[tuple[type[WordPressSyncError], int], ...] = (
    (ConnectionNotFound, status.HTTP_404_NOT_FOUND),
    (OperationInProgress, status.HTTP_409_CONFLICT),
    (SyncInProgress, status.HTTP_409_CONFLICT),
    (ConfirmationInvalid, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (DisconnectCascadeDenied, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (DiscoveryUnreachable, status.HTTP_502_BAD_GATEWAY),
    (SyncFailed, status.HTTP_502_BAD_GATEWAY),
    (ConnectionStoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def _http_error(exc: WordPressSyncError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _role(value: str) -> Role:
    try:
        return parse_role(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@wordpress_router.get("/intervals", response_model=list[SyncIntervalOption])
def sync_intervals() -> list[SyncIntervalOption]:
    """List the selectable sync cadences."""
    return [SyncIntervalOption(value=value, label=label) for value, label in SYNC_INTERVAL_OPTIONS]


@wordpress_router.post("/scheduled-sync", response_model=ScheduledSyncResponse)
def scheduled_sync() -> ScheduledSyncResponse:
    """Sync every due feed across all connections once."""
    try:
        summary = get_sync_runner().run_due()
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc

    return ScheduledSyncResponse(
        success=not summary.errors,
        community_syncs=summary.community_syncs,
        property_syncs=summary.property_syncs,
        skipped=summary.skipped,
        errors=summary.errors,
        duration_ms=summary.duration_ms,
    )


@wordpress_router.get("/connections/{connection_id}", response_model=ConnectionStatusResponse)
def connection_status(connection_id: str) -> ConnectionStatusResponse:
    """Return workflow step, mapping and per-feed sync status."""
    try:
        return get_connection_service(connection_id, cache=False).status()
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/submit", response_model=ConnectionStatusResponse)
def submit_url(connection_id: str, payload: SubmitUrlRequest) -> ConnectionStatusResponse:
    """Test the site and discover its content types."""
    try:
        return get_connection_service(connection_id).submit_url(payload.url)
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.get("/connections/{connection_id}/mapping", response_model=MappingResponse)
def mapping(connection_id: str) -> MappingResponse:
    try:
        return get_connection_service(connection_id, cache=False).mapping_view()
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/mapping/select", response_model=MappingResponse)
def select_endpoint(connection_id: str, payload: SelectEndpointRequest) -> MappingResponse:
    role = _role(payload.role)
    try:
        return get_connection_service(connection_id).select_endpoint(role, payload.rest_base, skip=payload.skip)
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/mapping/confirm", response_model=ConfirmMappingResponse)
def confirm_mapping(connection_id: str, payload: ConfirmMappingRequest) -> ConfirmMappingResponse:
    """Accept the endpoint mapping and store the connection."""
    try:
        skip = [parse_role(value) for value in payload.skip]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    try:
        service = get_connection_service(connection_id)
        if not payload.model_fields_set:
            return service.confirm_selection()
        return service.confirm_mapping(
            payload.community_endpoint,
            payload.property_endpoint,
            skip=skip,
        )
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/mapping/cancel", response_model=ConnectionStatusResponse)
def cancel_mapping(connection_id: str) -> ConnectionStatusResponse:
    try:
        return get_connection_service(connection_id).cancel_mapping()
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/edit", response_model=ConnectionStatusResponse)
def edit_connection(connection_id: str) -> ConnectionStatusResponse:
    """Reopen URL entry for a connected site."""
    try:
        return get_connection_service(connection_id).edit_connection()
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.put("/connections/{connection_id}/endpoints/{role}", response_model=ConnectionStatusResponse)
def update_endpoint(connection_id: str, role: str, payload: UpdateEndpointRequest) -> ConnectionStatusResponse:
    parsed = _role(role)
    try:
        return get_connection_service(connection_id).update_endpoint(parsed, payload.rest_base)
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.put("/connections/{connection_id}/intervals/{role}", response_model=ConnectionStatusResponse)
def update_sync_interval(connection_id: str, role: str, payload: UpdateIntervalRequest) -> ConnectionStatusResponse:
    parsed = _role(role)
    try:
        return get_connection_service(connection_id).update_sync_interval(parsed, payload.interval)
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/sync/{role}", response_model=SyncRoleResponse)
def trigger_sync(connection_id: str, role: str, payload: TriggerSyncRequest) -> SyncRoleResponse:
    """Quick sync or full resync of one feed."""
    parsed = _role(role)
    try:
        return get_connection_service(connection_id).trigger_sync(
            parsed,
            full=payload.full,
            extraction_mode=payload.extraction_mode,
        )
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc


@wordpress_router.post("/connections/{connection_id}/disconnect", response_model=DisconnectResponse)
def disconnect(connection_id: str, payload: DisconnectRequest) -> DisconnectResponse:
    """Remove the connection, optionally with its synced records."""
    try:
        return get_connection_service(connection_id).disconnect(
            delete_synced_data=payload.delete_synced_data,
            confirmation=payload.confirmation,
        )
    except WordPressSyncError as exc:
        raise _http_error(exc) from exc
