"""Error kinds surfaced by the WordPress connection workflow and sync."""


class WordPressSyncError(RuntimeError):
    """Base error; the message is short and safe to show to an operator."""


class DiscoveryUnreachable(WordPressSyncError):
    """Site did not respond or exposes no usable REST API."""


class ConfirmationInvalid(WordPressSyncError):
    """Mapping confirmation was rejected without a state change."""


class OperationInProgress(WordPressSyncError):
    """Another discovery, confirmation or disconnect is pending."""


class SyncFailed(WordPressSyncError):
    """Import for one role failed."""


class SyncInProgress(WordPressSyncError):
    """A sync for the same role and connection is already running."""


class DisconnectCascadeDenied(WordPressSyncError):
    """Cascade delete requested without the typed confirmation."""


class ConnectionNotFound(WordPressSyncError):
    """No stored connection for the given id."""


class ConnectionStoreError(WordPressSyncError):
    """Storage operation failed."""
