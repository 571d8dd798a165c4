class SyncError(Exception):
    """Base class for every fatal error raised during a reconciliation run."""


class ConfigurationError(SyncError):
    pass


class MissingResourceError(SyncError, LookupError):
    """A resource that must already exist (e.g. the hosted zone) was not found."""


class BackendRejectionError(SyncError):
    """A mutating backend call was rejected. These are never retried."""

    def __init__(self, action, error):
        super().__init__(f"{action} rejected by backend: {error}")
        self.action = action
        self.error = error


class OperationTimeoutError(SyncError):
    """Asynchronous operations did not reach success within the retry budget."""

    def __init__(self, statuses, retries):
        ids = ", ".join(status.operation_id for status in statuses)
        super().__init__(f"Operations still pending after {retries} retries: {ids}")
        self.statuses = statuses
        self.retries = retries
