class SyncItemError(Exception):
    """Per-item failure. Caught at the item boundary and reported in `failed[]`."""

    action = None


class ValidationFailed(SyncItemError):
    pass


class ReferenceNotFound(SyncItemError):
    pass


class QuotaExceeded(SyncItemError):
    action = "limit-exceeded"
