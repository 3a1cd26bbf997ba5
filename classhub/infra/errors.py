# classhub/infra/errors.py


class StoreError(Exception):
    """Error raised by the table storage layer."""


class PermissionDeniedError(StoreError):
    """The store rejected the operation for lack of permissions."""


class NotificationNotFoundError(StoreError):
    """The notification does not exist in the table."""
