"""Controller exception hierarchy."""


class ClaimControllerError(Exception):
    """Base exception for controller errors."""

    pass


class StoreError(ClaimControllerError):
    """Raised when the object store rejects or fails a request."""

    pass


class ConflictError(StoreError):
    """Raised when a version-checked write finds a newer stored version."""

    pass


class NotFoundError(StoreError):
    """Raised when a version-checked write targets a missing object."""

    pass
