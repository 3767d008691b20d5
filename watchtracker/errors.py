class WatchlistError(Exception):
    """Base class for errors raised by list and title operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WatchlistError):
    """The caller supplied an invalid list type, position or a duplicate add."""


class NotFoundError(WatchlistError):
    """A title, list group or membership is missing or not owned by the caller."""


class StoreError(WatchlistError):
    """The database failed or rejected a write. Transient from the caller's view."""
