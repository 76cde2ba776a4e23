"""Failures raised by the user repository.

These are the only exceptions that cross the storage boundary; store and
transport exceptions are always re-typed into one of them.
"""


class RepositoryError(Exception):
    """Base class for user repository failures."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


class RecordNotFoundError(RepositoryError):
    def __init__(self, reason: str = "user not found") -> None:
        super().__init__(reason)


class RecordValidationError(RepositoryError):
    """A stored value failed validation (e.g. a lookup entry with a bad id)."""


class MalformedRecordError(RepositoryError):
    """A stored record could not be decoded into a User."""


class EmailAddressInUseError(RepositoryError):
    """The email address already belongs to another user."""


class RepositoryInternalError(RepositoryError):
    """Unexpected store or transport failure."""

    def __init__(self, reason: str = "unexpected repository error") -> None:
        super().__init__(reason)
