"""Failures raised by the user service."""

from src.userhub.entities.core.user.errors import (
    EmailAddressInUseError,
    MalformedRecordError,
    RecordNotFoundError,
    RecordValidationError,
    RepositoryError,
)


class UserServiceError(Exception):
    """Base class for user service failures."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


class UserNotFoundError(UserServiceError):
    def __init__(self, reason: str = "user not found") -> None:
        super().__init__(reason)


class UserValidationError(UserServiceError):
    pass


class MissingParametersError(UserServiceError):
    pass


class ConflictingUserError(UserServiceError):
    pass


class InternalServiceError(UserServiceError):
    def __init__(self, reason: str = "internal error") -> None:
        super().__init__(reason)


def from_repository_error(error: RepositoryError) -> UserServiceError:
    """Re-type a repository failure at the service boundary.

    Malformed records are not the caller's fault, so they surface as internal
    errors together with every unexpected store failure.
    """
    if isinstance(error, RecordNotFoundError):
        return UserNotFoundError(error.reason)
    if isinstance(error, RecordValidationError):
        return UserValidationError(error.reason)
    if isinstance(error, EmailAddressInUseError):
        return ConflictingUserError(error.reason)
    if isinstance(error, MalformedRecordError):
        return InternalServiceError(error.reason)
    return InternalServiceError()
