"""User entity module.

- User / UserUpdate: domain entity and partial update
- table: persisted record shapes for users and email lookup entries
- UserRepository: data access and the email uniqueness protocol
- errors: failures crossing the storage boundary
"""

from .entity import User, UserUpdate
from .errors import (
    EmailAddressInUseError,
    MalformedRecordError,
    RecordNotFoundError,
    RecordValidationError,
    RepositoryError,
    RepositoryInternalError,
)
from .repository import UserRepository

__all__ = [
    "User",
    "UserUpdate",
    "UserRepository",
    "RepositoryError",
    "RecordNotFoundError",
    "RecordValidationError",
    "MalformedRecordError",
    "EmailAddressInUseError",
    "RepositoryInternalError",
]
