from .errors import (
    ConflictingUserError,
    InternalServiceError,
    MissingParametersError,
    UserNotFoundError,
    UserServiceError,
    UserValidationError,
)
from .user_service import UserService

__all__ = [
    "UserService",
    "UserServiceError",
    "UserNotFoundError",
    "UserValidationError",
    "MissingParametersError",
    "ConflictingUserError",
    "InternalServiceError",
]
