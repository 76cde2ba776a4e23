import uuid

from loguru import logger

from src.userhub.core.services.user.errors import (
    MissingParametersError,
    UserValidationError,
    from_repository_error,
)
from src.userhub.entities.core.user.entity import User, UserUpdate
from src.userhub.entities.core.user.errors import RepositoryError
from src.userhub.entities.core.user.repository import UserRepository


def _require_id(user_id: uuid.UUID) -> None:
    if user_id.int == 0:
        raise UserValidationError("user id must not be nil")


class UserService:
    """Domain operations on users.

    Checks caller input before any store access and re-types repository
    failures into ``UserServiceError`` subclasses.
    """

    def __init__(self, repository: UserRepository):
        self._repository = repository

    async def create_user(self, user: User) -> User:
        if user.has_nil_id:
            raise UserValidationError("user id must not be nil")

        try:
            await self._repository.create_user(user)
        except RepositoryError as e:
            raise from_repository_error(e) from e
        return user

    async def get_user(self, user_id: uuid.UUID) -> User:
        _require_id(user_id)
        try:
            return await self._repository.get_user(user_id)
        except RepositoryError as e:
            raise from_repository_error(e) from e

    async def get_user_by_email(self, email: str) -> User:
        if not email:
            raise UserValidationError("email must not be empty")
        try:
            return await self._repository.get_user_by_email(email)
        except RepositoryError as e:
            raise from_repository_error(e) from e

    async def update_user(self, user_id: uuid.UUID, update: UserUpdate) -> User:
        """Apply a partial update to a stored user.

        Args:
            user_id: id of the user to update
            update: fields to change, at least one must be present

        Returns:
            The user as stored after the update

        Raises:
            UserValidationError: nil id
            MissingParametersError: no field present in ``update``
            UserNotFoundError: no user with this id
            ConflictingUserError: the new email belongs to another user
            InternalServiceError: store failure
        """
        _require_id(user_id)
        if update.is_empty():
            raise MissingParametersError("at least one field must be provided")

        try:
            user = await self._repository.get_user(user_id)

            old_email = None
            if update.email is not None and update.email != user.email:
                old_email = user.email

            user.apply_update(update)
            await self._repository.update_user(user, old_email=old_email)
        except RepositoryError as e:
            raise from_repository_error(e) from e

        logger.bind(user_id=str(user_id), email_changed=old_email is not None).debug(
            "User updated"
        )
        return user

    async def delete_user(self, user_id: uuid.UUID) -> None:
        _require_id(user_id)
        try:
            await self._repository.delete_user(user_id)
        except RepositoryError as e:
            raise from_repository_error(e) from e
