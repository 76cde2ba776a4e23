"""User repository over a key-value store.

The store has no unique constraints, so email uniqueness is kept by hand with
a second collection mapping ``email -> id``:

- create: conditional insert of the lookup entry first, then the user record;
  if the second write fails the lookup entry is deleted again (best effort).
- update without an email change: conditional put requiring the user to exist.
- update with an email change: one transaction that deletes the old lookup
  entry, inserts the new one (must not exist) and rewrites the user (must
  exist). The owner of the old lookup entry is checked before the
  transaction, outside of it.
- delete: conditional delete of the user record only; the lookup entry is
  left behind.
"""

import uuid

from loguru import logger

from src.userhub.core.storage.kv_store import (
    ConditionalCheckFailedError,
    Delete,
    KeyValueStore,
    Put,
    StoreError,
    StoreTimeoutError,
    TransactionCanceledError,
    attribute_exists,
    attribute_not_exists,
)
from src.userhub.entities.core.user.entity import User
from src.userhub.entities.core.user.errors import (
    EmailAddressInUseError,
    RecordNotFoundError,
    RepositoryError,
    RepositoryInternalError,
)
from src.userhub.entities.core.user.table import (
    LOOKUP_KEY,
    USER_KEY,
    lookup_key,
    lookup_to_item,
    lookup_user_id,
    user_from_item,
    user_key,
    user_to_item,
)

# Positions in the email change transaction, after the old lookup delete
_PUT_NEW_LOOKUP = 1
_PUT_USER = 2


class UserRepository:
    """Data-access layer for users."""

    def __init__(
        self,
        store: KeyValueStore,
        users_table: str = "users",
        email_lookup_table: str = "users_email_lookup",
    ) -> None:
        self._store = store
        self._users_table = users_table
        self._lookup_table = email_lookup_table

    async def get_user(self, user_id: uuid.UUID) -> User:
        try:
            item = await self._store.get_item(self._users_table, user_key(user_id))
        except StoreError as e:
            logger.bind(user_id=str(user_id)).error(f"Failed to read user: {e}")
            raise RepositoryInternalError() from e

        if item is None:
            raise RecordNotFoundError()

        return user_from_item(item)

    async def get_user_by_email(self, email: str) -> User:
        try:
            item = await self._store.get_item(self._lookup_table, lookup_key(email))
        except StoreError as e:
            logger.bind(email=email).error(f"Failed to read email lookup entry: {e}")
            raise RepositoryInternalError() from e

        if item is None:
            raise RecordNotFoundError()

        user_id = lookup_user_id(item)
        try:
            return await self.get_user(user_id)
        except RecordNotFoundError:
            logger.bind(email=email, user_id=str(user_id)).warning(
                "Email lookup entry references a user that does not exist"
            )
            raise

    async def create_user(self, user: User) -> None:
        """Persist a new user, claiming its email address first.

        Raises:
            EmailAddressInUseError: the email already has a lookup entry;
                nothing was written.
            RepositoryInternalError: any store failure. If the user record
                could not be written the lookup entry is rolled back.
        """
        log = logger.bind(user_id=str(user.id), email=user.email)

        try:
            await self._store.put_item(
                self._lookup_table,
                lookup_to_item(user.email, user.id),
                condition=attribute_not_exists(LOOKUP_KEY),
            )
        except ConditionalCheckFailedError as e:
            raise EmailAddressInUseError(
                f"email address {user.email} is already in use"
            ) from e
        except StoreError as e:
            log.error(f"Failed to create email lookup entry: {e}")
            raise RepositoryInternalError() from e

        try:
            await self._store.put_item(self._users_table, user_to_item(user))
        except StoreError as e:
            log.error(f"Failed to create user record: {e}")
            await self._rollback_lookup(user)
            raise RepositoryInternalError() from e

        log.info("User created")

    async def _rollback_lookup(self, user: User) -> None:
        try:
            await self._store.delete_item(self._lookup_table, lookup_key(user.email))
            logger.bind(user_id=str(user.id), email=user.email).info(
                "Rolled back email lookup entry"
            )
        except StoreError as e:
            logger.bind(user_id=str(user.id), email=user.email).error(
                f"Rollback of email lookup entry failed, entry is orphaned: {e}"
            )

    async def update_user(self, user: User, old_email: str | None = None) -> None:
        """Rewrite an existing user.

        Args:
            user: the user as it should be stored
            old_email: the previously stored email when the email changes

        Raises:
            RecordNotFoundError: the user does not exist
            EmailAddressInUseError: the new email belongs to another user, or
                the lookup entry of ``old_email`` is owned by another user
            RepositoryInternalError: any other store failure
        """
        if old_email is None or old_email == user.email:
            await self._put_existing_user(user)
        else:
            await self._change_email(user, old_email)

    async def _put_existing_user(self, user: User) -> None:
        try:
            await self._store.put_item(
                self._users_table,
                user_to_item(user),
                condition=attribute_exists(USER_KEY),
            )
        except ConditionalCheckFailedError as e:
            raise RecordNotFoundError() from e
        except StoreTimeoutError as e:
            logger.bind(user_id=str(user.id)).error("Timeout error while updating user")
            raise RepositoryInternalError("timeout error") from e
        except StoreError as e:
            logger.bind(user_id=str(user.id)).error(f"Failed to update user: {e}")
            raise RepositoryInternalError() from e

    async def _check_lookup_owner(self, email: str, user_id: uuid.UUID) -> None:
        try:
            item = await self._store.get_item(self._lookup_table, lookup_key(email))
        except StoreError as e:
            logger.bind(email=email).error(f"Failed to read email lookup entry: {e}")
            raise RepositoryInternalError() from e

        if item is not None and item.get("id") != str(user_id):
            raise EmailAddressInUseError(
                f"email address {email} is owned by another user"
            )

    async def _change_email(self, user: User, old_email: str) -> None:
        await self._check_lookup_owner(old_email, user.id)

        operations = [
            Delete(self._lookup_table, lookup_key(old_email)),
            Put(
                self._lookup_table,
                lookup_to_item(user.email, user.id),
                condition=attribute_not_exists(LOOKUP_KEY),
            ),
            Put(
                self._users_table,
                user_to_item(user),
                condition=attribute_exists(USER_KEY),
            ),
        ]

        log = logger.bind(user_id=str(user.id), old_email=old_email, email=user.email)
        try:
            await self._store.transact_write(operations)
        except TransactionCanceledError as e:
            log.warning(f"Email change transaction cancelled: {e}")
            raise self._cancellation_error(e, user) from e
        except StoreTimeoutError as e:
            log.error("Timeout error while changing user email")
            raise RepositoryInternalError("timeout error") from e
        except StoreError as e:
            log.error(f"Failed to change user email: {e}")
            raise RepositoryInternalError() from e

        log.info("User email changed")

    @staticmethod
    def _cancellation_error(error: TransactionCanceledError, user: User) -> RepositoryError:
        for position, reason in enumerate(error.reasons):
            if not reason.condition_failed:
                continue
            if position == _PUT_NEW_LOOKUP:
                return EmailAddressInUseError(
                    f"email address {user.email} is already in use"
                )
            if position == _PUT_USER:
                return RecordNotFoundError()
            return RepositoryInternalError()
        return RepositoryInternalError()

    async def delete_user(self, user_id: uuid.UUID) -> None:
        # TODO: remove the email lookup entry in the same transaction once the
        # expected behaviour for concurrent re-registration is settled.
        try:
            await self._store.delete_item(
                self._users_table,
                user_key(user_id),
                condition=attribute_exists(USER_KEY),
            )
        except ConditionalCheckFailedError as e:
            raise RecordNotFoundError() from e
        except StoreError as e:
            logger.bind(user_id=str(user_id)).error(f"Failed to delete user: {e}")
            raise RepositoryInternalError() from e

        logger.bind(user_id=str(user_id)).info("User deleted")
