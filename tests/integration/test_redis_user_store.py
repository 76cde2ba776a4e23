"""Integration tests running the Redis Lua scripts on an in-process Redis."""

import asyncio
import uuid

import pytest

from src.userhub.core.storage.kv_store import (
    ConditionalCheckFailedError,
    Delete,
    Put,
    TransactionCanceledError,
    attribute_exists,
    attribute_not_exists,
)
from src.userhub.entities.core.user import (
    EmailAddressInUseError,
    RecordNotFoundError,
    UserRepository,
    UserUpdate,
)
from src.userhub.entities.core.user.table import user_to_item
from tests.fixtures.core import LOOKUP_TABLE, USERS_TABLE

pytestmark = pytest.mark.integration


@pytest.fixture
def redis_repository(redis_store) -> UserRepository:
    return UserRepository(
        redis_store, users_table=USERS_TABLE, email_lookup_table=LOOKUP_TABLE
    )


async def _lookup(store, email: str):
    return await store.get_item(LOOKUP_TABLE, {"email": email})


async def _primary(store, user_id: uuid.UUID):
    return await store.get_item(USERS_TABLE, {"id": str(user_id)})


class TestRedisScripts:
    """Conditional and transactional writes as executed by Redis."""

    async def test_put_stores_hash_under_prefixed_key(self, redis_store, fake_redis):
        await redis_store.put_item(USERS_TABLE, {"id": "42", "email": "a@b.c"})

        raw = await fake_redis.hgetall("test:users:42")

        assert raw == {b"id": b"42", b"email": b"a@b.c"}
        assert await redis_store.get_item(USERS_TABLE, {"id": "42"}) == {
            "id": "42",
            "email": "a@b.c",
        }

    async def test_put_replaces_whole_item(self, redis_store):
        await redis_store.put_item(USERS_TABLE, {"id": "42", "first_name": "Ada"})
        await redis_store.put_item(USERS_TABLE, {"id": "42", "last_name": "King"})

        assert await redis_store.get_item(USERS_TABLE, {"id": "42"}) == {
            "id": "42",
            "last_name": "King",
        }

    async def test_conditional_insert_conflict(self, redis_store):
        first = {"email": "a@b.c", "id": "1"}
        await redis_store.put_item(
            LOOKUP_TABLE, first, condition=attribute_not_exists("email")
        )

        with pytest.raises(ConditionalCheckFailedError):
            await redis_store.put_item(
                LOOKUP_TABLE,
                {"email": "a@b.c", "id": "2"},
                condition=attribute_not_exists("email"),
            )

        assert await _lookup(redis_store, "a@b.c") == first

    async def test_conditional_put_requires_existing_item(self, redis_store):
        with pytest.raises(ConditionalCheckFailedError):
            await redis_store.put_item(
                USERS_TABLE, {"id": "42"}, condition=attribute_exists("id")
            )

        assert await redis_store.get_item(USERS_TABLE, {"id": "42"}) is None

    async def test_conditional_delete(self, redis_store):
        await redis_store.put_item(USERS_TABLE, {"id": "42"})

        await redis_store.delete_item(
            USERS_TABLE, {"id": "42"}, condition=attribute_exists("id")
        )

        assert await redis_store.get_item(USERS_TABLE, {"id": "42"}) is None
        with pytest.raises(ConditionalCheckFailedError):
            await redis_store.delete_item(
                USERS_TABLE, {"id": "42"}, condition=attribute_exists("id")
            )

    async def test_cancelled_transaction_writes_nothing(self, redis_store):
        await redis_store.put_item(LOOKUP_TABLE, {"email": "old@b.c", "id": "1"})
        await redis_store.put_item(LOOKUP_TABLE, {"email": "taken@b.c", "id": "2"})
        await redis_store.put_item(USERS_TABLE, {"id": "1", "email": "old@b.c"})

        with pytest.raises(TransactionCanceledError) as exc_info:
            await redis_store.transact_write(
                [
                    Delete(LOOKUP_TABLE, {"email": "old@b.c"}),
                    Put(
                        LOOKUP_TABLE,
                        {"email": "taken@b.c", "id": "1"},
                        condition=attribute_not_exists("email"),
                    ),
                    Put(
                        USERS_TABLE,
                        {"id": "1", "email": "taken@b.c"},
                        condition=attribute_exists("id"),
                    ),
                ]
            )

        assert [reason.code for reason in exc_info.value.reasons] == [
            "None",
            "ConditionalCheckFailed",
            "None",
        ]
        assert await _lookup(redis_store, "old@b.c") == {"email": "old@b.c", "id": "1"}
        assert (await _lookup(redis_store, "taken@b.c"))["id"] == "2"
        assert (await redis_store.get_item(USERS_TABLE, {"id": "1"}))["email"] == (
            "old@b.c"
        )

    async def test_transaction_applies_every_operation(self, redis_store):
        await redis_store.put_item(LOOKUP_TABLE, {"email": "old@b.c", "id": "1"})
        await redis_store.put_item(USERS_TABLE, {"id": "1", "email": "old@b.c"})

        await redis_store.transact_write(
            [
                Delete(LOOKUP_TABLE, {"email": "old@b.c"}),
                Put(
                    LOOKUP_TABLE,
                    {"email": "new@b.c", "id": "1"},
                    condition=attribute_not_exists("email"),
                ),
                Put(
                    USERS_TABLE,
                    {"id": "1", "email": "new@b.c"},
                    condition=attribute_exists("id"),
                ),
            ]
        )

        assert await _lookup(redis_store, "old@b.c") is None
        assert await _lookup(redis_store, "new@b.c") == {"email": "new@b.c", "id": "1"}
        assert (await redis_store.get_item(USERS_TABLE, {"id": "1"}))["email"] == (
            "new@b.c"
        )


class TestUserRepositoryOnRedis:
    """The email uniqueness protocol end to end on the Redis backend."""

    async def test_create_and_read_back(self, redis_repository, redis_store, make_user):
        user = make_user()

        await redis_repository.create_user(user)

        assert await _primary(redis_store, user.id) == user_to_item(user)
        assert await redis_repository.get_user(user.id) == user
        assert await redis_repository.get_user_by_email(user.email) == user

    async def test_duplicate_email_rejected(
        self, redis_repository, redis_store, make_user
    ):
        first = make_user()
        second = make_user()
        await redis_repository.create_user(first)

        with pytest.raises(EmailAddressInUseError):
            await redis_repository.create_user(second)

        assert await _primary(redis_store, second.id) is None
        assert (await _lookup(redis_store, first.email))["id"] == str(first.id)

    async def test_concurrent_creates_same_email(self, redis_repository, make_user):
        users = [make_user() for _ in range(5)]

        results = await asyncio.gather(
            *(redis_repository.create_user(user) for user in users),
            return_exceptions=True,
        )

        assert sum(result is None for result in results) == 1
        assert all(
            isinstance(result, EmailAddressInUseError)
            for result in results
            if result is not None
        )

    async def test_email_change_to_taken_email_leaves_records_untouched(
        self, redis_repository, redis_store, make_user
    ):
        owner = make_user(email="taken@example.com")
        user = make_user(email="mine@example.com")
        await redis_repository.create_user(owner)
        await redis_repository.create_user(user)
        original = await _primary(redis_store, user.id)

        user.apply_update(UserUpdate(email="taken@example.com"))
        with pytest.raises(EmailAddressInUseError):
            await redis_repository.update_user(user, old_email="mine@example.com")

        assert await _primary(redis_store, user.id) == original
        assert (await _lookup(redis_store, "mine@example.com"))["id"] == str(user.id)
        assert (await _lookup(redis_store, "taken@example.com"))["id"] == str(owner.id)

    async def test_email_migration(self, redis_repository, redis_store, make_user):
        user = make_user(email="old@example.com")
        await redis_repository.create_user(user)

        user.apply_update(UserUpdate(email="new@example.com"))
        await redis_repository.update_user(user, old_email="old@example.com")

        assert await _lookup(redis_store, "old@example.com") is None
        assert (await redis_repository.get_user_by_email("new@example.com")).id == user.id
        with pytest.raises(RecordNotFoundError):
            await redis_repository.get_user_by_email("old@example.com")

    async def test_email_change_for_missing_user_writes_no_lookup(
        self, redis_repository, redis_store, make_user
    ):
        ghost = make_user(email="ghost@example.com")

        with pytest.raises(RecordNotFoundError):
            await redis_repository.update_user(ghost, old_email="old@example.com")

        assert await _lookup(redis_store, "ghost@example.com") is None
        assert await _primary(redis_store, ghost.id) is None

    async def test_plain_update_of_missing_user(self, redis_repository, make_user):
        with pytest.raises(RecordNotFoundError):
            await redis_repository.update_user(make_user())

    async def test_delete_twice(self, redis_repository, redis_store, make_user):
        user = make_user()
        await redis_repository.create_user(user)

        await redis_repository.delete_user(user.id)

        assert await _primary(redis_store, user.id) is None
        assert (await _lookup(redis_store, user.email))["id"] == str(user.id)
        with pytest.raises(RecordNotFoundError):
            await redis_repository.delete_user(user.id)
