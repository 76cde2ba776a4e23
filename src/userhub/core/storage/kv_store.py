"""Key-value store interface and implementations.

The user repository needs a small set of primitives from its store: point
reads, conditional puts and deletes, and an all-or-nothing transactional
write that reports, per operation, why it was cancelled. This module defines
that contract and provides a Redis backend (items are hashes, conditional and
transactional writes are server-side Lua scripts) plus an in-memory backend
with the same semantics.
"""

from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger
from redis import exceptions as redis_exceptions

from src.userhub.core.services.redis_service import RedisService
from src.userhub.runtime.config.config_data import ConfigData, StoreConfig

ConditionKind = Literal["attribute_exists", "attribute_not_exists"]

CONDITION_OK = "None"
CONDITION_FAILED = "ConditionalCheckFailed"


@dataclass(frozen=True)
class Condition:
    """Existence predicate on one attribute of the targeted item."""

    kind: ConditionKind
    attribute: str

    def holds(self, item: dict[str, Any] | None) -> bool:
        present = item is not None and self.attribute in item
        return present if self.kind == "attribute_exists" else not present


def attribute_exists(attribute: str) -> Condition:
    return Condition("attribute_exists", attribute)


def attribute_not_exists(attribute: str) -> Condition:
    return Condition("attribute_not_exists", attribute)


@dataclass(frozen=True)
class Put:
    table: str
    item: dict[str, Any]
    condition: Condition | None = None


@dataclass(frozen=True)
class Delete:
    table: str
    key: dict[str, str]
    condition: Condition | None = None


TransactOperation = Put | Delete


@dataclass(frozen=True)
class CancellationReason:
    """Outcome of one operation of a cancelled transaction."""

    code: str
    message: str | None = None

    @property
    def condition_failed(self) -> bool:
        return self.code == CONDITION_FAILED


class StoreError(Exception):
    """Transport or protocol failure talking to the store."""


class StoreTimeoutError(StoreError):
    """The store did not answer in time."""


class ConditionalCheckFailedError(StoreError):
    """A conditional put or delete was rejected; nothing was written."""


class StoreUnavailableError(RuntimeError):
    """The configured Redis store cannot be reached and no fallback is allowed."""


class TransactionCanceledError(StoreError):
    """A transactional write was rejected as a whole."""

    def __init__(self, reasons: Sequence[CancellationReason]) -> None:
        self.reasons = list(reasons)
        codes = ", ".join(reason.code for reason in self.reasons)
        super().__init__(f"Transaction cancelled, reasons [{codes}]")


class KeyValueStore(ABC):
    """Abstract interface for key-value store backends.

    Args:
        key_schema: maps each table name to the attribute holding its key.
    """

    def __init__(self, key_schema: dict[str, str]) -> None:
        self._key_schema = dict(key_schema)

    def key_attribute(self, table: str) -> str:
        try:
            return self._key_schema[table]
        except KeyError as e:
            raise StoreError(f"Unknown table: {table}") from e

    def _key_value(self, table: str, key_or_item: dict[str, Any]) -> str:
        attribute = self.key_attribute(table)
        value = key_or_item.get(attribute)
        if not isinstance(value, str) or not value:
            raise StoreError(f"Missing key attribute '{attribute}' for table {table}")
        return value

    def _check_distinct_items(self, operations: Sequence[TransactOperation]) -> None:
        seen: set[tuple[str, str]] = set()
        for operation in operations:
            target = operation.item if isinstance(operation, Put) else operation.key
            identity = (operation.table, self._key_value(operation.table, target))
            if identity in seen:
                raise StoreError(
                    "Transaction cannot include multiple operations on one item"
                )
            seen.add(identity)

    @abstractmethod
    async def get_item(self, table: str, key: dict[str, str]) -> dict[str, Any] | None:
        """Fetch one item by primary key.

        Returns:
            The item attributes or None if the item does not exist
        """
        pass

    @abstractmethod
    async def put_item(
        self, table: str, item: dict[str, Any], condition: Condition | None = None
    ) -> None:
        """Create or replace a whole item.

        Raises:
            ConditionalCheckFailedError: if ``condition`` does not hold
        """
        pass

    @abstractmethod
    async def delete_item(
        self, table: str, key: dict[str, str], condition: Condition | None = None
    ) -> None:
        """Delete an item.

        Raises:
            ConditionalCheckFailedError: if ``condition`` does not hold
        """
        pass

    @abstractmethod
    async def transact_write(self, operations: Sequence[TransactOperation]) -> None:
        """Apply every operation or none of them.

        Raises:
            TransactionCanceledError: if any condition fails; carries one
                reason per operation, in order
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Test connectivity to the backend."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store with the same conditional semantics as Redis."""

    def __init__(self, key_schema: dict[str, str]) -> None:
        super().__init__(key_schema)
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        self.key_attribute(table)
        return self._tables.setdefault(table, {})

    async def get_item(self, table: str, key: dict[str, str]) -> dict[str, Any] | None:
        item = self._table(table).get(self._key_value(table, key))
        return copy.deepcopy(item) if item is not None else None

    async def put_item(
        self, table: str, item: dict[str, Any], condition: Condition | None = None
    ) -> None:
        rows = self._table(table)
        key_value = self._key_value(table, item)
        if condition is not None and not condition.holds(rows.get(key_value)):
            raise ConditionalCheckFailedError("The conditional request failed")
        rows[key_value] = copy.deepcopy(item)

    async def delete_item(
        self, table: str, key: dict[str, str], condition: Condition | None = None
    ) -> None:
        rows = self._table(table)
        key_value = self._key_value(table, key)
        if condition is not None and not condition.holds(rows.get(key_value)):
            raise ConditionalCheckFailedError("The conditional request failed")
        rows.pop(key_value, None)

    async def transact_write(self, operations: Sequence[TransactOperation]) -> None:
        self._check_distinct_items(operations)

        reasons = []
        for operation in operations:
            target = operation.item if isinstance(operation, Put) else operation.key
            current = self._table(operation.table).get(
                self._key_value(operation.table, target)
            )
            if operation.condition is None or operation.condition.holds(current):
                reasons.append(CancellationReason(CONDITION_OK))
            else:
                reasons.append(
                    CancellationReason(CONDITION_FAILED, "The conditional request failed")
                )

        if any(reason.condition_failed for reason in reasons):
            raise TransactionCanceledError(reasons)

        for operation in operations:
            rows = self._table(operation.table)
            if isinstance(operation, Put):
                rows[self._key_value(operation.table, operation.item)] = copy.deepcopy(
                    operation.item
                )
            else:
                rows.pop(self._key_value(operation.table, operation.key), None)

    async def ping(self) -> bool:
        return True


# Shared Lua prelude: evaluates an existence predicate against a hash key.
_CONDITION_LUA = """
local function holds(key, kind, attribute)
  if kind == nil or kind == '' then
    return true
  end
  local present = redis.call('HEXISTS', key, attribute) == 1
  if kind == 'attribute_exists' then
    return present
  end
  return not present
end
"""

# KEYS[1] item; ARGV[1] condition kind; ARGV[2] attribute; ARGV[3..] field/value pairs
_PUT_LUA = _CONDITION_LUA + """
if not holds(KEYS[1], ARGV[1], ARGV[2]) then
  return 0
end
redis.call('DEL', KEYS[1])
redis.call('HSET', KEYS[1], unpack(ARGV, 3))
return 1
"""

# KEYS[1] item; ARGV[1] condition kind; ARGV[2] attribute
_DELETE_LUA = _CONDITION_LUA + """
if not holds(KEYS[1], ARGV[1], ARGV[2]) then
  return 0
end
redis.call('DEL', KEYS[1])
return 1
"""

# KEYS[i] item of operation i; ARGV[1] JSON list of operations
_TRANSACT_LUA = _CONDITION_LUA + """
local operations = cjson.decode(ARGV[1])
local reasons = {}
local failed = false
for i, operation in ipairs(operations) do
  if holds(KEYS[i], operation['kind'], operation['attribute']) then
    reasons[i] = 'None'
  else
    reasons[i] = 'ConditionalCheckFailed'
    failed = true
  end
end
if failed then
  return cjson.encode(reasons)
end
for i, operation in ipairs(operations) do
  redis.call('DEL', KEYS[i])
  if operation['action'] == 'put' then
    redis.call('HSET', KEYS[i], unpack(operation['fields']))
  end
end
return 'OK'
"""


def _flatten(item: dict[str, Any]) -> list[str]:
    fields: list[str] = []
    for name, value in item.items():
        if not isinstance(value, str):
            raise StoreError(f"Attribute '{name}' must be a string")
        fields.extend((name, value))
    return fields


def _condition_args(condition: Condition | None) -> list[str]:
    if condition is None:
        return ["", ""]
    return [condition.kind, condition.attribute]


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store; each item is a hash under ``<prefix><table>:<key>``."""

    def __init__(self, redis_client, key_schema: dict[str, str], key_prefix: str = "") -> None:
        super().__init__(key_schema)
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._put_script = redis_client.register_script(_PUT_LUA)
        self._delete_script = redis_client.register_script(_DELETE_LUA)
        self._transact_script = redis_client.register_script(_TRANSACT_LUA)

    def redis_key(self, table: str, key_or_item: dict[str, Any]) -> str:
        return f"{self._key_prefix}{table}:{self._key_value(table, key_or_item)}"

    @contextmanager
    def _command(self, operation: str) -> Iterator[None]:
        """Translate redis-py failures into store errors."""
        try:
            yield
        except (redis_exceptions.TimeoutError, TimeoutError) as e:
            raise StoreTimeoutError(f"Redis {operation} timed out: {e}") from e
        except redis_exceptions.RedisError as e:
            raise StoreError(f"Redis {operation} failed: {e}") from e

    async def get_item(self, table: str, key: dict[str, str]) -> dict[str, Any] | None:
        redis_key = self.redis_key(table, key)
        with self._command("get"):
            data = await self._redis.hgetall(redis_key)
        if not data:
            return None
        return {_decode(name): _decode(value) for name, value in data.items()}

    async def put_item(
        self, table: str, item: dict[str, Any], condition: Condition | None = None
    ) -> None:
        redis_key = self.redis_key(table, item)
        args = _condition_args(condition) + _flatten(item)
        with self._command("put"):
            applied = await self._put_script(keys=[redis_key], args=args)
        if not int(applied):
            raise ConditionalCheckFailedError("The conditional request failed")

    async def delete_item(
        self, table: str, key: dict[str, str], condition: Condition | None = None
    ) -> None:
        redis_key = self.redis_key(table, key)
        with self._command("delete"):
            applied = await self._delete_script(
                keys=[redis_key], args=_condition_args(condition)
            )
        if not int(applied):
            raise ConditionalCheckFailedError("The conditional request failed")

    async def transact_write(self, operations: Sequence[TransactOperation]) -> None:
        self._check_distinct_items(operations)

        keys = []
        payload = []
        for operation in operations:
            kind, attribute = _condition_args(operation.condition)
            if isinstance(operation, Put):
                keys.append(self.redis_key(operation.table, operation.item))
                payload.append(
                    {
                        "action": "put",
                        "kind": kind,
                        "attribute": attribute,
                        "fields": _flatten(operation.item),
                    }
                )
            else:
                keys.append(self.redis_key(operation.table, operation.key))
                payload.append({"action": "delete", "kind": kind, "attribute": attribute})

        with self._command("transaction"):
            result = _decode(
                await self._transact_script(keys=keys, args=[json.dumps(payload)])
            )

        if result == "OK":
            return

        try:
            codes = json.loads(result)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Unexpected transaction result: {result!r}") from e
        raise TransactionCanceledError(
            [
                CancellationReason(
                    code,
                    "The conditional request failed" if code == CONDITION_FAILED else None,
                )
                for code in codes
            ]
        )

    async def ping(self) -> bool:
        """Test Redis connection health."""
        try:
            await self._redis.ping()
            return True
        except Exception:
            return False

    async def close(self) -> None:
        await self._redis.aclose()


def key_schema_from_config(store_config: StoreConfig) -> dict[str, str]:
    """Key attributes of the user and email lookup tables."""
    return {
        store_config.users_table: "id",
        store_config.email_lookup_table: "email",
    }


@dataclass
class StoreHandle:
    """The process-wide store together with the service that owns its connection."""

    store: KeyValueStore
    redis_service: RedisService | None = field(default=None)

    async def close(self) -> None:
        if self.redis_service is not None:
            await self.redis_service.close()
        else:
            await self.store.close()


async def create_kv_store(
    config: ConfigData, allow_memory_fallback: bool = True
) -> StoreHandle:
    """Build the store selected by configuration.

    Outside production an unreachable Redis falls back to the in-memory store
    unless ``allow_memory_fallback`` is False. In production it is always an
    error.

    Raises:
        StoreUnavailableError: Redis is unreachable and falling back is not
            allowed
    """
    key_schema = key_schema_from_config(config.store)

    if config.store.backend == "memory":
        logger.info("User store: in-memory backend")
        return StoreHandle(store=InMemoryKeyValueStore(key_schema))

    redis_service = RedisService(config)
    client = redis_service.get_client()
    if client is not None:
        store = RedisKeyValueStore(client, key_schema, key_prefix=config.store.key_prefix)
        if await store.ping():
            logger.info("User store: Redis connected")
            return StoreHandle(store=store, redis_service=redis_service)
        await redis_service.close()

    if config.app.environment == "production":
        raise StoreUnavailableError("Redis user store unavailable in production")
    if not allow_memory_fallback:
        raise StoreUnavailableError(
            f"Redis user store unavailable at {config.redis.url or '<unset>'}"
        )

    logger.warning("Redis unavailable, using in-memory user store")
    return StoreHandle(store=InMemoryKeyValueStore(key_schema))
