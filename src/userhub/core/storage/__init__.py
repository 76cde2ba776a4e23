"""Key-value store abstractions backing the user repository."""

from .kv_store import (
    ConditionalCheckFailedError,
    Delete,
    InMemoryKeyValueStore,
    KeyValueStore,
    Put,
    RedisKeyValueStore,
    StoreError,
    StoreHandle,
    StoreTimeoutError,
    StoreUnavailableError,
    TransactionCanceledError,
    attribute_exists,
    attribute_not_exists,
    create_kv_store,
)

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "StoreHandle",
    "create_kv_store",
    "Put",
    "Delete",
    "attribute_exists",
    "attribute_not_exists",
    "StoreError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "ConditionalCheckFailedError",
    "TransactionCanceledError",
]
