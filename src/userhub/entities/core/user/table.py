"""Persisted shapes of the user and email lookup records.

Every attribute is stored as a string: UUIDs as canonical text, the date of
birth as ``YYYY-MM-DD`` and timestamps as RFC 3339.
"""

import uuid
from datetime import date, datetime
from typing import Any

from src.userhub.entities.core.user.entity import User
from src.userhub.entities.core.user.errors import (
    MalformedRecordError,
    RecordValidationError,
)

USER_KEY = "id"
LOOKUP_KEY = "email"


def user_key(user_id: uuid.UUID) -> dict[str, str]:
    return {USER_KEY: str(user_id)}


def lookup_key(email: str) -> dict[str, str]:
    return {LOOKUP_KEY: email}


def user_to_item(user: User) -> dict[str, str]:
    """Encode a user as a primary table item."""
    return {
        "id": str(user.id),
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "date_of_birth": user.date_of_birth.isoformat(),
        "created_at": user.created_at.isoformat(),
        "updated_at": user.updated_at.isoformat(),
    }


def lookup_to_item(email: str, user_id: uuid.UUID) -> dict[str, str]:
    """Encode an email lookup entry."""
    return {"email": email, "id": str(user_id)}


def _get_string(item: dict[str, Any], attribute: str) -> str:
    if attribute not in item:
        raise MalformedRecordError(f"{attribute} missing")
    value = item[attribute]
    if not isinstance(value, str):
        raise MalformedRecordError(f"incorrect type for {attribute}")
    return value


def _get_optional_string(item: dict[str, Any], attribute: str) -> str:
    if attribute not in item:
        return ""
    return _get_string(item, attribute)


def _parse_timestamp(item: dict[str, Any], attribute: str) -> datetime:
    try:
        value = datetime.fromisoformat(_get_string(item, attribute))
    except ValueError as e:
        raise MalformedRecordError(f"invalid {attribute} format") from e
    if value.tzinfo is None:
        raise MalformedRecordError(f"invalid {attribute} format")
    return value


def user_from_item(item: dict[str, Any]) -> User:
    """Decode a primary table item into a User.

    Raises:
        MalformedRecordError: on a missing required attribute, a non-string
            attribute or an unparsable id, date or timestamp.
    """
    try:
        user_id = uuid.UUID(_get_string(item, "id"))
    except ValueError as e:
        raise MalformedRecordError("invalid uuid") from e

    first_name = _get_optional_string(item, "first_name")
    last_name = _get_optional_string(item, "last_name")
    email = _get_string(item, "email")

    try:
        date_of_birth = date.fromisoformat(_get_string(item, "date_of_birth"))
    except ValueError as e:
        raise MalformedRecordError("invalid date_of_birth format") from e

    created_at = _parse_timestamp(item, "created_at")
    updated_at = _parse_timestamp(item, "updated_at")

    return User(
        id=user_id,
        first_name=first_name,
        last_name=last_name,
        email=email,
        date_of_birth=date_of_birth,
        created_at=created_at,
        updated_at=updated_at,
    )


def lookup_user_id(item: dict[str, Any]) -> uuid.UUID:
    """Extract the user id an email lookup entry points at.

    Raises:
        RecordValidationError: if the id is missing or not a well-formed UUID.
    """
    value = item.get("id")
    if not isinstance(value, str):
        raise RecordValidationError("lookup entry has no user id")
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise RecordValidationError(f"lookup entry has invalid user id: {value}") from e
