"""User domain entity."""

import uuid
from datetime import UTC, date, datetime

from pydantic import BaseModel, Field

from src.userhub.entities.core._base import Entity


class User(Entity):
    """User entity representing a person in the system.

    The email address is unique across all users. Uniqueness is not a property
    of the model itself; the repository enforces it through the email lookup
    collection.
    """

    first_name: str = Field(default="", description="User's first name")
    last_name: str = Field(default="", description="User's last name")
    email: str = Field(description="User's email address")
    date_of_birth: date = Field(description="User's date of birth")

    @classmethod
    def new(
        cls, first_name: str, last_name: str, email: str, date_of_birth: date
    ) -> "User":
        """Build a brand new user with a fresh id and matching timestamps."""
        now = datetime.now(UTC)
        return cls(
            id=uuid.uuid4(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            date_of_birth=date_of_birth,
            created_at=now,
            updated_at=now,
        )

    @property
    def has_nil_id(self) -> bool:
        return self.id.int == 0

    def apply_update(self, update: "UserUpdate") -> None:
        """Apply the present fields of ``update`` in place and advance ``updated_at``."""
        if update.first_name is not None:
            self.first_name = update.first_name
        if update.last_name is not None:
            self.last_name = update.last_name
        if update.email is not None:
            self.email = update.email
        if update.date_of_birth is not None:
            self.date_of_birth = update.date_of_birth

        self.touch()


class UserUpdate(BaseModel):
    """Partial update of a user; ``None`` means the field is absent."""

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    date_of_birth: date | None = None

    def is_empty(self) -> bool:
        return (
            self.first_name is None
            and self.last_name is None
            and self.email is None
            and self.date_of_birth is None
        )
