import uuid
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel
from pydantic import Field as PydanticField


class Entity(BaseModel):
    """Base entity class with auto-generated UUID identifier."""

    id: uuid.UUID = PydanticField(
        default_factory=uuid.uuid4,
        description="Unique identifier for the entity",
    )

    created_at: datetime = PydanticField(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = PydanticField(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        """Advance ``updated_at`` to the current instant."""
        # strictly increasing even when the clock has not ticked since the last write
        self.updated_at = max(
            datetime.now(UTC), self.updated_at + timedelta(microseconds=1)
        )
