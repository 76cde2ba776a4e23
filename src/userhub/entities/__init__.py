"""Entities module with entity-centric structure.

Each entity has its own package containing:
- entity.py: Domain model
- table.py: Persisted record shape
- repository.py: Data access layer
"""

from .core.user import User, UserRepository, UserUpdate

__all__ = [
    "User",
    "UserUpdate",
    "UserRepository",
]
