"""
Repository implementations for database operations.

This module exports the concrete repository implementations that back the
domain repository interfaces with SQLAlchemy.
"""

from .base import BaseRepository
from .controller_repository import SQLAlchemyControllerRepository
from .user_repository import SQLAlchemyUserRepository

__all__ = [
    "BaseRepository",
    "SQLAlchemyControllerRepository",
    "SQLAlchemyUserRepository",
]
