"""Database module: declarative base and async session management."""

from arena.database.base import Base
from arena.database.session import Database, create_database

__all__ = ["Base", "Database", "create_database"]
