"""Database module."""

from app.db.database import SessionLocal, engine, get_db, init_db
from app.db.models import Base, Equipment, User, UserRole

__all__ = [
    "SessionLocal",
    "engine",
    "get_db",
    "init_db",
    "Base",
    "User",
    "UserRole",
    "Equipment",
]
