"""Core module - config, database, exceptions."""

from app.core.config import get_settings, Settings
from app.core.database import Database, get_db
from app.core.exceptions import (
    AppException,
    NotFoundException,
    BadRequestException,
    StorageException,
)

__all__ = [
    "get_settings",
    "Settings",
    "Database",
    "get_db",
    "AppException",
    "NotFoundException",
    "BadRequestException",
    "StorageException",
]
