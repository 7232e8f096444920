"""
Core Module

This module contains core infrastructure components like config, database and errors.
"""

from .config import settings, Settings
from .database import get_db, engine, Base, SessionLocal, build_engine
from .errors import (
    JournalError,
    JournalErrorCode,
    ValidationError,
    NotFoundError,
    ConflictError,
    AlreadyClosedError,
    InsufficientBalanceError,
    ReferencedTransactionError,
    journal_http_error,
)

__all__ = [
    # Config
    "settings",
    "Settings",

    # Database
    "get_db",
    "engine",
    "Base",
    "SessionLocal",
    "build_engine",

    # Errors
    "JournalError",
    "JournalErrorCode",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "AlreadyClosedError",
    "InsufficientBalanceError",
    "ReferencedTransactionError",
    "journal_http_error",
]
