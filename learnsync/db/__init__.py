"""Database utilities for the learnsync local cache."""

from .base import Base
from .models import LocalStoreEntryModel
from .session import (
    SessionManager,
    build_engine,
    build_engine_from_settings,
    build_session_factory,
    dispose_engine,
    session_scope,
)

__all__ = [
    "Base",
    "LocalStoreEntryModel",
    "SessionManager",
    "build_engine",
    "build_engine_from_settings",
    "build_session_factory",
    "dispose_engine",
    "session_scope",
]
