"""Local persistence shared by the sync services."""

from .local_store import LocalStore, dumps

__all__ = ["LocalStore", "dumps"]
