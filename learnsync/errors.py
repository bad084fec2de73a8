"""Error taxonomy shared by the sync layer."""

from __future__ import annotations


class LearnSyncError(RuntimeError):
    """Base class for learnsync failures."""


class TransientRemoteError(LearnSyncError):
    """Network, timeout or rate-limit failure talking to the remote store."""


class SerializationError(LearnSyncError):
    """A locally persisted payload could not be decoded or validated."""


class ConfigurationError(LearnSyncError):
    """Remote credentials are missing, so no network I/O is attempted."""


__all__ = [
    "ConfigurationError",
    "LearnSyncError",
    "SerializationError",
    "TransientRemoteError",
]
