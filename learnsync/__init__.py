"""Offline-first progress sync and gamification core for a learning client."""

from .achievements import evaluate_achievements, newly_unlocked
from .cache import LocalStore
from .config import Settings, get_settings
from .content import AppConfig, Notification, SyncEnvelope, SyncReport
from .cross_tab import BroadcastHub, CrossTabBus, SyncMessage
from .errors import ConfigurationError, LearnSyncError, SerializationError, TransientRemoteError
from .gateway import HttpContentGateway, RemoteContentGateway
from .progress import Goal, Habit, HomeworkSubmission, NotebookEntry, ProgressRecord, ProgressStats
from .retry import RetryPolicy, retry
from .sync_coordinator import SyncCoordinator

__all__ = [
    "AppConfig",
    "BroadcastHub",
    "ConfigurationError",
    "CrossTabBus",
    "Goal",
    "Habit",
    "HomeworkSubmission",
    "HttpContentGateway",
    "LearnSyncError",
    "LocalStore",
    "NotebookEntry",
    "Notification",
    "ProgressRecord",
    "ProgressStats",
    "RemoteContentGateway",
    "RetryPolicy",
    "SerializationError",
    "Settings",
    "SyncCoordinator",
    "SyncEnvelope",
    "SyncMessage",
    "SyncReport",
    "TransientRemoteError",
    "evaluate_achievements",
    "get_settings",
    "newly_unlocked",
    "retry",
]
