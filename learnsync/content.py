"""Content, configuration and sync bookkeeping models."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .progress import ProgressRecord

logger = logging.getLogger(__name__)

CollectionStatus = Literal[
    "pending",
    "updated",
    "unchanged",
    "empty",
    "fallback",
    "deferred",
    "skipped",
]


class Notification(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str = ""
    text: str = ""
    type: str = "INFO"
    date: Optional[datetime] = None
    link: Optional[str] = None
    target_user_id: Optional[str] = None
    target_role: Optional[str] = None

    def is_addressed_to(self, record: ProgressRecord) -> bool:
        if self.target_user_id and self.target_user_id != record.remote_id:
            return False
        if self.target_role and self.target_role != "ALL" and self.target_role != record.role:
            return False
        return True


def filter_notifications(items: List[Dict[str, Any]], record: ProgressRecord) -> List[Dict[str, Any]]:
    """Keep only the notifications addressed to ``record``; unparseable entries are dropped."""
    selected: List[Dict[str, Any]] = []
    for raw in items:
        try:
            notification = Notification.model_validate(raw)
        except Exception:  # noqa: BLE001
            logger.warning("Dropping malformed notification payload: %r", raw)
            continue
        if notification.is_addressed_to(record):
            selected.append(raw)
    return selected


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    app_name: str = "learnsync"
    app_description: str = ""
    primary_color: str = "#6C5DD3"
    welcome_message: str = ""
    welcome_video_url: str = ""
    features: Dict[str, bool] = Field(default_factory=dict)


def merge_remote_config(local: AppConfig, remote: Dict[str, Any]) -> AppConfig:
    """Overlay non-empty remote fields on top of the local config.

    ``features`` may arrive as a JSON string; it is merged key by key and
    ignored when it cannot be parsed.
    """
    merged = local.model_dump()
    for key, value in remote.items():
        if key == "features":
            continue
        if value in (None, "", [], {}):
            continue
        merged[key] = value

    features = remote.get("features")
    if isinstance(features, str) and features.strip():
        try:
            features = json.loads(features)
        except ValueError:
            logger.warning("Ignoring unparseable remote feature flags")
            features = None
    if isinstance(features, dict):
        merged["features"] = {**local.features, **features}

    return AppConfig.model_validate(merged)


class SyncEnvelope(BaseModel):
    collection: str
    local_snapshot: Any = None
    remote_snapshot: Any = None
    last_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    status: CollectionStatus = "pending"


class SyncReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    configured: bool = True
    outcomes: Dict[str, CollectionStatus] = Field(default_factory=dict)
    changed: List[str] = Field(default_factory=list)

    @property
    def failed(self) -> List[str]:
        return [name for name, status in self.outcomes.items() if status == "fallback"]

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and len(self.failed) == len(self.outcomes)


__all__ = [
    "AppConfig",
    "CollectionStatus",
    "Notification",
    "SyncEnvelope",
    "SyncReport",
    "filter_notifications",
    "merge_remote_config",
]
