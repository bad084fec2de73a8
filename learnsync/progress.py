"""Learner progress models."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from .constants import XP_PER_LEVEL

Role = Literal["STUDENT", "CURATOR", "ADMIN"]
NotebookEntryType = Literal["NOTE", "IDEA", "GRATITUDE"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def level_for_xp(xp: int) -> int:
    return max(xp, 0) // XP_PER_LEVEL + 1


def _normalize_days(values: List[str]) -> List[str]:
    days = set()
    for value in values:
        # Accept full timestamps but keep only the calendar day.
        days.add(date.fromisoformat(str(value)[:10]).isoformat())
    return sorted(days)


class Habit(BaseModel):
    id: str
    title: str
    description: str = ""
    icon: str = ""
    completed_dates: List[str] = Field(default_factory=list)
    streak: int = Field(default=0, ge=0)

    @field_validator("completed_dates")
    @classmethod
    def _unique_days(cls, value: List[str]) -> List[str]:
        return _normalize_days(value)


class Goal(BaseModel):
    id: str
    title: str
    unit: str = ""
    current_value: float = 0
    target_value: float = Field(gt=0)
    is_completed: bool = False

    @model_validator(mode="after")
    def _clamp(self) -> "Goal":
        self.current_value = min(max(self.current_value, 0), self.target_value)
        self.is_completed = self.current_value >= self.target_value
        return self


class NotebookEntry(BaseModel):
    id: str
    text: str
    type: NotebookEntryType = "NOTE"
    is_pinned: bool = False
    date: datetime = Field(default_factory=_now)


class HomeworkSubmission(BaseModel):
    lesson_id: str
    submitted_at: datetime = Field(default_factory=_now)
    xp_awarded: int = Field(default=0, ge=0)


class ProgressStats(BaseModel):
    counters: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    totals: Dict[str, int] = Field(default_factory=dict)
    referrals_count: int = Field(default=0, ge=0)

    def count(self, action_key: str, scope_key: str) -> int:
        return self.counters.get(action_key, {}).get(scope_key, 0)

    def total(self, action_key: str) -> int:
        return self.totals.get(action_key, 0)


class ProgressRecord(BaseModel):
    """One learner's progress snapshot.

    ``level`` is derived from ``xp`` on every access and is only emitted in
    dumps for consumers that display it; incoming ``level`` values are ignored.
    """

    local_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    remote_id: Optional[str] = None
    name: str = "Rookie"
    role: Role = "STUDENT"
    xp: int = Field(default=0, ge=0)
    completed_lesson_ids: List[str] = Field(default_factory=list)
    submitted_homeworks: List[HomeworkSubmission] = Field(default_factory=list)
    habits: List[Habit] = Field(default_factory=list)
    goals: List[Goal] = Field(default_factory=list)
    notebook_entries: List[NotebookEntry] = Field(default_factory=list)
    stats: ProgressStats = Field(default_factory=ProgressStats)
    last_sync_timestamp: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    @model_validator(mode="before")
    @classmethod
    def _drop_stored_level(cls, data):  # type: ignore[no-untyped-def]
        if isinstance(data, dict) and "level" in data:
            data = {key: value for key, value in data.items() if key != "level"}
        return data

    @field_validator("completed_lesson_ids")
    @classmethod
    def _dedupe_lessons(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @property
    def is_linked(self) -> bool:
        return bool(self.remote_id)


__all__ = [
    "Goal",
    "Habit",
    "HomeworkSubmission",
    "NotebookEntry",
    "NotebookEntryType",
    "ProgressRecord",
    "ProgressStats",
    "Role",
    "level_for_xp",
]
