"""Achievement thresholds evaluated from a progress snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from . import constants
from .progress import ProgressRecord

# Each metric reads one number from (record, total_lessons).
Metric = Callable[[ProgressRecord, int], int]


def _lessons(record: ProgressRecord, total_lessons: int) -> int:
    return len(record.completed_lesson_ids)


def _homeworks(record: ProgressRecord, total_lessons: int) -> int:
    return max(len(record.submitted_homeworks), record.stats.total(constants.ACTION_HOMEWORK))


def _best_streak(record: ProgressRecord, total_lessons: int) -> int:
    return max((habit.streak for habit in record.habits), default=0)


def _questions(record: ProgressRecord, total_lessons: int) -> int:
    return record.stats.total(constants.ACTION_ASK_QUESTION)


def _stories(record: ProgressRecord, total_lessons: int) -> int:
    return record.stats.total(constants.ACTION_SHARE_STORY)


def _referrals(record: ProgressRecord, total_lessons: int) -> int:
    return record.stats.referrals_count


def _course_percent(record: ProgressRecord, total_lessons: int) -> int:
    if total_lessons <= 0:
        return 0
    done = min(len(record.completed_lesson_ids), total_lessons)
    return done * 100 // total_lessons


METRICS: Dict[str, Metric] = {
    "lessons_completed": _lessons,
    "homeworks_submitted": _homeworks,
    "best_streak": _best_streak,
    "questions_asked": _questions,
    "stories_shared": _stories,
    "referrals": _referrals,
    "course_percent": _course_percent,
}


@dataclass(frozen=True)
class AchievementDefinition:
    code: str
    title: str
    metric: str
    target: int


ACHIEVEMENTS: Tuple[AchievementDefinition, ...] = (
    AchievementDefinition("first_lesson", "First Step", "lessons_completed", 1),
    AchievementDefinition("ten_lessons", "Steady Learner", "lessons_completed", 10),
    AchievementDefinition("first_homework", "Homework Hero", "homeworks_submitted", 1),
    AchievementDefinition("five_homeworks", "Diligent", "homeworks_submitted", 5),
    AchievementDefinition("streak_7", "Week of Fire", "best_streak", 7),
    AchievementDefinition("streak_30", "Unbreakable", "best_streak", 30),
    AchievementDefinition("curious_mind", "Curious Mind", "questions_asked", 10),
    AchievementDefinition("storyteller", "Storyteller", "stories_shared", 5),
    AchievementDefinition("first_referral", "Recruiter", "referrals", 1),
    AchievementDefinition("halfway", "Halfway There", "course_percent", 50),
    AchievementDefinition("graduate", "Graduate", "course_percent", 100),
)


def evaluate_achievements(
    record: ProgressRecord,
    *,
    total_lessons: int = 0,
    definitions: Optional[Iterable[AchievementDefinition]] = None,
) -> FrozenSet[str]:
    """Codes of every achievement whose threshold ``record`` currently meets.

    Evaluated from scratch on each call; remembering which unlocks were
    already announced is up to the caller (see ``newly_unlocked``).
    """
    unlocked = set()
    for definition in definitions if definitions is not None else ACHIEVEMENTS:
        metric = METRICS[definition.metric]
        if metric(record, total_lessons) >= definition.target:
            unlocked.add(definition.code)
    return frozenset(unlocked)


def newly_unlocked(
    before: ProgressRecord, after: ProgressRecord, *, total_lessons: int = 0
) -> List[str]:
    """Achievements unlocked by the transition ``before`` -> ``after``, in definition order."""
    previous = evaluate_achievements(before, total_lessons=total_lessons)
    current = evaluate_achievements(after, total_lessons=total_lessons)
    return [item.code for item in ACHIEVEMENTS if item.code in current and item.code not in previous]


def achievement_progress(record: ProgressRecord, *, total_lessons: int = 0) -> Dict[str, Tuple[int, int]]:
    """``{code: (current, target)}`` with ``current`` capped at ``target``."""
    return {
        item.code: (min(METRICS[item.metric](record, total_lessons), item.target), item.target)
        for item in ACHIEVEMENTS
    }


__all__ = [
    "ACHIEVEMENTS",
    "AchievementDefinition",
    "METRICS",
    "achievement_progress",
    "evaluate_achievements",
    "newly_unlocked",
]
