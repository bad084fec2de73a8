"""Pure gamification rules: XP, levels, streaks, goals and micro rewards.

Every function takes a snapshot and returns a new snapshot; inputs are never
mutated and nothing is persisted. Clock values (``today``, ``day``,
``submitted_at``) are parameters so the same inputs always give the same
outputs. Persisting results and notifying the learner belong to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from . import constants
from .progress import Goal, Habit, HomeworkSubmission, NotebookEntry, ProgressRecord, level_for_xp


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _as_day(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    record: ProgressRecord
    count: int


@dataclass(frozen=True)
class RewardResult:
    allowed: bool
    record: ProgressRecord
    xp: int = 0
    message: Optional[str] = None


@dataclass(frozen=True)
class GoalUpdate:
    goal: Goal
    just_completed: bool


@dataclass(frozen=True)
class LevelProgress:
    level: int
    xp_in_level: int
    xp_for_next: int
    percent: int


# ---------------------------------------------------------------------------
# XP and levels
# ---------------------------------------------------------------------------


def add_xp(record: ProgressRecord, amount: int) -> ProgressRecord:
    """Return ``record`` with ``amount`` XP added; negative amounts are ignored."""
    if amount <= 0:
        return record.model_copy(deep=True)
    return record.model_copy(update={"xp": record.xp + int(amount)}, deep=True)


def reset_progress_xp(record: ProgressRecord) -> ProgressRecord:
    """Admin reset: the only transition allowed to lower XP."""
    return record.model_copy(update={"xp": 0}, deep=True)


def level_progress(xp: int) -> LevelProgress:
    xp_in_level = max(xp, 0) % constants.XP_PER_LEVEL
    return LevelProgress(
        level=level_for_xp(xp),
        xp_in_level=xp_in_level,
        xp_for_next=constants.XP_PER_LEVEL,
        percent=round(xp_in_level * 100 / constants.XP_PER_LEVEL),
    )


def rank_title(level: int) -> str:
    for threshold, title in constants.RANK_TITLES:
        if level >= threshold:
            return title
    return constants.RANK_TITLES[-1][1]


def leaderboard_rank(record: ProgressRecord, leaderboard: Sequence[dict]) -> int:
    """1-based position of ``record`` by XP; unranked learners come last."""
    ordered = sorted(leaderboard, key=lambda entry: int(entry.get("xp", 0) or 0), reverse=True)
    for index, entry in enumerate(ordered, start=1):
        entry_id = entry.get("remote_id") or entry.get("local_id")
        if entry_id and entry_id in (record.remote_id, record.local_id):
            return index
    return len(ordered) + 1


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------


def compute_streak(completed_dates: Iterable[str], today: date) -> int:
    """Consecutive completed days ending today, or yesterday when today is open."""
    days = {_as_day(value) for value in completed_dates}
    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def record_habit_toggle(habit: Habit, day: date | str, *, today: Optional[date] = None) -> Habit:
    """Toggle ``day`` in the habit's completed dates and recompute its streak."""
    anchor = today or _today()
    key = _as_day(day).isoformat()
    dates = set(habit.completed_dates)
    if key in dates:
        dates.discard(key)
    else:
        dates.add(key)
    ordered = sorted(dates)
    return habit.model_copy(
        update={"completed_dates": ordered, "streak": compute_streak(ordered, anchor)},
        deep=True,
    )


def streak_bonus(previous: Habit, updated: Habit) -> int:
    """XP earned when a toggle lands on a weekly streak milestone."""
    if updated.streak <= previous.streak:
        return 0
    if updated.streak % constants.STREAK_BONUS_PERIOD_DAYS != 0:
        return 0
    if updated.streak >= constants.STREAK_MONTH_DAYS:
        return constants.XP_STREAK_MONTH
    return constants.XP_STREAK_WEEK


def toggle_habit(
    record: ProgressRecord, habit_id: str, day: date | str, *, today: Optional[date] = None
) -> RewardResult:
    habits: List[Habit] = []
    bonus = 0
    found = False
    for habit in record.habits:
        if habit.id == habit_id:
            updated = record_habit_toggle(habit, day, today=today)
            bonus = streak_bonus(habit, updated)
            habits.append(updated)
            found = True
        else:
            habits.append(habit)
    if not found:
        return RewardResult(False, record.model_copy(deep=True), message=f"Unknown habit {habit_id}")
    updated_record = add_xp(record.model_copy(update={"habits": habits}, deep=True), bonus)
    return RewardResult(True, updated_record, xp=bonus)


def weekly_completion_rate(habit: Habit, today: date) -> int:
    """Percent of the last seven days (including today) marked complete."""
    window = {(today - timedelta(days=offset)).isoformat() for offset in range(7)}
    done = sum(1 for value in habit.completed_dates if value in window)
    return round(done * 100 / 7)


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


def update_goal_progress(goal: Goal, delta: float) -> GoalUpdate:
    value = min(max(goal.current_value + delta, 0), goal.target_value)
    completed = value >= goal.target_value
    updated = goal.model_copy(update={"current_value": value, "is_completed": completed}, deep=True)
    return GoalUpdate(goal=updated, just_completed=completed and not goal.is_completed)


def apply_goal_delta(record: ProgressRecord, goal_id: str, delta: float) -> RewardResult:
    """Update a goal and award the one-time completion bonus on the crossing."""
    goals: List[Goal] = []
    bonus = 0
    found = False
    for goal in record.goals:
        if goal.id == goal_id:
            result = update_goal_progress(goal, delta)
            if result.just_completed:
                bonus = constants.XP_GOAL_COMPLETED
            goals.append(result.goal)
            found = True
        else:
            goals.append(goal)
    if not found:
        return RewardResult(False, record.model_copy(deep=True), message=f"Unknown goal {goal_id}")
    updated = add_xp(record.model_copy(update={"goals": goals}, deep=True), bonus)
    return RewardResult(True, updated, xp=bonus)


# ---------------------------------------------------------------------------
# Rate-limited micro rewards
# ---------------------------------------------------------------------------


def apply_rate_limited_action(
    record: ProgressRecord,
    action_key: str,
    scope_key: str,
    limit: int,
    *,
    daily: bool = False,
) -> RateLimitResult:
    """Count one ``action_key`` in ``scope_key`` unless ``limit`` is already reached.

    Per-day actions use the ISO day as ``scope_key`` and pass ``daily=True``;
    counters for other days are dropped on the next allowed action, which is
    how they reset when the calendar day changes. Other scopes never reset.
    """
    current = record.stats.count(action_key, scope_key)
    if current >= limit:
        return RateLimitResult(False, record, current)

    stats = record.stats.model_copy(deep=True)
    scoped = dict(stats.counters.get(action_key, {}))
    if daily:
        scoped = {key: value for key, value in scoped.items() if key == scope_key}
    scoped[scope_key] = current + 1
    stats.counters[action_key] = scoped
    stats.totals[action_key] = stats.totals.get(action_key, 0) + 1
    updated = record.model_copy(update={"stats": stats}, deep=True)
    return RateLimitResult(True, updated, current + 1)


def _rewarded_action(
    record: ProgressRecord,
    action_key: str,
    scope_key: str,
    limit: int,
    xp: int,
    *,
    daily: bool = False,
    limit_message: str,
) -> RewardResult:
    result = apply_rate_limited_action(record, action_key, scope_key, limit, daily=daily)
    if not result.allowed:
        return RewardResult(False, record, message=limit_message)
    return RewardResult(True, add_xp(result.record, xp), xp=xp)


def ask_question(record: ProgressRecord, lesson_id: str) -> RewardResult:
    return _rewarded_action(
        record,
        constants.ACTION_ASK_QUESTION,
        lesson_id,
        constants.MAX_QUESTIONS_PER_LESSON,
        constants.XP_ASK_QUESTION,
        limit_message="Question limit reached for this lesson.",
    )


def share_story(record: ProgressRecord, day: date | str) -> RewardResult:
    return _rewarded_action(
        record,
        constants.ACTION_SHARE_STORY,
        _as_day(day).isoformat(),
        constants.MAX_STORIES_PER_DAY,
        constants.XP_STORY_REPOST,
        daily=True,
        limit_message="Story already shared today.",
    )


def visit_stream(record: ProgressRecord, stream_id: str) -> RewardResult:
    return _rewarded_action(
        record,
        constants.ACTION_VISIT_STREAM,
        stream_id,
        constants.MAX_VISITS_PER_STREAM,
        constants.XP_STREAM_VISIT,
        limit_message="Stream visit already counted.",
    )


def record_referral(record: ProgressRecord, referral_id: str) -> RewardResult:
    result = _rewarded_action(
        record,
        constants.ACTION_REFERRAL,
        referral_id,
        1,
        constants.XP_REFERRAL_FRIEND,
        limit_message="Referral already counted.",
    )
    if not result.allowed:
        return result
    stats = result.record.stats.model_copy(update={"referrals_count": result.record.stats.referrals_count + 1})
    return RewardResult(True, result.record.model_copy(update={"stats": stats}), xp=result.xp)


# ---------------------------------------------------------------------------
# Lessons, homework and notebook
# ---------------------------------------------------------------------------


def complete_lesson(record: ProgressRecord, lesson_id: str, xp_reward: int) -> RewardResult:
    """Mark a lesson complete; XP is only granted the first time."""
    if lesson_id in record.completed_lesson_ids:
        return RewardResult(False, record, message="Lesson already completed.")
    updated = record.model_copy(
        update={"completed_lesson_ids": [*record.completed_lesson_ids, lesson_id]}, deep=True
    )
    return RewardResult(True, add_xp(updated, xp_reward), xp=max(xp_reward, 0))


def homework_xp(submitted_at: datetime, deadline: Optional[datetime]) -> int:
    if deadline is not None and submitted_at <= deadline:
        return constants.XP_HOMEWORK_FAST
    return constants.XP_HOMEWORK


def submit_homework(
    record: ProgressRecord,
    lesson_id: str,
    submitted_at: datetime,
    *,
    deadline: Optional[datetime] = None,
) -> RewardResult:
    """Log an accepted homework; one rewarded submission per lesson."""
    if any(entry.lesson_id == lesson_id for entry in record.submitted_homeworks):
        return RewardResult(False, record, message="Homework already submitted.")
    xp = homework_xp(submitted_at, deadline)
    submission = HomeworkSubmission(lesson_id=lesson_id, submitted_at=submitted_at, xp_awarded=xp)
    stats = record.stats.model_copy(deep=True)
    stats.totals[constants.ACTION_HOMEWORK] = stats.totals.get(constants.ACTION_HOMEWORK, 0) + 1
    updated = record.model_copy(
        update={"submitted_homeworks": [*record.submitted_homeworks, submission], "stats": stats},
        deep=True,
    )
    return RewardResult(True, add_xp(updated, xp), xp=xp)


def add_notebook_entry(record: ProgressRecord, entry: NotebookEntry) -> RewardResult:
    xp = constants.NOTEBOOK_XP.get(entry.type, 0)
    updated = record.model_copy(
        update={"notebook_entries": [*record.notebook_entries, entry]}, deep=True
    )
    return RewardResult(True, add_xp(updated, xp), xp=xp)


def course_completion_percent(record: ProgressRecord, lesson_ids: Iterable[str]) -> int:
    """Share of ``lesson_ids`` the learner completed, rounded to a whole percent."""
    lessons = set(lesson_ids)
    if not lessons:
        return 0
    done = len(lessons.intersection(record.completed_lesson_ids))
    return round(done * 100 / len(lessons))


def best_streak(record: ProgressRecord) -> int:
    return max((habit.streak for habit in record.habits), default=0)


def habits_done_today(record: ProgressRecord, today: date) -> Tuple[int, int]:
    key = today.isoformat()
    done = sum(1 for habit in record.habits if key in habit.completed_dates)
    return done, len(record.habits)


__all__ = [
    "GoalUpdate",
    "LevelProgress",
    "RateLimitResult",
    "RewardResult",
    "add_notebook_entry",
    "add_xp",
    "apply_goal_delta",
    "apply_rate_limited_action",
    "ask_question",
    "best_streak",
    "complete_lesson",
    "compute_streak",
    "course_completion_percent",
    "habits_done_today",
    "homework_xp",
    "leaderboard_rank",
    "level_progress",
    "rank_title",
    "record_habit_toggle",
    "record_referral",
    "reset_progress_xp",
    "share_story",
    "streak_bonus",
    "submit_homework",
    "toggle_habit",
    "update_goal_progress",
    "visit_stream",
    "weekly_completion_rate",
]
