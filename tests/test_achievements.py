from __future__ import annotations

from datetime import datetime, timezone

from learnsync.achievements import achievement_progress, evaluate_achievements, newly_unlocked
from learnsync.progress import Habit, HomeworkSubmission, ProgressRecord, ProgressStats


def test_fresh_record_unlocks_nothing() -> None:
    assert evaluate_achievements(ProgressRecord(), total_lessons=10) == frozenset()


def test_thresholds_across_all_metrics() -> None:
    record = ProgressRecord(
        completed_lesson_ids=[f"l{i}" for i in range(10)],
        submitted_homeworks=[
            HomeworkSubmission(lesson_id="l1", submitted_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        ],
        habits=[Habit(id="h", title="Read", streak=8)],
        stats=ProgressStats(totals={"questions_asked": 10, "stories_shared": 5}, referrals_count=1),
    )

    unlocked = evaluate_achievements(record, total_lessons=20)

    assert unlocked == frozenset(
        {
            "first_lesson",
            "ten_lessons",
            "first_homework",
            "streak_7",
            "curious_mind",
            "storyteller",
            "first_referral",
            "halfway",
        }
    )


def test_evaluation_is_idempotent() -> None:
    record = ProgressRecord(completed_lesson_ids=["a", "b"])

    assert evaluate_achievements(record, total_lessons=2) == evaluate_achievements(record, total_lessons=2)
    assert "graduate" in evaluate_achievements(record, total_lessons=2)


def test_course_percent_needs_known_lesson_total() -> None:
    record = ProgressRecord(completed_lesson_ids=["a"])

    assert "halfway" not in evaluate_achievements(record)
    assert "halfway" in evaluate_achievements(record, total_lessons=2)


def test_newly_unlocked_reports_only_the_transition() -> None:
    before = ProgressRecord(completed_lesson_ids=["a"])
    after = before.model_copy(update={"completed_lesson_ids": ["a", "b"]})

    assert newly_unlocked(before, after, total_lessons=4) == ["halfway"]
    assert newly_unlocked(after, after, total_lessons=4) == []


def test_progress_is_capped_at_target() -> None:
    record = ProgressRecord(habits=[Habit(id="h", title="Run", streak=45)])

    progress = achievement_progress(record)

    assert progress["streak_7"] == (7, 7)
    assert progress["streak_30"] == (30, 30)
    assert progress["first_lesson"] == (0, 1)
