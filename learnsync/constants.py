"""Shared constants for the learnsync core."""

from typing import Dict, Tuple

XP_PER_LEVEL = 1000

# Collection name -> LocalStore key.
COLLECTION_KEYS: Dict[str, str] = {
    "modules": "courseModules",
    "materials": "materials",
    "streams": "streams",
    "events": "events",
    "scenarios": "scenarios",
    "notifications": "local_notifications",
    "leaderboard": "allUsers",
    "config": "appConfig",
    "profile": "progress",
}

# Local writes the remote has not acknowledged yet, keyed by collection name.
PENDING_PUSHES_KEY = "pendingPushes"

CONTENT_COLLECTIONS: Tuple[str, ...] = ("modules", "materials", "streams", "events", "scenarios")

SYNC_UPDATE = "SYNC_UPDATE"

# Interval ticks spent on the fast cadence after trigger_sync().
FAST_SYNC_PERIODS = 3

# Rate-limited micro rewards.
ACTION_ASK_QUESTION = "questions_asked"
ACTION_SHARE_STORY = "stories_shared"
ACTION_VISIT_STREAM = "streams_visited"
ACTION_HOMEWORK = "homeworks_submitted"
ACTION_REFERRAL = "referrals"

MAX_QUESTIONS_PER_LESSON = 3
MAX_STORIES_PER_DAY = 1
MAX_VISITS_PER_STREAM = 1

XP_ASK_QUESTION = 10
XP_STORY_REPOST = 400
XP_STREAM_VISIT = 100
XP_REFERRAL_FRIEND = 10000
XP_HOMEWORK_FAST = 300
XP_HOMEWORK = 150
XP_GOAL_COMPLETED = 500
XP_STREAK_WEEK = 100
XP_STREAK_MONTH = 300
STREAK_BONUS_PERIOD_DAYS = 7
STREAK_MONTH_DAYS = 30

NOTEBOOK_XP: Dict[str, int] = {
    "NOTE": 0,
    "IDEA": 15,
    "GRATITUDE": 10,
}

# Lowest level at which each title is earned, highest first.
RANK_TITLES: Tuple[Tuple[int, str], ...] = (
    (20, "Legend"),
    (15, "Commander"),
    (10, "Centurion"),
    (7, "Spartan"),
    (5, "Warrior"),
    (3, "Recruit"),
    (1, "Rookie"),
)
