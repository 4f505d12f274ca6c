"""Streak arithmetic for skills and daily reviews.

Two formulas exist and are kept apart: the dashboard streak (weakest skill
streak) and the review streak (consecutive fully completed days).
"""
from datetime import date, timedelta


def practice_skill(db, user_id: int, skill: dict, today: str) -> dict:
    """Mark a skill practiced today and log the practice.

    The streak grows at most once per calendar day.
    """
    is_new_day = skill.get("last_practiced_at") != today
    streak = (skill.get("streak_count") or 0) + (1 if is_new_day else 0)
    updated = db.update("skills", user_id, skill["id"], {
        "last_practiced_at": today,
        "streak_count": streak,
    })
    db.insert("skill_logs", {
        "user_id": user_id,
        "skill_id": skill["id"],
        "duration_minutes": skill.get("target_minutes_daily") or 30,
        "practiced_at": today,
    })
    return updated


def total_streak(skills: list, today: str) -> int:
    if not skills:
        return 0
    min_streak = min(s.get("streak_count") or 0 for s in skills)
    if all(s.get("last_practiced_at") == today for s in skills):
        return max(min_streak, 1)
    return min_streak


def review_streak(completed_dates, today: str, window: int = 30) -> int:
    # Today not yet reviewed does not break the streak.
    dates = set(completed_dates)
    day = date.fromisoformat(today)
    streak = 0
    for i in range(window):
        check = (day - timedelta(days=i)).isoformat()
        if check in dates:
            streak += 1
        elif i > 0:
            break
    return streak


def set_review_streak(db, user_id: int, days: int, today: str):
    day = date.fromisoformat(today)
    for i in range(days):
        db.upsert_daily_review(user_id, (day - timedelta(days=i)).isoformat(), all_completed=1)


def last_seven_days(skills: list, today: str) -> list:
    """(date, practiced) pairs for the week strip, oldest first."""
    day = date.fromisoformat(today)
    practiced = {s.get("last_practiced_at") for s in skills}
    days = [(day - timedelta(days=i)).isoformat() for i in range(6, -1, -1)]
    return [(d, d in practiced) for d in days]
