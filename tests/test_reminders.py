import asyncio
from datetime import date, datetime, timedelta

import pytest

from day_window import DaySettings
from notifier import Notifier
from reminders import ExamReminders, HighPriorityPrompt, reminder_for

TODAY = date(2025, 5, 14)
USER = 42


def in_days(n: int) -> str:
    return (TODAY + timedelta(days=n)).isoformat()


@pytest.fixture
def notifier(bot, store):
    n = Notifier(bot, store)
    n.set_permission(USER, True)
    return n


@pytest.fixture
def reminders(db, store, notifier):
    return ExamReminders(db, store, notifier)


@pytest.mark.parametrize("days,title,sound", [
    (0, "Exam Day!", "alarm"),
    (1, "Exam Reminder", "alarm"),
    (3, "Exam Reminder", "gentle"),
    (7, "Exam Reminder", "gentle"),
])
def test_thresholds(days, title, sound):
    got = reminder_for({"title": "Physics", "exam_date": in_days(days)}, TODAY)
    assert got[0] == days
    assert got[1] == title
    assert got[3] == sound
    assert "Physics" in got[2]


@pytest.mark.parametrize("days", [2, 4, 5, 6, 8, 30])
def test_no_threshold(days):
    assert reminder_for({"title": "Physics", "exam_date": in_days(days)}, TODAY) is None


def test_fires_once_per_day(db, reminders, bot):
    exam = db.add_exam(USER, "Chemistry", in_days(3))

    first = asyncio.run(reminders.check(USER, TODAY))
    second = asyncio.run(reminders.check(USER, TODAY))

    assert [f["days_until"] for f in first] == [3]
    assert first[0]["body"] == "Chemistry in 3 days. Time to start reviewing!"
    assert second == []
    assert len(bot.sent) == 1
    assert reminders.store.get(f"exam_notif_{exam['id']}_3") == TODAY.isoformat()


def test_next_day_uses_new_threshold_key(db, reminders):
    db.add_exam(USER, "Chemistry", in_days(1))
    assert len(asyncio.run(reminders.check(USER, TODAY))) == 1
    tomorrow = TODAY + timedelta(days=1)
    fired = asyncio.run(reminders.check(USER, tomorrow))
    assert [f["days_until"] for f in fired] == [0]
    assert fired[0]["title"] == "Exam Day!"
    assert asyncio.run(reminders.check(USER, tomorrow)) == []


def test_past_and_other_users_exams_ignored(db, reminders):
    db.add_exam(USER, "Old", in_days(-1))
    db.add_exam(USER + 1, "Someone else's", in_days(0))
    assert asyncio.run(reminders.check(USER, TODAY)) == []


def test_several_exams_fire_in_date_order(db, reminders):
    db.add_exam(USER, "Later", in_days(7))
    db.add_exam(USER, "Sooner", in_days(0))
    fired = asyncio.run(reminders.check(USER, TODAY))
    assert [f["days_until"] for f in fired] == [0, 7]


def test_missing_user_fires_nothing(db, reminders):
    db.add_exam(USER, "Chemistry", in_days(3))
    assert asyncio.run(reminders.check(None, TODAY)) == []


def test_repeat_notification_replaces_previous(db, reminders, bot):
    db.add_exam(USER, "Biology", in_days(1))
    asyncio.run(reminders.check(USER, TODAY))
    first_id = bot.sent[-1]["message_id"]
    asyncio.run(reminders.check(USER, TODAY + timedelta(days=1)))
    assert bot.deleted == [(USER, first_id)]


def test_high_priority_prompt_once_per_day(db, store):
    prompt = HighPriorityPrompt(db, store)
    day = "2025-05-14"
    task = db.add_task(USER, "Finish essay", scheduled_date=day, priority="high")
    db.add_task(USER, "Water plants", scheduled_date=day)

    assert prompt.check(USER, datetime(2025, 5, 14, 12, 0)) is None
    picked = prompt.check(USER, datetime(2025, 5, 14, 17, 45))
    assert picked["id"] == task["id"]
    assert prompt.check(USER, datetime(2025, 5, 14, 18, 15)) is None


def test_high_priority_prompt_respects_day_end(db, store):
    DaySettings(store, USER).update_day_end("22:00")
    prompt = HighPriorityPrompt(db, store)
    db.add_task(USER, "Finish essay", scheduled_date="2025-05-14", priority="high")
    assert prompt.check(USER, datetime(2025, 5, 14, 17, 45)) is None
    assert prompt.check(USER, datetime(2025, 5, 14, 21, 40)) is not None


def test_high_priority_prompt_skips_completed(db, store):
    prompt = HighPriorityPrompt(db, store)
    task = db.add_task(USER, "Finish essay", scheduled_date="2025-05-14", priority="high")
    db.toggle_task(USER, task["id"])
    assert prompt.check(USER, datetime(2025, 5, 14, 18, 0)) is None


def test_stale_markers_are_pruned(db, reminders, store, notifier):
    exam = db.add_exam(USER, "Chemistry", in_days(3))
    yesterday = (TODAY - timedelta(days=1)).isoformat()
    store.set(ExamReminders.marker_key(999, 1), yesterday)
    store.set(ExamReminders.marker_key(exam["id"], 7), yesterday)
    store.set(notifier.tag_key(USER, "exam-999"), "55")
    store.set(notifier.tag_key(USER + 1, "exam-999"), "56")

    asyncio.run(reminders.check(USER, TODAY))

    assert store.keys("exam_notif_") == [ExamReminders.marker_key(exam["id"], 3)]
    assert store.get(notifier.tag_key(USER, "exam-999")) is None
    assert store.get(notifier.tag_key(USER + 1, "exam-999")) == "56"
    assert store.get(notifier.tag_key(USER, f"exam-{exam['id']}")) is not None


def test_forget_drops_markers_and_tag(db, reminders, store, notifier):
    exam = db.add_exam(USER, "Chemistry", in_days(1))
    asyncio.run(reminders.check(USER, TODAY))
    reminders.forget(USER, exam["id"])
    assert store.keys("exam_notif_") == []
    assert store.get(notifier.tag_key(USER, f"exam-{exam['id']}")) is None
