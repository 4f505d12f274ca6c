from datetime import date, datetime

from day_window import DayWindow
from handlers import fmt_minutes, progress_bar, format_dashboard, format_exams, format_focus, format_skills
from pomodoro import PomodoroTimer


def test_fmt_minutes():
    assert fmt_minutes(0) == "0 min"
    assert fmt_minutes(45) == "45 min"
    assert fmt_minutes(60) == "1h"
    assert fmt_minutes(95) == "1h 35min"


def test_progress_bar():
    assert progress_bar(0, 0) == "░" * 10
    assert progress_bar(5, 10) == "█" * 5 + "░" * 5
    assert progress_bar(20, 10, 4) == "████"


def test_dashboard_shows_summary_only_at_end_of_day():
    tasks = [
        {"title": "A", "completed": 1},
        {"title": "B", "completed": 0},
    ]
    window = DayWindow("06:00", "18:00")
    midday = format_dashboard(tasks, [], window, datetime(2025, 5, 14, 12, 0))
    evening = format_dashboard(tasks, [], window, datetime(2025, 5, 14, 17, 45))
    assert "Today's Summary" not in midday
    assert "Day: █████░░░░░ 50%" in midday
    assert "Tasks: █████░░░░░ 1/2" in midday
    assert "✅ Completed (1)" in evening
    assert "❌ Skipped (1)" in evening


def test_exam_list_counts_days():
    exams = [
        {"title": "Math", "subject": None, "exam_date": "2025-05-14"},
        {"title": "Bio", "subject": "Science", "exam_date": "2025-05-17"},
    ]
    text = format_exams(exams, date(2025, 5, 14))
    assert "Math</b> — 14.05.2025, today" in text
    assert "Bio</b> (Science) — 17.05.2025, in 3 days" in text


def test_focus_view(store):
    timer = PomodoroTimer(store, 1, work_minutes=25)
    text = format_focus(timer)
    assert "⏱ <b>25:00</b>" in text
    assert "paused" in text


def test_skills_view_streak():
    skills = [{"name": "Piano", "target_minutes_daily": 30, "streak_count": 4,
               "last_practiced_at": "2025-05-14"}]
    text = format_skills(skills, "2025-05-14")
    assert "🔥 4 days" in text
    assert "✅ Piano — 30 min/day" in text
