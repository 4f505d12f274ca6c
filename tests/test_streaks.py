from streaks import practice_skill, total_streak, review_streak, set_review_streak, last_seven_days

USER = 42


def test_practice_grows_streak_once_per_day(db):
    skill = db.add_skill(USER, "Guitar", 20)
    skill = practice_skill(db, USER, skill, "2025-05-14")
    assert skill["streak_count"] == 1
    skill = practice_skill(db, USER, skill, "2025-05-14")
    assert skill["streak_count"] == 1
    skill = practice_skill(db, USER, skill, "2025-05-15")
    assert skill["streak_count"] == 2
    logs = db.select("skill_logs", USER, eq={"skill_id": skill["id"]})
    assert [l["duration_minutes"] for l in logs] == [20, 20, 20]


def test_total_streak_is_weakest_skill():
    today = "2025-05-14"
    assert total_streak([], today) == 0
    skills = [
        {"streak_count": 5, "last_practiced_at": today},
        {"streak_count": 2, "last_practiced_at": "2025-05-13"},
    ]
    assert total_streak(skills, today) == 2


def test_total_streak_at_least_one_when_all_practiced_today():
    today = "2025-05-14"
    skills = [
        {"streak_count": 0, "last_practiced_at": today},
        {"streak_count": 3, "last_practiced_at": today},
    ]
    assert total_streak(skills, today) == 1


def test_review_streak_counts_back_from_today():
    today = "2025-05-14"
    assert review_streak(["2025-05-14", "2025-05-13", "2025-05-12", "2025-05-10"], today) == 3
    assert review_streak(["2025-05-13", "2025-05-12"], today) == 2
    assert review_streak(["2025-05-12"], today) == 0
    assert review_streak([], today) == 0


def test_set_review_streak_writes_reviews(db):
    set_review_streak(db, USER, 4, "2025-05-14")
    dates = db.completed_review_dates(USER)
    assert dates == ["2025-05-14", "2025-05-13", "2025-05-12", "2025-05-11"]
    assert review_streak(dates, "2025-05-14") == 4


def test_last_seven_days():
    days = last_seven_days([{"last_practiced_at": "2025-05-12"}], "2025-05-14")
    assert len(days) == 7
    assert days[0] == ("2025-05-08", False)
    assert days[-1] == ("2025-05-14", False)
    assert ("2025-05-12", True) in days
