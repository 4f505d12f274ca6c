import logging
from datetime import date, datetime

from database import DataStoreError, _now
from day_window import DaySettings

logger = logging.getLogger(__name__)

REMINDER_MESSAGES = {
    0: "Today is your {title} exam! Good luck! 🍀",
    1: "{title} is tomorrow! Make sure you're prepared.",
    3: "{title} in 3 days. Time to start reviewing!",
    7: "{title} is in 1 week. Plan your study schedule.",
}


def days_until(exam_date: str, today: date) -> int:
    return (date.fromisoformat(exam_date) - today).days


def reminder_for(exam: dict, today: date):
    """Return (days_until, title, body, sound) if a threshold is crossed."""
    days = days_until(exam["exam_date"], today)
    template = REMINDER_MESSAGES.get(days)
    if template is None:
        return None
    title = "Exam Day!" if days == 0 else "Exam Reminder"
    sound = "alarm" if days <= 1 else "gentle"
    return days, title, template.format(title=exam["title"]), sound


class ExamReminders:
    """Fires at most one notification per (exam, threshold) per calendar day."""

    def __init__(self, db, store, notifier):
        self.db = db
        self.store = store
        self.notifier = notifier

    @staticmethod
    def marker_key(exam_id, days: int) -> str:
        return f"exam_notif_{exam_id}_{days}"

    @staticmethod
    def exam_tag(exam_id) -> str:
        return f"exam-{exam_id}"

    def forget(self, user_id: int, exam_id):
        """Drop the markers and notification tag of a deleted exam."""
        for days in REMINDER_MESSAGES:
            self.store.remove(self.marker_key(exam_id, days))
        self.notifier.forget_tag(user_id, self.exam_tag(exam_id))

    def _prune(self, user_id: int, exams: list, today_str: str):
        # A marker only suppresses a repeat on the day it was written.
        for key in self.store.keys("exam_notif_"):
            if self.store.get(key) != today_str:
                self.store.remove(key)
        live = {self.notifier.tag_key(user_id, self.exam_tag(e["id"])) for e in exams}
        for key in self.store.keys(self.notifier.tag_key(user_id, self.exam_tag(""))):
            if key not in live:
                self.store.remove(key)

    async def check(self, user_id: int, today: date = None) -> list:
        if not user_id:
            return []
        if today is None:
            today = _now().date()
        today_str = today.isoformat()

        try:
            exams = self.db.upcoming_exams(user_id, today_str)
        except DataStoreError as e:
            logger.warning("Exam reminder check for %s failed: %s", user_id, e)
            return []

        self._prune(user_id, exams, today_str)
        fired = []
        for exam in exams:
            try:
                reminder = reminder_for(exam, today)
            except ValueError:
                logger.warning("Skipping exam %s with bad date %r", exam.get("id"), exam.get("exam_date"))
                continue
            if reminder is None:
                continue
            days, title, body, sound = reminder
            key = self.marker_key(exam["id"], days)
            if self.store.get(key) == today_str:
                continue
            await self.notifier.notify(user_id, title, body, sound=sound, tag=self.exam_tag(exam["id"]))
            self.store.set(key, today_str)
            logger.info("Exam reminder %s fired for user %s (%s days)", exam["id"], user_id, days)
            fired.append({"exam_id": exam["id"], "days_until": days, "title": title, "body": body})
        return fired


class HighPriorityPrompt:
    """Picks one unfinished high-priority task to raise near the end of the day."""

    def __init__(self, db, store):
        self.db = db
        self.store = store

    @staticmethod
    def marker_key(user_id: int) -> str:
        return f"planit-last-hp-prompt:{user_id}"

    def check(self, user_id: int, now: datetime):
        if not user_id:
            return None
        if not DaySettings(self.store, user_id).load().is_end_of_day(now):
            return None
        today = now.date().isoformat()
        if self.store.get(self.marker_key(user_id)) == today:
            return None
        pending = self.db.incomplete_high_priority(user_id, today)
        if not pending:
            return None
        self.store.set(self.marker_key(user_id), today)
        return pending[0]
