import logging

from config import BREAK_DURATION
from database import DataStoreError
from day_window import DaySettings
from pomodoro import PomodoroTimer, WORK
from reminders import ExamReminders, HighPriorityPrompt
from storage import load_json, save_json

logger = logging.getLogger(__name__)

ACTIVE_USERS_KEY = "planit-active-users"


class UserSession:
    """Live objects for one signed-in user.

    Opened on first use and closed on sign-out or shutdown; closing stops
    the timer's ticking task while its state stays persisted.
    """

    def __init__(self, app, user_id: int, full_name: str = None):
        self.app = app
        self.user_id = user_id
        profile = app.db.get_profile(user_id, full_name)
        self.day_settings = DaySettings(app.store, user_id)
        self.timer = PomodoroTimer(
            app.store, user_id,
            work_minutes=profile["daily_focus_minutes"],
            break_minutes=BREAK_DURATION,
            on_complete=self.on_timer_complete,
        )

    async def on_timer_complete(self, timer, session_type: str):
        notifier = self.app.notifier
        await notifier.play_sound(self.user_id, "alarm")
        if session_type == WORK:
            await notifier.notify(self.user_id, "Focus Complete! 🎉",
                                  "Great work! Take a well-deserved break.", sound="success")
            try:
                self.app.db.log_focus_session(self.user_id, timer.work_minutes)
            except DataStoreError as e:
                logger.warning("Could not log focus session for %s: %s", self.user_id, e)
                await self.app.bot.send_message(self.user_id, f"⚠️ Failed to save focus session: {e}")
        else:
            await notifier.notify(self.user_id, "Break Over!", "Ready to get back to work?", sound="success")

    def close(self):
        self.timer.close()


class AppContext:
    """Everything the screens and jobs share, built once at startup."""

    def __init__(self, bot, store, db, notifier, scheduler=None):
        self.bot = bot
        self.store = store
        self.db = db
        self.notifier = notifier
        self.scheduler = scheduler
        self.reminders = ExamReminders(db, store, notifier)
        self.prompt = HighPriorityPrompt(db, store)
        self.sessions = {}

    def session(self, user_id: int, full_name: str = None) -> UserSession:
        session = self.sessions.get(user_id)
        if session is None:
            session = UserSession(self, user_id, full_name)
            self.sessions[user_id] = session
            session.timer.resume()
            logger.info("Opened session for user %s", user_id)
        return session

    def close_session(self, user_id: int):
        session = self.sessions.pop(user_id, None)
        if session is not None:
            session.close()
            logger.info("Closed session for user %s", user_id)

    def close(self):
        for user_id in list(self.sessions):
            self.close_session(user_id)

    def active_users(self) -> list:
        users = load_json(self.store, ACTIVE_USERS_KEY, [])
        return [u for u in users if isinstance(u, int)] if isinstance(users, list) else []

    def mark_active(self, user_id: int, active: bool = True):
        users = set(self.active_users())
        if active:
            users.add(user_id)
        else:
            users.discard(user_id)
        save_json(self.store, ACTIVE_USERS_KEY, sorted(users))
