import asyncio
import inspect
import logging
import time

from storage import load_json, save_json

logger = logging.getLogger(__name__)

WORK = "work"
BREAK = "break"
SESSION_TYPES = (WORK, BREAK)


def now_ms() -> int:
    return int(time.time() * 1000)


def default_state(work_minutes: int) -> dict:
    return {
        "timeLeft": work_minutes * 60,
        "isRunning": False,
        "sessionType": WORK,
        "sessionsCompleted": 0,
    }


def _valid_record(data) -> bool:
    if not isinstance(data, dict):
        return False
    if data.get("sessionType") not in SESSION_TYPES:
        return False
    for key in ("timeLeft", "sessionsCompleted"):
        value = data.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            return False
    return isinstance(data.get("isRunning"), bool)


class TimerStateStore:
    """Persists one user's timer record and reconciles time lost while the
    process was not running."""

    def __init__(self, store, user_id: int, clock=now_ms):
        self.store = store
        self.key = f"planit_pomodoro_state:{user_id}"
        self.clock = clock

    def load(self, work_minutes: int, break_minutes: int) -> dict:
        data = load_json(self.store, self.key)
        if data is None:
            return default_state(work_minutes)
        if not _valid_record(data):
            logger.warning("Discarding malformed timer state %s", self.key)
            return default_state(work_minutes)

        state = {k: data[k] for k in ("timeLeft", "isRunning", "sessionType", "sessionsCompleted")}
        last_update = data.get("lastUpdate")
        if state["isRunning"] and isinstance(last_update, int):
            elapsed = (self.clock() - last_update) // 1000
            state["timeLeft"] = max(0, state["timeLeft"] - max(0, elapsed))

        limit = (work_minutes if state["sessionType"] == WORK else break_minutes) * 60
        state["timeLeft"] = min(state["timeLeft"], limit)
        return state

    def save(self, state: dict):
        save_json(self.store, self.key, {**state, "lastUpdate": self.clock()})

    def clear(self):
        self.store.remove(self.key)


def _current_task():
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class PomodoroTimer:
    """Single countdown session with work/break types.

    Every mutation is persisted. While running, a ticking task on the
    event loop decrements the countdown once per second; the task is
    cancelled by pause/complete/clear/close. Without a running event loop
    the caller drives ``tick()`` itself.
    """

    def __init__(self, store, user_id: int, work_minutes: int = 25, break_minutes: int = 5,
                 clock=now_ms, on_complete=None, tick_interval: float = 1.0):
        self.user_id = user_id
        self.work_minutes = work_minutes
        self.break_minutes = break_minutes
        self.on_complete = on_complete
        self.tick_interval = tick_interval
        self.persisted = TimerStateStore(store, user_id, clock)
        self.state = self.persisted.load(work_minutes, break_minutes)
        self._task = None

    @property
    def time_left(self) -> int:
        return self.state["timeLeft"]

    @property
    def is_running(self) -> bool:
        return self.state["isRunning"]

    @property
    def session_type(self) -> str:
        return self.state["sessionType"]

    @property
    def sessions_completed(self) -> int:
        return self.state["sessionsCompleted"]

    @property
    def is_complete(self) -> bool:
        return self.time_left == 0

    @property
    def is_ticking(self) -> bool:
        return self._task is not None and not self._task.done()

    def duration_seconds(self, session_type: str = None) -> int:
        session_type = session_type or self.session_type
        return (self.work_minutes if session_type == WORK else self.break_minutes) * 60

    def progress(self) -> float:
        total = self.duration_seconds()
        if total <= 0:
            return 0.0
        return max(0.0, min(1.0, (total - self.time_left) / total))

    def format_time_left(self) -> str:
        minutes, seconds = divmod(self.time_left, 60)
        return f"{minutes:02}:{seconds:02}"

    def _set(self, **changes):
        self.state.update(changes)
        self.persisted.save(self.state)

    def start(self):
        if self.time_left == 0:
            return
        self._set(isRunning=True)
        self._start_ticking()

    def pause(self):
        self._set(isRunning=False)
        self._stop_ticking()

    def reset(self):
        self._set(timeLeft=self.duration_seconds(), isRunning=False)
        self._stop_ticking()

    def start_session(self, session_type: str):
        if session_type not in SESSION_TYPES:
            raise ValueError(f"Unknown session type {session_type!r}")
        self._set(sessionType=session_type, timeLeft=self.duration_seconds(session_type), isRunning=True)
        self._start_ticking()

    def set_work_duration_minutes(self, minutes: int):
        if minutes <= 0:
            raise ValueError("Work duration must be positive")
        self.work_minutes = minutes
        if self.session_type == WORK and not self.is_running:
            self._set(timeLeft=minutes * 60)

    def complete_session(self):
        completed = self.sessions_completed
        if self.session_type == WORK:
            completed += 1
        self._set(sessionsCompleted=completed, isRunning=False)
        self._stop_ticking()
        logger.info("User %s completed a %s session", self.user_id, self.session_type)

    def clear_state(self, work_minutes: int = None):
        if work_minutes is not None:
            self.work_minutes = work_minutes
        self._stop_ticking()
        self.persisted.clear()
        self.state = default_state(self.work_minutes)

    def tick(self) -> bool:
        """Advance one second. Returns True when this tick finished the session."""
        if not self.is_running or self.time_left <= 0:
            return False
        self._set(timeLeft=self.time_left - 1)
        if self.time_left == 0:
            self.complete_session()
            return True
        return False

    def resume(self):
        """Restart ticking for a rehydrated running session."""
        if self.is_running:
            self._start_ticking()

    def close(self):
        self._stop_ticking()

    def _start_ticking(self):
        if self.is_ticking:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run())

    def _stop_ticking(self):
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _run(self):
        me = asyncio.current_task()
        try:
            while self.is_running:
                if self.time_left <= 0:
                    session_type = self.session_type
                    self.complete_session()
                    await self._fire_complete(session_type)
                    break
                await asyncio.sleep(self.tick_interval)
                session_type = self.session_type
                if self.tick():
                    await self._fire_complete(session_type)
                    break
        finally:
            if self._task is me:
                self._task = None

    async def _fire_complete(self, session_type: str):
        if self.on_complete is None:
            return
        try:
            result = self.on_complete(self, session_type)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Completion handler failed for user %s", self.user_id)
