import logging
from datetime import datetime

from storage import load_json, save_json

logger = logging.getLogger(__name__)

DEFAULT_DAY_START = "06:00"
DEFAULT_DAY_END = "18:00"
END_OF_DAY_BEFORE_MINUTES = 30
END_OF_DAY_AFTER_MINUTES = 60


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for a 24h "HH:MM" string."""
    try:
        hour, minute = value.strip().split(":")
        hour, minute = int(hour), int(minute)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return hour * 60 + minute


def minutes_of(now: datetime) -> int:
    return now.hour * 60 + now.minute


class DayWindow:
    """The user's active day, bounded by two times of day.

    A window whose start is after its end (crossing midnight) is accepted
    but not treated specially: is_within_active_day is then always false.
    """

    def __init__(self, day_start: str = DEFAULT_DAY_START, day_end: str = DEFAULT_DAY_END):
        self._start = parse_hhmm(day_start)
        self._end = parse_hhmm(day_end)
        self.day_start = day_start.strip()
        self.day_end = day_end.strip()

    def is_within_active_day(self, now: datetime) -> bool:
        return self._start <= minutes_of(now) <= self._end

    def is_end_of_day(self, now: datetime) -> bool:
        current = minutes_of(now)
        return self._end - END_OF_DAY_BEFORE_MINUTES <= current <= self._end + END_OF_DAY_AFTER_MINUTES

    def day_progress(self, now: datetime) -> float:
        length = self._end - self._start
        if length <= 0:
            return 0.0
        done = (minutes_of(now) - self._start) / length
        return max(0.0, min(1.0, done))

    def to_dict(self) -> dict:
        return {"dayStart": self.day_start, "dayEnd": self.day_end}


class DaySettings:
    """Day window persisted per user in the key-value store."""

    def __init__(self, store, user_id: int):
        self.store = store
        self.key = f"planit-day-settings:{user_id}"

    def load(self) -> DayWindow:
        data = load_json(self.store, self.key)
        if not isinstance(data, dict):
            return DayWindow()
        try:
            return DayWindow(
                data.get("dayStart", DEFAULT_DAY_START),
                data.get("dayEnd", DEFAULT_DAY_END),
            )
        except ValueError as e:
            logger.warning("Discarding day settings for %s: %s", self.key, e)
            return DayWindow()

    def save(self, window: DayWindow):
        save_json(self.store, self.key, window.to_dict())

    def update_day_start(self, value: str) -> DayWindow:
        window = DayWindow(value, self.load().day_end)
        self.save(window)
        return window

    def update_day_end(self, value: str) -> DayWindow:
        window = DayWindow(self.load().day_start, value)
        self.save(window)
        return window
