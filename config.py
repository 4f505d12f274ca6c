import os
from dotenv import load_dotenv
from zoneinfo import ZoneInfo

load_dotenv()

BOT_TOKEN = os.getenv("BOT_TOKEN", "YOUR_BOT_TOKEN_HERE")
ALLOWED_USERS = {int(x) for x in os.getenv("ALLOWED_USERS", "").split(",") if x.strip()}
TIMEZONE = ZoneInfo(os.getenv("TIMEZONE", "Europe/Kiev"))
DATA_FILE = os.getenv("DATA_FILE", "planit.json")
DB_FILE = os.getenv("DB_FILE", "planit.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

WORK_DURATIONS = [15, 25, 30, 45, 60]
BREAK_DURATION = 5
REMINDER_INTERVAL_MINUTES = 60
HIGH_PRIORITY_CHECK_MINUTES = 15
