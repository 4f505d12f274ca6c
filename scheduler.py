import html
import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton

from config import TIMEZONE, REMINDER_INTERVAL_MINUTES, HIGH_PRIORITY_CHECK_MINUTES
from database import DataStoreError

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(timezone=TIMEZONE)


def high_priority_kb(task_id: int):
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="📅 Move to tomorrow", callback_data=f"hp_move:{task_id}"),
        InlineKeyboardButton(text="Skip", callback_data="hp_skip"),
    ]])


async def run_exam_reminders(ctx, user_id: int):
    await ctx.reminders.check(user_id)


async def send_high_priority_prompt(ctx, user_id: int, now: datetime = None):
    try:
        task = ctx.prompt.check(user_id, now or datetime.now(TIMEZONE))
    except DataStoreError as e:
        logger.warning("High priority check for %s failed: %s", user_id, e)
        return None
    if task is None:
        return None
    try:
        await ctx.bot.send_message(
            user_id,
            f"⚠️ High priority task not done yet:\n\n<b>{html.escape(task['title'])}</b>\n\n"
            f"Move it to tomorrow so it doesn't get lost?",
            parse_mode="HTML",
            reply_markup=high_priority_kb(task["id"])
        )
    except TelegramAPIError as e:
        logger.warning("High priority prompt to %s failed: %s", user_id, e)
    return task


def _job_ids(user_id: int):
    return f"exam_reminders:{user_id}", f"high_priority:{user_id}"


def activate_user(ctx, user_id: int):
    reminders_id, prompt_id = _job_ids(user_id)
    now = datetime.now(TIMEZONE)
    ctx.scheduler.add_job(
        run_exam_reminders,
        IntervalTrigger(minutes=REMINDER_INTERVAL_MINUTES, timezone=TIMEZONE),
        args=[ctx, user_id],
        id=reminders_id,
        replace_existing=True,
        next_run_time=now
    )
    ctx.scheduler.add_job(
        send_high_priority_prompt,
        IntervalTrigger(minutes=HIGH_PRIORITY_CHECK_MINUTES, timezone=TIMEZONE),
        args=[ctx, user_id],
        id=prompt_id,
        replace_existing=True,
        next_run_time=now + timedelta(seconds=5)
    )
    ctx.mark_active(user_id)
    logger.info("Scheduled reminder jobs for user %s", user_id)


def deactivate_user(ctx, user_id: int):
    for job_id in _job_ids(user_id):
        if ctx.scheduler.get_job(job_id):
            ctx.scheduler.remove_job(job_id)
    ctx.mark_active(user_id, False)
    ctx.close_session(user_id)
    logger.info("Removed reminder jobs for user %s", user_id)


async def start_scheduler(ctx):
    ctx.db.init_db()
    ctx.scheduler.start()
    for user_id in ctx.active_users():
        activate_user(ctx, user_id)
        try:
            ctx.session(user_id)
        except DataStoreError as e:
            logger.warning("Could not resume session for %s: %s", user_id, e)


def shutdown_scheduler(ctx):
    if ctx.scheduler.running:
        ctx.scheduler.shutdown(wait=False)
    ctx.close()
