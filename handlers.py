import html
import random
from datetime import datetime, date, timedelta
from functools import wraps

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message, CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup

from config import ALLOWED_USERS, TIMEZONE, WORK_DURATIONS
from context import AppContext
from database import DataStoreError
from day_window import DaySettings, parse_hhmm
from pomodoro import WORK, BREAK
from reminders import days_until
from scheduler import activate_user, deactivate_user, send_high_priority_prompt
from streaks import practice_skill, total_streak, review_streak, set_review_streak, last_seven_days

router = Router()

MOTIVATIONAL_MESSAGES = [
    "Small steps lead to big wins. You've got this.",
    "Focus on progress, not perfection.",
    "Every task you complete is a win.",
    "Your future self will thank you.",
    "One thing at a time. Start now.",
    "You're closer than you think.",
    "Consistency beats intensity.",
    "Today's effort shapes tomorrow's success.",
]

FOCUS_QUOTES = [
    "Small progress is still progress.",
    "Focus on the step in front of you, not the whole staircase.",
    "You're doing better than you think.",
    "One task at a time. You've got this.",
    "Rest is part of the process.",
    "Every focused minute counts.",
    "Your future self will thank you.",
    "Breathe. Focus. Achieve.",
]

SKILL_QUOTES = [
    "Consistency beats intensity.",
    "You showed up. That's what matters.",
    "Progress, not perfection.",
]


def allowed_only(func):
    @wraps(func)
    async def wrapper(event, *args, **kwargs):
        user = event.from_user
        if user is None or (ALLOWED_USERS and user.id not in ALLOWED_USERS):
            return
        return await func(event, *args, **kwargs)
    return wrapper


class PlanitStates(StatesGroup):
    waiting_task_title = State()
    waiting_exam_title = State()
    waiting_exam_date = State()
    waiting_skill_name = State()
    waiting_skill_target = State()
    waiting_day_start = State()
    waiting_day_end = State()
    waiting_streak = State()


def _now() -> datetime:
    return datetime.now(TIMEZONE)


def _today() -> str:
    return _now().date().isoformat()


async def safe_edit(message: Message, text: str, reply_markup=None):
    try:
        await message.edit_text(text, parse_mode="HTML", reply_markup=reply_markup)
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


# Formatting

def fmt_minutes(minutes: int) -> str:
    if not minutes:
        return "0 min"
    if minutes < 60:
        return f"{minutes} min"
    h = minutes // 60
    m = minutes % 60
    return f"{h}h {m}min" if m > 0 else f"{h}h"


def progress_bar(current: float, total: float, length: int = 10) -> str:
    if not total:
        return "░" * length
    filled = round((current / total) * length)
    filled = max(0, min(length, filled))
    return "█" * filled + "░" * (length - filled)


def fmt_days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


def fmt_days_left(days: int) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def format_dashboard(tasks: list, skills: list, window, now: datetime, focus_minutes: int = 0) -> str:
    today = now.date().isoformat()
    done = [t for t in tasks if t["completed"]]
    skipped = [t for t in tasks if not t["completed"]]
    day_pct = round(window.day_progress(now) * 100)
    lines = [
        f"📅 <b>Today</b> · {now.strftime('%d.%m')}",
        "",
        f"Day: {progress_bar(day_pct, 100)} {day_pct}%",
        f"Tasks: {progress_bar(len(done), len(tasks))} {len(done)}/{len(tasks)}",
        f"🔥 Streak: {fmt_days(total_streak(skills, today))}",
    ]
    if focus_minutes:
        lines.append(f"🧠 Focus: {fmt_minutes(focus_minutes)}")
    lines += ["", f"<i>{random.choice(MOTIVATIONAL_MESSAGES)}</i>"]

    if window.is_end_of_day(now) and tasks:
        lines += ["", "<b>Today's Summary</b>"]
        if done:
            lines.append(f"✅ Completed ({len(done)})")
            lines += [f"  • {html.escape(t['title'])}" for t in done[:3]]
            if len(done) > 3:
                lines.append(f"  +{len(done) - 3} more")
        if skipped:
            lines.append(f"❌ Skipped ({len(skipped)})")
            lines += [f"  • {html.escape(t['title'])}" for t in skipped[:3]]
            if len(skipped) > 3:
                lines.append(f"  +{len(skipped) - 3} more")
    if not tasks:
        lines += ["", "No tasks for today. Add one with /tasks."]
    return "\n".join(lines)


def format_focus(timer, quote: str = "") -> str:
    kind = "🧠 Focus" if timer.session_type == WORK else "☕ Break"
    if timer.is_running:
        status = "▶️ running"
    elif timer.is_complete:
        status = "✅ complete"
    else:
        status = "⏸ paused"
    pct = round(timer.progress() * 100)
    lines = [
        f"<b>{kind}</b> · {status}",
        "",
        f"⏱ <b>{timer.format_time_left()}</b>",
        f"{progress_bar(pct, 100)} {pct}%",
        "",
        f"Work: {fmt_minutes(timer.work_minutes)} · Break: {fmt_minutes(timer.break_minutes)}",
        f"Sessions completed: {timer.sessions_completed}",
    ]
    if timer.is_complete:
        lines.append("Great work! Take a well-deserved break." if timer.session_type == WORK
                     else "Ready to get back to work?")
    if quote:
        lines += ["", f"<i>{quote}</i>"]
    return "\n".join(lines)


def format_tasks(today_tasks: list, upcoming: list) -> str:
    lines = ["📝 <b>Today</b>"]
    if not today_tasks:
        lines.append("No tasks for today")
    for t in today_tasks:
        mark = "✅" if t["completed"] else "⬜"
        flag = " ❗" if t["priority"] == "high" else ""
        lines.append(f"{mark} {html.escape(t['title'])}{flag}")
    if upcoming:
        lines += ["", "📆 <b>Upcoming</b>"]
        for t in upcoming:
            d = date.fromisoformat(t["scheduled_date"]).strftime("%d.%m")
            lines.append(f"• {d} {html.escape(t['title'])}")
    return "\n".join(lines)


def format_exams(exams: list, today: date) -> str:
    if not exams:
        return "📚 No upcoming exams. Add one to get reminders."
    lines = ["📚 <b>Upcoming exams</b>", ""]
    for e in exams:
        subject = f" ({html.escape(e['subject'])})" if e.get("subject") else ""
        d = date.fromisoformat(e["exam_date"]).strftime("%d.%m.%Y")
        lines.append(f"• <b>{html.escape(e['title'])}</b>{subject} — {d}, {fmt_days_left(days_until(e['exam_date'], today))}")
    return "\n".join(lines)


def format_skills(skills: list, today: str) -> str:
    if not skills:
        return "⚡ No skills yet. Add one and build a streak!"
    streak = total_streak(skills, today)
    week = "".join("🟩" if practiced else "⬜" for _, practiced in last_seven_days(skills, today))
    lines = [f"⚡ <b>Skills</b> · 🔥 {fmt_days(streak)}", f"Last 7 days: {week}", ""]
    for s in skills:
        mark = "✅" if s["last_practiced_at"] == today else "⏳"
        lines.append(
            f"{mark} {html.escape(s['name'])} — {fmt_minutes(s['target_minutes_daily'])}/day, "
            f"🔥 {s['streak_count']}"
        )
    lines += ["", f"<i>{random.choice(SKILL_QUOTES)}</i>"]
    return "\n".join(lines)


def format_settings(window, profile: dict, permission: str, streak: int) -> str:
    notif = "on" if profile["notification_enabled"] else "off"
    return "\n".join([
        "⚙️ <b>Settings</b>",
        "",
        f"🌅 Day starts: {window.day_start}",
        f"🌙 Day ends: {window.day_end}",
        f"🧠 Focus duration: {fmt_minutes(profile['daily_focus_minutes'])}",
        f"🔔 Notifications: {notif} (permission: {permission})",
        f"🔥 Review streak: {fmt_days(streak)}",
    ])


# Keyboards

def dashboard_kb(tasks: list):
    rows = [[InlineKeyboardButton(
        text=f"{'✅' if t['completed'] else '⬜'} {t['title']}",
        callback_data=f"dash_toggle:{t['id']}"
    )] for t in tasks]
    rows.append([
        InlineKeyboardButton(text="🧠 Focus", callback_data="open_focus"),
        InlineKeyboardButton(text="🔄 Refresh", callback_data="open_dashboard"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def focus_kb(timer):
    if timer.is_running:
        first = InlineKeyboardButton(text="⏸ Pause", callback_data="focus_pause")
    elif timer.is_complete:
        nxt = "☕ Start break" if timer.session_type == WORK else "🧠 Back to work"
        first = InlineKeyboardButton(text=nxt, callback_data="focus_next")
    else:
        first = InlineKeyboardButton(text="▶️ Start", callback_data="focus_start")
    durations = [InlineKeyboardButton(
        text=f"•{m}•" if m == timer.work_minutes else str(m),
        callback_data=f"focus_dur:{m}"
    ) for m in WORK_DURATIONS]
    return InlineKeyboardMarkup(inline_keyboard=[
        [first, InlineKeyboardButton(text="↺ Reset", callback_data="focus_reset")],
        [
            InlineKeyboardButton(text="🧠 Work", callback_data=f"focus_session:{WORK}"),
            InlineKeyboardButton(text="☕ Break", callback_data=f"focus_session:{BREAK}"),
        ],
        durations,
        [InlineKeyboardButton(text="🔄 Refresh", callback_data="open_focus")],
    ])


def tasks_kb(tasks: list):
    rows = [[
        InlineKeyboardButton(text=f"{'✅' if t['completed'] else '⬜'} {t['title']}",
                             callback_data=f"task_toggle:{t['id']}"),
        InlineKeyboardButton(text="🗑", callback_data=f"task_del:{t['id']}"),
    ] for t in tasks]
    rows.append([InlineKeyboardButton(text="➕ Add task", callback_data="task_add")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def priority_kb():
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="Normal", callback_data="task_priority:normal"),
        InlineKeyboardButton(text="❗ High", callback_data="task_priority:high"),
    ]])


def exams_kb(exams: list):
    rows = [[InlineKeyboardButton(text=f"🗑 {e['title']}", callback_data=f"exam_del:{e['id']}")]
            for e in exams]
    rows.append([InlineKeyboardButton(text="➕ Add exam", callback_data="exam_add")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def skills_kb(skills: list, today: str):
    rows = [[InlineKeyboardButton(text=f"✓ Practice {s['name']}", callback_data=f"skill_done:{s['id']}")]
            for s in skills if s["last_practiced_at"] != today]
    rows.append([InlineKeyboardButton(text="➕ Add skill", callback_data="skill_add")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def settings_kb(profile: dict):
    notif = "🔕 Turn notifications off" if profile["notification_enabled"] else "🔔 Turn notifications on"
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="🌅 Day start", callback_data="set_day_start"),
            InlineKeyboardButton(text="🌙 Day end", callback_data="set_day_end"),
        ],
        [InlineKeyboardButton(text=notif, callback_data="toggle_notifications")],
        [InlineKeyboardButton(text="🔥 Edit streak", callback_data="set_streak")],
        [InlineKeyboardButton(text="🧹 Clear timer", callback_data="clear_timer")],
        [InlineKeyboardButton(text="🚪 Sign out", callback_data="sign_out")],
    ])


def _arg(callback: CallbackQuery) -> str:
    return callback.data.split(":", 1)[1]


def _int_arg(callback: CallbackQuery):
    try:
        return int(_arg(callback))
    except ValueError:
        return None


async def _session(event, ctx: AppContext, user_id: int, alert: bool = False):
    try:
        return ctx.session(user_id)
    except DataStoreError as e:
        if alert:
            await event.answer(f"Failed to load your profile: {e}", show_alert=True)
        else:
            await event.answer(f"⚠️ Failed to load your profile: {e}")
        return None


# Screens

async def show_dashboard(message: Message, ctx: AppContext, user_id: int, edit: bool = False):
    now = _now()
    today = now.date().isoformat()
    try:
        session = ctx.session(user_id)
        tasks = ctx.db.tasks_for_day(user_id, today)
        skills = ctx.db.skills(user_id)
        focus = ctx.db.focus_minutes_on(user_id, today)
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to load today: {e}")
        return
    text = format_dashboard(tasks, skills, session.day_settings.load(), now, focus)
    if edit:
        await safe_edit(message, text, dashboard_kb(tasks))
    else:
        await message.answer(text, parse_mode="HTML", reply_markup=dashboard_kb(tasks))
    await send_high_priority_prompt(ctx, user_id, now)


async def show_focus(message: Message, ctx: AppContext, user_id: int, edit: bool = False):
    session = await _session(message, ctx, user_id)
    if session is None:
        return
    timer = session.timer
    text = format_focus(timer, random.choice(FOCUS_QUOTES))
    if edit:
        await safe_edit(message, text, focus_kb(timer))
    else:
        await message.answer(text, parse_mode="HTML", reply_markup=focus_kb(timer))


async def show_tasks(message: Message, ctx: AppContext, user_id: int, edit: bool = False):
    try:
        today_tasks = ctx.db.tasks_for_day(user_id)
        upcoming = ctx.db.upcoming_tasks(user_id)
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to load tasks: {e}")
        return
    text = format_tasks(today_tasks, upcoming)
    if edit:
        await safe_edit(message, text, tasks_kb(today_tasks))
    else:
        await message.answer(text, parse_mode="HTML", reply_markup=tasks_kb(today_tasks))


async def show_exams(message: Message, ctx: AppContext, user_id: int, edit: bool = False):
    today = _now().date()
    try:
        exams = ctx.db.upcoming_exams(user_id, today.isoformat())
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to load exams: {e}")
        return
    text = format_exams(exams, today)
    if edit:
        await safe_edit(message, text, exams_kb(exams))
    else:
        await message.answer(text, parse_mode="HTML", reply_markup=exams_kb(exams))


async def show_skills(message: Message, ctx: AppContext, user_id: int, edit: bool = False):
    today = _today()
    try:
        skills = ctx.db.skills(user_id)
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to load skills: {e}")
        return
    text = format_skills(skills, today)
    if edit:
        await safe_edit(message, text, skills_kb(skills, today))
    else:
        await message.answer(text, parse_mode="HTML", reply_markup=skills_kb(skills, today))


async def show_settings(message: Message, ctx: AppContext, user_id: int, edit: bool = False):
    try:
        session = ctx.session(user_id)
        profile = ctx.db.get_profile(user_id)
        streak = review_streak(ctx.db.completed_review_dates(user_id), _today())
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to load settings: {e}")
        return
    text = format_settings(session.day_settings.load(), profile, ctx.notifier.permission(user_id), streak)
    if edit:
        await safe_edit(message, text, settings_kb(profile))
    else:
        await message.answer(text, parse_mode="HTML", reply_markup=settings_kb(profile))


# Commands

@router.message(Command("start"))
@allowed_only
async def cmd_start(message: Message, ctx: AppContext):
    user = message.from_user
    try:
        ctx.session(user.id, user.full_name)
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to load your profile: {e}")
        return
    activate_user(ctx, user.id)
    await message.answer(
        f"👋 Hi {html.escape(user.first_name or '')}! I'm Planit, your daily planner.\n\n"
        "/today — today's tasks and streak\n"
        "/tasks — task list\n"
        "/focus — Pomodoro timer\n"
        "/exams — exam countdowns\n"
        "/skills — skill streaks\n"
        "/settings — day window and notifications\n"
        "/stop — sign out and stop reminders",
        parse_mode="HTML"
    )


@router.message(Command("stop"))
@allowed_only
async def cmd_stop(message: Message, ctx: AppContext, state: FSMContext):
    await state.clear()
    deactivate_user(ctx, message.from_user.id)
    await message.answer("👋 Signed out. Reminders are off. /start to come back.")


@router.message(Command("today"))
@allowed_only
async def cmd_today(message: Message, ctx: AppContext):
    await show_dashboard(message, ctx, message.from_user.id)


@router.message(Command("focus"))
@allowed_only
async def cmd_focus(message: Message, ctx: AppContext):
    await show_focus(message, ctx, message.from_user.id)


@router.message(Command("tasks"))
@allowed_only
async def cmd_tasks(message: Message, ctx: AppContext):
    await show_tasks(message, ctx, message.from_user.id)


@router.message(Command("exams"))
@allowed_only
async def cmd_exams(message: Message, ctx: AppContext):
    await show_exams(message, ctx, message.from_user.id)


@router.message(Command("skills"))
@allowed_only
async def cmd_skills(message: Message, ctx: AppContext):
    await show_skills(message, ctx, message.from_user.id)


@router.message(Command("settings"))
@allowed_only
async def cmd_settings(message: Message, ctx: AppContext):
    await show_settings(message, ctx, message.from_user.id)


# Dashboard

@router.callback_query(F.data == "open_dashboard")
@allowed_only
async def cb_open_dashboard(callback: CallbackQuery, ctx: AppContext):
    await show_dashboard(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data.startswith("dash_toggle:"))
@allowed_only
async def cb_dash_toggle(callback: CallbackQuery, ctx: AppContext):
    user_id = callback.from_user.id
    task_id = _int_arg(callback)
    if task_id is None:
        await callback.answer()
        return
    try:
        task = ctx.db.toggle_task(user_id, task_id)
    except DataStoreError as e:
        await callback.answer(f"Failed to update task: {e}", show_alert=True)
        return
    await show_dashboard(callback.message, ctx, user_id, edit=True)
    if task and task["completed"]:
        await callback.answer(f"\"{task['title']}\" - Done! Keep crushing it. 🎉")
    else:
        await callback.answer()


@router.callback_query(F.data.startswith("hp_move:"))
@allowed_only
async def cb_hp_move(callback: CallbackQuery, ctx: AppContext):
    task_id = _int_arg(callback)
    if task_id is None:
        await callback.answer()
        return
    tomorrow = (_now().date() + timedelta(days=1)).isoformat()
    try:
        ctx.db.move_task_to(callback.from_user.id, task_id, tomorrow)
    except DataStoreError as e:
        await callback.answer(f"Failed to move task: {e}", show_alert=True)
        return
    await callback.message.edit_text("📅 Task moved to tomorrow")
    await callback.answer()


@router.callback_query(F.data == "hp_skip")
@allowed_only
async def cb_hp_skip(callback: CallbackQuery):
    await callback.message.delete()
    await callback.answer()


# Focus

@router.callback_query(F.data == "open_focus")
@allowed_only
async def cb_open_focus(callback: CallbackQuery, ctx: AppContext):
    await show_focus(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data == "focus_start")
@allowed_only
async def cb_focus_start(callback: CallbackQuery, ctx: AppContext):
    session = await _session(callback, ctx, callback.from_user.id, alert=True)
    if session is None:
        return
    session.timer.start()
    await show_focus(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data == "focus_pause")
@allowed_only
async def cb_focus_pause(callback: CallbackQuery, ctx: AppContext):
    session = await _session(callback, ctx, callback.from_user.id, alert=True)
    if session is None:
        return
    session.timer.pause()
    await show_focus(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data == "focus_reset")
@allowed_only
async def cb_focus_reset(callback: CallbackQuery, ctx: AppContext):
    session = await _session(callback, ctx, callback.from_user.id, alert=True)
    if session is None:
        return
    session.timer.reset()
    await show_focus(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data == "focus_next")
@allowed_only
async def cb_focus_next(callback: CallbackQuery, ctx: AppContext):
    session = await _session(callback, ctx, callback.from_user.id, alert=True)
    if session is None:
        return
    timer = session.timer
    timer.start_session(BREAK if timer.session_type == WORK else WORK)
    await show_focus(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data.startswith("focus_session:"))
@allowed_only
async def cb_focus_session(callback: CallbackQuery, ctx: AppContext):
    session_type = _arg(callback)
    if session_type not in (WORK, BREAK):
        await callback.answer()
        return
    session = await _session(callback, ctx, callback.from_user.id, alert=True)
    if session is None:
        return
    session.timer.start_session(session_type)
    await show_focus(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data.startswith("focus_dur:"))
@allowed_only
async def cb_focus_duration(callback: CallbackQuery, ctx: AppContext):
    user_id = callback.from_user.id
    minutes = _int_arg(callback)
    if minutes not in WORK_DURATIONS:
        await callback.answer()
        return
    session = await _session(callback, ctx, user_id, alert=True)
    if session is None:
        return
    session.timer.set_work_duration_minutes(minutes)
    try:
        ctx.db.update_profile(user_id, daily_focus_minutes=minutes)
    except DataStoreError as e:
        await callback.answer(f"Failed to save duration: {e}", show_alert=True)
        return
    await show_focus(callback.message, ctx, user_id, edit=True)
    await callback.answer()


# Tasks

@router.callback_query(F.data.startswith("task_toggle:"))
@allowed_only
async def cb_task_toggle(callback: CallbackQuery, ctx: AppContext):
    task_id = _int_arg(callback)
    if task_id is None:
        await callback.answer()
        return
    try:
        ctx.db.toggle_task(callback.from_user.id, task_id)
    except DataStoreError as e:
        await callback.answer(f"Failed to update task: {e}", show_alert=True)
        return
    await show_tasks(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer()


@router.callback_query(F.data.startswith("task_del:"))
@allowed_only
async def cb_task_delete(callback: CallbackQuery, ctx: AppContext):
    task_id = _int_arg(callback)
    if task_id is None:
        await callback.answer()
        return
    try:
        ctx.db.delete("tasks", callback.from_user.id, task_id)
    except DataStoreError as e:
        await callback.answer(f"Failed to delete task: {e}", show_alert=True)
        return
    await show_tasks(callback.message, ctx, callback.from_user.id, edit=True)
    await callback.answer("Task deleted")


@router.callback_query(F.data == "task_add")
@allowed_only
async def cb_task_add(callback: CallbackQuery, state: FSMContext):
    await state.set_state(PlanitStates.waiting_task_title)
    await callback.message.answer("What do you need to do today?")
    await callback.answer()


@router.message(PlanitStates.waiting_task_title)
@allowed_only
async def process_task_title(message: Message, state: FSMContext):
    title = (message.text or "").strip()
    if not title:
        await message.answer("Send the task title as text:")
        return
    await state.update_data(task_title=title)
    await message.answer("Priority?", reply_markup=priority_kb())


@router.callback_query(F.data.startswith("task_priority:"))
@allowed_only
async def cb_task_priority(callback: CallbackQuery, ctx: AppContext, state: FSMContext):
    data = await state.get_data()
    title = data.get("task_title")
    if not title:
        await callback.answer()
        return
    await state.clear()
    priority = "high" if _arg(callback) == "high" else "normal"
    try:
        ctx.db.add_task(callback.from_user.id, title, priority=priority)
    except DataStoreError as e:
        await callback.message.edit_text(f"⚠️ Failed to add task: {e}")
        await callback.answer()
        return
    await callback.message.edit_text("✅ Task added!")
    await callback.answer()
    await show_tasks(callback.message, ctx, callback.from_user.id)


# Exams

@router.callback_query(F.data.startswith("exam_del:"))
@allowed_only
async def cb_exam_delete(callback: CallbackQuery, ctx: AppContext):
    user_id = callback.from_user.id
    exam_id = _int_arg(callback)
    if exam_id is None:
        await callback.answer()
        return
    try:
        ctx.db.delete("exams", user_id, exam_id)
    except DataStoreError as e:
        await callback.answer(f"Failed to delete exam: {e}", show_alert=True)
        return
    ctx.reminders.forget(user_id, exam_id)
    await show_exams(callback.message, ctx, user_id, edit=True)
    await callback.answer("Exam deleted")


@router.callback_query(F.data == "exam_add")
@allowed_only
async def cb_exam_add(callback: CallbackQuery, state: FSMContext):
    await state.set_state(PlanitStates.waiting_exam_title)
    await callback.message.answer("Exam title (optionally \"Title / Subject\"):")
    await callback.answer()


@router.message(PlanitStates.waiting_exam_title)
@allowed_only
async def process_exam_title(message: Message, state: FSMContext):
    text = (message.text or "").strip()
    if not text:
        await message.answer("Send the exam title as text:")
        return
    title, _, subject = (part.strip() for part in text.partition("/"))
    await state.update_data(exam_title=title, exam_subject=subject or None)
    await state.set_state(PlanitStates.waiting_exam_date)
    await message.answer("Exam date in YYYY-MM-DD format (e.g. 2025-06-01):")


@router.message(PlanitStates.waiting_exam_date)
@allowed_only
async def process_exam_date(message: Message, ctx: AppContext, state: FSMContext):
    text = (message.text or "").strip()
    try:
        exam_date = date.fromisoformat(text)
    except ValueError:
        await message.answer("Wrong format. Send the date as YYYY-MM-DD:")
        return
    if exam_date < _now().date():
        await message.answer("That date is in the past. Send a future date:")
        return
    data = await state.get_data()
    await state.clear()
    try:
        ctx.db.add_exam(message.from_user.id, data["exam_title"], exam_date.isoformat(), data.get("exam_subject"))
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to add exam: {e}")
        return
    await message.answer("✅ Exam added! I'll remind you 7, 3 and 1 days before.")
    await ctx.reminders.check(message.from_user.id)
    await show_exams(message, ctx, message.from_user.id)


# Skills

@router.callback_query(F.data.startswith("skill_done:"))
@allowed_only
async def cb_skill_done(callback: CallbackQuery, ctx: AppContext):
    user_id = callback.from_user.id
    skill_id = _int_arg(callback)
    if skill_id is None:
        await callback.answer()
        return
    try:
        skill = next((s for s in ctx.db.skills(user_id) if s["id"] == skill_id), None)
        if skill is None:
            await callback.answer()
            return
        practice_skill(ctx.db, user_id, skill, _today())
    except DataStoreError as e:
        await callback.answer(f"Failed to update streak: {e}", show_alert=True)
        return
    await ctx.notifier.play_sound(user_id, "success")
    await show_skills(callback.message, ctx, user_id, edit=True)
    await callback.answer(f"🎉 {skill['name']} practiced! Keep the streak going.")


@router.callback_query(F.data == "skill_add")
@allowed_only
async def cb_skill_add(callback: CallbackQuery, state: FSMContext):
    await state.set_state(PlanitStates.waiting_skill_name)
    await callback.message.answer("Which skill do you want to practice daily?")
    await callback.answer()


@router.message(PlanitStates.waiting_skill_name)
@allowed_only
async def process_skill_name(message: Message, state: FSMContext):
    name = (message.text or "").strip()
    if not name:
        await message.answer("Send the skill name as text:")
        return
    await state.update_data(skill_name=name)
    await state.set_state(PlanitStates.waiting_skill_target)
    await message.answer("Daily target in minutes (e.g. 30):")


@router.message(PlanitStates.waiting_skill_target)
@allowed_only
async def process_skill_target(message: Message, ctx: AppContext, state: FSMContext):
    try:
        value = int((message.text or "").strip())
    except ValueError:
        value = 0
    if value <= 0:
        await message.answer("Send a positive number:")
        return
    data = await state.get_data()
    await state.clear()
    try:
        ctx.db.add_skill(message.from_user.id, data["skill_name"], value)
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to add skill: {e}")
        return
    await message.answer("✅ Skill added!")
    await show_skills(message, ctx, message.from_user.id)


# Settings

@router.callback_query(F.data == "set_day_start")
@allowed_only
async def cb_set_day_start(callback: CallbackQuery, state: FSMContext):
    await state.set_state(PlanitStates.waiting_day_start)
    await callback.message.answer("When does your day start? Send HH:MM (e.g. 06:00):")
    await callback.answer()


@router.callback_query(F.data == "set_day_end")
@allowed_only
async def cb_set_day_end(callback: CallbackQuery, state: FSMContext):
    await state.set_state(PlanitStates.waiting_day_end)
    await callback.message.answer("When does your day end? Send HH:MM (e.g. 18:00):")
    await callback.answer()


@router.message(PlanitStates.waiting_day_start)
@allowed_only
async def process_day_start(message: Message, ctx: AppContext, state: FSMContext):
    text = (message.text or "").strip()
    try:
        parse_hhmm(text)
    except ValueError:
        await message.answer("Wrong format. Send the time as HH:MM:")
        return
    DaySettings(ctx.store, message.from_user.id).update_day_start(text)
    await state.clear()
    await message.answer(f"✅ Day starts at {text}")
    await show_settings(message, ctx, message.from_user.id)


@router.message(PlanitStates.waiting_day_end)
@allowed_only
async def process_day_end(message: Message, ctx: AppContext, state: FSMContext):
    text = (message.text or "").strip()
    try:
        parse_hhmm(text)
    except ValueError:
        await message.answer("Wrong format. Send the time as HH:MM:")
        return
    DaySettings(ctx.store, message.from_user.id).update_day_end(text)
    await state.clear()
    await message.answer(f"✅ Day ends at {text}")
    await show_settings(message, ctx, message.from_user.id)


@router.callback_query(F.data == "toggle_notifications")
@allowed_only
async def cb_toggle_notifications(callback: CallbackQuery, ctx: AppContext):
    user_id = callback.from_user.id
    try:
        profile = ctx.db.get_profile(user_id)
        ctx.db.update_profile(user_id, notification_enabled=0 if profile["notification_enabled"] else 1)
    except DataStoreError as e:
        await callback.answer(f"Failed to save: {e}", show_alert=True)
        return
    await show_settings(callback.message, ctx, user_id, edit=True)
    await callback.answer()


@router.callback_query(F.data == "set_streak")
@allowed_only
async def cb_set_streak(callback: CallbackQuery, state: FSMContext):
    await state.set_state(PlanitStates.waiting_streak)
    await callback.message.answer("Set your streak (number of days):")
    await callback.answer()


@router.message(PlanitStates.waiting_streak)
@allowed_only
async def process_streak(message: Message, ctx: AppContext, state: FSMContext):
    try:
        value = int((message.text or "").strip())
    except ValueError:
        value = -1
    if value < 0:
        await message.answer("Send a number of days (0 or more):")
        return
    await state.clear()
    try:
        set_review_streak(ctx.db, message.from_user.id, value, _today())
    except DataStoreError as e:
        await message.answer(f"⚠️ Failed to update streak: {e}")
        return
    await message.answer("🔥 Streak updated!")
    await show_settings(message, ctx, message.from_user.id)


@router.callback_query(F.data == "clear_timer")
@allowed_only
async def cb_clear_timer(callback: CallbackQuery, ctx: AppContext):
    session = await _session(callback, ctx, callback.from_user.id, alert=True)
    if session is None:
        return
    session.timer.clear_state()
    await callback.answer("Timer cleared")


@router.callback_query(F.data == "sign_out")
@allowed_only
async def cb_sign_out(callback: CallbackQuery, ctx: AppContext, state: FSMContext):
    await state.clear()
    deactivate_user(ctx, callback.from_user.id)
    await callback.message.edit_text("👋 Signed out. Reminders are off. /start to come back.")
    await callback.answer()


# Notifications

@router.callback_query(F.data.in_({"notify_allow", "notify_block"}))
@allowed_only
async def cb_notify_permission(callback: CallbackQuery, ctx: AppContext):
    granted = callback.data == "notify_allow"
    ctx.notifier.set_permission(callback.from_user.id, granted)
    await callback.message.edit_text("🔔 Notifications allowed" if granted else "🔕 Notifications blocked")
    await callback.answer()


@router.callback_query(F.data == "notify_dismiss")
@allowed_only
async def cb_notify_dismiss(callback: CallbackQuery):
    await callback.message.edit_reply_markup(reply_markup=None)
    await callback.answer()
