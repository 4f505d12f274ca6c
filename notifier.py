import io
import html
import math
import wave
import logging
from array import array

from aiogram.exceptions import TelegramAPIError
from aiogram.types import BufferedInputFile, InlineKeyboardMarkup, InlineKeyboardButton

from database import DataStoreError

logger = logging.getLogger(__name__)

SAMPLE_RATE = 22050

# kind -> (frequency steps, start gain, end gain or None, duration ms)
TONES = {
    "alarm": ([800, 600, 800], 0.3, None, 600),
    "success": ([523, 659, 784], 0.2, None, 300),
    "gentle": ([440], 0.15, 0.01, 300),
}

GRANTED = "granted"
DENIED = "denied"
DEFAULT = "default"


def render_tone(frequencies, gain: float, end_gain: float = None, duration_ms: int = 300,
                sample_rate: int = SAMPLE_RATE) -> bytes:
    """Render a stepped sine tone as 16-bit mono WAV bytes.

    The duration is split evenly across ``frequencies``. With ``end_gain``
    the gain ramps exponentially from ``gain`` to ``end_gain``.
    """
    total = int(sample_rate * duration_ms / 1000)
    step = max(1, math.ceil(total / len(frequencies)))
    samples = array("h")
    phase = 0.0
    for i in range(total):
        freq = frequencies[min(i // step, len(frequencies) - 1)]
        if end_gain is None:
            g = gain
        else:
            g = gain * (end_gain / gain) ** (i / max(1, total - 1))
        phase += 2 * math.pi * freq / sample_rate
        samples.append(int(32767 * g * math.sin(phase)))

    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(samples.tobytes())
    return buf.getvalue()


def synthesize_tone(kind: str = "gentle") -> bytes:
    frequencies, gain, end_gain, duration_ms = TONES.get(kind, TONES["gentle"])
    return render_tone(frequencies, gain, end_gain, duration_ms)


def permission_kb():
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="🔔 Allow", callback_data="notify_allow"),
        InlineKeyboardButton(text="🔕 Block", callback_data="notify_block"),
    ]])


def dismiss_kb():
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="✅ Got it", callback_data="notify_dismiss")
    ]])


class Notifier:
    """Plays tones and sends notifications to a chat.

    Never raises: Telegram failures are logged and dropped.
    """

    def __init__(self, bot, store, db=None):
        self.bot = bot
        self.store = store
        self.db = db

    def _permission_key(self, chat_id: int) -> str:
        return f"planit-notify-permission:{chat_id}"

    def tag_key(self, chat_id: int, tag: str) -> str:
        return f"planit-notify-tag:{chat_id}:{tag}"

    def permission(self, chat_id: int) -> str:
        return self.store.get(self._permission_key(chat_id)) or DEFAULT

    def set_permission(self, chat_id: int, granted: bool):
        self.store.set(self._permission_key(chat_id), GRANTED if granted else DENIED)

    def _enabled(self, chat_id: int) -> bool:
        if self.db is None:
            return True
        try:
            return bool(self.db.get_profile(chat_id).get("notification_enabled", 1))
        except DataStoreError as e:
            logger.warning("Could not read profile %s: %s", chat_id, e)
            return True

    async def request_permission(self, chat_id: int):
        # Asked once: the stored "default" marks a request still unanswered.
        if self.store.get(self._permission_key(chat_id)) is not None:
            return
        self.store.set(self._permission_key(chat_id), DEFAULT)
        try:
            await self.bot.send_message(
                chat_id,
                "🔔 Planit would like to send you reminders and timer alerts. Allow notifications?",
                reply_markup=permission_kb()
            )
        except TelegramAPIError as e:
            logger.warning("Permission request to %s failed: %s", chat_id, e)

    async def play_sound(self, chat_id: int, kind: str = "gentle"):
        try:
            await self.bot.send_document(
                chat_id,
                BufferedInputFile(synthesize_tone(kind), filename=f"{kind}.wav"),
            )
        except TelegramAPIError as e:
            logger.warning("Could not play %s tone for %s: %s", kind, chat_id, e)

    async def notify(self, chat_id: int, title: str, body: str = "", sound: str = "gentle",
                     tag: str = None, require_interaction: bool = None):
        if not self._enabled(chat_id):
            return None
        await self.play_sound(chat_id, sound)

        if self.permission(chat_id) == DEFAULT:
            await self.request_permission(chat_id)
        if self.permission(chat_id) != GRANTED:
            return None

        if require_interaction is None:
            require_interaction = sound == "alarm"
        if tag:
            await self._drop_tagged(chat_id, tag)

        text = f"<b>{html.escape(title)}</b>"
        if body:
            text += "\n" + html.escape(body)
        try:
            message = await self.bot.send_message(
                chat_id, text, parse_mode="HTML",
                reply_markup=dismiss_kb() if require_interaction else None
            )
        except TelegramAPIError as e:
            logger.warning("Notification %r to %s failed: %s", title, chat_id, e)
            return None
        if tag:
            self.store.set(self.tag_key(chat_id, tag), str(message.message_id))
        return message

    def forget_tag(self, chat_id: int, tag: str):
        self.store.remove(self.tag_key(chat_id, tag))

    async def _drop_tagged(self, chat_id: int, tag: str):
        key = self.tag_key(chat_id, tag)
        previous = self.store.get(key)
        if previous is None:
            return
        self.store.remove(key)
        try:
            await self.bot.delete_message(chat_id, int(previous))
        except (TelegramAPIError, ValueError) as e:
            logger.info("Previous %s notification already gone: %s", tag, e)
