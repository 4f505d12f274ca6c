import pytest

from database import Database
from storage import MemoryStore


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float):
        self.now_ms += int(seconds * 1000)


class FakeMessage:
    def __init__(self, message_id: int):
        self.message_id = message_id


class FakeBot:
    """Records what would have been sent to Telegram."""

    def __init__(self):
        self.sent = []
        self.documents = []
        self.deleted = []
        self._next_id = 100

    async def send_message(self, chat_id, text, **kwargs):
        self._next_id += 1
        self.sent.append({"chat_id": chat_id, "text": text, "message_id": self._next_id, **kwargs})
        return FakeMessage(self._next_id)

    async def send_document(self, chat_id, document, **kwargs):
        self.documents.append({"chat_id": chat_id, "document": document})

    async def delete_message(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "planit.db"))
    database.init_db()
    return database


@pytest.fixture
def bot():
    return FakeBot()
