import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import BOT_TOKEN, DATA_FILE, DB_FILE, LOG_LEVEL
from context import AppContext
from database import Database
from handlers import router
from notifier import Notifier
from scheduler import create_scheduler, start_scheduler, shutdown_scheduler
from storage import JsonFileStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


async def main():
    bot = Bot(token=BOT_TOKEN)
    store = JsonFileStore(DATA_FILE)
    db = Database(DB_FILE)
    ctx = AppContext(bot, store, db, Notifier(bot, store, db), create_scheduler())

    dp = Dispatcher(storage=MemoryStorage(), ctx=ctx)
    dp.include_router(router)

    await start_scheduler(ctx)
    try:
        await dp.start_polling(bot)
    finally:
        shutdown_scheduler(ctx)
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
