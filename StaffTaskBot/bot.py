import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage

import config
from database import init_db

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main() -> None:
    logger.info("🚀 Starting StaffTaskBot...")

    init_db()

    if not config.config.BOT_TOKEN:
        logger.error("❌ BOT_TOKEN is not set, check the .env file")
        return

    bot_instance = Bot(
        token=config.config.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher(storage=MemoryStorage())

    # Импортируем главный роутер
    from handlers import main_router
    dp.include_router(main_router)
    logger.info("✅ Routers connected")

    logger.info(f"🔗 Scheduler API: {config.config.API_BASE_URL}")

    await bot_instance.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(bot_instance)
    finally:
        await bot_instance.session.close()


if __name__ == "__main__":
    asyncio.run(main())
