"""Main entry point for the Telegram bot."""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from tortoise import Tortoise

from rentmeter.bots.tg.handlers import common, invoices, settings as settings_handlers
from rentmeter.bots.tg.handlers import tenants
from rentmeter.bots.tg.middlewares.user import UserMiddleware
from rentmeter.config import settings
from rentmeter.core.db import TORTOISE_ORM
from rentmeter.core.repositories.invoice import InvoiceRepository
from rentmeter.core.repositories.settings import SettingsRepository
from rentmeter.core.repositories.tenant import TenantRepository
from rentmeter.services.billing import BillingService
from rentmeter.services.export import ExportService

logger = logging.getLogger(__name__)


async def on_startup(dispatcher: Dispatcher, bot: Bot):
    """Actions on bot startup."""
    logger.info("Initializing database...")
    await Tortoise.init(config=TORTOISE_ORM)
    logger.info("Database initialized.")

    dispatcher["billing_service"] = BillingService(
        tenant_repo=TenantRepository(),
        invoice_repo=InvoiceRepository(),
        settings_repo=SettingsRepository(),
        default_rate=settings.DEFAULT_ELECTRICITY_RATE,
    )
    dispatcher["export_service"] = ExportService()
    logger.info("Services injected into dispatcher.")

    logger.info("Deleting webhook and dropping pending updates...")
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Webhook deleted.")
    logger.info("Bot started.")


async def on_shutdown(bot: Bot):
    """Actions on bot shutdown."""
    logger.info("Closing connections...")
    await Tortoise.close_connections()
    await bot.session.close()
    logger.info("Connections closed.")


def build_dispatcher() -> Dispatcher:
    """Creates the dispatcher with middlewares, hooks and routers."""
    dp = Dispatcher()

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    dp.message.outer_middleware(UserMiddleware())
    dp.callback_query.outer_middleware(UserMiddleware())

    # Common goes first so /cancel works inside any dialog
    dp.include_router(common.router)
    dp.include_router(tenants.router)
    dp.include_router(invoices.router)
    dp.include_router(settings_handlers.router)
    return dp


async def main():
    """Initializes and starts the bot."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Starting bot initialization...")

    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode="HTML"),
    )
    dp = build_dispatcher()

    await dp.start_polling(bot, dispatcher=dp)


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Bot stopped manually.")


if __name__ == "__main__":
    run()
