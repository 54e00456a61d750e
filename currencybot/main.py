"""Main entry point for starting the Telegram bot."""

import asyncio
import signal
from typing import Optional

from telegram import Update
from telegram.ext import Application, ApplicationBuilder

from . import config, handlers


def build_application(
    token: str, bot: Optional[handlers.CurrencyBot] = None
) -> Application:
    """Return an application with the currency bot handlers registered."""
    app = ApplicationBuilder().token(token).concurrent_updates(True).build()
    (bot or handlers.CurrencyBot(config.CURRENCIES, config.COMMANDS)).add_handlers(app)
    return app


async def main(stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the Telegram bot until ``stop_event`` is set.

    Without an explicit event, SIGINT and SIGTERM stop the bot.
    """
    token = config.TELEGRAM_TOKEN
    if not token:
        raise RuntimeError("TELEGRAM_TOKEN not set")

    app = build_application(token)

    await app.initialize()
    register_task = asyncio.create_task(
        handlers.register_commands(app.bot, config.COMMANDS)
    )
    await app.start()
    await app.updater.start_polling(
        allowed_updates=[Update.MESSAGE, Update.CALLBACK_QUERY]
    )
    config.logger.info(f"{config.BOT_NAME} started")

    if stop_event is None:
        stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            asyncio.get_running_loop().add_signal_handler(sig, stop_event.set)

    await stop_event.wait()
    await register_task
    await app.updater.stop()
    await app.stop()
    await app.shutdown()
    config.logger.info(f"{config.BOT_NAME} stopped")
