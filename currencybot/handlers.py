"""Telegram message and callback handlers used by the bot."""

from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

from telegram import Bot, BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from . import api, config
from .config import Currency

OPEN_CURRENCY_MENU = "open_currency_menu"
RETURN_TO_CURRENCY_MENU = "return_to_currency_menu"

REJECT_TEXT = "The bot only accepts menu commands."
WELCOME_TEXT = "Hello!\nThis bot shows the current price of the selected currency.\n"
SELECT_TEXT = "Choose a currency"
CHOOSE_BUTTON = "Choose a currency."
CHOOSE_ANOTHER_BUTTON = "Choose another currency."

BUTTONS_PER_ROW = 3

# BadRequest texts for a message that is gone or too old to delete
GONE_MARKERS = ("not found", "can't be deleted", "cannot be deleted")


class Command(str, Enum):
    START = "start"
    SHOW_CURRENCIES = "show_currencies"


class CallbackKind(Enum):
    OPEN_MENU = "open_menu"
    RETURN_TO_MENU = "return_to_menu"
    CURRENCY = "currency"


class DeleteResult(Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"


def parse_command(
    text: Optional[str], commands: Iterable[Tuple[str, str]]
) -> Optional[Command]:
    """Return the command for ``text`` or ``None`` when it is not accepted.

    Only the exact ``/<name>`` form of a configured command is accepted.
    """
    if text is None:
        return None
    if text not in {f"/{name}" for name, _ in commands}:
        return None
    try:
        return Command(text[1:].lower())
    except ValueError:
        return None


def parse_callback(
    data: Optional[str], currencies: Iterable[Currency]
) -> Optional[Tuple[CallbackKind, Optional[str]]]:
    """Classify a callback payload.

    Returns ``(kind, code)`` where ``code`` is set only for currency buttons,
    or ``None`` for payloads the bot does not know.
    """
    if data == OPEN_CURRENCY_MENU:
        return CallbackKind.OPEN_MENU, None
    if data == RETURN_TO_CURRENCY_MENU:
        return CallbackKind.RETURN_TO_MENU, None
    if data in {c.code for c in currencies}:
        return CallbackKind.CURRENCY, data
    return None


def welcome_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(CHOOSE_BUTTON, callback_data=OPEN_CURRENCY_MENU)]]
    )


def currency_keyboard(currencies: Sequence[Currency]) -> InlineKeyboardMarkup:
    """Return one button per currency, three buttons to a row."""
    buttons = [
        InlineKeyboardButton(c.name, callback_data=c.code) for c in currencies
    ]
    rows = [
        buttons[i : i + BUTTONS_PER_ROW]
        for i in range(0, len(buttons), BUTTONS_PER_ROW)
    ]
    return InlineKeyboardMarkup(rows)


def price_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    CHOOSE_ANOTHER_BUTTON, callback_data=RETURN_TO_CURRENCY_MENU
                )
            ]
        ]
    )


def format_price(value: Decimal) -> str:
    """Round ``value`` to at most three decimal places."""
    if value.as_tuple().exponent >= -3:
        return format(value, "f")
    return format(value.quantize(Decimal("0.001"), rounding=ROUND_HALF_EVEN), "f")


def format_market_cap(value: Decimal) -> str:
    return format(value.quantize(Decimal(1), rounding=ROUND_HALF_EVEN), "f")


def format_quote(code: str, quote: api.Quote) -> str:
    return (
        f"Currency: {code}, price: {format_price(quote.price)}$\n"
        f"Market cap: {format_market_cap(quote.market_cap)}$"
    )


async def delete_message(bot: Bot, chat_id: int, message_id: int) -> DeleteResult:
    """Delete a message, reporting a message that is already gone.

    Telegram errors other than "message not found" or "message can't be
    deleted" propagate.
    """
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
    except BadRequest as exc:
        reason = exc.message.lower()
        if not any(marker in reason for marker in GONE_MARKERS):
            raise
        config.logger.info(
            "message %s in chat %s was already deleted", message_id, chat_id
        )
        return DeleteResult.NOT_FOUND
    return DeleteResult.DELETED


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log errors raised while handling an update; polling keeps running."""
    config.logger.error(
        "Exception while handling an update: %s", context.error, exc_info=context.error
    )


async def register_commands(
    bot: Bot, commands: Iterable[Tuple[str, str]] = config.COMMANDS
) -> None:
    """Publish the command menu. Failures are logged and ignored."""
    try:
        await bot.set_my_commands([BotCommand(name, desc) for name, desc in commands])
    except TelegramError as exc:
        config.logger.warning("failed to register bot commands: %s", exc)
        return
    config.logger.info("bot commands registered")


class CurrencyBot:
    """Routes text messages and button presses to replies.

    The bot keeps no per-chat state; ``currencies`` and ``commands`` are the
    read-only collections from :mod:`currencybot.config`.
    """

    def __init__(
        self,
        currencies: Sequence[Currency] = config.CURRENCIES,
        commands: Sequence[Tuple[str, str]] = config.COMMANDS,
    ) -> None:
        self.currencies = currencies
        self.commands = commands

    def add_handlers(self, app: Application) -> None:
        app.add_handler(MessageHandler(filters.UpdateType.MESSAGE, self.handle_message))
        app.add_handler(CallbackQueryHandler(self.handle_callback))
        app.add_error_handler(error_handler)

    async def handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle a text message sent to the bot."""
        message = update.message
        if not message:
            return
        chat_id = message.chat.id
        await delete_message(context.bot, chat_id, message.message_id)

        command = parse_command(message.text, self.commands)
        if command is None:
            await context.bot.send_message(chat_id=chat_id, text=REJECT_TEXT)
        elif command is Command.START:
            await self.send_welcome(context.bot, chat_id)
        elif command is Command.SHOW_CURRENCIES:
            await self.send_currency_menu(context.bot, chat_id)

    async def handle_callback(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle inline keyboard button callbacks."""
        query = update.callback_query
        try:
            await query.answer()
        except BadRequest as exc:
            config.logger.info("could not answer callback query: %s", exc.message)
        if query.message is None:
            return
        chat_id = query.message.chat.id
        parsed = parse_callback(query.data, self.currencies)
        if parsed is None:
            config.logger.debug("ignoring callback payload %r", query.data)
            return

        kind, code = parsed
        await delete_message(context.bot, chat_id, query.message.message_id)
        if kind in (CallbackKind.OPEN_MENU, CallbackKind.RETURN_TO_MENU):
            await self.send_currency_menu(context.bot, chat_id)
        elif kind is CallbackKind.CURRENCY:
            await self.send_price(context.bot, chat_id, code)

    async def send_welcome(self, bot: Bot, chat_id: int) -> None:
        await bot.send_message(
            chat_id=chat_id, text=WELCOME_TEXT, reply_markup=welcome_keyboard()
        )

    async def send_currency_menu(self, bot: Bot, chat_id: int) -> None:
        await bot.send_message(
            chat_id=chat_id,
            text=SELECT_TEXT,
            reply_markup=currency_keyboard(self.currencies),
        )

    async def send_price(self, bot: Bot, chat_id: int, code: str) -> None:
        quote = await api.fetch_quote(code)
        await bot.send_message(
            chat_id=chat_id,
            text=format_quote(code, quote),
            reply_markup=price_keyboard(),
        )
