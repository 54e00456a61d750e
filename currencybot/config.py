"""Configuration for CurrencyPriceBot.

This module loads environment variables, configures logging and exposes the
read-only collections of supported currencies and bot commands.
"""

import logging
import os
from logging.handlers import WatchedFileHandler
from typing import NamedTuple

from dotenv import load_dotenv

load_dotenv()


class Currency(NamedTuple):
    code: str
    name: str


BOT_NAME = "CurrencyPriceBot"

TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")
CMC_API_KEY = os.getenv("CMC_API_KEY")
CMC_BASE_URL = (
    os.getenv("CMC_BASE_URL") or "https://pro-api.coinmarketcap.com/v1"
).rstrip("/")
CMC_HEADERS = {"X-CMC_PRO_API_KEY": CMC_API_KEY} if CMC_API_KEY else None

# Menu order: two rows of three buttons
CURRENCIES: tuple[Currency, ...] = (
    Currency("BTC", "Bitcoin"),
    Currency("ETH", "Ethereum"),
    Currency("TON", "Toncoin"),
    Currency("BNB", "BNB"),
    Currency("DOT", "Polkadot"),
    Currency("SOL", "Solana"),
)

COMMANDS: tuple[tuple[str, str], ...] = (
    ("start", "Start the bot"),
    ("show_currencies", "Choose a currency to see its current price"),
)

LOG_FILE = os.getenv("LOG_FILE")
_handlers = [logging.StreamHandler()]
if LOG_FILE:
    _handlers.append(WatchedFileHandler(LOG_FILE))

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    handlers=_handlers,
    force=True,
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)
