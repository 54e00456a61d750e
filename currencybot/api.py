"""Asynchronous client for the CoinMarketCap quotes API.

Every call is a fresh round trip: results are neither cached nor retried.
"""

import asyncio
import json
from decimal import Decimal
from typing import Any, NamedTuple, Optional
from urllib.parse import quote

import aiohttp

from . import config


class Quote(NamedTuple):
    price: Decimal
    market_cap: Decimal


class UpstreamError(Exception):
    """The quote API was unreachable or returned an unusable payload."""


def quote_url(symbol: str) -> str:
    """Return the latest-quote URL for ``symbol`` converted to USD."""
    return (
        f"{config.CMC_BASE_URL}/cryptocurrency/quotes/latest"
        f"?symbol={quote(symbol, safe='')}&convert=USD"
    )


def _decimal_field(usd: dict, key: str, symbol: str) -> Decimal:
    value = usd.get(key)
    if not isinstance(value, Decimal) or not value.is_finite() or value < 0:
        raise UpstreamError(f"invalid {key} for {symbol}: {value!r}")
    return value


def parse_quote(payload: Any, symbol: str) -> Quote:
    """Extract ``price`` and ``market_cap`` from a decoded response body.

    Parameters
    ----------
    payload:
        JSON document decoded with ``Decimal`` numbers.
    symbol:
        Ticker the request was made for.

    Returns
    -------
    Quote
        USD price and market cap.
    """
    try:
        usd = payload["data"][symbol]["quote"]["USD"]
    except (KeyError, TypeError) as exc:
        raise UpstreamError(f"no USD quote for {symbol} in response") from exc
    if not isinstance(usd, dict):
        raise UpstreamError(f"no USD quote for {symbol} in response")
    return Quote(
        _decimal_field(usd, "price", symbol),
        _decimal_field(usd, "market_cap", symbol),
    )


def _error_message(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and isinstance(payload.get("status"), dict):
        return payload["status"].get("error_message")
    return None


async def fetch_quote(
    symbol: str, session: Optional[aiohttp.ClientSession] = None
) -> Quote:
    """Return the current USD quote for ``symbol``.

    Raises :class:`UpstreamError` when the request fails or the response does
    not carry numeric ``price`` and ``market_cap`` fields.
    """
    url = quote_url(symbol)
    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession()
    try:
        async with session.get(url, headers=config.CMC_HEADERS) as resp:
            config.logger.info("quote_request symbol=%s status=%s", symbol, resp.status)
            body = await resp.read()
            status = resp.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        config.logger.error("quote request failed: %s", exc)
        raise UpstreamError(f"quote request for {symbol} failed: {exc}") from exc
    finally:
        if owns_session:
            await session.close()

    try:
        payload = json.loads(body, parse_float=Decimal, parse_int=Decimal)
    except ValueError as exc:
        if status != 200:
            raise UpstreamError(f"quote API returned HTTP {status}") from exc
        raise UpstreamError(f"quote API returned invalid JSON for {symbol}") from exc

    if status != 200:
        reason = _error_message(payload) or "no error message"
        raise UpstreamError(f"quote API returned HTTP {status}: {reason}")
    return parse_quote(payload, symbol)
