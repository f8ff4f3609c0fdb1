"""Date and money helpers for messages and printable invoices."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from dateutil import parser as date_parser

from rentmeter.config import settings


def format_money(amount: Decimal, symbol: str | None = None) -> str:
    """Formats an amount as 'Rs. 12,450.00'."""
    symbol = settings.CURRENCY_SYMBOL if symbol is None else symbol
    return f"{symbol} {amount:,.2f}"


def format_units(value: Decimal) -> str:
    """Formats a meter value with two decimals."""
    return f"{value:,.2f}"


def format_date(value: date) -> str:
    """Formats a date as '19 Oct 2026'."""
    return value.strftime("%d %b %Y")


def parse_date(text: str, today: date | None = None) -> date:
    """
    Parses a date typed by the user.

    Accepts ISO dates and common day-first forms such as '19.10.2026' or
    '19 Oct'. Missing parts are taken from ``today``.

    Raises:
        ValueError: if the text is not a date.
    """
    text = text.strip()
    if not text:
        raise ValueError("Empty date")
    base = today or date.today()
    try:
        parsed = date_parser.parse(
            text,
            dayfirst=not text[:4].isdigit(),
            default=datetime.combine(base, time()),
        )
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Not a date: {text}") from e
    return parsed.date()
