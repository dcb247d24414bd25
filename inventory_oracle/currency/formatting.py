"""
Price-string helpers: parse the number, detect the currency, re-format.

Supplier prices arrive as display strings (``"$12.34"``, ``"12.34 EUR"``,
``"£1,250.00"``). These helpers turn them into ``(amount, currency)`` pairs
and back.
"""

from __future__ import annotations

import re
from typing import Optional

from inventory_oracle.taxonomy.currency_taxonomy import (
    SYMBOL_TO_CURRENCY,
    currency_symbol,
    decimal_places,
)

_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?|-?\.\d+")
_ISO_CODE_RE = re.compile(r"(?<![A-Za-z])([A-Za-z]{3})(?![A-Za-z])")

KNOWN_CODES: frozenset[str] = frozenset(
    {"USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "KRW", "INR", "SEK", "NOK"}
)


def parse_price(price: str | float | int) -> float:
    """Extract the numeric value from a price string.

    Thousands separators are dropped; the first number in the string wins.

    Raises:
        ValueError: If no number is present.
    """
    if isinstance(price, (int, float)):
        return float(price)
    match = _NUMBER_RE.search(price)
    if match is None:
        raise ValueError(f"No numeric price in '{price}'.")
    return float(match.group(0).replace(",", ""))


def extract_currency(price: str, hint: Optional[str] = None) -> Optional[str]:
    """Detect the currency of a price string.

    Checks, in order: multi-character symbols (``C$``, ``A$``), known ISO
    codes anywhere in the string, any other upper-case three-letter code
    (``"PLN12.00"``), then single-character symbols.

    Args:
        price: Supplier price string.
        hint: Currency the supplier usually quotes in. A single-character
            symbol shared by several currencies (``¥`` for JPY and CNY)
            resolves to ``hint`` when ``hint`` uses that symbol.

    Returns:
        ISO code, or ``None`` if the string carries no currency marker.
    """
    text = price.strip()
    for symbol, code in SYMBOL_TO_CURRENCY:
        if len(symbol) > 1 and symbol in text:
            return code
    candidates = _ISO_CODE_RE.findall(text)
    for candidate in candidates:
        if candidate.upper() in KNOWN_CODES:
            return candidate.upper()
    for candidate in candidates:
        if candidate.isupper():
            return candidate
    for symbol, code in SYMBOL_TO_CURRENCY:
        if len(symbol) == 1 and symbol in text:
            if hint and currency_symbol(hint) == symbol:
                return hint.upper()
            return code
    return None


def format_price(amount: float, currency: str) -> str:
    """Format ``amount`` with the currency's symbol and decimal policy.

    >>> format_price(12.5, "EUR")
    '€12.50'
    >>> format_price(1234.4, "JPY")
    '¥1234'
    """
    code = currency.upper()
    return f"{currency_symbol(code)}{amount:.{decimal_places(code)}f}"


def format_quote(amount: float, currency: str) -> str:
    """Format ``amount`` so that ``extract_currency`` reads ``currency`` back.

    Uses the symbol form where the symbol is unambiguous and a trailing ISO
    code otherwise.

    >>> format_quote(12.5, "EUR")
    '€12.50'
    >>> format_quote(100, "CNY")
    '100.00 CNY'
    """
    code = currency.upper()
    text = format_price(amount, code)
    if extract_currency(text) == code:
        return text
    return f"{amount:.{decimal_places(code)}f} {code}"
