"""
Currency symbols and decimal-place policy.

``CURRENCY_SYMBOLS`` is used for formatting; ``SYMBOL_TO_CURRENCY`` for
detection when a supplier price string carries a symbol instead of an ISO
code. Multi-character symbols are listed first so ``C$`` is not read as ``$``.

This module has NO imports from any other ``inventory_oracle`` package.
"""

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
    "CHF": "CHF",
    "CNY": "¥",
}

# Detection order matters: longest symbols first. "¥" resolves to JPY.
SYMBOL_TO_CURRENCY: tuple[tuple[str, str], ...] = (
    ("C$", "CAD"),
    ("A$", "AUD"),
    ("$", "USD"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
)

ZERO_DECIMAL_CURRENCIES: frozenset[str] = frozenset({"JPY", "KRW"})


def currency_symbol(code: str) -> str:
    """Return the display symbol for ``code``, or the code itself if unknown."""
    return CURRENCY_SYMBOLS.get(code.upper(), code.upper())


def decimal_places(code: str) -> int:
    """Return the number of minor-unit digits shown for ``code``."""
    return 0 if code.upper() in ZERO_DECIMAL_CURRENCIES else 2
