from inventory_oracle.currency.formatting import (
    extract_currency,
    format_price,
    format_quote,
    parse_price,
)
from inventory_oracle.currency.service import ExchangeRateService

__all__ = [
    "ExchangeRateService",
    "extract_currency",
    "format_price",
    "format_quote",
    "parse_price",
]
