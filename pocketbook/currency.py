"""
Supported Currencies

Amounts are stored without a currency; the user's preference only
decides how they are displayed.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Union


class CurrencyConfig(NamedTuple):
    code: str
    symbol: str
    name: str
    decimals: int


SUPPORTED_CURRENCIES = (
    CurrencyConfig("IDR", "Rp", "Indonesian Rupiah", 0),
    CurrencyConfig("USD", "$", "US Dollar", 2),
    CurrencyConfig("EUR", "€", "Euro", 2),
    CurrencyConfig("GBP", "£", "British Pound", 2),
    CurrencyConfig("JPY", "¥", "Japanese Yen", 0),
    CurrencyConfig("SGD", "S$", "Singapore Dollar", 2),
    CurrencyConfig("MYR", "RM", "Malaysian Ringgit", 2),
)

DEFAULT_CURRENCY = "IDR"

_BY_CODE = {config.code: config for config in SUPPORTED_CURRENCIES}


def is_supported(code: str) -> bool:
    return code in _BY_CODE


def get_currency_config(code: str) -> CurrencyConfig:
    """Unknown codes fall back to the default currency."""
    return _BY_CODE.get(code, _BY_CODE[DEFAULT_CURRENCY])


def format_amount(amount: Union[Decimal, int, float, str], code: str = DEFAULT_CURRENCY) -> str:
    """
    Format an amount for display, e.g. "Rp 15.000" or "$ 1,250.50".

    IDR uses "." as the thousands separator, everything else ",".
    """
    config = get_currency_config(code)
    quantum = Decimal(1).scaleb(-config.decimals)
    value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP)
    text = f"{value:,.{config.decimals}f}"
    if config.code == "IDR":
        text = text.replace(",", ".")
    return f"{config.symbol} {text}"
