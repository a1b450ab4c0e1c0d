from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Union

CURRENCY_SYMBOLS = {
    "PKR": "₨",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "AED": "AED",
    "SAR": "SAR",
    "INR": "₹",
    "CAD": "C$",
    "AUD": "A$",
}


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())


def round_minor_units(value: Union[int, Fraction]) -> int:
    if isinstance(value, int):
        return value
    exact = Decimal(value.numerator) / Decimal(value.denominator)
    return int(exact.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_minor_units(amount: Union[int, Fraction], currency: str) -> str:
    """Render minor units as a display string, e.g. ``₨ 5,500``.

    Whole amounts drop the decimals; anything else shows two places.
    """
    cents = round_minor_units(amount)
    if cents % 100 == 0:
        body = f"{cents // 100:,}"
    else:
        body = f"{cents / 100:,.2f}"
    return f"{currency_symbol(currency)} {body}"
