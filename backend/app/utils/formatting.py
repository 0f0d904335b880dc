"""
Money & date helpers shared by the gateway adapter and email templates.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£", "CHF": "CHF "}


def to_minor_units(amount: float) -> int:
    """150.0 -> 15000. Rounds half up so 10.005 becomes 1001, not 1000."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_currency(amount: float, currency: str = "EUR") -> str:
    """Render like en-US currency formatting: 1500 EUR -> '€1,500.00'."""
    code = (currency or "EUR").upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_long_date(value) -> str:
    """'Monday, March 3, 2025'. Accepts datetimes or ISO strings."""
    if value is None:
        return ""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return f"{value:%A, %B} {value.day}, {value.year}"
