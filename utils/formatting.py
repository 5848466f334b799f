"""
Formatting utilities.
"""

from decimal import Decimal
from typing import Union


def format_currency(amount: Union[Decimal, int], currency: str = "ETB") -> str:
    """
    Format a fixed-point amount as currency.

    Args:
        amount: The amount in whole units. Never rounded.
        currency: Currency code (default ETB).

    Returns:
        Formatted currency string, e.g. "7,500 ETB".
    """
    value = Decimal(amount)
    if value == value.to_integral_value():
        text = f"{int(value):,}"
    else:
        whole, _, fraction = format(value.normalize(), "f").partition(".")
        text = f"{int(whole):,}.{fraction}"
    return f"{text} {currency}"


def format_area(area: Union[Decimal, int]) -> str:
    """Format an area in square metres."""
    return f"{Decimal(area).normalize():f} m²"
