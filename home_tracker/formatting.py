"""
Display formatting for money, percentages, dates and periods.

Amounts are Brazilian Real with pt-BR grouping ("R$ 1.234,56"),
the currency the tracker's seed data and users work in.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[Decimal, int, float]

CURRENCY_SYMBOL = "R$"


def format_currency(value: Number) -> str:
    """Format an amount as BRL: 1234.5 -> 'R$ 1.234,50', -10 -> '-R$ 10,00'."""
    amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(amount):,.2f}"
    # en-US grouping to pt-BR: swap the separators
    grouped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}{CURRENCY_SYMBOL} {grouped}"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_date(value: Optional[Union[date, datetime, str]]) -> str:
    """dd/mm/yyyy, or '-' when there is no date."""
    if not value:
        return "-"
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return value.strftime("%d/%m/%Y")


def format_period(days: int) -> str:
    """
    Humanize a day count.

    0 -> 'Today', negatives -> 'N days ago', then days, weeks and
    months (30-day months, floored).
    """
    if days == 0:
        return "Today"
    if days == 1:
        return "1 day"
    if days < 0:
        return "1 day ago" if days == -1 else f"{abs(days)} days ago"
    if days < 7:
        return f"{days} days"
    if days < 30:
        weeks = days // 7
        return "1 week" if weeks == 1 else f"{weeks} weeks"
    months = days // 30
    return "1 month" if months == 1 else f"{months} months"
