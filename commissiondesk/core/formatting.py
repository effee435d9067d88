"""Helpers for consistent user-facing money and period labels."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from commissiondesk.core.periods import PeriodBounds, get_zone

PERIOD_LABEL_FORMAT = "%B %Y"


def format_money(value: Any, currency: str = "USD") -> str:
    """Format a numeric value as ``USD 1,234.50``."""

    if value in (None, ""):
        decimal_value = Decimal("0")
    else:
        try:
            decimal_value = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            return str(value)
    decimal_value = decimal_value.quantize(Decimal("0.01"))
    return f"{currency} {decimal_value:,.2f}"


def format_period_label(period: PeriodBounds, timezone_name: str | None = None) -> str:
    """``March 2025`` for a month period, read in the organization zone (default zone when unset)."""

    start = period.start.astimezone(get_zone(timezone_name))
    return start.strftime(PERIOD_LABEL_FORMAT)


__all__ = [
    "format_money",
    "format_period_label",
]
