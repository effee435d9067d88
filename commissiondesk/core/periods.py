"""Billing period boundaries localized to an organization's timezone."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, tzinfo

from dateutil import tz

from commissiondesk.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = os.getenv("COMMISSION_DEFAULT_TIMEZONE", "Asia/Singapore")


@dataclass(frozen=True)
class PeriodBounds:
    """Half-open UTC interval ``[start, end)``; both ends are tz-aware."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ConfigurationError("Period bounds must be timezone-aware.")
        if self.end <= self.start:
            raise ConfigurationError(
                f"Period end {self.end.isoformat()} must be after start {self.start.isoformat()}."
            )

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime) -> "PeriodBounds":
        """Build bounds from arbitrary datetimes; naive values are read as UTC."""

        return cls(start=to_utc(start), end=to_utc(end))

    def contains(self, instant: datetime) -> bool:
        return self.start <= to_utc(instant) < self.end

    @property
    def naive_start(self) -> datetime:
        """Start as a naive UTC datetime, the form stored in the database."""
        return self.start.astimezone(tz.UTC).replace(tzinfo=None)

    @property
    def naive_end(self) -> datetime:
        return self.end.astimezone(tz.UTC).replace(tzinfo=None)


@dataclass(frozen=True)
class MonthPeriod:
    """A calendar month, resolved later against an organization timezone."""

    year: int
    month: int

    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive input is already UTC)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=tz.UTC)
    return value.astimezone(tz.UTC)


def get_zone(timezone_name: str | None) -> tzinfo:
    """Look up an IANA zone, falling back to ``DEFAULT_TIMEZONE`` when unset."""

    name = (timezone_name or "").strip() or DEFAULT_TIMEZONE
    zone = tz.gettz(name)
    if zone is None:
        logger.warning("Unknown timezone %r; refusing to guess period bounds", name)
        raise ConfigurationError(f"Unknown timezone '{name}'.")
    return zone


def _local_month_start_utc(year: int, month: int, zone: tzinfo) -> datetime:
    # A local midnight skipped by a DST jump resolves to the first instant that exists.
    local = tz.resolve_imaginary(datetime(year, month, 1, tzinfo=zone))
    return local.astimezone(tz.UTC)


def resolve_month_bounds_utc(year: int, month: int, timezone_name: str | None = None) -> PeriodBounds:
    """Map a calendar month in ``timezone_name`` to its UTC half-open interval.

    The local instant ``year-month-01 00:00`` becomes ``start`` and the local
    first instant of the following month becomes ``end``. A session dated
    exactly at ``end`` belongs to the next period.
    """

    if not 1 <= month <= 12:
        raise ConfigurationError(f"Month must be between 1 and 12, got {month}.")
    zone = get_zone(timezone_name)
    next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
    return PeriodBounds(
        start=_local_month_start_utc(year, month, zone),
        end=_local_month_start_utc(next_year, next_month, zone),
    )


def parse_month(value: str) -> MonthPeriod:
    """Parse ``YYYY-MM`` into a :class:`MonthPeriod`."""

    try:
        year_text, month_text = value.strip().split("-")
        period = MonthPeriod(year=int(year_text), month=int(month_text))
    except (AttributeError, ValueError) as exc:
        raise ConfigurationError(f"Month '{value}' must be provided in YYYY-MM format.") from exc
    if not 1 <= period.month <= 12:
        raise ConfigurationError(f"Month '{value}' must be provided in YYYY-MM format.")
    return period


__all__ = [
    "DEFAULT_TIMEZONE",
    "MonthPeriod",
    "PeriodBounds",
    "get_zone",
    "parse_month",
    "resolve_month_bounds_utc",
    "to_utc",
]
