#!/usr/bin/env python3
"""
Temporal Range Filter

Filters a catalog to entries acquired within a datetime interval. Bounds can
be given with reduced precision: a year ("2024"), a month ("2024-03") or a
day ("2024-03-27") expand to the whole period, inclusive on both ends.
"""

import calendar
import logging
import re
from datetime import date, datetime, time, timezone
from typing import Optional, Tuple, Union

from services.core.catalog import Catalog, parse_datetime

logger = logging.getLogger(__name__)

TemporalInput = Union[str, int, date, datetime]

_YEAR = re.compile(r"^\d{4}$")
_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _day_bounds(day: date) -> Tuple[datetime, datetime]:
    return (
        datetime.combine(day, time(0, 0, 0), tzinfo=timezone.utc),
        datetime.combine(day, time(23, 59, 59), tzinfo=timezone.utc),
    )


def expand_period(value: TemporalInput) -> Tuple[datetime, datetime]:
    """
    Expand a (possibly truncated) date or datetime to its inclusive interval.

    A full datetime expands to itself.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        instant = _utc(value)
        return instant, instant
    if isinstance(value, date):
        return _day_bounds(value)
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError(
            f"Unsupported datetime type {type(value).__name__}. Use datetime, date or string."
        )

    text = value.strip()
    if _YEAR.match(text):
        year = int(text)
        return (
            datetime(year, 1, 1, 0, 0, 0, tzinfo=timezone.utc),
            datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        )

    match = _MONTH.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise ValueError(f"Could not parse datetime string: {value}")
        last_day = calendar.monthrange(year, month)[1]
        return (
            datetime(year, month, 1, 0, 0, 0, tzinfo=timezone.utc),
            datetime(year, month, last_day, 23, 59, 59, tzinfo=timezone.utc),
        )

    if _DAY.match(text):
        try:
            return _day_bounds(date.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Could not parse datetime string: {value}")

    if "T" in text:
        parsed = parse_datetime(text)
        if parsed is not None:
            return parsed, parsed

    raise ValueError(
        f"Could not parse datetime string: {value}\n"
        "Expected format: 'YYYY', 'YYYY-MM', 'YYYY-MM-DD', or 'YYYY-MM-DDTHH:MM:SSZ'"
    )


def parse_datetime_input(value: TemporalInput, position: str = "start") -> datetime:
    """Parse one interval bound; ``position`` picks the start or end of the period."""
    if position not in ("start", "end"):
        raise ValueError(f"position must be 'start' or 'end', got {position!r}")
    start, end = expand_period(value)
    return start if position == "start" else end


def normalize_temporal_range(
    start: TemporalInput, end: Optional[TemporalInput] = None
) -> Tuple[datetime, datetime]:
    """
    Turn start/end values into an inclusive UTC interval.

    Without ``end`` the interval covers the period given by ``start``.
    """
    start_time = parse_datetime_input(start, "start")
    if end is None:
        end_time = parse_datetime_input(start, "end")
    else:
        end_time = parse_datetime_input(end, "end")
    if end_time < start_time:
        raise ValueError(f"End of temporal range {end_time} is before its start {start_time}")
    return start_time, end_time


def filter_temporal(
    catalog: Optional[Catalog],
    start: TemporalInput,
    end: Optional[TemporalInput] = None,
    verbose: bool = True,
) -> Optional[Catalog]:
    """
    Keep entries whose datetime falls inside ``[start, end]``.

    Example:
        >>> filter_temporal(catalog, "2024-03")  # all of March 2024

    Returns:
        The filtered catalog, or None if nothing matches
    """
    if catalog is None:
        return None
    if len(catalog) == 0:
        logger.warning("No features in catalog to filter")
        return None

    start_time, end_time = normalize_temporal_range(start, end)

    missing = sum(1 for e in catalog if e.datetime is None)
    if missing:
        logger.warning(f"{missing} feature(s) missing datetime property, excluding from filter")

    kept = [
        e for e in catalog
        if e.datetime is not None and start_time <= e.datetime <= end_time
    ]
    if not kept:
        logger.warning("No features within the specified temporal range")
        return None

    result = catalog.with_entries(kept)
    if verbose:
        dated = [e.datetime for e in catalog if e.datetime is not None]
        logger.info("Filter temporal extent")
        logger.info(f"  {len(catalog)} LASfiles ({_date_range(min(dated), max(dated))})")
        logger.info(
            f"  {len(result)} LASfiles retained "
            f"({_date_range(min(e.datetime for e in kept), max(e.datetime for e in kept))})"
        )
    return result


def _date_range(first: datetime, last: datetime) -> str:
    first_str, last_str = first.strftime("%Y-%m-%d"), last.strftime("%Y-%m-%d")
    return first_str if first_str == last_str else f"{first_str} to {last_str}"
