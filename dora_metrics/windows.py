"""Split a date range into day, week or month windows."""

from datetime import date, datetime, timedelta

from dora_metrics.errors import InvalidGranularity, InvalidParameter
from dora_metrics.models import Granularity, TimeWindow


def parse_granularity(value: str | Granularity) -> Granularity:
    """Convert a granularity string to ``Granularity``."""
    if isinstance(value, Granularity):
        return value
    try:
        return Granularity(str(value).strip().lower())
    except ValueError:
        raise InvalidGranularity(value) from None


def parse_date(value: str | date | datetime) -> date:
    """Parse an ISO date or datetime into a calendar date (UTC)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        # Handle ISO format strings (e.g., '2024-01-08T19:08:28Z')
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except (AttributeError, ValueError):
        raise InvalidParameter(f"Invalid date {value!r}: expected ISO 8601") from None


def _next_month(current: date) -> date:
    if current.month == 12:
        return current.replace(year=current.year + 1, month=1, day=1)
    return current.replace(month=current.month + 1, day=1)


def bucketize(
    start_date: date,
    end_date: date,
    granularity: str | Granularity,
) -> list[TimeWindow]:
    """Generate contiguous windows covering ``start_date`` to ``end_date``.

    Window starts are aligned to the granularity (Monday for weeks, the
    first of the month for months), so the first window may begin before
    ``start_date``. The last window is clamped to ``end_date``.

    Returns an empty list when ``start_date`` is after ``end_date``.

    Raises:
        InvalidGranularity: If ``granularity`` is not day, week or month.
    """
    granularity = parse_granularity(granularity)
    windows: list[TimeWindow] = []

    if start_date > end_date:
        return windows

    if granularity == Granularity.DAY:
        current = start_date
        while current <= end_date:
            windows.append(TimeWindow(start=current, end=current, granularity=granularity))
            current += timedelta(days=1)
    elif granularity == Granularity.WEEK:
        # Align to Monday
        current = start_date - timedelta(days=start_date.weekday())
        while current <= end_date:
            window_end = min(current + timedelta(days=6), end_date)
            windows.append(TimeWindow(start=current, end=window_end, granularity=granularity))
            current += timedelta(days=7)
    else:
        # Align to first of month
        current = start_date.replace(day=1)
        while current <= end_date:
            next_month = _next_month(current)
            window_end = min(next_month - timedelta(days=1), end_date)
            windows.append(TimeWindow(start=current, end=window_end, granularity=granularity))
            current = next_month

    return windows
