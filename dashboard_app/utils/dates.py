from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union
from ..errors import ValidationError

DateLike = Union[date, datetime, str, None]


def to_day(value: DateLike) -> Optional[date]:
    """
    Normalize a date, datetime or ISO string to a plain date.
    Time-of-day is dropped so comparisons happen at day granularity.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        # accepts "2024-01-31" as well as "2024-01-31T10:20:00Z"
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def resolve_range(start: DateLike, end: DateLike, today: date = None, lookback_days: int = 30) -> Tuple[date, date]:
    today = to_day(today) or date.today()
    start_day = to_day(start) or today - timedelta(days=lookback_days)
    end_day = to_day(end) or today
    if start_day > end_day:
        raise ValidationError("startDate must not be after endDate")
    return start_day, end_day
