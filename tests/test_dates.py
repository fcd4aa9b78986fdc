from datetime import date, datetime

import pytest

from dashboard_app.errors import ValidationError
from dashboard_app.utils.dates import resolve_range, to_day


def test_to_day_drops_time_of_day():
    assert to_day(datetime(2024, 1, 31, 23, 59)) == date(2024, 1, 31)
    assert to_day("2024-01-31T23:59:59.000Z") == date(2024, 1, 31)
    assert to_day("2024-01-31") == date(2024, 1, 31)
    assert to_day("") is None
    assert to_day(None) is None


def test_to_day_rejects_garbage():
    with pytest.raises(ValidationError):
        to_day("last tuesday")


def test_resolve_range_defaults():
    assert resolve_range(None, None, today=date(2024, 5, 31)) == (date(2024, 5, 1), date(2024, 5, 31))
    assert resolve_range("2024-05-10", None, today=date(2024, 5, 31)) == (date(2024, 5, 10), date(2024, 5, 31))
    assert resolve_range(None, None, today=date(2024, 5, 31), lookback_days=7)[0] == date(2024, 5, 24)
