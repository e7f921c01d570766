"""Date and weekday calculations for recurring sessions"""

from datetime import date, timedelta
from typing import Iterator, Optional

from ...config import SCHOOL_YEAR_END_DAY, SCHOOL_YEAR_END_MONTH


def iso_day_of_week(day: date) -> int:
    """1 = Monday ... 7 = Sunday"""
    return day.isoweekday()


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    """Every date from start_date to end_date, both inclusive"""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def weekdays_in_range(start_date: date, end_date: date) -> set[int]:
    """ISO weekdays spanned by the range, so templates for other days are never fetched"""
    days: set[int] = set()
    for current in iter_dates(start_date, end_date):
        days.add(iso_day_of_week(current))
        if len(days) == 7:
            break
    return days


def occurrences(day_of_week: int, start_date: date, end_date: date) -> list[date]:
    """Dates falling on day_of_week between start_date and end_date (inclusive)"""
    offset = (day_of_week - iso_day_of_week(start_date)) % 7
    current = start_date + timedelta(days=offset)

    dates = []
    while current <= end_date:
        dates.append(current)
        current += timedelta(weeks=1)
    return dates


def school_year_end_date(today: Optional[date] = None) -> date:
    """
    End of the current school year.

    Before or during the end month the school year ends this calendar year;
    after it, the next one.
    """
    today = today or date.today()
    year = today.year + 1 if today.month > SCHOOL_YEAR_END_MONTH else today.year
    return date(year, SCHOOL_YEAR_END_MONTH, SCHOOL_YEAR_END_DAY)


def generation_end_date(
    today: date,
    weeks_ahead: Optional[int] = None,
    until_date: Optional[date] = None,
) -> date:
    """An explicit until_date wins, then weeks_ahead, then the school year end"""
    if until_date is not None:
        return until_date
    if weeks_ahead is not None:
        return today + timedelta(weeks=weeks_ahead)
    return school_year_end_date(today)
