# demand_planning/utils/date_utils.py
from datetime import date, datetime, timedelta
from typing import List, Sequence, Tuple, Union
import calendar
import math

from demand_planning.exceptions import ValidationError

def convert_to_date(value: Union[str, date, datetime], format_string: str = "%Y-%m-%d") -> date:
    """Convert string or datetime to date.

    Args:
        value: Date string, date or datetime
        format_string: Format string used for strings

    Returns:
        Date object
    """
    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    try:
        return datetime.strptime(str(value).strip(), format_string).date()
    except ValueError:
        raise ValidationError(f"Invalid date '{value}', expected format {format_string}")

def inclusive_days(start_date: date, end_date: date) -> int:
    """Number of days in an inclusive date range, never less than 1.

    Args:
        start_date: First day of the range
        end_date: Last day of the range

    Returns:
        Day count
    """
    delta_days = (end_date - start_date).total_seconds() / 86400.0
    return max(1, int(math.ceil(delta_days)) + 1)

def trailing_window(end_date: date, window_days: int = 30) -> Tuple[date, date]:
    """Inclusive window of window_days ending on end_date.

    Args:
        end_date: Last day of the window
        window_days: Window length in days

    Returns:
        Tuple with start and end date
    """
    if window_days < 1:
        raise ValidationError(f"Window must be at least one day, got {window_days}")

    return (end_date - timedelta(days=window_days - 1), end_date)

def get_days_in_month(year: int, month: int) -> int:
    """Get number of days in a month.

    Args:
        year: Year
        month: Month

    Returns:
        Number of days
    """
    return calendar.monthrange(year, month)[1]

def first_of_month(target_date: date) -> date:
    """First day of the month containing target_date."""
    return target_date.replace(day=1)

def add_months(month_start: date, months: int) -> date:
    """Shift a first-of-month date by a number of months."""
    index = month_start.year * 12 + (month_start.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)

def next_forecast_months(today: date, horizon: int = 12) -> List[date]:
    """The horizon months following the month containing today.

    Args:
        today: Reference date
        horizon: Number of months

    Returns:
        List of first-of-month dates
    """
    current = first_of_month(today)
    return [add_months(current, offset) for offset in range(1, horizon + 1)]

def ensure_consecutive_months(months: Sequence[date]) -> None:
    """Validate that months are consecutive first-of-month dates.

    Raises:
        ValidationError if a month is not a first-of-month date or a gap exists
    """
    for index, month in enumerate(months):
        if month.day != 1:
            raise ValidationError(
                f"Forecast month {month.isoformat()} is not the first day of a month",
                details={'month': month.isoformat()}
            )

        if index > 0 and add_months(months[index - 1], 1) != month:
            raise ValidationError(
                f"Forecast months are not consecutive at {month.isoformat()}",
                details={'previous': months[index - 1].isoformat(), 'month': month.isoformat()}
            )

def month_label(month_start: date) -> str:
    """Short label such as 'Mar 2025'."""
    return month_start.strftime('%b %Y')
