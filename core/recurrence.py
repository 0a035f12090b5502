"""
Recurring schedule date stepping.

Monthly and yearly steps advance the month (or year) field and clamp the
day to the last day of the target month when it does not exist there:
Jan 31 + 1 month is Feb 28 (Feb 29 in a leap year), Feb 29 + 1 year is
Feb 28.
"""

import calendar
from datetime import date, timedelta

from core.models.recurring_invoice import Frequency


def add_months(current: date, months: int) -> date:
    """Shift by whole calendar months, clamping to the target month's last day."""
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    # replace() keeps time and tzinfo when current is a datetime
    return current.replace(year=year, month=month, day=min(current.day, last_day))


def next_date(current: date, frequency: Frequency | str) -> date:
    """
    Next scheduled date after current.

    Works for date and datetime (time of day is kept).

    Raises:
        ValueError: Unknown frequency.
    """
    freq = Frequency(frequency)

    if freq == Frequency.WEEKLY:
        return current + timedelta(days=7)
    if freq == Frequency.MONTHLY:
        return add_months(current, 1)
    if freq == Frequency.YEARLY:
        return add_months(current, 12)

    raise ValueError(f"Unsupported frequency: {frequency}")
