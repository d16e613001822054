"""
Period Calculator

Counts whole interest periods elapsed between two dates.

WEEKLY is day-exact: complete 7-day spans.
MONTHLY defaults to calendar counting: every month boundary crossed is a
full period, whatever the day-of-month of the start date. A loan started on
the 30th therefore accrues its first monthly period on the 1st of the next
month. ANNIVERSARY counting waits for the start day-of-month instead.
"""

import calendar
from datetime import date

from src.models.loan import InterestPeriod, MonthlyCounting


DAYS_PER_WEEK = 7


def count_periods(
    start: date,
    end: date,
    cadence: InterestPeriod,
    monthly_counting: MonthlyCounting = MonthlyCounting.CALENDAR,
) -> int:
    """
    Number of whole periods between start and end.

    Never negative: an end before the start yields 0.
    """
    if end < start:
        return 0

    if cadence == InterestPeriod.WEEKLY:
        return (end - start).days // DAYS_PER_WEEK

    months = (end.year - start.year) * 12 + (end.month - start.month)

    if monthly_counting == MonthlyCounting.ANNIVERSARY and end.day < start.day:
        # The last day of a short month stands in for a missing start day.
        last_day = calendar.monthrange(end.year, end.month)[1]
        if end.day < last_day:
            months -= 1

    return max(months, 0)
