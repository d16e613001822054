"""Tests for the period and interest calculators."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from src.ledger.clock import FixedClock, SystemClock
from src.ledger.interest import interest_accrued, interest_per_period
from src.ledger.periods import count_periods
from src.models.loan import InterestPeriod, InterestType, MonthlyCounting


class TestCountPeriods:
    """Tests for whole-period counting."""

    def test_end_before_start_is_zero(self):
        assert count_periods(date(2024, 3, 1), date(2024, 1, 1), InterestPeriod.MONTHLY) == 0
        assert count_periods(date(2024, 3, 1), date(2024, 1, 1), InterestPeriod.WEEKLY) == 0

    def test_same_day_is_zero(self):
        assert count_periods(date(2024, 3, 1), date(2024, 3, 1), InterestPeriod.WEEKLY) == 0

    def test_weekly_is_floor_of_days(self):
        """10 days is one complete week."""
        start = date(2024, 1, 1)
        assert count_periods(start, date(2024, 1, 7), InterestPeriod.WEEKLY) == 0
        assert count_periods(start, date(2024, 1, 8), InterestPeriod.WEEKLY) == 1
        assert count_periods(start, date(2024, 1, 11), InterestPeriod.WEEKLY) == 1
        assert count_periods(start, date(2024, 1, 15), InterestPeriod.WEEKLY) == 2

    def test_monthly_calendar_ignores_day_of_month(self):
        """A loan started on the 30th accrues a period on the 1st."""
        start = date(2024, 1, 30)
        assert count_periods(start, date(2024, 1, 31), InterestPeriod.MONTHLY) == 0
        assert count_periods(start, date(2024, 2, 1), InterestPeriod.MONTHLY) == 1
        assert count_periods(start, date(2024, 3, 1), InterestPeriod.MONTHLY) == 2

    def test_monthly_calendar_across_years(self):
        assert count_periods(
            date(2023, 11, 15), date(2024, 2, 10), InterestPeriod.MONTHLY
        ) == 3

    def test_monthly_anniversary_waits_for_start_day(self):
        start = date(2024, 1, 15)
        counting = MonthlyCounting.ANNIVERSARY
        assert count_periods(start, date(2024, 2, 14), InterestPeriod.MONTHLY, counting) == 0
        assert count_periods(start, date(2024, 2, 15), InterestPeriod.MONTHLY, counting) == 1
        assert count_periods(start, date(2024, 3, 14), InterestPeriod.MONTHLY, counting) == 1

    def test_monthly_anniversary_month_end(self):
        """The last day of a short month counts as reaching the 31st."""
        start = date(2024, 1, 31)
        counting = MonthlyCounting.ANNIVERSARY
        assert count_periods(start, date(2024, 2, 28), InterestPeriod.MONTHLY, counting) == 0
        assert count_periods(start, date(2024, 2, 29), InterestPeriod.MONTHLY, counting) == 1
        assert count_periods(start, date(2024, 4, 30), InterestPeriod.MONTHLY, counting) == 3

    def test_anniversary_does_not_affect_weekly(self):
        assert count_periods(
            date(2024, 1, 1),
            date(2024, 1, 11),
            InterestPeriod.WEEKLY,
            MonthlyCounting.ANNIVERSARY,
        ) == 1


class TestInterest:
    """Tests for the interest calculator."""

    def test_fixed_rate_is_amount_per_period(self):
        assert interest_per_period(
            Decimal("10000"), InterestType.FIXED, Decimal("100")
        ) == Decimal("100")

    def test_percentage_rate_applies_to_principal(self):
        assert interest_per_period(
            Decimal("10000"), InterestType.PERCENTAGE, Decimal("1.5")
        ) == Decimal("150")

    def test_zero_rate(self):
        assert interest_per_period(
            Decimal("10000"), InterestType.PERCENTAGE, Decimal("0")
        ) == Decimal("0")

    def test_accrued(self):
        assert interest_accrued(Decimal("100"), 2) == Decimal("200")
        assert interest_accrued(Decimal("100"), 0) == Decimal("0")


BANGKOK = timezone(timedelta(hours=7))


class TestClock:
    """Tests for the injectable clocks."""

    def test_today_uses_local_calendar_date(self):
        clock = FixedClock(datetime(2024, 3, 15, 20, 0, tzinfo=timezone.utc), tz=BANGKOK)
        assert clock.today() == date(2024, 3, 16)
        assert clock.now().tzinfo == timezone.utc

    def test_default_is_utc(self):
        clock = FixedClock(datetime(2024, 3, 15, 20, 0, tzinfo=timezone.utc))
        assert clock.today() == date(2024, 3, 15)

    def test_on_is_local_noon(self):
        clock = FixedClock.on(date(2024, 3, 15), tz=BANGKOK)
        assert clock.today() == date(2024, 3, 15)
        assert clock.now() == datetime(2024, 3, 15, 5, 0, tzinfo=timezone.utc)

    def test_advance_keeps_timezone(self):
        clock = FixedClock(datetime(2024, 3, 15, 16, 30, tzinfo=timezone.utc), tz=BANGKOK)
        assert clock.today() == date(2024, 3, 15)
        clock.advance(seconds=60 * 60)
        assert clock.today() == date(2024, 3, 16)

    def test_system_clock_is_aware(self):
        clock = SystemClock(BANGKOK)
        assert clock.now().tzinfo == timezone.utc
        assert clock.tz is BANGKOK
