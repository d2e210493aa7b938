"""Tests for schedule next-generation date math."""
from datetime import datetime

from invoicing.models.schedule import InvoiceSchedule, ScheduleFrequency
from invoicing.services.schedule_calculator import (
    calculate_following_generate_date,
    calculate_next_generate_date,
    sunday_based_weekday,
)


def test_monthly_with_lead_days() -> None:
    """Billing on the 1st, generated a week early."""
    result = calculate_next_generate_date(
        ScheduleFrequency.MONTHLY, day_of_month=1, generate_days_before=7, now=datetime(2024, 1, 15)
    )

    assert result == datetime(2024, 1, 25)


def test_monthly_day_later_this_month() -> None:
    """A billing day still ahead in the current month is used."""
    result = calculate_next_generate_date(ScheduleFrequency.MONTHLY, day_of_month=20, now=datetime(2024, 1, 15))

    assert result == datetime(2024, 1, 20)


def test_monthly_day_reached_rolls_to_next_month() -> None:
    """Reaching the billing day exactly moves to next month."""
    result = calculate_next_generate_date(ScheduleFrequency.MONTHLY, day_of_month=15, now=datetime(2024, 1, 15))

    assert result == datetime(2024, 2, 15)


def test_monthly_without_day_uses_first_of_next_month() -> None:
    """No day_of_month means the first of the next month."""
    result = calculate_next_generate_date("MONTHLY", now=datetime(2024, 12, 15, 9, 30))

    assert result == datetime(2025, 1, 1)


def test_monthly_day_overflow_rolls_into_next_month() -> None:
    """Day 31 in a 30-day month lands on the 1st of the following month."""
    result = calculate_next_generate_date(ScheduleFrequency.MONTHLY, day_of_month=31, now=datetime(2024, 4, 10))

    assert result == datetime(2024, 5, 1)


def test_monthly_day_thirty_in_february() -> None:
    """Day 30 in February lands in early March."""
    leap = calculate_next_generate_date(ScheduleFrequency.MONTHLY, day_of_month=30, now=datetime(2024, 2, 10))
    common = calculate_next_generate_date(ScheduleFrequency.MONTHLY, day_of_month=30, now=datetime(2023, 2, 10))

    assert leap == datetime(2024, 3, 1)
    assert common == datetime(2023, 3, 2)


def test_weekly_same_weekday_moves_a_full_week() -> None:
    """Monday (1) on a Monday is next Monday."""
    monday = datetime(2024, 1, 15, 8, 0)
    assert sunday_based_weekday(monday) == 1

    result = calculate_next_generate_date(ScheduleFrequency.WEEKLY, day_of_week=1, now=monday)

    assert result == datetime(2024, 1, 22, 8, 0)


def test_weekly_upcoming_weekday() -> None:
    """Wednesday towards Monday is five days ahead."""
    result = calculate_next_generate_date(ScheduleFrequency.WEEKLY, day_of_week=1, now=datetime(2024, 1, 17))

    assert result == datetime(2024, 1, 22)


def test_weekly_sunday_is_zero() -> None:
    """Sunday is weekday 0."""
    result = calculate_next_generate_date(ScheduleFrequency.WEEKLY, day_of_week=0, now=datetime(2024, 1, 15))

    assert result == datetime(2024, 1, 21)


def test_weekly_without_weekday_is_seven_days() -> None:
    """No day_of_week means seven days from now."""
    result = calculate_next_generate_date(ScheduleFrequency.WEEKLY, now=datetime(2024, 1, 15, 12, 0))

    assert result == datetime(2024, 1, 22, 12, 0)


def test_biweekly_and_quarterly() -> None:
    """Biweekly adds 14 days; quarterly jumps to the first of the month three months ahead."""
    now = datetime(2024, 1, 15, 6, 0)

    assert calculate_next_generate_date(ScheduleFrequency.BIWEEKLY, now=now) == datetime(2024, 1, 29, 6, 0)
    assert calculate_next_generate_date(ScheduleFrequency.QUARTERLY, now=now) == datetime(2024, 4, 1)


def test_following_date_is_past_current_run() -> None:
    """After generating early, the next run targets the following occurrence."""
    schedule = InvoiceSchedule(
        frequency=ScheduleFrequency.MONTHLY,
        day_of_month=1,
        day_of_week=None,
        generate_days_before=7,
    )

    result = calculate_following_generate_date(schedule, datetime(2024, 1, 25))

    assert result == datetime(2024, 2, 23)
    assert result > datetime(2024, 1, 25)
