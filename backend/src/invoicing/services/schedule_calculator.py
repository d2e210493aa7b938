"""Next-generation date math for recurring invoice schedules.

Calendar arithmetic uses ``dateutil.relativedelta``. Day-of-week values
follow the 0 = Sunday ... 6 = Saturday convention used by API clients.

``day_of_month`` is not clamped to the length of short months: day 31 in
a 30-day month lands on the 1st of the following month, and day 30 in
February lands in early March.
"""
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from invoicing.models.schedule import ScheduleFrequency
from invoicing.utils.clock import utcnow


def sunday_based_weekday(moment: datetime) -> int:
    """Day of week with Sunday as 0."""
    return (moment.weekday() + 1) % 7


def day_in_month(month_start: datetime, day_of_month: int) -> datetime:
    """Midnight of ``day_of_month`` counted from ``month_start``, rolling into the next month on overflow."""
    return month_start + timedelta(days=day_of_month - 1)


def calculate_next_generate_date(
    frequency: ScheduleFrequency | str,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
    generate_days_before: int | None = 0,
    now: datetime | None = None,
) -> datetime:
    """
    Compute when a schedule should next generate an invoice.

    Args:
        frequency: Schedule frequency
        day_of_month: Billing day for MONTHLY schedules (1-31)
        day_of_week: Billing weekday for WEEKLY schedules (0 = Sunday)
        generate_days_before: Days ahead of the billing date to generate
        now: Reference time (defaults to current UTC time)

    Returns:
        Naive UTC datetime of the next generation

    Examples:
        >>> calculate_next_generate_date("MONTHLY", 1, None, 7, datetime(2024, 1, 15))
        datetime.datetime(2024, 1, 25, 0, 0)
    """
    now = now or utcnow()
    month_start = datetime(now.year, now.month, 1)

    if frequency == ScheduleFrequency.MONTHLY:
        if day_of_month:
            target = day_in_month(month_start, day_of_month)
            if target <= now:
                target = day_in_month(month_start + relativedelta(months=1), day_of_month)
        else:
            target = month_start + relativedelta(months=1)
    elif frequency == ScheduleFrequency.WEEKLY:
        if day_of_week is not None:
            # Same weekday rolls a full week forward
            days_until = (day_of_week - sunday_based_weekday(now) + 7) % 7 or 7
            target = now + timedelta(days=days_until)
        else:
            target = now + timedelta(days=7)
    elif frequency == ScheduleFrequency.BIWEEKLY:
        target = now + timedelta(days=14)
    elif frequency == ScheduleFrequency.QUARTERLY:
        target = month_start + relativedelta(months=3)
    else:
        target = now + timedelta(days=30)

    if generate_days_before and generate_days_before > 0:
        target -= timedelta(days=generate_days_before)

    return target


def calculate_following_generate_date(schedule, generated_at: datetime) -> datetime:
    """
    Next generation date after a schedule fired at ``generated_at``.

    The reference point is the occurrence that was just billed
    (``generated_at + generate_days_before``), so the result always lies
    past the current run.
    """
    lead = timedelta(days=schedule.generate_days_before or 0)
    return calculate_next_generate_date(
        schedule.frequency,
        schedule.day_of_month,
        schedule.day_of_week,
        schedule.generate_days_before,
        now=generated_at + lead,
    )
