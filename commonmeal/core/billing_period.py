"""
Billing period arithmetic.

A billing period runs from the day after one month's cutoff day up to and
including the next month's cutoff day. Its key is "YYYY-MM" of the month the
cutoff falls in, and it is paid on the first day of the following month.

Example with cutoff day 17:
    2024-05 covers 2024-04-18 .. 2024-05-17 and is paid 2024-06-01.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from commonmeal.core.config import get_settings


@dataclass(frozen=True)
class BillingPeriod:
    """One closed-or-open billing window."""

    key: str
    start: date
    cutoff_date: date
    payment_date: date

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.cutoff_date

    @classmethod
    def from_key(cls, key: str, cutoff_day: Optional[int] = None) -> "BillingPeriod":
        """
        Build a period from its "YYYY-MM" key.

        >>> BillingPeriod.from_key("2024-05", 17).start
        datetime.date(2024, 4, 18)
        """
        try:
            year_str, month_str = key.split("-")
            cutoff_month = date(int(year_str), int(month_str), 1)
        except ValueError:
            raise ValueError(f"Billing period key must look like YYYY-MM (got '{key}')")
        if len(year_str) != 4 or len(month_str) != 2:
            raise ValueError(f"Billing period key must look like YYYY-MM (got '{key}')")
        day = cutoff_day or get_settings().BILLING_CUTOFF_DAY
        cutoff = cutoff_month.replace(day=day)
        previous_cutoff = cutoff - relativedelta(months=1)
        return cls(
            key=key,
            start=previous_cutoff + timedelta(days=1),
            cutoff_date=cutoff,
            payment_date=cutoff_month + relativedelta(months=1),
        )


def period_key_for_date(d: date, cutoff_day: Optional[int] = None) -> str:
    """
    Key of the billing period a dinner date belongs to.

    >>> period_key_for_date(date(2024, 5, 17), 17)
    '2024-05'
    >>> period_key_for_date(date(2024, 5, 18), 17)
    '2024-06'
    """
    day = cutoff_day or get_settings().BILLING_CUTOFF_DAY
    month = d.replace(day=1)
    if d.day > day:
        month = month + relativedelta(months=1)
    return f"{month.year:04d}-{month.month:02d}"


def period_for_date(d: date, cutoff_day: Optional[int] = None) -> BillingPeriod:
    return BillingPeriod.from_key(period_key_for_date(d, cutoff_day), cutoff_day)


def last_closed_period(reference_date: date, cutoff_day: Optional[int] = None) -> BillingPeriod:
    """
    Latest period whose cutoff date is strictly before reference_date.

    >>> last_closed_period(date(2024, 6, 1), 17).key
    '2024-05'
    >>> last_closed_period(date(2024, 5, 17), 17).key
    '2024-04'
    """
    current = period_for_date(reference_date, cutoff_day)
    return period_for_date(current.start - timedelta(days=1), cutoff_day)
