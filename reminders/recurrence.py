"""
Recurrence policy arithmetic.

A pure function that computes the next eligible occurrence of a reminder.
The interval is always one unit of the policy (one day, one week, one
calendar month). Monthly recurrence keeps the original day of month and
clamps it to the last day of shorter months.
"""

import calendar
from datetime import datetime, timedelta
from typing import Optional

from reminders.models import RecurrencePolicy


def _add_months(value: datetime, months: int, anchor_day: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(anchor_day, last_day))


def step(policy: RecurrencePolicy, base: datetime, count: int = 1) -> Optional[datetime]:
    """
    Return the occurrence `count` intervals after `base`.

    Returns None for ONCE, which has no further occurrences.
    """
    if policy == RecurrencePolicy.ONCE:
        return None
    if policy == RecurrencePolicy.DAILY:
        return base + timedelta(days=count)
    if policy == RecurrencePolicy.WEEKLY:
        return base + timedelta(weeks=count)
    if policy == RecurrencePolicy.MONTHLY:
        return _add_months(base, count, base.day)
    raise ValueError(f"Unknown recurrence policy: {policy}")


def next_occurrence(
    policy: RecurrencePolicy,
    base: datetime,
    after: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    First occurrence of `policy` anchored at `base` strictly later than `after`.

    Args:
        policy: The recurrence policy
        base: The first scheduled occurrence (anchor)
        after: Reference point, defaults to `base` itself

    Returns:
        The next occurrence, or None for ONCE
    """
    if policy == RecurrencePolicy.ONCE:
        return None

    reference = base if after is None else after
    count = 1
    candidate = step(policy, base, count)
    # Counting from the anchor avoids drift from month clamping (Jan 31 -> Feb 28 -> Mar 31)
    while candidate <= reference:
        count += 1
        candidate = step(policy, base, count)
    return candidate


def initial_next_send_at(policy: RecurrencePolicy, scheduled_at: datetime) -> Optional[datetime]:
    """next_send_at for a freshly created or rescheduled notification."""
    return None if policy == RecurrencePolicy.ONCE else scheduled_at
