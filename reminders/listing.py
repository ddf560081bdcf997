"""
Listing and filtering of scheduled notifications.

A pure projection over the notifications returned by the store: a status
filter plus a free-text query matched against the subject and the
resolved recipient name and address. Both recipient variants resolve to
the same {name, address} view, so neither is dropped nor duplicated.
"""

from typing import Iterable, Literal, Optional, Union

from reminders.models import Notification, NotificationStatus
from reminders.recipients import RecipientResolver, matches_query

ALL = "all"

StatusFilter = Union[Literal["all"], NotificationStatus]


def parse_status_filter(value: Union[str, NotificationStatus, None]) -> StatusFilter:
    """
    Normalize a status filter from user input.

    Raises:
        ValueError: If the value is neither "all" nor a known status
    """
    if value is None or value == ALL:
        return ALL
    return NotificationStatus(value)


def filter_notifications(
    notifications: Iterable[Notification],
    status: Union[str, NotificationStatus, None] = ALL,
    query: str = "",
    resolver: Optional[RecipientResolver] = None,
) -> list[Notification]:
    """
    Return the notifications matching `status` and `query`, in input order.

    Args:
        notifications: Notifications as returned by the store
        status: "all" or a concrete NotificationStatus (value or member)
        query: Case-insensitive substring; empty matches everything
        resolver: Resolves registered recipients to name/address
    """
    status_filter = parse_status_filter(status)
    resolver = resolver or RecipientResolver()

    matching = []
    for notification in notifications:
        if status_filter != ALL and notification.status != status_filter:
            continue
        view = resolver.describe(notification.recipient)
        if matches_query(query, notification.subject, view.name, view.address):
            matching.append(notification)
    return matching


def count_by_status(notifications: Iterable[Notification]) -> dict[str, int]:
    """Number of notifications per status, plus "all"."""
    counts = {ALL: 0, **{status.value: 0 for status in NotificationStatus}}
    for notification in notifications:
        counts[ALL] += 1
        counts[notification.status.value] += 1
    return counts
