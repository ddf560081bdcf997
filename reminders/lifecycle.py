"""
Lifecycle manager for scheduled notifications.

Owns the status state machine of a persisted notification and every
mutation the user (or the external sender) may apply to it.

State machine:
    PENDING -> SENT        external sender outcome (sets sent_at, send_count)
    PENDING -> FAILED      external sender outcome (sets error_message)
    PENDING -> CANCELLED   user action
    SENT/FAILED/CANCELLED  terminal, no further status changes

Other rules:
- delete() is allowed from every status, including PENDING
- edit() is allowed only while PENDING and never changes the status
- One mutating operation per notification at a time; a concurrent attempt
  fails fast with Busy
- Operations on a record that disappeared report NotFound, and operations
  on a record that already moved on report InvalidTransition
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from reminders.busy import BusyRegistry
from reminders.errors import InvalidTransition, NotFound
from reminders.listing import ALL, filter_notifications
from reminders.models import (
    Notification,
    NotificationDraft,
    NotificationPatch,
    NotificationStatus,
    RecurrencePolicy,
    RegisteredRecipient,
    utcnow,
)
from reminders.recipients import ContactDirectory, RecipientResolver
from reminders.recurrence import initial_next_send_at, next_occurrence
from reminders.store import InMemoryNotificationStore, NotificationStore

logger = logging.getLogger("lifecycle_manager")


ALLOWED_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset({
        NotificationStatus.SENT,
        NotificationStatus.FAILED,
        NotificationStatus.CANCELLED,
    }),
    NotificationStatus.SENT: frozenset(),
    NotificationStatus.FAILED: frozenset(),
    NotificationStatus.CANCELLED: frozenset(),
}


def can_transition(current: NotificationStatus, target: NotificationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class LifecycleManager:
    """
    Creates notifications from completed drafts and applies status changes.

    Example:
        manager = LifecycleManager(store=InMemoryNotificationStore())
        notification = await manager.create(draft)
        await manager.cancel(draft.organization_id, notification.id)
    """

    def __init__(
        self,
        store: Optional[NotificationStore] = None,
        contacts: Optional[ContactDirectory] = None,
        busy: Optional[BusyRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
        cancelled_retention_days: Optional[int] = None,
    ):
        """
        Initialize the lifecycle manager.

        Args:
            store: Notification persistence (defaults to an in-memory store)
            contacts: Directory used to resolve registered recipients for search
            busy: Registry of in-flight operations, keyed by notification id
            clock: Source of "now"
            cancelled_retention_days: Enables purge_expired() when set
        """
        self.store = store or InMemoryNotificationStore()
        self.contacts = contacts
        self.busy = busy or BusyRegistry()
        self.clock = clock
        self.cancelled_retention_days = cancelled_retention_days

    # =========================================================================
    # Creation and Reads
    # =========================================================================

    async def create(self, draft: NotificationDraft) -> Notification:
        """
        Persist a completed draft as a PENDING notification.

        Raises:
            ValueError: If the draft lacks a recipient, message or schedule time
            Busy: If the same draft is already being submitted
        """
        if draft.recipient is None or draft.scheduled_at is None:
            raise ValueError("Draft is missing a recipient or schedule time")
        if not draft.subject.strip() or not draft.body.strip():
            raise ValueError("Draft is missing a subject or message")

        async with self.busy.hold(f"create:{draft.id}", "create"):
            notification = await self.store.create(draft, now=self.clock())

        logger.info(
            f"Created notification {notification.id} for {notification.organization_id}: "
            f"scheduled_at={notification.scheduled_at.isoformat()}, "
            f"recurrence={notification.recurrence.value}"
        )
        return notification

    async def list(self, organization_id: str) -> list[Notification]:
        """All notifications of an organization, newest first."""
        return await self.store.list(organization_id)

    async def get(self, organization_id: str, notification_id: str) -> Notification:
        notification = await self.store.get(organization_id, notification_id)
        if notification is None:
            raise NotFound(notification_id)
        return notification

    async def resolver_for(self, organization_id: str) -> RecipientResolver:
        if self.contacts is None:
            return RecipientResolver()
        return RecipientResolver(await self.contacts.search(organization_id, ""))

    async def filter(
        self,
        organization_id: str,
        status=ALL,
        query: str = "",
    ) -> list[Notification]:
        """Listing projection: status filter plus free-text search."""
        notifications = await self.store.list(organization_id)
        resolver = await self.resolver_for(organization_id)
        return filter_notifications(notifications, status=status, query=query, resolver=resolver)

    # =========================================================================
    # User Operations
    # =========================================================================

    async def cancel(self, organization_id: str, notification_id: str) -> Notification:
        """
        Cancel a pending notification.

        Raises:
            NotFound: If the notification does not exist
            InvalidTransition: If it is not PENDING
            Busy: If another operation on it is in flight
        """
        return await self._transition(
            organization_id, notification_id, NotificationStatus.CANCELLED, "cancel"
        )

    async def delete(self, organization_id: str, notification_id: str) -> None:
        """
        Delete a notification in any status.

        Raises:
            NotFound: If the notification does not exist (e.g. already deleted)
            Busy: If another operation on it is in flight
        """
        async with self.busy.hold(notification_id, "delete"):
            await self.store.delete(organization_id, notification_id)
        logger.info(f"Deleted notification {notification_id}")

    async def edit(
        self,
        organization_id: str,
        notification_id: str,
        patch: NotificationPatch,
    ) -> Notification:
        """
        Apply user edits to a pending notification. Status is unchanged.

        Raises:
            NotFound: If the notification, or a registered recipient's contact, does not exist
            InvalidTransition: If it is not PENDING
            Busy: If another operation on it is in flight
        """
        changes = patch.changes()

        async with self.busy.hold(notification_id, "edit"):
            current = await self.get(organization_id, notification_id)
            if not current.is_pending:
                logger.warning(
                    f"Rejected edit of {notification_id}: status is {current.status.value}"
                )
                raise InvalidTransition(notification_id, current.status, "edited")

            if not changes:
                return current

            recipient = changes.get("recipient")
            if isinstance(recipient, RegisteredRecipient) and self.contacts is not None:
                contact = await self.contacts.get_contact(organization_id, recipient.contact_id)
                if contact is None:
                    logger.warning(f"Rejected edit of {notification_id}: unknown contact {recipient.contact_id}")
                    raise NotFound(recipient.contact_id, kind="Contact")

            if "recurrence" in changes or "scheduled_at" in changes:
                recurrence = changes.get("recurrence", current.recurrence)
                scheduled_at = changes.get("scheduled_at", current.scheduled_at)
                changes["next_send_at"] = initial_next_send_at(recurrence, scheduled_at)

            changes["updated_at"] = self.clock()
            updated = await self.store.update(organization_id, notification_id, changes)

        logger.info(f"Edited notification {notification_id}: {sorted(patch.model_fields_set)}")
        return updated

    # =========================================================================
    # Sender Outcomes
    # =========================================================================
    # Called by the external sender, never exposed to the UI.

    async def record_sent(
        self,
        organization_id: str,
        notification_id: str,
        sent_at: Optional[datetime] = None,
    ) -> Notification:
        """
        Record a successful send.

        Recurring notifications keep next-send bookkeeping for the external
        scheduler; ONCE notifications never get a next send.
        """
        sent_at = sent_at or self.clock()

        def changes(current: Notification) -> dict:
            next_send_at = None
            if current.recurrence != RecurrencePolicy.ONCE:
                next_send_at = next_occurrence(current.recurrence, current.scheduled_at, after=sent_at)
            return {
                "sent_at": sent_at,
                "send_count": current.send_count + 1,
                "next_send_at": next_send_at,
                "error_message": None,
            }

        return await self._transition(
            organization_id, notification_id, NotificationStatus.SENT, "record_sent", changes
        )

    async def record_failed(
        self,
        organization_id: str,
        notification_id: str,
        error_message: str,
    ) -> Notification:
        """Record a failed send with the sender's error message."""
        return await self._transition(
            organization_id,
            notification_id,
            NotificationStatus.FAILED,
            "record_failed",
            lambda current: {"error_message": error_message},
        )

    # =========================================================================
    # Retention
    # =========================================================================

    async def purge_expired(self, organization_id: str, now: Optional[datetime] = None) -> int:
        """
        Delete cancelled notifications older than the retention window.

        Does nothing unless cancelled_retention_days is set. Notifications
        busy with another operation are skipped.

        Returns:
            Number of notifications deleted
        """
        if self.cancelled_retention_days is None:
            return 0

        cutoff = (now or self.clock()) - timedelta(days=self.cancelled_retention_days)
        purged = 0
        for notification in await self.store.list(organization_id):
            if notification.status != NotificationStatus.CANCELLED:
                continue
            if notification.updated_at >= cutoff or self.busy.is_busy(notification.id):
                continue
            try:
                await self.delete(organization_id, notification.id)
            except NotFound:
                continue
            purged += 1

        if purged:
            logger.info(f"Purged {purged} cancelled notifications for {organization_id}")
        return purged

    # =========================================================================
    # Internals
    # =========================================================================

    async def _transition(
        self,
        organization_id: str,
        notification_id: str,
        target: NotificationStatus,
        operation: str,
        changes: Optional[Callable[[Notification], dict]] = None,
    ) -> Notification:
        async with self.busy.hold(notification_id, operation):
            current = await self.get(organization_id, notification_id)
            if not can_transition(current.status, target):
                logger.warning(
                    f"Rejected {operation} of {notification_id}: "
                    f"{current.status.value} -> {target.value}"
                )
                raise InvalidTransition(notification_id, current.status, target)

            update = {"status": target, "updated_at": self.clock()}
            if changes is not None:
                update.update(changes(current))
            updated = await self.store.update(organization_id, notification_id, update)

        logger.info(f"Notification {notification_id}: {current.status.value} -> {target.value}")
        return updated
