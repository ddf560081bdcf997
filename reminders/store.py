"""
Notification store.

The store is the persistence boundary for scheduled notifications. Every
call is scoped to an opaque organization id supplied by the caller; the
engine never manages tenancy itself.

Design decisions:
- The contract is async, since a real store is a remote database/API
- The in-memory store keeps one dict per organization
- list() returns newest first, matching the management view
- Records are replaced, never mutated in place, so callers holding an
  older copy are not affected by later updates
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Protocol
from uuid import uuid4

from reminders.errors import NotFound
from reminders.models import Notification, NotificationDraft, utcnow
from reminders.recurrence import initial_next_send_at

logger = logging.getLogger("notification_store")


class NotificationStore(Protocol):
    """Contract for notification persistence."""

    async def create(self, draft: NotificationDraft, now: Optional[datetime] = None) -> Notification:
        ...

    async def list(self, organization_id: str) -> list[Notification]:
        ...

    async def get(self, organization_id: str, notification_id: str) -> Optional[Notification]:
        ...

    async def update(
        self, organization_id: str, notification_id: str, changes: dict[str, Any]
    ) -> Notification:
        ...

    async def delete(self, organization_id: str, notification_id: str) -> None:
        ...


class InMemoryNotificationStore:
    """
    Notification store kept in process memory.

    Example usage:
        store = InMemoryNotificationStore()
        notification = await store.create(draft)
        await store.update("org-001", notification.id, {"subject": "New"})
    """

    def __init__(self):
        # organization_id -> {notification_id -> Notification}
        self._notifications: dict[str, dict[str, Notification]] = {}

    def _scope(self, organization_id: str) -> dict[str, Notification]:
        return self._notifications.setdefault(organization_id, {})

    async def create(self, draft: NotificationDraft, now: Optional[datetime] = None) -> Notification:
        """
        Persist a completed draft as a new PENDING notification.

        Raises:
            ValueError: If the draft has no recipient or schedule time
        """
        if draft.recipient is None or draft.scheduled_at is None:
            raise ValueError("Draft is missing a recipient or schedule time")

        now = now or utcnow()
        notification = Notification(
            id=f"ntf-{uuid4().hex[:12]}",
            organization_id=draft.organization_id,
            recipient=draft.recipient,
            subject=draft.subject.strip(),
            body=draft.body.strip(),
            rendered_template=draft.rendered_template,
            scheduled_at=draft.scheduled_at,
            recurrence=draft.recurrence,
            next_send_at=initial_next_send_at(draft.recurrence, draft.scheduled_at),
            created_at=now,
            updated_at=now,
        )
        self._scope(draft.organization_id)[notification.id] = notification
        logger.debug(f"Stored notification {notification.id} for {draft.organization_id}")
        return notification

    async def list(self, organization_id: str) -> list[Notification]:
        # Reverse insertion first so equal timestamps still come out newest first
        newest_inserted_first = list(reversed(self._scope(organization_id).values()))
        return sorted(newest_inserted_first, key=lambda n: n.created_at, reverse=True)

    async def get(self, organization_id: str, notification_id: str) -> Optional[Notification]:
        return self._scope(organization_id).get(notification_id)

    async def update(
        self, organization_id: str, notification_id: str, changes: dict[str, Any]
    ) -> Notification:
        """
        Replace a notification with a copy carrying `changes`.

        Raises:
            NotFound: If the notification does not exist
        """
        scope = self._scope(organization_id)
        current = scope.get(notification_id)
        if current is None:
            raise NotFound(notification_id)

        updated = current.model_copy(update={"updated_at": utcnow(), **changes})
        scope[notification_id] = updated
        return updated

    async def delete(self, organization_id: str, notification_id: str) -> None:
        """
        Remove a notification.

        Raises:
            NotFound: If the notification does not exist
        """
        scope = self._scope(organization_id)
        if scope.pop(notification_id, None) is None:
            raise NotFound(notification_id)

    def count(self, organization_id: Optional[str] = None) -> int:
        if organization_id is not None:
            return len(self._scope(organization_id))
        return sum(len(scope) for scope in self._notifications.values())

    def clear(self) -> None:
        self._notifications.clear()
