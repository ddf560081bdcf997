"""
Domain models for the scheduled reminders engine.

These models describe the notification being assembled by the wizard and
the persisted notification owned by the lifecycle manager.

Design decisions:
- Using Pydantic for validation and serialization
- Recipient is a tagged union: a notification references a directory
  contact OR carries its own name/address, never both
- All timestamps are timezone-aware UTC; naive values are read as UTC
"""

import re
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class RecurrencePolicy(str, Enum):
    """
    How often a reminder conceptually repeats.

    Re-firing is done by the external scheduler; the engine only records
    the policy and the next-send bookkeeping.
    """
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class NotificationStatus(str, Enum):
    """Lifecycle states of a persisted notification."""
    PENDING = "pending"       # Scheduled, not yet handled by the sender
    SENT = "sent"             # Delivered by the external sender
    FAILED = "failed"         # Sender gave up, see error_message
    CANCELLED = "cancelled"   # Cancelled by the user before sending


TERMINAL_STATUSES = frozenset({
    NotificationStatus.SENT,
    NotificationStatus.FAILED,
    NotificationStatus.CANCELLED,
})


# =============================================================================
# Contacts and Recipients
# =============================================================================

class Contact(BaseModel):
    """
    A contact record owned by the external contact directory.

    The engine only references contacts by id; name and address are read
    back when a notification needs to be displayed or searched.
    """
    id: str = Field(..., description="Directory contact identifier")
    name: str = Field(default="", description="Display name")
    address: str = Field(..., description="Email address")
    created_at: datetime = Field(default_factory=utcnow)


class RegisteredRecipient(BaseModel):
    """Recipient backed by a contact in the directory."""
    kind: Literal["registered"] = "registered"
    contact_id: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


class AdhocRecipient(BaseModel):
    """Recipient typed in by hand, owned entirely by the notification."""
    kind: Literal["adhoc"] = "adhoc"
    name: str = Field(default="", description="Optional display name")
    address: str = Field(..., description="Email address")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("address")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email format")
        return value


# extra="forbid" on both variants rejects payloads carrying both shapes
Recipient = Annotated[
    Union[RegisteredRecipient, AdhocRecipient],
    Field(discriminator="kind"),
]


class RecipientView(BaseModel):
    """The {name, address} shape every recipient variant resolves to."""
    name: str = ""
    address: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.address


# =============================================================================
# Draft (wizard-scoped)
# =============================================================================

class NotificationDraft(BaseModel):
    """
    The notification being assembled by the wizard.

    Mutable and never persisted directly. Completeness is judged per wizard
    step; the lifecycle manager receives a frozen copy on completion.
    """
    id: str = Field(..., description="Draft identifier, keys busy tracking")
    organization_id: str
    recipient: Optional[Recipient] = None
    subject: str = ""
    body: str = ""
    rendered_template: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    scheduled_at: Optional[datetime] = None
    recurrence: RecurrencePolicy = RecurrencePolicy.ONCE

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("scheduled_at")
    @classmethod
    def _scheduled_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    def clear(self) -> None:
        """Reset every user-entered field, keeping the draft identity."""
        self.recipient = None
        self.subject = ""
        self.body = ""
        self.rendered_template = None
        self.scheduled_date = None
        self.scheduled_time = None
        self.scheduled_at = None
        self.recurrence = RecurrencePolicy.ONCE

    def snapshot(self) -> "NotificationDraft":
        """Deep, frozen-by-convention copy handed off on completion."""
        return self.model_copy(deep=True)


# =============================================================================
# Persisted Notification
# =============================================================================

class Notification(BaseModel):
    """
    A scheduled notification with a lifecycle status.

    Created as PENDING when the wizard completes. Only the external sender
    (SENT/FAILED) or the user (CANCELLED, edits while PENDING) change it.
    """
    id: str
    organization_id: str
    recipient: Recipient
    subject: str
    body: str
    rendered_template: Optional[str] = None
    scheduled_at: datetime
    recurrence: RecurrencePolicy = RecurrencePolicy.ONCE
    status: NotificationStatus = NotificationStatus.PENDING
    sent_at: Optional[datetime] = None
    send_count: int = Field(default=0, ge=0)
    next_send_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == NotificationStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class NotificationPatch(BaseModel):
    """
    User edits to a pending notification.

    Only fields that were explicitly provided are applied. Status is not
    editable here; status changes go through cancel or the sender hooks.
    """
    recipient: Optional[Recipient] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    rendered_template: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    recurrence: Optional[RecurrencePolicy] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("subject", "body")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("scheduled_at")
    @classmethod
    def _scheduled_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    def changes(self) -> dict:
        """Explicitly provided fields. Only rendered_template may be cleared with None."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None or name == "rendered_template"
        }
