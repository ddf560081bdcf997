"""
Scheduled reminders engine.

This package contains the reminder configuration wizard and the lifecycle
engine for scheduled notifications:
- Domain models (Recipient, NotificationDraft, Notification, ...)
- Generic wizard engine and the concrete reminder wizard
- Lifecycle manager and its notification store
- Listing/filter projection and recipient resolution
- Template draft service adapter
"""

from reminders.errors import Busy, GenerationFailure, InvalidTransition, NotFound, ReminderError
from reminders.lifecycle import LifecycleManager
from reminders.listing import filter_notifications
from reminders.models import (
    AdhocRecipient,
    Contact,
    Notification,
    NotificationDraft,
    NotificationPatch,
    NotificationStatus,
    RecurrencePolicy,
    RegisteredRecipient,
)
from reminders.recipients import JsonContactDirectory, RecipientResolver
from reminders.reminder_wizard import GenerationStatus, ReminderWizard
from reminders.store import InMemoryNotificationStore
from reminders.templates import MockTemplateDraftService, TemplateDraftAdapter
from reminders.wizard import WizardEngine, WizardStep

__all__ = [
    "AdhocRecipient",
    "Busy",
    "Contact",
    "GenerationFailure",
    "GenerationStatus",
    "InMemoryNotificationStore",
    "InvalidTransition",
    "JsonContactDirectory",
    "LifecycleManager",
    "MockTemplateDraftService",
    "NotFound",
    "Notification",
    "NotificationDraft",
    "NotificationPatch",
    "NotificationStatus",
    "RecipientResolver",
    "RecurrencePolicy",
    "RegisteredRecipient",
    "ReminderError",
    "ReminderWizard",
    "TemplateDraftAdapter",
    "WizardEngine",
    "WizardStep",
    "filter_notifications",
]
