"""
Demonstration scripts for the reminders engine.

These functions walk through the wizard and the lifecycle state machine
with the mock template service and the fixture contacts. Run them to see
each transition logged.
"""

import asyncio
import logging
from datetime import timedelta

from reminders.errors import InvalidTransition
from reminders.lifecycle import LifecycleManager
from reminders.models import NotificationStatus, RecurrencePolicy, utcnow
from reminders.recipients import JsonContactDirectory
from reminders.reminder_wizard import ReminderWizard
from reminders.templates import MockTemplateDraftService, TemplateDraftAdapter

# Configure logging to see what's happening
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

ORGANIZATION_ID = "org-001"


async def _create_reminder(manager, contacts, subject, recurrence, contact_index=None):
    resolver = await contacts.resolver_for(ORGANIZATION_ID)
    wizard = ReminderWizard(
        ORGANIZATION_ID,
        templates=TemplateDraftAdapter(MockTemplateDraftService(), timeout=5.0),
        lifecycle=manager,
        resolver=resolver,
    )

    if contact_index is None:
        wizard.set_adhoc_recipient("ana@x.com", name="Ana")
    else:
        wizard.select_contact(resolver.contacts[contact_index])
    await wizard.go_next()

    wizard.set_message(subject, "Your appointment is tomorrow at 10:00.")
    await wizard.go_next()
    await wizard.go_next()   # generates the template

    wizard.set_recurrence(recurrence)
    await wizard.go_next()

    when = utcnow() + timedelta(days=1)
    wizard.set_schedule(when.date(), when.time().replace(microsecond=0))
    await wizard.go_next()
    return wizard.created


def run_wizard_demo():
    """
    Walk one reminder through the five wizard steps.

    Shows the recipient, message, template, recurrence and schedule steps
    and the PENDING notification created on completion.
    """
    print("\n" + "=" * 70)
    print("WIZARD DEMO: Schedule a one-time reminder")
    print("=" * 70 + "\n")

    manager = LifecycleManager(contacts=JsonContactDirectory())
    notification = asyncio.run(
        _create_reminder(manager, manager.contacts, "Reminder", RecurrencePolicy.ONCE)
    )

    print("\n" + "-" * 70)
    print(f"Created {notification.id}: status={notification.status.value}, "
          f"scheduled_at={notification.scheduled_at.isoformat()}, sent_at={notification.sent_at}")
    print("-" * 70)


def run_lifecycle_demo():
    """
    Demonstrate the lifecycle state machine.

    Creates three reminders, cancels one (twice, to show the rejected
    second cancel), records a send on another, and deletes the third.
    """
    print("\n" + "=" * 70)
    print("LIFECYCLE DEMO: Cancel, send and delete")
    print("=" * 70 + "\n")

    async def scenario():
        contacts = JsonContactDirectory()
        manager = LifecycleManager(contacts=contacts)

        weekly = await _create_reminder(manager, contacts, "Weekly check-in", RecurrencePolicy.WEEKLY, 0)
        once = await _create_reminder(manager, contacts, "Invoice due", RecurrencePolicy.ONCE, 1)
        adhoc = await _create_reminder(manager, contacts, "Appointment", RecurrencePolicy.ONCE)

        await manager.cancel(ORGANIZATION_ID, once.id)
        try:
            await manager.cancel(ORGANIZATION_ID, once.id)
        except InvalidTransition as e:
            print(f"Second cancel rejected: {e}")

        sent = await manager.record_sent(ORGANIZATION_ID, weekly.id)
        print(f"Weekly reminder sent, next_send_at={sent.next_send_at}")

        await manager.delete(ORGANIZATION_ID, adhoc.id)

        print("\nRemaining reminders:")
        for notification in await manager.list(ORGANIZATION_ID):
            print(f"  {notification.id} | {notification.status.value:<9} | {notification.subject}")

        pending = await manager.filter(ORGANIZATION_ID, status=NotificationStatus.PENDING)
        print(f"\nPending: {len(pending)}")

    asyncio.run(scenario())


if __name__ == "__main__":
    run_wizard_demo()
    run_lifecycle_demo()
