"""
Shared pytest fixtures for the reminders engine tests.

These fixtures provide consistent test data and fresh state for every test.
Time is pinned with a fixed clock so schedule validation and timestamps are
deterministic.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from reminders.busy import BusyRegistry
from reminders.lifecycle import LifecycleManager
from reminders.models import AdhocRecipient, NotificationDraft, RecurrencePolicy
from reminders.recipients import JsonContactDirectory
from reminders.reminder_wizard import ReminderWizard
from reminders.store import InMemoryNotificationStore
from reminders.templates import MockTemplateDraftService, TemplateDraftAdapter


FIXED_NOW = datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> datetime:
        self.now = self.now + delta
        return self.now


@pytest.fixture
def data_dir() -> Path:
    """Path to the contact fixtures."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to 2026-11-01 12:00 UTC."""
    return FixedClock()


@pytest.fixture
def contacts(data_dir: Path) -> JsonContactDirectory:
    """
    Fresh contact directory for each test.

    Uses the real JSON fixture but a new instance, so contacts added in
    one test never leak into another.
    """
    return JsonContactDirectory(data_dir=data_dir)


@pytest.fixture
def store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def busy() -> BusyRegistry:
    return BusyRegistry()


@pytest.fixture
def lifecycle(store, contacts, busy, clock) -> LifecycleManager:
    """Lifecycle manager over the in-memory store and fixture contacts."""
    return LifecycleManager(store=store, contacts=contacts, busy=busy, clock=clock)


@pytest.fixture
def template_service() -> MockTemplateDraftService:
    """Mock template service that always succeeds immediately."""
    return MockTemplateDraftService(fail_rate=0.0)


@pytest.fixture
def template_adapter(template_service) -> TemplateDraftAdapter:
    return TemplateDraftAdapter(template_service, timeout=2.0, business_name="Test Clinic")


@pytest.fixture
def make_wizard(lifecycle, contacts, busy, clock):
    """
    Factory for reminder wizards bound to org-001.

    Accepts an optional template service so tests can plug in a failing
    or slow one.
    """
    async def factory(service=None, **kwargs) -> ReminderWizard:
        service = service or MockTemplateDraftService()
        return ReminderWizard(
            kwargs.pop("organization_id", "org-001"),
            templates=TemplateDraftAdapter(service, timeout=kwargs.pop("timeout", 2.0), business_name="Test Clinic"),
            lifecycle=lifecycle,
            resolver=await contacts.resolver_for("org-001"),
            busy=busy,
            clock=clock,
            timezone_name=kwargs.pop("timezone_name", "UTC"),
            **kwargs,
        )
    return factory


# =============================================================================
# Organization and Contact Fixtures
# =============================================================================

@pytest.fixture
def organization_id() -> str:
    """Organization with four contacts (Alice, Bob, Carol, David)."""
    return "org-001"


@pytest.fixture
def other_organization_id() -> str:
    """Organization with a single contact (Eva)."""
    return "org-002"


@pytest.fixture
def alice_contact_id() -> str:
    """Contact ID for Alice Johnson <alice.johnson@example.com>."""
    return "ct-001"


@pytest.fixture
def bob_contact_id() -> str:
    """Contact ID for Bob Smith <bob.smith@example.com>."""
    return "ct-002"


# =============================================================================
# Draft Fixtures
# =============================================================================

@pytest.fixture
def make_draft(clock):
    """
    Factory for complete drafts, scheduled one day after the fixed clock.

    Defaults to an adhoc recipient (Ana <ana@x.com>) and ONCE recurrence.
    """
    def factory(**overrides) -> NotificationDraft:
        fields = {
            "id": f"draft-{uuid4().hex[:12]}",
            "organization_id": "org-001",
            "recipient": AdhocRecipient(name="Ana", address="ana@x.com"),
            "subject": "Reminder",
            "body": "Your appointment is tomorrow at 10:00.",
            "rendered_template": "<html>Reminder</html>",
            "scheduled_at": clock() + timedelta(days=1),
            "recurrence": RecurrencePolicy.ONCE,
        }
        fields.update(overrides)
        return NotificationDraft(**fields)
    return factory
