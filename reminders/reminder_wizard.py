"""
The reminder configuration wizard.

Drives the generic wizard engine through five steps:
1. recipient   - a directory contact or an adhoc name/address
2. message     - subject and body, both non-blank
3. template    - a rendered template; advancing generates one if missing
4. recurrence  - once/daily/weekly/monthly, always valid (has a default)
5. schedule    - date and time, not in the past

Completing the last step hands a snapshot of the draft to the lifecycle
manager, which creates a PENDING notification.

Design decisions:
- Template generation progress is an explicit status on the wizard,
  not a module-level flag, so many wizards can run side by side
- Going back, cancelling or resetting aborts an in-flight generation;
  its result is discarded rather than applied to a stale draft
- Regenerating never advances and replaces the template wholesale
"""

import asyncio
import logging
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Callable, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from reminders.busy import BusyRegistry
from reminders.errors import GenerationFailure
from reminders.lifecycle import LifecycleManager
from reminders.models import (
    Contact,
    Notification,
    NotificationDraft,
    RecurrencePolicy,
    utcnow,
)
from reminders.recipients import RecipientResolver
from reminders.templates import TemplateDraftAdapter
from reminders.wizard import WizardEngine, WizardStep

logger = logging.getLogger("reminder_wizard")


class GenerationStatus(str, Enum):
    """Progress of the template generation for one draft."""
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


STEP_RECIPIENT = "recipient"
STEP_MESSAGE = "message"
STEP_TEMPLATE = "template"
STEP_RECURRENCE = "recurrence"
STEP_SCHEDULE = "schedule"


class ReminderWizard:
    """
    Assembles a NotificationDraft step by step.

    Example:
        wizard = ReminderWizard("org-001", templates=adapter, lifecycle=manager)
        wizard.set_adhoc_recipient("ana@x.com", name="Ana")
        await wizard.go_next()
        wizard.set_message("Reminder", "Your appointment is tomorrow")
        await wizard.go_next()
        await wizard.go_next()       # generates the template
        await wizard.go_next()       # keeps recurrence ONCE
        wizard.set_schedule(date(2026, 11, 2), time(9, 30))
        await wizard.go_next()       # creates the notification
        wizard.created               # -> Notification(status=PENDING)
    """

    def __init__(
        self,
        organization_id: str,
        templates: TemplateDraftAdapter,
        lifecycle: Optional[LifecycleManager] = None,
        resolver: Optional[RecipientResolver] = None,
        busy: Optional[BusyRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
        timezone_name: Optional[str] = None,
        business_name: Optional[str] = None,
        draft_id: Optional[str] = None,
    ):
        """
        Initialize the wizard.

        Args:
            organization_id: Tenant the reminder belongs to
            templates: Adapter for the template draft service
            lifecycle: Receives the draft on completion (None: keep it local)
            resolver: Recipient resolver over the organization's contacts
            busy: Shared registry of in-flight operations, keyed by draft id
            clock: Source of "now" for the schedule step
            timezone_name: IANA zone the schedule date/time are entered in
            business_name: Passed to template generation
            draft_id: Identifier for the draft (generated if omitted)
        """
        if timezone_name is None:
            from reminders.config import get_settings
            timezone_name = get_settings().timezone

        self.templates = templates
        self.lifecycle = lifecycle
        self.resolver = resolver or RecipientResolver()
        self.clock = clock
        self.tz = ZoneInfo(timezone_name)
        self.business_name = business_name

        self.draft = NotificationDraft(
            id=draft_id or f"draft-{uuid4().hex[:12]}",
            organization_id=organization_id,
        )
        self.generation_status = GenerationStatus.IDLE
        self.generation_error: Optional[str] = None
        self.created: Optional[Notification] = None
        self._generation: Optional[asyncio.Future] = None

        self.engine: WizardEngine[NotificationDraft] = WizardEngine(
            steps=self._build_steps(),
            build_result=self.draft.snapshot,
            on_complete=self._submit,
            on_reset=self._reset_draft,
            key=self.draft.id,
            busy=busy,
        )

    def _build_steps(self) -> list[WizardStep]:
        return [
            WizardStep(
                id=STEP_RECIPIENT,
                title="Recipient",
                description="Pick a contact or type a name and email",
                is_valid=self.recipient_valid,
            ),
            WizardStep(
                id=STEP_MESSAGE,
                title="Message",
                description="Subject and message for the reminder",
                is_valid=self.message_valid,
            ),
            WizardStep(
                id=STEP_TEMPLATE,
                title="Template",
                description="Generate a rich email from the message",
                is_valid=self.template_valid,
                on_advance=self._template_guard,
                can_attempt=self._can_leave_template_step,
            ),
            WizardStep(
                id=STEP_RECURRENCE,
                title="Frequency",
                description="How often the reminder repeats",
                is_valid=lambda: True,
            ),
            WizardStep(
                id=STEP_SCHEDULE,
                title="Schedule",
                description="Date and time of the first send",
                is_valid=self.schedule_valid,
            ),
        ]

    # =========================================================================
    # Engine Facade
    # =========================================================================

    @property
    def draft_id(self) -> str:
        return self.draft.id

    @property
    def steps(self) -> list[WizardStep]:
        return self.engine.steps

    @property
    def current_index(self) -> int:
        return self.engine.current_index

    @property
    def current_step(self) -> WizardStep:
        return self.engine.current_step

    async def go_next(self) -> bool:
        return await self.engine.go_next()

    def go_back(self) -> int:
        self.abort_generation()
        return self.engine.go_back()

    def reset(self) -> None:
        self.engine.reset()

    def cancel(self) -> None:
        self.engine.cancel()

    async def complete(self) -> Optional[NotificationDraft]:
        return await self.engine.complete()

    # =========================================================================
    # Draft Fields
    # =========================================================================

    def select_contact(self, contact: Contact) -> None:
        self.draft.recipient = self.resolver.from_contact(contact)

    def set_adhoc_recipient(self, address: str, name: str = "") -> None:
        """Raises pydantic ValidationError if the address is malformed."""
        self.draft.recipient = self.resolver.from_text(address, name=name)

    def clear_recipient(self) -> None:
        self.draft.recipient = None

    def set_message(self, subject: str, body: str) -> None:
        """
        Set the subject and body.

        A changed message aborts any in-flight generation and drops the
        rendered template, which was derived from the previous text.
        """
        changed = subject != self.draft.subject or body != self.draft.body
        self.draft.subject = subject
        self.draft.body = body
        if changed:
            self.abort_generation()
            if self.draft.rendered_template is not None:
                logger.info(f"[{self.draft.id}] Message changed, template discarded")
                self.draft.rendered_template = None
                self.generation_status = GenerationStatus.IDLE

    def set_recurrence(self, recurrence: RecurrencePolicy) -> None:
        self.draft.recurrence = RecurrencePolicy(recurrence)

    def set_schedule(self, scheduled_date: Optional[date], scheduled_time: Optional[time]) -> None:
        """Set the send date/time, entered in the wizard's timezone."""
        self.draft.scheduled_date = scheduled_date
        self.draft.scheduled_time = scheduled_time
        if scheduled_date is None or scheduled_time is None:
            self.draft.scheduled_at = None
            return
        local = datetime.combine(scheduled_date, scheduled_time.replace(tzinfo=None), tzinfo=self.tz)
        self.draft.scheduled_at = local.astimezone(timezone.utc)

    # =========================================================================
    # Step Predicates
    # =========================================================================

    def recipient_valid(self) -> bool:
        return self.draft.recipient is not None

    def message_valid(self) -> bool:
        return bool(self.draft.subject.strip()) and bool(self.draft.body.strip())

    def template_valid(self) -> bool:
        return self.draft.rendered_template is not None

    def schedule_valid(self) -> bool:
        if self.draft.scheduled_date is None or self.draft.scheduled_time is None:
            return False
        if self.draft.scheduled_at is None:
            return False
        return self.draft.scheduled_at >= self.clock()

    def _can_leave_template_step(self) -> bool:
        if self.template_valid():
            return True
        return self.message_valid() and self.generation_status != GenerationStatus.GENERATING

    # =========================================================================
    # Template Generation
    # =========================================================================

    @property
    def is_generating(self) -> bool:
        return self.generation_status == GenerationStatus.GENERATING

    async def _template_guard(self) -> bool:
        if self.draft.rendered_template is not None:
            return True
        return await self._generate(regenerate=False)

    async def regenerate_template(self) -> bool:
        """
        Replace the rendered template with a fresh one. Never advances.

        Returns:
            True if a new template was stored, False if generation failed
            or was aborted (the previous template is kept)

        Raises:
            Busy: If a generation or step transition is already in flight
        """
        if not self.message_valid():
            return False
        async with self.engine.busy.hold(self.draft.id, "regenerate"):
            return await self._generate(regenerate=True)

    def abort_generation(self) -> None:
        """Abort an in-flight generation; its result will be discarded."""
        task = self._generation
        if task is None:
            return
        self._generation = None
        task.cancel()
        self.generation_status = GenerationStatus.IDLE
        logger.info(f"[{self.draft.id}] Template generation aborted")

    async def _generate(self, regenerate: bool) -> bool:
        task = asyncio.ensure_future(
            self.templates.generate(
                self.draft.subject.strip(),
                self.draft.body.strip(),
                regenerate=regenerate,
                business_name=self.business_name,
            )
        )
        self._generation = task
        self.generation_status = GenerationStatus.GENERATING
        self.generation_error = None

        try:
            rendered = await task
        except asyncio.CancelledError:
            if self._generation is task:
                # Our caller was cancelled, not the generation
                self._generation = None
                self.generation_status = GenerationStatus.IDLE
                raise
            logger.info(f"[{self.draft.id}] Discarded aborted template generation")
            return False
        except GenerationFailure as e:
            if self._generation is not task:
                return False
            self._generation = None
            self.generation_status = GenerationStatus.FAILED
            self.generation_error = str(e)
            logger.error(f"[{self.draft.id}] Template generation failed: {e}")
            return False

        if self._generation is not task:
            logger.info(f"[{self.draft.id}] Discarded template for an aborted generation")
            return False

        self._generation = None
        self.draft.rendered_template = rendered
        self.generation_status = GenerationStatus.READY
        return True

    # =========================================================================
    # Completion
    # =========================================================================

    async def _submit(self, draft: NotificationDraft) -> None:
        if self.lifecycle is None:
            return
        self.created = await self.lifecycle.create(draft)

    def _reset_draft(self) -> None:
        self.abort_generation()
        self.draft.clear()
        self.generation_status = GenerationStatus.IDLE
        self.generation_error = None

    def summary(self) -> dict:
        """Snapshot of the wizard state for a rendering layer."""
        view = self.resolver.describe(self.draft.recipient) if self.draft.recipient else None
        return {
            "draft_id": self.draft.id,
            "organization_id": self.draft.organization_id,
            "current_index": self.current_index,
            "current_step": self.current_step.id,
            "steps": [
                {"id": step.id, "title": step.title, "valid": step.is_valid()}
                for step in self.steps
            ],
            "can_go_next": self.engine.can_go_next(),
            "generation_status": self.generation_status.value,
            "generation_error": self.generation_error,
            "recipient": view.model_dump() if view else None,
            "draft": self.draft.model_dump(mode="json"),
        }
