"""
FastAPI application for the reminders engine.

This application provides:
1. Reminder management: list/filter, edit, cancel and delete
   (/organizations/{organization_id}/reminders)
2. Wizard sessions that assemble a reminder step by step
   (/organizations/{organization_id}/wizards)
3. Contact search for the recipient step

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.

Design decisions:
- Sender outcomes (sent/failed) are not exposed; only the external sender
  may record them
- Engine errors map to HTTP statuses in one place (exception handlers)
- Module-level instances with get_* providers, replaceable in tests
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, time
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, model_validator

from reminders.busy import BusyRegistry
from reminders.config import get_settings
from reminders.errors import Busy, GenerationFailure, InvalidTransition, NotFound
from reminders.lifecycle import LifecycleManager
from reminders.listing import count_by_status, parse_status_filter
from reminders.models import Contact, Notification, NotificationPatch, RecurrencePolicy
from reminders.recipients import JsonContactDirectory
from reminders.reminder_wizard import ReminderWizard
from reminders.templates import MockTemplateDraftService, TemplateDraftAdapter, TemplateDraftService

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("reminders_api")


# =============================================================================
# Request/Response Models
# =============================================================================

class RecipientRequest(BaseModel):
    """Either a directory contact id, or an adhoc address (and optional name)."""
    contact_id: Optional[str] = None
    address: Optional[str] = None
    name: str = ""

    @model_validator(mode="after")
    def _exactly_one_variant(self):
        if bool(self.contact_id) == bool(self.address):
            raise ValueError("Provide either contact_id or address, not both")
        return self


class MessageRequest(BaseModel):
    subject: str
    body: str


class RecurrenceRequest(BaseModel):
    recurrence: RecurrencePolicy


class ScheduleRequest(BaseModel):
    """Date and time in the configured timezone. Omitting either clears the schedule."""
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None


class WizardStepResult(BaseModel):
    """Outcome of a wizard transition."""
    advanced: bool
    completed: bool = False
    wizard: dict[str, Any]
    notification: Optional[Notification] = None


class ReminderList(BaseModel):
    reminders: list[Notification]
    counts: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Application State
# =============================================================================

# Module-level instances (replaced by reset_api_state in tests)
_lifecycle: Optional[LifecycleManager] = None
_contacts: Optional[JsonContactDirectory] = None
_template_service: Optional[TemplateDraftService] = None
_wizards: dict[str, ReminderWizard] = {}
_busy = BusyRegistry()


def get_contacts() -> JsonContactDirectory:
    global _contacts
    if _contacts is None:
        _contacts = JsonContactDirectory()
    return _contacts


def get_lifecycle() -> LifecycleManager:
    global _lifecycle
    if _lifecycle is None:
        settings = get_settings()
        _lifecycle = LifecycleManager(
            contacts=get_contacts(),
            cancelled_retention_days=settings.cancelled_retention_days,
        )
    return _lifecycle


def get_template_adapter() -> TemplateDraftAdapter:
    global _template_service
    if _template_service is None:
        _template_service = MockTemplateDraftService()
    return TemplateDraftAdapter(_template_service)


def get_wizards() -> dict[str, ReminderWizard]:
    return _wizards


def reset_api_state(
    lifecycle: Optional[LifecycleManager] = None,
    contacts: Optional[JsonContactDirectory] = None,
    template_service: Optional[TemplateDraftService] = None,
) -> None:
    """Reset API state (for testing)."""
    global _lifecycle, _contacts, _template_service, _busy
    _lifecycle = lifecycle
    _contacts = contacts
    _template_service = template_service
    _busy = BusyRegistry()
    _wizards.clear()


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logging.info("Starting Reminders API")
    yield
    for wizard in _wizards.values():
        wizard.abort_generation()
    logging.info("Shutting down")


app = FastAPI(
    title=get_settings().app_name,
    description="""
    Scheduled reminders: a configuration wizard and the lifecycle of
    scheduled notifications.

    ## Endpoints

    - `/organizations/{organization_id}/reminders` - list, filter, edit, cancel, delete
    - `/organizations/{organization_id}/wizards` - step-by-step reminder creation
    - `/organizations/{organization_id}/contacts` - recipient search
    """,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error Mapping
# =============================================================================

@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc), "error": "not_found"})


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc), "error": "invalid_transition"})


@app.exception_handler(Busy)
async def busy_handler(request: Request, exc: Busy):
    return JSONResponse(
        status_code=429,
        content={"detail": str(exc), "error": "busy"},
        headers={"Retry-After": "1"},
    )


@app.exception_handler(GenerationFailure)
async def generation_failure_handler(request: Request, exc: GenerationFailure):
    return JSONResponse(status_code=502, content={"detail": str(exc), "error": "generation_failed"})


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "reminders"}


# =============================================================================
# Contacts
# =============================================================================

@app.get("/organizations/{organization_id}/contacts", response_model=list[Contact], tags=["Contacts"])
async def search_contacts(
    organization_id: str,
    query: str = "",
    contacts: JsonContactDirectory = Depends(get_contacts),
):
    """Contacts whose name or email contains the query (case-insensitive)."""
    return await contacts.search(organization_id, query)


# =============================================================================
# Reminders
# =============================================================================

@app.get("/organizations/{organization_id}/reminders", response_model=ReminderList, tags=["Reminders"])
async def list_reminders(
    organization_id: str,
    status: str = "all",
    query: str = "",
    lifecycle: LifecycleManager = Depends(get_lifecycle),
):
    """
    List reminders, newest first.

    Filters by status ("all" or one status) and by a free-text query
    matched against the subject and the recipient name and email.
    Cancelled reminders past the retention window (when configured) are
    purged first.
    """
    try:
        status_filter = parse_status_filter(status)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown status filter: {status}")

    await lifecycle.purge_expired(organization_id)
    everything = await lifecycle.list(organization_id)
    reminders = await lifecycle.filter(organization_id, status=status_filter, query=query)
    return ReminderList(reminders=reminders, counts=count_by_status(everything))


@app.get(
    "/organizations/{organization_id}/reminders/{reminder_id}",
    response_model=Notification,
    tags=["Reminders"],
)
async def get_reminder(
    organization_id: str,
    reminder_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.get(organization_id, reminder_id)


@app.put(
    "/organizations/{organization_id}/reminders/{reminder_id}",
    response_model=Notification,
    tags=["Reminders"],
)
async def edit_reminder(
    organization_id: str,
    reminder_id: str,
    patch: NotificationPatch,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
):
    """Edit a pending reminder. Status cannot be changed here."""
    return await lifecycle.edit(organization_id, reminder_id, patch)


@app.post(
    "/organizations/{organization_id}/reminders/{reminder_id}/cancel",
    response_model=Notification,
    tags=["Reminders"],
)
async def cancel_reminder(
    organization_id: str,
    reminder_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
):
    """Cancel a pending reminder. Any other status is a 409."""
    return await lifecycle.cancel(organization_id, reminder_id)


@app.delete("/organizations/{organization_id}/reminders/{reminder_id}", tags=["Reminders"])
async def delete_reminder(
    organization_id: str,
    reminder_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
):
    """Delete a reminder in any status."""
    await lifecycle.delete(organization_id, reminder_id)
    return {"success": True}


# =============================================================================
# Wizard Sessions
# =============================================================================

def _get_wizard(organization_id: str, draft_id: str) -> ReminderWizard:
    wizard = _wizards.get(draft_id)
    if wizard is None or wizard.draft.organization_id != organization_id:
        raise HTTPException(status_code=404, detail=f"Wizard not found: {draft_id}")
    return wizard


@app.post("/organizations/{organization_id}/wizards", status_code=201, tags=["Wizard"])
async def start_wizard(
    organization_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    contacts: JsonContactDirectory = Depends(get_contacts),
    templates: TemplateDraftAdapter = Depends(get_template_adapter),
):
    """Open a new wizard session with an empty draft."""
    wizard = ReminderWizard(
        organization_id,
        templates=templates,
        lifecycle=lifecycle,
        resolver=await contacts.resolver_for(organization_id),
        busy=_busy,
    )
    _wizards[wizard.draft_id] = wizard
    logger.info(f"Opened wizard {wizard.draft_id} for {organization_id}")
    return wizard.summary()


@app.get("/organizations/{organization_id}/wizards/{draft_id}", tags=["Wizard"])
async def get_wizard(organization_id: str, draft_id: str):
    return _get_wizard(organization_id, draft_id).summary()


@app.put("/organizations/{organization_id}/wizards/{draft_id}/recipient", tags=["Wizard"])
async def set_recipient(
    organization_id: str,
    draft_id: str,
    request: RecipientRequest,
    contacts: JsonContactDirectory = Depends(get_contacts),
):
    wizard = _get_wizard(organization_id, draft_id)
    if request.contact_id:
        contact = await contacts.get_contact(organization_id, request.contact_id)
        if contact is None:
            raise HTTPException(status_code=404, detail=f"Contact not found: {request.contact_id}")
        wizard.select_contact(contact)
    else:
        try:
            wizard.set_adhoc_recipient(request.address, name=request.name)
        except ValidationError:
            raise HTTPException(status_code=422, detail="Invalid email format")
    return wizard.summary()


@app.put("/organizations/{organization_id}/wizards/{draft_id}/message", tags=["Wizard"])
async def set_message(organization_id: str, draft_id: str, request: MessageRequest):
    wizard = _get_wizard(organization_id, draft_id)
    wizard.set_message(request.subject, request.body)
    return wizard.summary()


@app.put("/organizations/{organization_id}/wizards/{draft_id}/recurrence", tags=["Wizard"])
async def set_recurrence(organization_id: str, draft_id: str, request: RecurrenceRequest):
    wizard = _get_wizard(organization_id, draft_id)
    wizard.set_recurrence(request.recurrence)
    return wizard.summary()


@app.put("/organizations/{organization_id}/wizards/{draft_id}/schedule", tags=["Wizard"])
async def set_schedule(organization_id: str, draft_id: str, request: ScheduleRequest):
    wizard = _get_wizard(organization_id, draft_id)
    wizard.set_schedule(request.scheduled_date, request.scheduled_time)
    return wizard.summary()


@app.post(
    "/organizations/{organization_id}/wizards/{draft_id}/template/regenerate",
    response_model=WizardStepResult,
    tags=["Wizard"],
)
async def regenerate_template(organization_id: str, draft_id: str):
    """Generate a fresh template without leaving the current step."""
    wizard = _get_wizard(organization_id, draft_id)
    regenerated = await wizard.regenerate_template()
    return WizardStepResult(advanced=False, wizard={**wizard.summary(), "regenerated": regenerated})


@app.post(
    "/organizations/{organization_id}/wizards/{draft_id}/next",
    response_model=WizardStepResult,
    tags=["Wizard"],
)
async def wizard_next(organization_id: str, draft_id: str):
    """
    Advance the wizard. On the final step this creates the reminder and
    closes the session.
    """
    wizard = _get_wizard(organization_id, draft_id)
    previous = wizard.created
    advanced = await wizard.go_next()

    if wizard.created is not None and wizard.created is not previous:
        _wizards.pop(draft_id, None)
        return WizardStepResult(
            advanced=True,
            completed=True,
            wizard=wizard.summary(),
            notification=wizard.created,
        )
    return WizardStepResult(advanced=advanced, wizard=wizard.summary())


@app.post(
    "/organizations/{organization_id}/wizards/{draft_id}/back",
    response_model=WizardStepResult,
    tags=["Wizard"],
)
async def wizard_back(organization_id: str, draft_id: str):
    wizard = _get_wizard(organization_id, draft_id)
    before = wizard.current_index
    wizard.go_back()
    return WizardStepResult(advanced=False, wizard={**wizard.summary(), "moved": before != wizard.current_index})


@app.delete("/organizations/{organization_id}/wizards/{draft_id}", tags=["Wizard"])
async def cancel_wizard(organization_id: str, draft_id: str):
    """Discard the draft and close the session."""
    wizard = _get_wizard(organization_id, draft_id)
    wizard.cancel()
    _wizards.pop(draft_id, None)
    return {"success": True}
