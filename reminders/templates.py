"""
Rich template drafting for reminder emails.

The template draft service is an external collaborator (an AI writer in
production). This module holds:
- The request/result types and the service contract
- TemplateDraftAdapter, the engine's only entry point to the service,
  which applies a timeout and turns every failure into GenerationFailure
- A fallback HTML template used when no rendered template exists
- A mock service that renders the fallback template, for demos and tests

Design decisions:
- Cancellation is never converted to GenerationFailure, so callers can
  abort a call when the user navigates away
- The mock service can simulate failures and latency like the mock channels
"""

import asyncio
import html
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from reminders.errors import GenerationFailure
from reminders.models import utcnow

logger = logging.getLogger("template_drafts")


@dataclass
class TemplateRequest:
    """Inputs for one template generation call."""
    subject: str
    body: str
    business_name: str
    regenerate: bool = False


@dataclass
class TemplateDraft:
    """A rendered template returned by the service."""
    rendered_template: str
    generated_at: datetime = field(default_factory=utcnow)


class TemplateDraftService(Protocol):
    """Contract for the external template generation service."""

    async def generate(self, request: TemplateRequest) -> TemplateDraft:
        ...


# =============================================================================
# Fallback Template
# =============================================================================

FALLBACK_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{subject}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="font-size: 24px;">{subject}</h1>
  <p>Hi {recipient_name},</p>
  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px;">
    <p style="margin: 0; white-space: pre-wrap;">{body}</p>
  </div>
  <p style="color: #666; font-size: 13px;">{business_name}</p>
</body>
</html>
"""


def render_fallback_html(
    subject: str,
    body: str,
    recipient_name: str = "",
    business_name: str = "",
) -> str:
    """
    Render the plain fallback email for a reminder.

    Used by the sender when a notification has no rendered template.
    Every value is HTML-escaped.
    """
    return FALLBACK_HTML.format(
        subject=html.escape(subject or "Reminder"),
        body=html.escape(body),
        recipient_name=html.escape(recipient_name or "there"),
        business_name=html.escape(business_name),
    )


# =============================================================================
# Adapter
# =============================================================================

class TemplateDraftAdapter:
    """
    Calls the template draft service on behalf of the wizard.

    Any error, timeout or empty result becomes a GenerationFailure. The
    call can still be cancelled by the caller.
    """

    def __init__(
        self,
        service: TemplateDraftService,
        timeout: Optional[float] = None,
        business_name: Optional[str] = None,
    ):
        if timeout is None or business_name is None:
            from reminders.config import get_settings
            settings = get_settings()
            timeout = settings.template_timeout_seconds if timeout is None else timeout
            business_name = settings.business_name if business_name is None else business_name

        self.service = service
        self.timeout = timeout
        self.business_name = business_name

    async def generate(
        self,
        subject: str,
        body: str,
        regenerate: bool = False,
        business_name: Optional[str] = None,
    ) -> str:
        """
        Generate a rendered template for a subject/body pair.

        Returns:
            The rendered template

        Raises:
            GenerationFailure: If the service fails, times out or returns nothing
        """
        request = TemplateRequest(
            subject=subject,
            body=body,
            business_name=business_name or self.business_name,
            regenerate=regenerate,
        )
        logger.info(f"Generating template: subject={subject!r}, regenerate={regenerate}")

        try:
            draft = await asyncio.wait_for(self.service.generate(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Template generation timed out after {self.timeout}s")
            raise GenerationFailure("Template generation timed out") from e
        except GenerationFailure:
            raise
        except Exception as e:
            logger.error(f"Template generation failed: {e}")
            raise GenerationFailure(f"Template generation failed: {e}") from e

        if draft is None or not draft.rendered_template:
            logger.error("Template service returned an empty template")
            raise GenerationFailure("Template service returned an empty template")

        return draft.rendered_template


# =============================================================================
# Mock Service
# =============================================================================

class MockTemplateDraftService:
    """
    Mock template service that renders the fallback template.

    Tracks requests for test assertions. Can simulate failures and latency
    for testing error handling and aborts.
    """

    def __init__(self, fail_rate: float = 0.0, delay: float = 0.0):
        """
        Initialize the mock service.

        Args:
            fail_rate: Probability of a failed call (0.0 to 1.0)
            delay: Seconds to wait before answering
        """
        self.fail_rate = fail_rate
        self.delay = delay
        self.requests: list[TemplateRequest] = []

    async def generate(self, request: TemplateRequest) -> TemplateDraft:
        self.requests.append(request)

        if self.delay:
            await asyncio.sleep(self.delay)

        if random.random() < self.fail_rate:
            logger.error(f"[TEMPLATE FAILED] Subject: {request.subject}")
            raise RuntimeError("Simulated template generation failure")

        rendered = render_fallback_html(
            request.subject,
            request.body,
            business_name=request.business_name,
        )
        # Each call yields distinct content so regenerations are observable
        rendered += f"<!-- draft {len(self.requests)} -->\n"
        logger.info(f"[TEMPLATE] Subject: {request.subject} | regenerate={request.regenerate}")
        return TemplateDraft(rendered_template=rendered)

    def get_request_count(self) -> int:
        return len(self.requests)

    def clear_history(self):
        self.requests.clear()
