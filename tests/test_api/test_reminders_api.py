"""
Tests for the reminders HTTP API.

These tests drive the FastAPI app through TestClient with fresh module
state for every test.
"""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.main import app, get_wizards, reset_api_state
from reminders.lifecycle import LifecycleManager
from reminders.templates import MockTemplateDraftService


@pytest.fixture
def template_service():
    return MockTemplateDraftService()


@pytest.fixture
def api_lifecycle(store, contacts, clock) -> LifecycleManager:
    return LifecycleManager(store=store, contacts=contacts, clock=clock)


@pytest.fixture
def api_client(api_lifecycle, contacts, template_service):
    """Create a test client with fresh state."""
    reset_api_state(lifecycle=api_lifecycle, contacts=contacts, template_service=template_service)
    yield TestClient(app)
    reset_api_state()


def run_wizard(client, org="org-001", recipient=None, recurrence="once"):
    """Walk a wizard session to completion and return the final response body."""
    draft_id = client.post(f"/organizations/{org}/wizards").json()["draft_id"]
    base = f"/organizations/{org}/wizards/{draft_id}"

    client.put(f"{base}/recipient", json=recipient or {"address": "ana@x.com", "name": "Ana"})
    client.post(f"{base}/next")
    client.put(f"{base}/message", json={"subject": "Reminder", "body": "Your appointment is tomorrow."})
    client.post(f"{base}/next")
    client.post(f"{base}/next")
    client.put(f"{base}/recurrence", json={"recurrence": recurrence})
    client.post(f"{base}/next")
    client.put(f"{base}/schedule", json={"scheduled_date": "2099-01-15", "scheduled_time": "09:30:00"})
    return client.post(f"{base}/next").json()


class TestHealthEndpoint:

    def test_health_check(self, api_client):
        """Test that health endpoint returns healthy."""
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestContactsEndpoint:

    def test_search_contacts(self, api_client):
        """Test searching the organization's contacts."""
        response = api_client.get("/organizations/org-001/contacts", params={"query": "smith"})

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == ["ct-002"]

    def test_contacts_are_scoped(self, api_client):
        response = api_client.get("/organizations/org-002/contacts")
        assert [c["name"] for c in response.json()] == ["Eva Green"]


class TestWizardEndpoints:
    """Tests for wizard sessions over HTTP."""

    def test_start_wizard(self, api_client):
        response = api_client.post("/organizations/org-001/wizards")

        assert response.status_code == 201
        body = response.json()
        assert body["current_step"] == "recipient"
        assert body["can_go_next"] is False
        assert body["draft_id"] in get_wizards()

    def test_full_run_creates_pending_reminder(self, api_client):
        """Test that completing the wizard creates a PENDING reminder and closes the session."""
        body = run_wizard(api_client)

        assert body["completed"] is True
        assert body["notification"]["status"] == "pending"
        assert body["notification"]["recipient"] == {"kind": "adhoc", "name": "Ana", "address": "ana@x.com"}
        assert body["notification"]["sent_at"] is None
        assert get_wizards() == {}

        listed = api_client.get("/organizations/org-001/reminders").json()
        assert len(listed["reminders"]) == 1
        assert listed["counts"]["pending"] == 1

    def test_next_on_invalid_step(self, api_client):
        """Test that an incomplete step does not advance."""
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]

        response = api_client.post(f"/organizations/org-001/wizards/{draft_id}/next")

        assert response.status_code == 200
        assert response.json()["advanced"] is False
        assert response.json()["wizard"]["current_index"] == 0

    def test_registered_recipient(self, api_client):
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]

        response = api_client.put(
            f"/organizations/org-001/wizards/{draft_id}/recipient",
            json={"contact_id": "ct-001"},
        )

        assert response.status_code == 200
        assert response.json()["recipient"]["name"] == "Alice Johnson"

    def test_unknown_contact(self, api_client):
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]

        response = api_client.put(
            f"/organizations/org-001/wizards/{draft_id}/recipient",
            json={"contact_id": "ct-101"},
        )

        assert response.status_code == 404

    def test_invalid_email(self, api_client):
        """Test that a malformed adhoc address is a 422."""
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]

        response = api_client.put(
            f"/organizations/org-001/wizards/{draft_id}/recipient",
            json={"address": "not-an-email"},
        )

        assert response.status_code == 422

    def test_recipient_needs_exactly_one_variant(self, api_client):
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]

        response = api_client.put(
            f"/organizations/org-001/wizards/{draft_id}/recipient",
            json={"contact_id": "ct-001", "address": "ana@x.com"},
        )

        assert response.status_code == 422

    def test_regenerate_stays_on_step(self, api_client, template_service):
        """Test that regenerating does not advance the wizard."""
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]
        base = f"/organizations/org-001/wizards/{draft_id}"
        api_client.put(f"{base}/recipient", json={"address": "ana@x.com"})
        api_client.post(f"{base}/next")
        api_client.put(f"{base}/message", json={"subject": "Reminder", "body": "Body"})
        api_client.post(f"{base}/next")

        response = api_client.post(f"{base}/template/regenerate")

        assert response.status_code == 200
        body = response.json()
        assert body["advanced"] is False
        assert body["wizard"]["regenerated"] is True
        assert body["wizard"]["current_step"] == "template"
        assert template_service.get_request_count() == 1

    def test_back_and_cancel(self, api_client):
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]
        base = f"/organizations/org-001/wizards/{draft_id}"
        api_client.put(f"{base}/recipient", json={"address": "ana@x.com"})
        api_client.post(f"{base}/next")

        back = api_client.post(f"{base}/back").json()
        assert back["wizard"]["current_index"] == 0
        assert back["wizard"]["moved"] is True

        assert api_client.delete(base).status_code == 200
        assert api_client.get(base).status_code == 404

    def test_wizard_is_scoped_to_organization(self, api_client):
        draft_id = api_client.post("/organizations/org-001/wizards").json()["draft_id"]
        assert api_client.get(f"/organizations/org-002/wizards/{draft_id}").status_code == 404


class TestReminderEndpoints:
    """Tests for managing created reminders."""

    def test_cancel_then_cancel_again(self, api_client):
        """Test that a second cancel is a 409."""
        reminder_id = run_wizard(api_client)["notification"]["id"]
        path = f"/organizations/org-001/reminders/{reminder_id}"

        first = api_client.post(f"{path}/cancel")
        second = api_client.post(f"{path}/cancel")

        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"
        assert second.status_code == 409
        assert second.json()["error"] == "invalid_transition"

    def test_get_and_delete(self, api_client):
        reminder_id = run_wizard(api_client)["notification"]["id"]
        path = f"/organizations/org-001/reminders/{reminder_id}"

        assert api_client.get(path).status_code == 200
        assert api_client.delete(path).json() == {"success": True}
        assert api_client.get(path).status_code == 404
        assert api_client.delete(path).status_code == 404

    def test_edit_pending(self, api_client):
        reminder_id = run_wizard(api_client)["notification"]["id"]

        response = api_client.put(
            f"/organizations/org-001/reminders/{reminder_id}",
            json={"subject": "Updated", "recurrence": "monthly"},
        )

        assert response.status_code == 200
        assert response.json()["subject"] == "Updated"
        assert response.json()["next_send_at"] is not None

    def test_edit_cannot_change_status(self, api_client):
        reminder_id = run_wizard(api_client)["notification"]["id"]

        response = api_client.put(
            f"/organizations/org-001/reminders/{reminder_id}",
            json={"status": "sent"},
        )

        assert response.status_code == 422

    def test_edit_rejects_blank_text(self, api_client):
        """Test that whitespace-only subject or body is a 422."""
        reminder_id = run_wizard(api_client)["notification"]["id"]
        path = f"/organizations/org-001/reminders/{reminder_id}"

        response = api_client.put(path, json={"subject": "   ", "body": "  "})

        assert response.status_code == 422
        assert api_client.get(path).json()["subject"] == "Reminder"

    def test_edit_unknown_contact_is_404(self, api_client):
        """Test that an edit pointing at a contact outside the directory is rejected."""
        reminder_id = run_wizard(api_client)["notification"]["id"]

        response = api_client.put(
            f"/organizations/org-001/reminders/{reminder_id}",
            json={"recipient": {"kind": "registered", "contact_id": "ct-404"}},
        )

        assert response.status_code == 404
        assert "Contact not found" in response.json()["detail"]

    def test_edit_sent_is_conflict(self, api_client, api_lifecycle):
        """Test that sent reminders can no longer be edited."""
        reminder_id = run_wizard(api_client)["notification"]["id"]
        asyncio.run(api_lifecycle.record_sent("org-001", reminder_id))

        response = api_client.put(
            f"/organizations/org-001/reminders/{reminder_id}",
            json={"subject": "Too late"},
        )

        assert response.status_code == 409

    def test_filter_by_status_and_query(self, api_client):
        """Test the list filters."""
        kept = run_wizard(api_client, recipient={"contact_id": "ct-001"})["notification"]["id"]
        cancelled = run_wizard(api_client)["notification"]["id"]
        api_client.post(f"/organizations/org-001/reminders/{cancelled}/cancel")

        pending = api_client.get("/organizations/org-001/reminders", params={"status": "pending"}).json()
        by_contact = api_client.get("/organizations/org-001/reminders", params={"query": "alice"}).json()

        assert [r["id"] for r in pending["reminders"]] == [kept]
        assert [r["id"] for r in by_contact["reminders"]] == [kept]
        assert pending["counts"] == {"all": 2, "pending": 1, "sent": 0, "failed": 0, "cancelled": 1}

    def test_unknown_status_filter(self, api_client):
        response = api_client.get("/organizations/org-001/reminders", params={"status": "archived"})
        assert response.status_code == 422

    def test_reminders_are_scoped(self, api_client):
        run_wizard(api_client)
        assert api_client.get("/organizations/org-002/reminders").json()["reminders"] == []

    def test_expired_cancelled_reminders_are_purged(self, api_client, api_lifecycle, clock):
        """Test that listing drops cancelled reminders past the retention window."""
        api_lifecycle.cancelled_retention_days = 7
        cancelled = run_wizard(api_client)["notification"]["id"]
        kept = run_wizard(api_client)["notification"]["id"]
        api_client.post(f"/organizations/org-001/reminders/{cancelled}/cancel")

        listed = api_client.get("/organizations/org-001/reminders").json()
        assert {r["id"] for r in listed["reminders"]} == {cancelled, kept}

        clock.advance(timedelta(days=8))
        listed = api_client.get("/organizations/org-001/reminders").json()

        assert [r["id"] for r in listed["reminders"]] == [kept]
        assert listed["counts"]["cancelled"] == 0
        assert api_client.get(f"/organizations/org-001/reminders/{cancelled}").status_code == 404


class TestErrorMapping:

    def test_busy_is_429(self, api_client, api_lifecycle):
        """Test that an in-flight operation maps to 429 with Retry-After."""
        reminder_id = run_wizard(api_client)["notification"]["id"]
        api_lifecycle.busy.acquire(reminder_id, "edit")

        response = api_client.post(f"/organizations/org-001/reminders/{reminder_id}/cancel")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "1"
        assert response.json()["error"] == "busy"

        api_lifecycle.busy.release(reminder_id)
        assert api_client.post(f"/organizations/org-001/reminders/{reminder_id}/cancel").status_code == 200
