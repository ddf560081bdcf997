"""
Tests for recipient resolution and the JSON contact directory.

These tests use the real contact fixtures in data/contacts.json.
"""

import pytest
from pydantic import ValidationError

from reminders.models import AdhocRecipient, Contact, RegisteredRecipient
from reminders.recipients import JsonContactDirectory, RecipientResolver, matches_query


class TestMatchesQuery:

    def test_empty_query_matches_everything(self):
        assert matches_query("", "anything")
        assert matches_query("   ")

    def test_case_insensitive_substring(self):
        assert matches_query("ALICE", "Alice Johnson")
        assert matches_query("example.org", "David Lee", "dlee@example.org")

    def test_skips_missing_fields(self):
        assert not matches_query("ana", None, "")


class TestJsonContactDirectory:
    """Tests for the fixture-backed directory."""

    @pytest.mark.asyncio
    async def test_scoped_by_organization(self, contacts, organization_id, other_organization_id):
        """Test that each organization only sees its own contacts."""
        org_one = await contacts.search(organization_id)
        org_two = await contacts.search(other_organization_id)

        assert [c.id for c in org_one] == ["ct-001", "ct-002", "ct-003", "ct-004"]
        assert [c.name for c in org_two] == ["Eva Green"]

    @pytest.mark.asyncio
    async def test_search_by_name_and_address(self, contacts, organization_id):
        """Test that search matches name or email, case-insensitively."""
        by_name = await contacts.search(organization_id, "bob")
        by_email = await contacts.search(organization_id, "MARTINEZ.DEV")

        assert [c.id for c in by_name] == ["ct-002"]
        assert [c.id for c in by_email] == ["ct-003"]

    @pytest.mark.asyncio
    async def test_get_contact(self, contacts, organization_id, alice_contact_id):
        """Test looking up a contact by id."""
        contact = await contacts.get_contact(organization_id, alice_contact_id)

        assert contact is not None
        assert contact.address == "alice.johnson@example.com"

    @pytest.mark.asyncio
    async def test_get_contact_from_other_organization(self, contacts, other_organization_id, alice_contact_id):
        """Test that contacts are not visible across organizations."""
        assert await contacts.get_contact(other_organization_id, alice_contact_id) is None

    @pytest.mark.asyncio
    async def test_missing_fixture_is_empty(self, tmp_path):
        """Test that a missing fixture yields an empty directory."""
        directory = JsonContactDirectory(data_dir=tmp_path)
        assert await directory.search("org-001") == []

    @pytest.mark.asyncio
    async def test_add_contact_and_reload(self, contacts, organization_id):
        """Test that added contacts live in memory until reload."""
        contacts.add_contact(organization_id, Contact(id="ct-900", name="Zed", address="zed@x.com"))
        assert await contacts.get_contact(organization_id, "ct-900") is not None

        contacts.reload()
        assert await contacts.get_contact(organization_id, "ct-900") is None


class TestRecipientResolver:
    """Tests for building and describing recipients."""

    @pytest.fixture
    def resolver(self) -> RecipientResolver:
        return RecipientResolver([
            Contact(id="ct-001", name="Alice Johnson", address="alice.johnson@example.com"),
            Contact(id="ct-002", name="Bob Smith", address="bob.smith@example.com"),
        ])

    def test_from_contact(self, resolver):
        """Test that picking a contact yields a registered recipient."""
        recipient = resolver.from_contact(resolver.contacts[0])
        assert recipient == RegisteredRecipient(contact_id="ct-001")

    def test_from_contact_learns_new_contacts(self, resolver):
        """Test that a contact unknown to the resolver can still be described."""
        contact = Contact(id="ct-777", name="New", address="new@x.com")
        recipient = resolver.from_contact(contact)

        assert resolver.describe(recipient).address == "new@x.com"

    def test_from_text(self, resolver):
        """Test that typed text yields an adhoc recipient."""
        recipient = resolver.from_text(" Ana@X.com ", name="Ana")
        assert recipient == AdhocRecipient(name="Ana", address="ana@x.com")

    def test_from_text_rejects_bad_email(self, resolver):
        with pytest.raises(ValidationError):
            resolver.from_text("not-an-email")

    def test_describe_both_variants(self, resolver):
        """Test that both variants resolve to the same view shape."""
        registered = resolver.describe(RegisteredRecipient(contact_id="ct-002"))
        adhoc = resolver.describe(AdhocRecipient(name="Ana", address="ana@x.com"))

        assert (registered.name, registered.address) == ("Bob Smith", "bob.smith@example.com")
        assert (adhoc.name, adhoc.address) == ("Ana", "ana@x.com")

    def test_describe_missing_contact(self, resolver):
        """Test that a deleted contact resolves to an empty view."""
        view = resolver.describe(RegisteredRecipient(contact_id="ct-404"))
        assert view.name == ""
        assert view.address == ""

    def test_search(self, resolver):
        assert [c.id for c in resolver.search("smith")] == ["ct-002"]
        assert len(resolver.search("")) == 2
