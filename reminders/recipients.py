"""
Recipient resolution and the contact directory.

The resolver turns either a directory contact or typed free text into a
Recipient, and resolves any Recipient back to a {name, address} view so
listing and search treat both variants the same way.

The JSON contact directory stands in for the external directory service:
it lazily loads contacts from a fixture file, scoped by organization.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

from reminders.models import (
    AdhocRecipient,
    Contact,
    RecipientView,
    RegisteredRecipient,
)

logger = logging.getLogger("recipients")


def matches_query(query: str, *fields: Optional[str]) -> bool:
    """Case-insensitive substring match of `query` against any field. Empty query matches."""
    needle = query.strip().lower()
    if not needle:
        return True
    return any(needle in field.lower() for field in fields if field)


class ContactDirectory(Protocol):
    """Contract for the external contact directory."""

    async def search(self, organization_id: str, query: str = "") -> list[Contact]:
        ...

    async def get_contact(self, organization_id: str, contact_id: str) -> Optional[Contact]:
        ...


class RecipientResolver:
    """
    Builds and describes recipients over a supplied contact list.

    Holds no state beyond the contact list it was given; it never persists
    anything.
    """

    def __init__(self, contacts: Iterable[Contact] = ()):
        self._contacts: dict[str, Contact] = {c.id: c for c in contacts}

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts.values())

    def search(self, query: str = "") -> list[Contact]:
        """Contacts whose name or address contains `query`, in directory order."""
        return [
            contact for contact in self._contacts.values()
            if matches_query(query, contact.name, contact.address)
        ]

    def from_contact(self, contact: Contact) -> RegisteredRecipient:
        if contact.id not in self._contacts:
            # The UI may offer contacts loaded after the resolver was built
            self._contacts[contact.id] = contact
        return RegisteredRecipient(contact_id=contact.id)

    def from_text(self, address: str, name: str = "") -> AdhocRecipient:
        """Adhoc recipient from typed text. Raises pydantic ValidationError on a bad address."""
        return AdhocRecipient(name=name, address=address)

    def describe(self, recipient) -> RecipientView:
        """
        Resolve a recipient to its {name, address} view.

        Registered recipients whose contact has disappeared from the
        directory resolve to an empty view rather than being dropped.
        """
        if isinstance(recipient, AdhocRecipient):
            return RecipientView(name=recipient.name, address=recipient.address)
        if isinstance(recipient, RegisteredRecipient):
            contact = self._contacts.get(recipient.contact_id)
            if contact is None:
                logger.debug(f"Contact {recipient.contact_id} not in directory")
                return RecipientView()
            return RecipientView(name=contact.name, address=contact.address)
        return RecipientView()


class JsonContactDirectory:
    """
    Contact directory backed by a JSON fixture file.

    The fixture is a list of contacts, each with an organization_id.
    Loaded lazily on first access; reload() forces a re-read.
    """

    def __init__(self, data_dir: Optional[Path] = None, filename: str = "contacts.json"):
        if data_dir is None:
            from reminders.config import get_settings
            data_dir = get_settings().data_dir

        self.path = Path(data_dir) / filename

        # organization_id -> contacts, loaded lazily
        self._contacts: Optional[dict[str, list[Contact]]] = None

    def _ensure_loaded(self) -> None:
        if self._contacts is not None:
            return
        self._contacts = {}
        if not self.path.exists():
            logger.warning(f"Contact fixture not found: {self.path}")
            return
        with open(self.path, "r") as f:
            for record in json.load(f):
                organization_id = record.pop("organization_id")
                self._contacts.setdefault(organization_id, []).append(Contact(**record))
        logger.info(f"Loaded contacts for {len(self._contacts)} organizations from {self.path}")

    def contacts_for(self, organization_id: str) -> list[Contact]:
        self._ensure_loaded()
        return list(self._contacts.get(organization_id, []))

    def add_contact(self, organization_id: str, contact: Contact) -> Contact:
        """Add a contact in memory only (fixtures stay untouched)."""
        self._ensure_loaded()
        self._contacts.setdefault(organization_id, []).append(contact)
        return contact

    async def search(self, organization_id: str, query: str = "") -> list[Contact]:
        return RecipientResolver(self.contacts_for(organization_id)).search(query)

    async def get_contact(self, organization_id: str, contact_id: str) -> Optional[Contact]:
        for contact in self.contacts_for(organization_id):
            if contact.id == contact_id:
                return contact
        return None

    async def resolver_for(self, organization_id: str) -> RecipientResolver:
        return RecipientResolver(self.contacts_for(organization_id))

    def reload(self) -> None:
        self._contacts = None
