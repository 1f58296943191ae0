from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Hashable, Optional, Set

from .errors import ContactNotIdentifiableError

if TYPE_CHECKING:  # pragma: no cover
    from .store import ContactStore

logger = logging.getLogger(__name__)

ContactId = Hashable

_PHONE_PUNCTUATION_RE = re.compile(r"[-() ]")


def normalise_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    return name or None


def normalise_organisation(organisation: Optional[str]) -> Optional[str]:
    return normalise_name(organisation)


def normalise_phone_number(number: Optional[str]) -> Optional[str]:
    if number is None:
        return None
    number = _PHONE_PUNCTUATION_RE.sub("", number.strip())
    return number or None


def normalise_email_address(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def normalise_address(address: Optional[str]) -> Optional[str]:
    return normalise_name(address)


def normalise_note(note: Optional[str]) -> Optional[str]:
    return normalise_name(note)


def normalise_birthday(birthday: Optional[str]) -> Optional[str]:
    return normalise_name(birthday)


class CacheIdentifierType(Enum):
    NAME = "name"
    ORGANISATION = "organisation"
    PRIMARY_NUMBER = "primary_number"
    PRIMARY_EMAIL = "primary_email"


_NORMALISERS: Dict[CacheIdentifierType, Callable[[Optional[str]], Optional[str]]] = {
    CacheIdentifierType.NAME: normalise_name,
    CacheIdentifierType.ORGANISATION: normalise_organisation,
    CacheIdentifierType.PRIMARY_NUMBER: normalise_phone_number,
    CacheIdentifierType.PRIMARY_EMAIL: normalise_email_address,
}


@dataclass(frozen=True)
class CacheIdentifier:
    """
    A normalised (type, detail) pair used to look up a contact in the cache.

    It is not a reference to a cache entry and need not identify an existing
    contact.
    """

    type: CacheIdentifierType
    detail: str

    @classmethod
    def factory(cls, type: CacheIdentifierType, detail: Optional[str]) -> Optional["CacheIdentifier"]:
        normalised = _NORMALISERS[type](detail)
        if normalised is None:
            return None
        return cls(type=type, detail=normalised)

    @classmethod
    def from_details(
        cls,
        name: Optional[str],
        organisation: Optional[str],
        number: Optional[str],
        email: Optional[str],
    ) -> Optional["CacheIdentifier"]:
        """First usable identifier by priority: name, organisation, number, email."""
        candidates = (
            (CacheIdentifierType.NAME, name),
            (CacheIdentifierType.ORGANISATION, organisation),
            (CacheIdentifierType.PRIMARY_NUMBER, number),
            (CacheIdentifierType.PRIMARY_EMAIL, email),
        )
        for identifier_type, detail in candidates:
            identifier = cls.factory(identifier_type, detail)
            if identifier is not None:
                return identifier
        return None

    @classmethod
    def from_contact(cls, contact: Any) -> Optional["CacheIdentifier"]:
        return cls.from_details(
            contact.name,
            contact.primary_organisation,
            contact.primary_number,
            contact.primary_email,
        )


class ContactsCache:
    """
    Lookups from identifiers to existing contact ids, plus the details already
    associated with each contact so that merging never adds duplicates.

    Associated values are compared in normalised form only; detail types are
    not part of the key.
    """

    def __init__(self) -> None:
        self._lookups: Dict[CacheIdentifierType, Dict[str, ContactId]] = {
            identifier_type: {} for identifier_type in CacheIdentifierType
        }
        self._numbers: Dict[ContactId, Set[str]] = {}
        self._emails: Dict[ContactId, Set[str]] = {}
        self._addresses: Dict[ContactId, Set[str]] = {}
        self._organisations: Dict[ContactId, Set[str]] = {}
        self._notes: Dict[ContactId, Set[str]] = {}
        self._birthdays: Dict[ContactId, str] = {}

    # lookups

    def lookup(self, identifier: CacheIdentifier) -> Optional[ContactId]:
        return self._lookups[identifier.type].get(identifier.detail)

    def can_lookup(self, identifier: CacheIdentifier) -> bool:
        return self.lookup(identifier) is not None

    def add_lookup(self, identifier: CacheIdentifier, contact_id: ContactId) -> None:
        self._lookups[identifier.type][identifier.detail] = contact_id

    def remove_lookup(self, identifier: CacheIdentifier) -> Optional[ContactId]:
        return self._lookups[identifier.type].pop(identifier.detail, None)

    # associated data

    def remove_associated_data(self, contact_id: ContactId) -> None:
        for associated in (
            self._numbers,
            self._emails,
            self._addresses,
            self._organisations,
            self._notes,
        ):
            associated.pop(contact_id, None)
        self._birthdays.pop(contact_id, None)

    @staticmethod
    def _has(
        associated: Dict[ContactId, Set[str]],
        contact_id: ContactId,
        value: Optional[str],
        normaliser: Callable[[Optional[str]], Optional[str]],
    ) -> bool:
        normalised = normaliser(value)
        if normalised is None:
            return False
        return normalised in associated.get(contact_id, ())

    @staticmethod
    def _add(
        associated: Dict[ContactId, Set[str]],
        contact_id: ContactId,
        value: Optional[str],
        normaliser: Callable[[Optional[str]], Optional[str]],
    ) -> None:
        normalised = normaliser(value)
        if normalised is None:
            return
        associated.setdefault(contact_id, set()).add(normalised)

    def has_associated_number(self, contact_id: ContactId, number: Optional[str]) -> bool:
        return self._has(self._numbers, contact_id, number, normalise_phone_number)

    def add_associated_number(self, contact_id: ContactId, number: Optional[str]) -> None:
        self._add(self._numbers, contact_id, number, normalise_phone_number)

    def has_associated_email(self, contact_id: ContactId, email: Optional[str]) -> bool:
        return self._has(self._emails, contact_id, email, normalise_email_address)

    def add_associated_email(self, contact_id: ContactId, email: Optional[str]) -> None:
        self._add(self._emails, contact_id, email, normalise_email_address)

    def has_associated_address(self, contact_id: ContactId, address: Optional[str]) -> bool:
        return self._has(self._addresses, contact_id, address, normalise_address)

    def add_associated_address(self, contact_id: ContactId, address: Optional[str]) -> None:
        self._add(self._addresses, contact_id, address, normalise_address)

    def has_associated_organisation(
        self, contact_id: ContactId, organisation: Optional[str]
    ) -> bool:
        return self._has(self._organisations, contact_id, organisation, normalise_organisation)

    def add_associated_organisation(
        self, contact_id: ContactId, organisation: Optional[str]
    ) -> None:
        self._add(self._organisations, contact_id, organisation, normalise_organisation)

    def has_associated_note(self, contact_id: ContactId, note: Optional[str]) -> bool:
        return self._has(self._notes, contact_id, note, normalise_note)

    def add_associated_note(self, contact_id: ContactId, note: Optional[str]) -> None:
        self._add(self._notes, contact_id, note, normalise_note)

    def has_associated_birthday(self, contact_id: ContactId, birthday: Optional[str]) -> bool:
        normalised = normalise_birthday(birthday)
        if normalised is None:
            return False
        found = self._birthdays.get(contact_id)
        return found is not None and found.lower() == normalised.lower()

    def add_associated_birthday(self, contact_id: ContactId, birthday: Optional[str]) -> None:
        normalised = normalise_birthday(birthday)
        if normalised is None:
            return
        self._birthdays[contact_id] = normalised

    def associate_contact(self, contact_id: ContactId, contact: Any) -> None:
        """Record every detail of ``contact`` as associated with ``contact_id``."""
        for number in contact.numbers:
            self.add_associated_number(contact_id, number)
        for email in contact.emails:
            self.add_associated_email(contact_id, email)
        for address in contact.addresses:
            self.add_associated_address(contact_id, address)
        for organisation in contact.organisations:
            self.add_associated_organisation(contact_id, organisation)
        for note in contact.notes:
            self.add_associated_note(contact_id, note)
        self.add_associated_birthday(contact_id, contact.birthday)

    def populate_from_store(self, store: "ContactStore") -> int:
        """
        Build the cache from the contacts already in ``store``.

        Each contact gets one lookup, by the same priority used for imported
        contacts, and all of its details become associated data. Returns the
        number of contacts seen.
        """
        seen = 0
        for contact_id in store.iter_contacts():
            seen += 1
            builder = store.read_contact(contact_id)
            try:
                record = builder.finalize()
            except ContactNotIdentifiableError:
                logger.debug("Existing contact %s has no identifier; not indexed", contact_id)
                continue
            if record.cache_identifier is not None and not self.can_lookup(record.cache_identifier):
                self.add_lookup(record.cache_identifier, contact_id)
            self.associate_contact(contact_id, record)
        logger.info("Cached %d existing contact(s)", seen)
        return seen


__all__ = [
    "CacheIdentifier",
    "CacheIdentifierType",
    "ContactId",
    "ContactsCache",
    "normalise_address",
    "normalise_birthday",
    "normalise_email_address",
    "normalise_name",
    "normalise_note",
    "normalise_organisation",
    "normalise_phone_number",
]
