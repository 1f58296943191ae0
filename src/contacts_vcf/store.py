from __future__ import annotations

import csv
import itertools
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple
from urllib.parse import unquote

import pandas as pd

from .cache import ContactId
from .common import deterministic_uuid, safe_get
from .errors import ContactCreationError
from .models import ContactBuilder, DetailType

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "contact_id",
    "name",
    "organisations",
    "numbers",
    "emails",
    "addresses",
    "notes",
    "groups",
    "birthday",
]

PREFERRED_FLAG = "pref"


class ContactStore(Protocol):
    """The address book that contacts are imported into and exported from."""

    def count_contacts(self) -> int: ...

    def iter_contacts(self) -> Iterator[ContactId]: ...

    def read_contact(self, contact_id: ContactId) -> ContactBuilder: ...

    def create_contact(self, name: Optional[str]) -> ContactId: ...

    def delete_contact(self, contact_id: ContactId) -> None: ...

    def add_number(
        self, contact_id: ContactId, number: str, type: DetailType, is_primary: bool
    ) -> None: ...

    def add_email(
        self, contact_id: ContactId, email: str, type: DetailType, is_primary: bool
    ) -> None: ...

    def add_address(self, contact_id: ContactId, address: str, type: DetailType) -> None: ...

    def add_organisation(
        self, contact_id: ContactId, organisation: str, title: Optional[str], is_primary: bool
    ) -> None: ...

    def add_note(self, contact_id: ContactId, note: str) -> None: ...

    def add_birthday(self, contact_id: ContactId, birthday: str) -> None: ...


@dataclass
class StoredContact:
    name: Optional[str] = None
    organisations: List[Tuple[str, Optional[str], bool]] = field(default_factory=list)
    numbers: List[Tuple[str, DetailType, bool]] = field(default_factory=list)
    emails: List[Tuple[str, DetailType, bool]] = field(default_factory=list)
    addresses: List[Tuple[str, DetailType]] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    birthday: Optional[str] = None

    def to_builder(self) -> ContactBuilder:
        builder = ContactBuilder(name=self.name, birthday=self.birthday)
        for organisation, title, is_primary in self.organisations:
            builder.add_organisation(organisation, title, is_primary)
        for number, number_type, is_primary in self.numbers:
            builder.add_number(number, number_type, is_primary)
        for email, email_type, is_primary in self.emails:
            builder.add_email(email, email_type, is_primary)
        for address, address_type in self.addresses:
            builder.add_address(address, address_type)
        for note in self.notes:
            builder.add_note(note)
        for group in self.groups:
            builder.add_group(group)
        return builder


class MemoryContactStore:
    """A contact store held in a dict; contact ids are sequential integers."""

    def __init__(self) -> None:
        self._contacts: Dict[ContactId, StoredContact] = {}
        self._ids = itertools.count(1)

    def _new_id(self, name: Optional[str]) -> ContactId:
        return next(self._ids)

    def _get(self, contact_id: ContactId) -> StoredContact:
        try:
            return self._contacts[contact_id]
        except KeyError:
            raise ContactCreationError(f"no contact with id {contact_id!r}") from None

    def count_contacts(self) -> int:
        return len(self._contacts)

    def iter_contacts(self) -> Iterator[ContactId]:
        return iter(list(self._contacts))

    def read_contact(self, contact_id: ContactId) -> ContactBuilder:
        return self._get(contact_id).to_builder()

    def stored(self, contact_id: ContactId) -> StoredContact:
        return self._get(contact_id)

    def create_contact(self, name: Optional[str]) -> ContactId:
        contact_id = self._new_id(name)
        self._contacts[contact_id] = StoredContact(name=(name or "").strip() or None)
        return contact_id

    def delete_contact(self, contact_id: ContactId) -> None:
        self._contacts.pop(contact_id, None)

    def add_number(
        self, contact_id: ContactId, number: str, type: DetailType, is_primary: bool
    ) -> None:
        self._get(contact_id).numbers.append((number, type, is_primary))

    def add_email(
        self, contact_id: ContactId, email: str, type: DetailType, is_primary: bool
    ) -> None:
        self._get(contact_id).emails.append((email, type, is_primary))

    def add_address(self, contact_id: ContactId, address: str, type: DetailType) -> None:
        self._get(contact_id).addresses.append((address, type))

    def add_organisation(
        self, contact_id: ContactId, organisation: str, title: Optional[str], is_primary: bool
    ) -> None:
        self._get(contact_id).organisations.append((organisation, title, is_primary))

    def add_note(self, contact_id: ContactId, note: str) -> None:
        self._get(contact_id).notes.append(note)

    def add_birthday(self, contact_id: ContactId, birthday: str) -> None:
        self._get(contact_id).birthday = birthday


def _encode_part(value: str) -> str:
    return value.replace("%", "%25").replace("|", "%7C").replace(":", "%3A")


def _encode_multi(entries: List[Tuple[Any, ...]]) -> str:
    """Render entries as ``value::type::pref|value2::type2::`` (parts percent-escaped)."""
    rendered = []
    for entry in entries:
        parts = []
        for part in entry:
            if isinstance(part, bool):
                parts.append(PREFERRED_FLAG if part else "")
            elif isinstance(part, DetailType):
                parts.append(part.value)
            else:
                parts.append(_encode_part(part or ""))
        rendered.append("::".join(parts))
    return "|".join(rendered)


def _decode_multi(value: str) -> List[List[str]]:
    if not value:
        return []
    return [[unquote(part) for part in item.split("::")] for item in value.split("|") if item]


def _detail_type(value: str) -> DetailType:
    try:
        return DetailType(value)
    except ValueError:
        logger.debug("Unknown detail type %r; using home", value)
        return DetailType.HOME


def _part(parts: List[str], index: int) -> str:
    return parts[index] if index < len(parts) else ""


class CsvContactStore(MemoryContactStore):
    """
    A contact store persisted as a CSV file, one row per contact.

    Multi-valued columns hold ``value::type::pref`` entries joined with ``|``
    (organisations use ``value::title::pref``). Changes stay in memory until
    :meth:`save` is called.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self._load()

    def _new_id(self, name: Optional[str]) -> ContactId:
        for sequence in itertools.count(len(self._contacts)):
            contact_id = deterministic_uuid(f"{self.path}|{name or ''}|{sequence}")
            if contact_id not in self._contacts:
                return contact_id
        raise AssertionError("unreachable")  # pragma: no cover

    def _load(self) -> None:
        if not os.path.exists(self.path):
            logger.info("Contact store %s does not exist yet; starting empty", self.path)
            return
        try:
            df = pd.read_csv(self.path, dtype=str, keep_default_na=False, quoting=csv.QUOTE_ALL)
        except pd.errors.EmptyDataError:
            logger.info("Contact store %s is empty", self.path)
            return
        for _, row in df.iterrows():
            contact_id = safe_get(row, "contact_id")
            if not contact_id:
                logger.warning("Skipping stored contact without an id in %s", self.path)
                continue
            stored = StoredContact(
                name=safe_get(row, "name") or None,
                birthday=safe_get(row, "birthday") or None,
            )
            for parts in _decode_multi(safe_get(row, "organisations")):
                stored.organisations.append(
                    (parts[0], _part(parts, 1) or None, _part(parts, 2) == PREFERRED_FLAG)
                )
            for parts in _decode_multi(safe_get(row, "numbers")):
                stored.numbers.append(
                    (parts[0], _detail_type(_part(parts, 1)), _part(parts, 2) == PREFERRED_FLAG)
                )
            for parts in _decode_multi(safe_get(row, "emails")):
                stored.emails.append(
                    (parts[0], _detail_type(_part(parts, 1)), _part(parts, 2) == PREFERRED_FLAG)
                )
            for parts in _decode_multi(safe_get(row, "addresses")):
                stored.addresses.append((parts[0], _detail_type(_part(parts, 1))))
            stored.notes.extend(parts[0] for parts in _decode_multi(safe_get(row, "notes")))
            stored.groups.extend(parts[0] for parts in _decode_multi(safe_get(row, "groups")))
            self._contacts[contact_id] = stored
        logger.info("Loaded %d contact(s) from %s", len(self._contacts), self.path)

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for contact_id, stored in self._contacts.items():
            rows.append(
                {
                    "contact_id": contact_id,
                    "name": stored.name or "",
                    "organisations": _encode_multi(stored.organisations),
                    "numbers": _encode_multi(stored.numbers),
                    "emails": _encode_multi(stored.emails),
                    "addresses": _encode_multi(stored.addresses),
                    "notes": _encode_multi([(note,) for note in stored.notes]),
                    "groups": _encode_multi([(group,) for group in stored.groups]),
                    "birthday": stored.birthday or "",
                }
            )
        return pd.DataFrame(rows, columns=CSV_COLUMNS)

    def save(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.to_frame().to_csv(self.path, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL)
        logger.info("Saved %d contact(s) to %s", len(self._contacts), self.path)


__all__ = [
    "CSV_COLUMNS",
    "ContactStore",
    "CsvContactStore",
    "MemoryContactStore",
    "StoredContact",
]
