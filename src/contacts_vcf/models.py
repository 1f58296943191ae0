from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .cache import CacheIdentifier
from .errors import ContactNotIdentifiableError

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"[-() +0-9#*]+")
EMAIL_RE = re.compile(
    r"^[^ @]+@[a-zA-Z]([-a-zA-Z0-9]*[a-zA-Z0-9])?(\.[a-zA-Z]([-a-zA-Z0-9]*[a-zA-Z0-9])?)+$"
)


class DetailType(str, Enum):
    HOME = "home"
    WORK = "work"
    MOBILE = "mobile"  # numbers only
    FAX_HOME = "fax_home"  # numbers only
    FAX_WORK = "fax_work"  # numbers only
    PAGER = "pager"  # numbers only


NON_VOICE_TYPES = frozenset({DetailType.FAX_HOME, DetailType.FAX_WORK, DetailType.PAGER})


@dataclass(frozen=True)
class OrganisationDetail:
    title: Optional[str] = None
    is_primary: bool = False


@dataclass(frozen=True)
class NumberDetail:
    type: DetailType = DetailType.HOME
    is_primary: bool = False


@dataclass(frozen=True)
class EmailDetail:
    type: DetailType = DetailType.HOME
    is_primary: bool = False


@dataclass(frozen=True)
class AddressDetail:
    type: DetailType = DetailType.HOME


def _clean_text(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def sanitise_phone_number(number: Optional[str]) -> Optional[str]:
    """Keep the leading run of dialable characters, or None if there is none."""
    match = PHONE_RE.match((number or "").strip())
    if not match:
        return None
    return match.group(0).strip() or None


def sanitise_email_address(email: Optional[str]) -> Optional[str]:
    """Validate an address and lower-case its domain (the local part keeps its case)."""
    email = (email or "").strip()
    if not EMAIL_RE.match(email):
        return None
    local, domain = email.split("@", 1)
    return f"{local}@{domain.lower()}"


@dataclass(frozen=True)
class ContactRecord:
    """A finalized contact: exactly one primary per category and a cache identifier."""

    name: Optional[str] = None
    organisations: Mapping[str, OrganisationDetail] = field(default_factory=dict)
    numbers: Mapping[str, NumberDetail] = field(default_factory=dict)
    emails: Mapping[str, EmailDetail] = field(default_factory=dict)
    addresses: Mapping[str, AddressDetail] = field(default_factory=dict)
    notes: Tuple[str, ...] = ()
    groups: Tuple[str, ...] = ()
    birthday: Optional[str] = None
    cache_identifier: Optional[CacheIdentifier] = None

    @staticmethod
    def _primary_key(details: Mapping[str, Any]) -> Optional[str]:
        return next((key for key, detail in details.items() if detail.is_primary), None)

    @property
    def primary_organisation(self) -> Optional[str]:
        return self._primary_key(self.organisations)

    @property
    def primary_number(self) -> Optional[str]:
        return self._primary_key(self.numbers)

    @property
    def primary_email(self) -> Optional[str]:
        return self._primary_key(self.emails)

    @property
    def primary_identifier(self) -> Optional[str]:
        """Name, else the first organisation, number or email (in that order)."""
        if self.name:
            return self.name
        for details in (self.organisations, self.numbers, self.emails):
            for key in details:
                return key
        return None


@dataclass
class ContactBuilder:
    """
    Accumulates contact details while a vCard is parsed or a stored contact
    is read.

    Every ``add_*`` sanitises its input and silently ignores values that do
    not survive sanitisation. The primary organisation, number and email are
    re-evaluated on each add; ``finalize()`` turns the accumulated state into
    an immutable :class:`ContactRecord`.
    """

    name: Optional[str] = None
    organisations: Dict[str, OrganisationDetail] = field(default_factory=dict)
    numbers: Dict[str, NumberDetail] = field(default_factory=dict)
    emails: Dict[str, EmailDetail] = field(default_factory=dict)
    addresses: Dict[str, AddressDetail] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    birthday: Optional[str] = None
    _primary_organisation: Optional[str] = field(default=None, repr=False)
    _primary_organisation_preferred: bool = field(default=False, repr=False)
    _primary_number: Optional[str] = field(default=None, repr=False)
    _primary_number_type: DetailType = field(default=DetailType.HOME, repr=False)
    _primary_number_preferred: bool = field(default=False, repr=False)
    _primary_email: Optional[str] = field(default=None, repr=False)
    _primary_email_preferred: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        self.name = _clean_text(self.name)
        self.birthday = _clean_text(self.birthday)

    def set_name(self, name: Optional[str]) -> None:
        self.name = _clean_text(name)

    def add_organisation(
        self, organisation: Optional[str], title: Optional[str] = None, is_preferred: bool = False
    ) -> bool:
        organisation = _clean_text(organisation)
        if organisation is None:
            logger.debug("Ignoring empty organisation")
            return False
        if organisation not in self.organisations:
            self.organisations[organisation] = OrganisationDetail(title=_clean_text(title))
        if self._primary_organisation is None or (
            is_preferred and not self._primary_organisation_preferred
        ):
            self._primary_organisation = organisation
            self._primary_organisation_preferred = is_preferred
        return True

    def set_organisation_title(self, organisation: str, title: Optional[str]) -> bool:
        detail = self.organisations.get(organisation)
        if detail is None:
            return False
        self.organisations[organisation] = replace(detail, title=_clean_text(title))
        return True

    def add_number(
        self,
        number: Optional[str],
        type: DetailType = DetailType.HOME,
        is_preferred: bool = False,
    ) -> bool:
        sanitised = sanitise_phone_number(number)
        if sanitised is None:
            logger.debug("Ignoring unusable phone number %r", number)
            return False
        if sanitised not in self.numbers:
            self.numbers[sanitised] = NumberDetail(type=type)
        if (
            self._primary_number is None
            or (is_preferred and not self._primary_number_preferred)
            or (
                is_preferred == self._primary_number_preferred
                and type not in NON_VOICE_TYPES
                and self._primary_number_type in NON_VOICE_TYPES
            )
        ):
            self._primary_number = sanitised
            self._primary_number_type = type
            self._primary_number_preferred = is_preferred
        return True

    def add_email(
        self,
        email: Optional[str],
        type: DetailType = DetailType.HOME,
        is_preferred: bool = False,
    ) -> bool:
        sanitised = sanitise_email_address(email)
        if sanitised is None:
            logger.debug("Ignoring invalid email address %r", email)
            return False
        if sanitised not in self.emails:
            self.emails[sanitised] = EmailDetail(type=type)
        if self._primary_email is None or (is_preferred and not self._primary_email_preferred):
            self._primary_email = sanitised
            self._primary_email_preferred = is_preferred
        return True

    def add_address(self, address: Optional[str], type: DetailType = DetailType.HOME) -> bool:
        address = _clean_text(address)
        if address is None:
            logger.debug("Ignoring empty address")
            return False
        if address not in self.addresses:
            self.addresses[address] = AddressDetail(type=type)
        return True

    def add_note(self, note: Optional[str]) -> bool:
        note = _clean_text(note)
        if note is None:
            return False
        if note not in self.notes:
            self.notes.append(note)
        return True

    def add_group(self, group: Optional[str]) -> bool:
        group = _clean_text(group)
        if group is None:
            return False
        if group not in self.groups:
            self.groups.append(group)
        return True

    def set_birthday(self, birthday: Optional[str]) -> None:
        self.birthday = _clean_text(birthday)

    @property
    def primary_organisation(self) -> Optional[str]:
        return self._primary_organisation

    @property
    def primary_number(self) -> Optional[str]:
        return self._primary_number

    @property
    def primary_email(self) -> Optional[str]:
        return self._primary_email

    def finalize(self) -> ContactRecord:
        identifier = CacheIdentifier.from_contact(self)
        if identifier is None:
            raise ContactNotIdentifiableError()
        return ContactRecord(
            name=self.name,
            organisations={
                key: replace(detail, is_primary=key == self._primary_organisation)
                for key, detail in self.organisations.items()
            },
            numbers={
                key: replace(detail, is_primary=key == self._primary_number)
                for key, detail in self.numbers.items()
            },
            emails={
                key: replace(detail, is_primary=key == self._primary_email)
                for key, detail in self.emails.items()
            },
            addresses=dict(self.addresses),
            notes=tuple(self.notes),
            groups=tuple(self.groups),
            birthday=self.birthday,
            cache_identifier=identifier,
        )


__all__ = [
    "AddressDetail",
    "ContactBuilder",
    "ContactRecord",
    "DetailType",
    "EmailDetail",
    "NON_VOICE_TYPES",
    "NumberDetail",
    "OrganisationDetail",
    "sanitise_email_address",
    "sanitise_phone_number",
]
