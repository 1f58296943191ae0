from __future__ import annotations


class ContactsVcfError(Exception):
    """Base class for errors raised by this package."""


class ParseError(ContactsVcfError):
    """A vCard could not be parsed (malformed line, bad version, encoding or charset)."""


class ContactNotIdentifiableError(ContactsVcfError):
    """A contact has no name, organisation, number or email to identify it by."""

    def __init__(self, message: str = "contact has no name, organisation, number or email"):
        super().__init__(message)


class SkipImportError(ContactsVcfError):
    """The current vCard (or vMsg block) should be skipped without an error prompt."""


class ContactCreationError(ContactsVcfError):
    """The contact store failed to write a contact or one of its details."""


__all__ = [
    "ContactsVcfError",
    "ParseError",
    "ContactNotIdentifiableError",
    "SkipImportError",
    "ContactCreationError",
]
