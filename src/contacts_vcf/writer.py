from __future__ import annotations

import logging
import re
from typing import BinaryIO, Dict, List, Optional, Sequence, Tuple

from .codec import escape_value, fold_line, is_valid_date_and_or_time, to_crlf
from .config_loader import VcardConfig
from .models import ContactRecord, DetailType

logger = logging.getLogger(__name__)

_NAME_SPLIT_RE = re.compile(r" +")

NUMBER_TYPE_TAGS: Dict[DetailType, Tuple[str, ...]] = {
    DetailType.HOME: ("VOICE", "HOME"),
    DetailType.WORK: ("VOICE", "WORK"),
    DetailType.FAX_HOME: ("FAX", "HOME"),
    DetailType.FAX_WORK: ("FAX", "WORK"),
    DetailType.PAGER: ("PAGER",),
    DetailType.MOBILE: ("VOICE", "CELL"),
}

_HOME_WORK_TAGS: Dict[DetailType, Tuple[str, ...]] = {
    DetailType.HOME: ("HOME",),
    DetailType.WORK: ("WORK",),
}


def _content_line(name: str, value: str, types: Sequence[str] = ()) -> str:
    prefix = f"{name};TYPE={','.join(types)}" if types else name
    return fold_line(f"{prefix}:{escape_value(value)}") + "\n"


def _structured_name(name: Optional[str]) -> str:
    """
    Guess ``family;given;additional;;`` from a display name: the last word is
    the family name, the first the given name, anything between is additional.
    """
    bits = _NAME_SPLIT_RE.split(name or "")
    family = escape_value(bits[-1])
    given = escape_value(bits[0]) if len(bits) > 1 else ""
    additional = " ".join(escape_value(bit) for bit in bits[1:-1])
    return fold_line(f"N:{family};{given};{additional};;") + "\n"


def _birthday_line(birthday: str) -> str:
    if is_valid_date_and_or_time(birthday):
        return fold_line(f"BDAY:{escape_value(birthday)}") + "\n"
    return fold_line(f"BDAY;VALUE=text:{escape_value(birthday)}") + "\n"


def format_vcard(record: ContactRecord, include_groups: bool = False) -> Optional[str]:
    """
    Serialise ``record`` as a single vCard 3.0 with CRLF line endings.

    Returns None when the record has nothing to use as its formatted name.
    """
    identifier = (record.primary_identifier or "").strip()
    if not identifier:
        return None

    lines: List[str] = ["BEGIN:VCARD\n", "VERSION:3.0\n"]
    lines.append(_content_line("FN", identifier))
    lines.append(_structured_name(record.name))

    for organisation, org_detail in record.organisations.items():
        lines.append(_content_line("ORG", organisation))
        if org_detail.title is not None:
            lines.append(_content_line("TITLE", org_detail.title))

    # the first number written is always marked preferred
    for index, (number, number_detail) in enumerate(record.numbers.items()):
        types = list(NUMBER_TYPE_TAGS.get(number_detail.type, ()))
        if index == 0:
            types.append("PREF")
        lines.append(_content_line("TEL", number, types))

    for email, email_detail in record.emails.items():
        types = ["INTERNET", *_HOME_WORK_TAGS.get(email_detail.type, ())]
        lines.append(_content_line("EMAIL", email, types))

    # LABEL takes free-form text, unlike the structured ADR
    for address, address_detail in record.addresses.items():
        types = ["POSTAL", *_HOME_WORK_TAGS.get(address_detail.type, ())]
        lines.append(_content_line("LABEL", address, types))

    for note in record.notes:
        lines.append(_content_line("NOTE", note))

    if include_groups:
        for group in record.groups:
            lines.append(_content_line("X-GROUPS", group))

    if record.birthday is not None:
        lines.append(_birthday_line(record.birthday))

    lines.append("END:VCARD\n")
    return to_crlf("".join(lines))


class VcardWriter:
    """
    Writes contacts to a binary stream as UTF-8 vCard 3.0, one blank line
    between consecutive cards.
    """

    def __init__(self, stream: BinaryIO, config: Optional[VcardConfig] = None):
        self.config = config or VcardConfig()
        self._stream: Optional[BinaryIO] = stream
        self._first_contact = True
        self.written = 0

    def write_contact(self, record: ContactRecord) -> bool:
        """Write one card; returns False (writing nothing) if the record has no identifier."""
        if self._stream is None:
            raise ValueError("write to a closed VcardWriter")
        card = format_vcard(record, include_groups=self.config.groups_enabled)
        if card is None:
            logger.debug("Not writing contact without an identifier")
            return False
        if self._first_contact:
            self._first_contact = False
        else:
            card = "\r\n" + card
        self._stream.write(card.encode("utf-8"))
        self._stream.flush()
        self.written += 1
        return True

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
        self._stream = None

    def __enter__(self) -> "VcardWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["NUMBER_TYPE_TAGS", "VcardWriter", "format_vcard"]
