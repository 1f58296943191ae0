from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Union

from .codec import (
    ascii_to_utf8,
    decode_quoted_printable,
    ends_in_escape_char,
    split_value_by_character,
    unescape_value,
)
from .config_loader import VcardConfig
from .errors import (
    ContactNotIdentifiableError,
    ContactsVcfError,
    ParseError,
    SkipImportError,
)
from .models import ContactBuilder, ContactRecord, DetailType

logger = logging.getLogger(__name__)

VCARD_BEGIN_RE = re.compile(r"BEGIN[ \t]*:[ \t]*VCARD.*", re.IGNORECASE)
VCARD_END_RE = re.compile(r"END[ \t]*:[ \t]*VCARD.*", re.IGNORECASE)
VMSG_BEGIN_RE = re.compile(r"BEGIN[ \t]*:[ \t]*VMSG.*", re.IGNORECASE)
VMSG_END_RE = re.compile(r"END[ \t]*:[ \t]*VMSG.*", re.IGNORECASE)

SUPPORTED_VERSIONS = ("2.1", "3.0")
ALLOWED_ENCODINGS = {"8BIT", "QUOTED-PRINTABLE"}
ALLOWED_CHARSETS = {"US-ASCII", "ASCII", "UTF-8"}
ASCII_CHARSETS = {"US-ASCII", "ASCII"}

TEL_TYPES = {
    "PREF",
    "HOME",
    "WORK",
    "VOICE",
    "FAX",
    "MSG",
    "CELL",
    "PAGER",
    "BBS",
    "MODEM",
    "CAR",
    "ISDN",
    "VIDEO",
}
EMAIL_TYPES = {"PREF", "WORK", "HOME", "INTERNET"}
ADDRESS_TYPES = {"PREF", "WORK", "HOME"}

# properties with semicolon-separated parts, where a trailing escape continues
# the value on the next line
ESCAPED_MULTILINE_PROPERTIES = {"N", "ORG", "ADR"}

_NAME_LEVEL_NONE = 0
_NAME_LEVEL_N = 1
_NAME_LEVEL_FN = 2

# N components in the order they make up a display name:
# prefix, given, additional, family, suffix
_NAME_PART_ORDER = (3, 1, 2, 0, 4)


class ParserState(Enum):
    AWAITING_VERSION = "awaiting_version"
    NORMAL = "normal"
    MULTILINE_ENCODED = "multiline_encoded"  # v2.1 quoted-printable soft break
    MULTILINE_ESCAPED = "multiline_escaped"  # v2.1 backslash-CRLF
    MULTILINE_FOLDED = "multiline_folded"  # MIME-DIR folding


@dataclass(frozen=True)
class ContentLine:
    """One physical line of a vCard file, without its line ending."""

    raw: bytes
    next_line_looks_folded: bool = False
    line_number: int = 0

    @property
    def ascii_line(self) -> str:
        return self.raw.decode("ascii", errors="replace")


def iter_content_lines(content: bytes) -> Iterator[ContentLine]:
    """
    Split raw file content into physical lines.

    Lines end at LF, with a preceding CR removed. Each line records whether
    the line after it starts with a space or tab (and so looks folded on to it).
    """
    lines = content.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()
    for index, raw in enumerate(lines):
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        folded = index + 1 < len(lines) and lines[index + 1][:1] in (b" ", b"\t")
        yield ContentLine(raw=raw, next_line_looks_folded=folded, line_number=index + 1)


def _find_value_separator(raw: bytes) -> int:
    """Index of the first colon outside double quotes, or -1."""
    in_quotes = False
    for index, byte in enumerate(raw):
        if byte == ord('"'):
            in_quotes = not in_quotes
        elif byte == ord(":") and not in_quotes:
            return index
    return -1


def check_params(params: Sequence[str], name: str) -> List[str]:
    """Values of every ``name=value`` parameter (case-insensitive, optionally quoted)."""
    pattern = re.compile(rf"^{re.escape(name)}[ \t]*=[ \t]*(\"?)(.*)\1$", re.IGNORECASE)
    values: List[str] = []
    for param in params:
        match = pattern.match(param)
        if match and match.group(2) not in values:
            values.append(match.group(2))
    return values


def check_param(params: Sequence[str], name: str) -> Optional[str]:
    values = check_params(params, name)
    return values[0] if values else None


class VcardParser:
    """
    State machine that consumes the content lines of a single vCard (those
    between ``BEGIN:VCARD`` and ``END:VCARD``) and builds a contact.

    Lines seen before the ``VERSION`` property are held back and replayed
    once the version is known; a card without one is treated as v2.1 when
    it is finished.
    """

    def __init__(self, config: Optional[VcardConfig] = None):
        self.config = config or VcardConfig()
        self.builder = ContactBuilder()
        self.state = ParserState.AWAITING_VERSION
        self.version: Optional[str] = None
        self._pending_lines: List[ContentLine] = []
        self._name_level = _NAME_LEVEL_NONE
        self._current_name_and_params: Optional[str] = None
        self._buffered_value = ""
        self._cached_organisation: Optional[str] = None
        self._cached_title: Optional[str] = None
        self._handlers: Dict[str, Callable[[List[str], str], None]] = {
            "N": self._parse_n,
            "FN": self._parse_fn,
            "ORG": self._parse_org,
            "TITLE": self._parse_title,
            "TEL": self._parse_tel,
            "EMAIL": self._parse_email,
            "ADR": self._parse_adr,
            "LABEL": self._parse_label,
            "NOTE": self._parse_note,
            "BDAY": self._parse_bday,
        }
        if self.config.groups_enabled:
            self._handlers["X-GROUPS"] = self._parse_groups

    def parse_line(self, line: ContentLine) -> None:
        if self.state is ParserState.AWAITING_VERSION:
            self._await_version(line)
        else:
            self._parse_property_line(line)

    def finish(self) -> ContactRecord:
        """Finalize the contact; raises ContactNotIdentifiableError if it has no identifier."""
        if self.version is None and self._pending_lines:
            self._set_version("2.1")
        if self.state is not ParserState.NORMAL and self._buffered_value:
            logger.debug(
                "Discarding unterminated %s value", self._current_name_and_params or "property"
            )
        return self.builder.finalize()

    # version handling

    def _await_version(self, line: ContentLine) -> None:
        separator = _find_value_separator(line.raw)
        name_and_params = line.raw[:separator].decode("ascii", "replace").strip() if separator > 0 else ""
        if name_and_params.upper() != "VERSION":
            self._pending_lines.append(line)
            return
        value = line.raw[separator + 1 :].decode("ascii", "replace").strip()
        if value not in SUPPORTED_VERSIONS:
            raise ParseError(f"unsupported vCard version: {value or '(empty)'}")
        self._set_version(value)

    def _set_version(self, version: str) -> None:
        self.version = version
        self.state = ParserState.NORMAL
        pending, self._pending_lines = self._pending_lines, []
        for pending_line in pending:
            self._parse_property_line(pending_line)

    # content lines

    def _parse_property_line(self, line: ContentLine) -> None:
        raw = line.raw
        if self.state is not ParserState.NORMAL:
            # continuation of a multi-line value: reuse the stored name and params
            name_and_params = self._current_name_and_params or ""
            value = raw
            if self.state is ParserState.MULTILINE_FOLDED:
                value = value[1:]
            elif self.state is ParserState.MULTILINE_ENCODED:
                value = value.lstrip(b" \t")
            self.state = ParserState.NORMAL
        else:
            if not raw.strip():
                return
            separator = _find_value_separator(raw)
            name_and_params = raw[:separator].decode("ascii", "replace").strip() if separator > 0 else ""
            if not name_and_params:
                raise ParseError(f"malformed content line: {line.ascii_line[:60]!r}")
            value = raw[separator + 1 :]
            self._current_name_and_params = name_and_params
            self._buffered_value = ""

        params = [part.strip() for part in name_and_params.split(";")]
        property_name = params[0].upper()
        handler = self._handlers.get(property_name)

        encoding = check_param(params, "ENCODING")
        encoding = encoding.upper() if encoding is not None else None
        charset = check_param(params, "CHARSET")
        charset = charset.upper() if charset is not None else None
        if handler is not None:
            if encoding is not None and encoding not in ALLOWED_ENCODINGS:
                raise ParseError(f"unsupported encoding for {property_name}: {encoding}")
            if charset is not None and charset not in ALLOWED_CHARSETS:
                raise ParseError(f"unsupported charset for {property_name}: {charset}")

        if encoding == "QUOTED-PRINTABLE":
            value, another_line = decode_quoted_printable(value)
            if another_line:
                self.state = ParserState.MULTILINE_ENCODED

        if handler is None:
            # still track continuations so they are not taken for new properties
            if self.state is ParserState.NORMAL and line.next_line_looks_folded:
                self.state = ParserState.MULTILINE_FOLDED
            return

        # v2.1 values without a charset are taken to be US-ASCII
        if (charset is None and self.version == "2.1") or charset in ASCII_CHARSETS:
            value = ascii_to_utf8(value)
        string_value = value.decode("utf-8", errors="replace")

        if property_name in ESCAPED_MULTILINE_PROPERTIES and ends_in_escape_char(string_value):
            self.state = ParserState.MULTILINE_ESCAPED
            string_value = string_value[:-1]

        if self.state is ParserState.NORMAL and line.next_line_looks_folded:
            self.state = ParserState.MULTILINE_FOLDED

        if self.state is not ParserState.NORMAL:
            self._buffered_value += string_value
            return

        complete_value = (self._buffered_value + string_value).strip()
        self._buffered_value = ""
        if not complete_value:
            return
        handler(params, complete_value)

    def _extract_types(self, params: Sequence[str], valid_types: Set[str]) -> Set[str]:
        """
        Type values present amongst ``params``: ``TYPE=`` parameters (possibly
        repeated and comma-separated) and, for v2.1, bare parameters.
        """
        types: Set[str] = set()
        for type_param in check_params(params, "TYPE"):
            for part in type_param.split(","):
                upper = part.strip().upper()
                if upper in valid_types:
                    types.add(upper)
        if self.version == "2.1":
            for param in params[1:]:
                upper = param.upper()
                if upper in valid_types:
                    types.add(upper)
        return types

    # properties

    def _parse_n(self, params: List[str], value: str) -> None:
        if self._name_level >= _NAME_LEVEL_N:
            return
        name_parts = split_value_by_character(value, ";")
        words: List[str] = []
        for index in _NAME_PART_ORDER:
            if index < len(name_parts) and name_parts[index]:
                words.extend(
                    word for word in split_value_by_character(name_parts[index], ",") if word
                )
        self.builder.set_name(unescape_value(" ".join(words)))
        self._name_level = _NAME_LEVEL_N

    def _parse_fn(self, params: List[str], value: str) -> None:
        if self._name_level >= _NAME_LEVEL_FN:
            return
        self.builder.set_name(unescape_value(value))
        self._name_level = _NAME_LEVEL_FN

    def _parse_org(self, params: List[str], value: str) -> None:
        org_parts = split_value_by_character(value, ";")
        organisation = unescape_value(", ".join(org_parts)).strip()
        if not self.builder.add_organisation(organisation, self._cached_title, True):
            return
        # a TITLE may come before or after its ORG
        if self._cached_title is None:
            self._cached_organisation = organisation
        else:
            self._cached_title = None

    def _parse_title(self, params: List[str], value: str) -> None:
        title = unescape_value(value)
        if self._cached_organisation is not None:
            self.builder.set_organisation_title(self._cached_organisation, title)
            self._cached_organisation = None
        else:
            self._cached_title = title

    def _parse_tel(self, params: List[str], value: str) -> None:
        types = self._extract_types(params, TEL_TYPES)
        if "FAX" in types:
            number_type = DetailType.FAX_HOME if "HOME" in types else DetailType.FAX_WORK
        elif "CELL" in types or "VIDEO" in types:
            number_type = DetailType.MOBILE
        elif "PAGER" in types:
            number_type = DetailType.PAGER
        elif "WORK" in types:
            number_type = DetailType.WORK
        else:
            number_type = DetailType.HOME
        self.builder.add_number(value, number_type, "PREF" in types)

    def _parse_email(self, params: List[str], value: str) -> None:
        types = self._extract_types(params, EMAIL_TYPES)
        email_type = DetailType.WORK if "WORK" in types else DetailType.HOME
        self.builder.add_email(unescape_value(value), email_type, "PREF" in types)

    def _address_type(self, params: List[str]) -> DetailType:
        types = self._extract_types(params, ADDRESS_TYPES)
        return DetailType.WORK if "WORK" in types else DetailType.HOME

    def _parse_adr(self, params: List[str], value: str) -> None:
        lines: List[str] = []
        for part in split_value_by_character(value, ";"):
            if not part:
                continue
            # v3.0 allows each component to be a comma-separated list
            if self.version == "3.0":
                lines.extend(sub for sub in split_value_by_character(part, ",") if sub)
            else:
                lines.append(part)
        self.builder.add_address(unescape_value("\n".join(lines)), self._address_type(params))

    def _parse_label(self, params: List[str], value: str) -> None:
        self.builder.add_address(unescape_value(value), self._address_type(params))

    def _parse_note(self, params: List[str], value: str) -> None:
        self.builder.add_note(unescape_value(value))

    def _parse_bday(self, params: List[str], value: str) -> None:
        self.builder.set_birthday(value)

    def _parse_groups(self, params: List[str], value: str) -> None:
        self.builder.add_group(unescape_value(value))


class ParseStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class VcardResult:
    """Outcome of reading one vCard: a contact, or the error that stopped it."""

    status: ParseStatus
    contact: Optional[ContactRecord] = None
    error: Optional[ContactsVcfError] = None
    source: str = ""
    start_line: int = 0
    line_number: int = 0
    # vMsg blocks are reported but not counted by count_vcards
    counted: bool = True

    @property
    def ok(self) -> bool:
        return self.status is ParseStatus.OK

    def describe(self) -> str:
        location = f"{self.source or '<input>'}, line {self.line_number}"
        if self.error is None:
            return location
        return f"{location}: {self.error}"


class VcardReader:
    """Reads every vCard in a buffer, yielding one :class:`VcardResult` per card."""

    def __init__(self, config: Optional[VcardConfig] = None):
        self.config = config or VcardConfig()

    def read(self, content: Union[bytes, str], source: str = "") -> Iterator[VcardResult]:
        if isinstance(content, str):
            content = content.encode("utf-8")
        parser: Optional[VcardParser] = None
        start_line = 0
        in_vmsg = False
        last_line = 0
        for line in iter_content_lines(content):
            last_line = line.line_number
            text = line.ascii_line

            if parser is None:
                if in_vmsg:
                    if VMSG_END_RE.match(text):
                        in_vmsg = False
                elif VCARD_BEGIN_RE.match(text):
                    parser = VcardParser(self.config)
                    start_line = line.line_number
                elif VMSG_BEGIN_RE.match(text):
                    in_vmsg = True
                    logger.info("Skipping vMsg content in %s at line %d", source, line.line_number)
                    yield VcardResult(
                        status=ParseStatus.SKIPPED,
                        error=SkipImportError("vMsg content is not a vCard"),
                        source=source,
                        start_line=line.line_number,
                        line_number=line.line_number,
                        counted=False,
                    )
                continue

            if VCARD_END_RE.match(text):
                yield self._finish(parser, source, start_line, line.line_number)
                parser = None
                continue

            try:
                parser.parse_line(line)
            except ParseError as exc:
                # the rest of this card is ignored up to the next BEGIN:VCARD
                logger.info("Parse error in %s at line %d: %s", source, line.line_number, exc)
                yield VcardResult(
                    status=ParseStatus.FAILED,
                    error=exc,
                    source=source,
                    start_line=start_line,
                    line_number=line.line_number,
                )
                parser = None
            except SkipImportError as exc:
                yield VcardResult(
                    status=ParseStatus.SKIPPED,
                    error=exc,
                    source=source,
                    start_line=start_line,
                    line_number=line.line_number,
                )
                parser = None

        if parser is not None:
            yield VcardResult(
                status=ParseStatus.FAILED,
                error=ParseError("vCard is missing END:VCARD"),
                source=source,
                start_line=start_line,
                line_number=last_line,
            )

    @staticmethod
    def _finish(parser: VcardParser, source: str, start_line: int, line_number: int) -> VcardResult:
        try:
            contact = parser.finish()
        except ParseError as exc:
            return VcardResult(
                status=ParseStatus.FAILED,
                error=exc,
                source=source,
                start_line=start_line,
                line_number=line_number,
            )
        except ContactNotIdentifiableError as exc:
            logger.info("vCard in %s at line %d has no identifier", source, start_line)
            return VcardResult(
                status=ParseStatus.FAILED,
                error=exc,
                source=source,
                start_line=start_line,
                line_number=start_line,
            )
        return VcardResult(
            status=ParseStatus.OK,
            contact=contact,
            source=source,
            start_line=start_line,
            line_number=line_number,
        )


def count_vcards(content: Union[bytes, str]) -> int:
    """Number of vCards in ``content`` (vCards nested in vMsg blocks excluded)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    count = 0
    in_vcard = False
    in_vmsg = False
    for line in iter_content_lines(content):
        text = line.ascii_line
        if in_vcard:
            if VCARD_END_RE.match(text):
                in_vcard = False
        elif in_vmsg:
            if VMSG_END_RE.match(text):
                in_vmsg = False
        elif VCARD_BEGIN_RE.match(text):
            in_vcard = True
            count += 1
        elif VMSG_BEGIN_RE.match(text):
            in_vmsg = True
    return count


def parse_vcards(
    content: Union[bytes, str], config: Optional[VcardConfig] = None
) -> List[ContactRecord]:
    """Every contact that parses cleanly; failed and skipped cards are dropped."""
    return [
        result.contact
        for result in VcardReader(config).read(content)
        if result.ok and result.contact is not None
    ]


__all__ = [
    "ContentLine",
    "ParseStatus",
    "ParserState",
    "VcardParser",
    "VcardReader",
    "VcardResult",
    "check_param",
    "check_params",
    "count_vcards",
    "iter_content_lines",
    "parse_vcards",
]
