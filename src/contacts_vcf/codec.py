from __future__ import annotations

import re
from typing import List, Tuple

FOLD_WIDTH = 75
FOLD_MARKER = "\n "

# ISO 8601:2004 4.1.2 date, with 4.1.2.3 a) and b) reduced accuracy
_DATE = r"[0-9]{4}(?:-?[0-9]{2}(?:-?[0-9]{2})?)?"
# ISO 8601:2000 5.2.1.3 d), e) and f) truncated date
_DATE_TRUNC = r"--(?:[0-9]{2}(?:-?[0-9]{2})?|-[0-9]{2})"
# ISO 8601:2004 4.2.2 time with reduced accuracy, UTC designator and zone
# offset; no decimal fractions and no 24:00
_TIME = (
    r"(?:[0-1][0-9]|2[0-3])(?::?[0-5][0-9](?::?(?:60|[0-5][0-9]))?)?"
    r"(?:Z|[-+](?:[0-1][0-9]|2[0-3])(?::?[0-5][0-9])?)?"
)
# ISO 8601:2000 5.3.1.4 a), b) and c) truncated time
_TIME_TRUNC = r"-(?:[0-5][0-9](?::?(?:60|[0-5][0-9]))?|-(?:60|[0-5][0-9]))"
DATE_AND_OR_TIME_RE = re.compile(
    rf"(?:{_DATE}|{_DATE_TRUNC})?(?:T(?:{_TIME}|{_TIME_TRUNC}))?"
)

_HEX_DIGITS = b"0123456789abcdefABCDEF"
_BARE_LF_RE = re.compile(r"(?<!\r)\n")
_FOLD_RE = re.compile(r"\r?\n[ \t]")


def _utf16_units(ch: str) -> int:
    return 2 if ord(ch) > 0xFFFF else 1


def _utf16_length(text: str) -> int:
    return sum(_utf16_units(ch) for ch in text)


def _trailing_backslashes(text: str) -> int:
    return len(text) - len(text.rstrip("\\"))


def ends_in_escape_char(text: str) -> bool:
    """True when ``text`` ends in an odd run of backslashes (a dangling escape)."""
    return _trailing_backslashes(text) % 2 == 1


def fold_line(line: str, width: int = FOLD_WIDTH) -> str:
    """
    Fold a logical content line into physical lines of at most ``width``
    UTF-16 code units, joined by a newline and a single space.

    A surrogate pair (any astral code point) is never split, and neither is a
    backslash escape sequence.
    """
    pieces: List[str] = []
    rest = line
    while _utf16_length(rest) > width:
        units = 0
        cut = 0
        for ch in rest:
            size = _utf16_units(ch)
            if units + size > width:
                break
            units += size
            cut += 1
        if ends_in_escape_char(rest[:cut]):
            cut -= 1
        cut = max(cut, 1)
        pieces.append(rest[:cut])
        rest = rest[cut:]
    pieces.append(rest)
    return FOLD_MARKER.join(pieces)


def unfold_lines(text: str) -> str:
    """Undo MIME-DIR folding: drop every line break followed by a space or tab."""
    return _FOLD_RE.sub("", text)


def escape_value(value: str) -> str:
    out: List[str] = []
    for ch in value:
        if ch == "\n":
            out.append("\\n")
        elif ch in ",;\\":
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def unescape_value(value: str) -> str:
    """
    Resolve backslash escapes in a property value.

    ``\\n``/``\\N`` become a newline and ``\\t``/``\\T`` a tab (non-standard,
    but seen in the wild). ``\\\\``, ``\\,`` and ``\\;`` become the escaped
    character. Unknown sequences are kept with their backslash.
    """
    out: List[str] = []
    in_escape = False
    for ch in value:
        if not in_escape:
            if ch == "\\":
                in_escape = True
            else:
                out.append(ch)
            continue
        in_escape = False
        if ch in "nN":
            out.append("\n")
        elif ch in "tT":
            out.append("\t")
        elif ch in "\\,;":
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def split_value_by_character(value: str, separator: str) -> List[str]:
    """
    Split a structured value on ``separator``, honouring escaped separators.

    A part ending in a dangling escape is joined to the following part with
    the separator restored. The final part is not examined, since a trailing
    escape there marks a multi-line value and is dealt with by the parser.
    Trailing empty parts are dropped and the remaining parts are trimmed.
    """
    parts = value.split(separator)
    while len(parts) > 1 and parts[-1] == "":
        parts.pop()
    index = 0
    while index < len(parts):
        part = parts[index]
        if index < len(parts) - 1 and ends_in_escape_char(part):
            parts[index] = part[:-1] + separator + parts[index + 1]
            del parts[index + 1]
            continue
        parts[index] = part.strip()
        index += 1
    return parts


def decode_quoted_printable(data: bytes) -> Tuple[bytes, bool]:
    """
    Decode a quoted-printable value as per RFC 1521 section 5.1.

    Returns the decoded bytes and whether the value continues on the next
    physical line (a soft line break, i.e. a final ``=``).
    """
    if data.endswith(b"=\r\n"):
        data = data[:-2]
    elif data.endswith(b"=\n"):
        data = data[:-1]

    out = bytearray()
    continues = False
    length = len(data)
    index = 0
    while index < length:
        byte = data[index]
        if byte == ord("=") and index < length - 2:
            pair = data[index + 1 : index + 3]
            if pair[0] in _HEX_DIGITS and pair[1] in _HEX_DIGITS:
                out.append(int(pair, 16))
                index += 3
                continue
            out.append(byte)
        elif byte == ord("=") and index == length - 1:
            continues = True
        else:
            out.append(byte)
        index += 1
    return bytes(out), continues


def ascii_to_utf8(data: bytes) -> bytes:
    """
    Re-encode 8-bit "US-ASCII" data as UTF-8.

    Bytes below 0x80 pass through; every high-bit byte is taken as the code
    point of the same value and written as a two-byte UTF-8 sequence. Legacy
    v2.1 exporters put Latin-1 text in values they label US-ASCII.
    """
    return data.decode("latin-1").encode("utf-8")


def is_valid_date_and_or_time(value: str) -> bool:
    """Does ``value`` match the RFC 6350 date-and-or-time grammar?"""
    return DATE_AND_OR_TIME_RE.fullmatch(value) is not None


def to_crlf(text: str) -> str:
    """Convert bare LF line endings to CRLF, leaving existing CRLF alone."""
    return _BARE_LF_RE.sub("\r\n", text)


__all__ = [
    "FOLD_WIDTH",
    "ascii_to_utf8",
    "decode_quoted_printable",
    "ends_in_escape_char",
    "escape_value",
    "fold_line",
    "is_valid_date_and_or_time",
    "split_value_by_character",
    "to_crlf",
    "unescape_value",
    "unfold_lines",
]
