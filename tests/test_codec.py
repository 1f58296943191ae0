import pytest

from contacts_vcf.codec import (
    ascii_to_utf8,
    decode_quoted_printable,
    ends_in_escape_char,
    escape_value,
    fold_line,
    is_valid_date_and_or_time,
    split_value_by_character,
    to_crlf,
    unescape_value,
    unfold_lines,
)


def test_fold_line_leaves_short_lines_alone():
    assert fold_line("FN:John Smith") == "FN:John Smith"
    assert fold_line("x" * 75) == "x" * 75


def test_fold_line_splits_at_75_units():
    folded = fold_line("x" * 200)
    segments = folded.split("\n ")
    assert [len(segment) for segment in segments] == [75, 75, 50]


def test_fold_line_does_not_split_escape_sequence():
    line = "a" * 74 + "\\," + "b" * 10
    segments = fold_line(line).split("\n ")
    assert segments[0] == "a" * 74
    assert segments[1].startswith("\\,")


def test_fold_line_does_not_split_astral_code_point():
    line = "a" * 74 + "\U0001F600" + "b"
    segments = fold_line(line).split("\n ")
    assert segments == ["a" * 74, "\U0001F600b"]


@pytest.mark.parametrize(
    "text",
    [
        "",
        "plain ascii " * 30,
        "café 日本 \U0001F600 " * 25,
        "\\\\\\," * 120,
        ("ab\\\\c\U0001F600," * 40)[:500],
    ],
)
def test_unfold_reverses_fold(text):
    assert unfold_lines(fold_line(text)) == text


def test_unfold_accepts_crlf_and_tab():
    # only the first whitespace character after the line break is dropped
    assert unfold_lines("FN:Jo\r\n\thn\r\n  Smith") == "FN:John Smith"
    assert unfold_lines("FN:Jo\n hn\r\n Smith") == "FN:JohnSmith"


def test_escape_value():
    assert escape_value("a,b;c\\d\ne") == "a\\,b\\;c\\\\d\\ne"
    assert escape_value("café") == "café"


def test_unescape_reverses_escape():
    text = "line one\nline, two; with \\ backslash"
    assert unescape_value(escape_value(text)) == text


def test_unescape_value_sequences():
    assert unescape_value("a\\Nb\\tc\\Td") == "a\nb\tc\td"
    assert unescape_value("keep \\x as is") == "keep \\x as is"
    assert unescape_value("dangling\\") == "dangling"


def test_ends_in_escape_char():
    assert ends_in_escape_char("abc\\") is True
    assert ends_in_escape_char("abc\\\\") is False
    assert ends_in_escape_char("abc") is False


def test_split_value_by_character():
    assert split_value_by_character("Smith;John;;;", ";") == ["Smith", "John"]
    assert split_value_by_character(" a ; b ", ";") == ["a", "b"]
    assert split_value_by_character("a\\;b;c", ";") == ["a;b", "c"]
    assert split_value_by_character(";;street", ";") == ["", "", "street"]


def test_decode_quoted_printable():
    assert decode_quoted_printable(b"a=3Db") == (b"a=b", False)
    assert decode_quoted_printable(b"a=") == (b"a", True)
    assert decode_quoted_printable(b"caf=C3=A9") == (b"caf\xc3\xa9", False)
    assert decode_quoted_printable(b"caf=c3=a9") == (b"caf\xc3\xa9", False)


def test_decode_quoted_printable_keeps_invalid_sequences():
    assert decode_quoted_printable(b"a=ZZb") == (b"a=ZZb", False)
    assert decode_quoted_printable(b"a=4") == (b"a=4", False)


def test_decode_quoted_printable_soft_break_with_line_ending():
    assert decode_quoted_printable(b"first=\r\n") == (b"first", True)
    assert decode_quoted_printable(b"first=\n") == (b"first", True)


def test_ascii_to_utf8():
    assert ascii_to_utf8(b"plain") == b"plain"
    assert ascii_to_utf8(b"caf\xe9") == "café".encode("utf-8")


@pytest.mark.parametrize(
    "value",
    ["1980-01-15", "19800115", "1980", "--0115", "---15", "T1030", "1980-01-15T10:30:00Z", "T10:30-05"],
)
def test_valid_dates(value):
    assert is_valid_date_and_or_time(value)


@pytest.mark.parametrize("value", ["next tuesday", "15/01/1980", "1980-01-15 10:30", "T25"])
def test_invalid_dates(value):
    assert not is_valid_date_and_or_time(value)


def test_to_crlf_does_not_double_convert():
    assert to_crlf("a\nb\r\nc\n") == "a\r\nb\r\nc\r\n"
