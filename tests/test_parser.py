import pytest

from contacts_vcf.config_loader import VcardConfig
from contacts_vcf.errors import ContactNotIdentifiableError, ParseError, SkipImportError
from contacts_vcf.models import DetailType
from contacts_vcf.parser import (
    ParseStatus,
    VcardReader,
    check_param,
    count_vcards,
    iter_content_lines,
    parse_vcards,
)


def _vcard(*lines, version="3.0"):
    body = ["BEGIN:VCARD"]
    if version:
        body.append(f"VERSION:{version}")
    body.extend(lines)
    body.append("END:VCARD")
    return "\r\n".join(body) + "\r\n"


def _parse_one(content, config=None):
    results = list(VcardReader(config).read(content, "test.vcf"))
    assert len(results) == 1
    assert results[0].status is ParseStatus.OK, results[0].describe()
    return results[0].contact


def test_iter_content_lines():
    lines = list(iter_content_lines(b"A\r\nB\n C\n"))
    assert [line.raw for line in lines] == [b"A", b"B", b" C"]
    assert [line.next_line_looks_folded for line in lines] == [False, True, False]
    assert [line.line_number for line in lines] == [1, 2, 3]


def test_check_param_handles_quotes_and_case():
    assert check_param(["TEL", 'TYPE="work"'], "TYPE") == "work"
    assert check_param(["TEL", "type = home"], "TYPE") == "home"
    assert check_param(["TEL", "PREF"], "TYPE") is None


def test_v21_structured_name():
    contact = _parse_one(_vcard("N:Smith;John;;;", version="2.1"))
    assert contact.name == "John Smith"


def test_structured_name_part_order():
    contact = _parse_one(_vcard("N:Smith;John;Quincy;Dr.;Jr."))
    assert contact.name == "Dr. John Quincy Smith Jr."


@pytest.mark.parametrize(
    "lines",
    [
        ("N:Smith;John;;;", "FN:Johnny Smith"),
        ("FN:Johnny Smith", "N:Smith;John;;;"),
        ("FN:Johnny Smith", "FN:Someone Else"),
    ],
)
def test_formatted_name_takes_priority(lines):
    assert _parse_one(_vcard(*lines)).name == "Johnny Smith"


def test_formatted_name_is_unescaped():
    assert _parse_one(_vcard("FN:Smith\\, John")).name == "Smith, John"


def test_lowercase_property_names():
    assert _parse_one(_vcard("fn:lower case")).name == "lower case"


def test_v30_telephone_types():
    contact = _parse_one(
        _vcard(
            "FN:Jo",
            "TEL;TYPE=HOME:555 0102",
            "TEL;TYPE=WORK,FAX:555 0101",
            "TEL;TYPE=CELL;TYPE=PREF:+1 555 0100",
            "TEL;TYPE=PAGER:555 0103",
        )
    )
    assert contact.numbers["555 0102"].type is DetailType.HOME
    assert contact.numbers["555 0101"].type is DetailType.FAX_WORK
    assert contact.numbers["+1 555 0100"].type is DetailType.MOBILE
    assert contact.numbers["555 0103"].type is DetailType.PAGER
    assert contact.primary_number == "+1 555 0100"


def test_v21_bare_type_parameters():
    contact = _parse_one(
        _vcard(
            "FN:Jo",
            "TEL;CELL;PREF:555-0100",
            "TEL;FAX;HOME:555-0101",
            "EMAIL;INTERNET;WORK:Jo@Example.com",
            version="2.1",
        )
    )
    assert contact.numbers["555-0100"].type is DetailType.MOBILE
    assert contact.numbers["555-0100"].is_primary is True
    assert contact.numbers["555-0101"].type is DetailType.FAX_HOME
    assert contact.emails["Jo@example.com"].type is DetailType.WORK


def test_v30_ignores_bare_type_parameters():
    contact = _parse_one(_vcard("FN:Jo", "TEL;CELL:555-0100"))
    assert contact.numbers["555-0100"].type is DetailType.HOME


def test_email_preference():
    contact = _parse_one(
        _vcard(
            "FN:Jo",
            "EMAIL;TYPE=INTERNET:home@example.com",
            "EMAIL;TYPE=INTERNET,WORK,PREF:work@example.com",
            "EMAIL:not an email",
        )
    )
    assert list(contact.emails) == ["home@example.com", "work@example.com"]
    assert contact.primary_email == "work@example.com"


def test_quoted_printable_multiline_note():
    content = "\r\n".join(
        [
            "BEGIN:VCARD",
            "VERSION:2.1",
            "FN:Jo",
            "NOTE;ENCODING=QUOTED-PRINTABLE:first line=0D=0A=",
            "second line",
            "END:VCARD",
            "",
        ]
    )
    contact = _parse_one(content)
    assert contact.notes == ("first line\r\nsecond line",)


def test_quoted_printable_utf8():
    contact = _parse_one(
        _vcard("FN;CHARSET=UTF-8;ENCODING=QUOTED-PRINTABLE:Ren=C3=A9", version="2.1")
    )
    assert contact.name == "René"


def test_v21_high_bytes_are_taken_as_latin1():
    content = b"BEGIN:VCARD\r\nVERSION:2.1\r\nFN:Ren\xe9\r\nEND:VCARD\r\n"
    assert _parse_one(content).name == "René"


def test_v30_values_are_utf8():
    content = "BEGIN:VCARD\r\nVERSION:3.0\r\nFN:René\r\nEND:VCARD\r\n".encode("utf-8")
    assert _parse_one(content).name == "René"


def test_escaped_multiline_address():
    content = "\r\n".join(
        [
            "BEGIN:VCARD",
            "VERSION:2.1",
            "FN:Jo",
            "ADR;HOME:;;1 Main St\\",
            ";Springfield;;12345;USA",
            "END:VCARD",
            "",
        ]
    )
    contact = _parse_one(content)
    assert list(contact.addresses) == ["1 Main St\nSpringfield\n12345\nUSA"]
    assert contact.addresses["1 Main St\nSpringfield\n12345\nUSA"].type is DetailType.HOME


def test_folded_lines():
    content = "BEGIN:VCARD\r\nVERSION:3.0\r\nFN:Jo\r\nNOTE:This is a long\r\n  note\r\nEND:VCARD\r\n"
    assert _parse_one(content).notes == ("This is a long note",)


def test_v30_address_components_split_on_commas():
    contact = _parse_one(
        _vcard("FN:Jo", "ADR;TYPE=WORK:;;1 Main St,Suite 5;Springfield;IL;62701;USA")
    )
    (address, detail), = contact.addresses.items()
    assert address == "1 Main St\nSuite 5\nSpringfield\nIL\n62701\nUSA"
    assert detail.type is DetailType.WORK


def test_label_is_unescaped():
    contact = _parse_one(_vcard("FN:Jo", "LABEL;TYPE=HOME:1 Main St\\nSpringfield"))
    assert list(contact.addresses) == ["1 Main St\nSpringfield"]


@pytest.mark.parametrize(
    "lines",
    [("TITLE:Engineer", "ORG:Acme;R&D"), ("ORG:Acme;R&D", "TITLE:Engineer")],
)
def test_title_attaches_to_organisation_in_either_order(lines):
    contact = _parse_one(_vcard("FN:Jo", *lines))
    assert contact.organisations["Acme, R&D"].title == "Engineer"
    assert contact.primary_organisation == "Acme, R&D"


def test_first_of_several_organisations_is_primary():
    contact = _parse_one(_vcard("ORG:Acme", "ORG:Globex"))
    assert contact.primary_organisation == "Acme"
    assert sum(detail.is_primary for detail in contact.organisations.values()) == 1
    assert contact.primary_identifier == "Acme"


def test_birthday_kept_as_is():
    assert _parse_one(_vcard("FN:Jo", "BDAY:1980-01-15")).birthday == "1980-01-15"


def test_missing_version_is_treated_as_v21():
    content = "BEGIN:VCARD\r\nN:Smith;John;;;\r\nFN:Ren\xe9\r\nEND:VCARD\r\n".encode("latin-1")
    assert _parse_one(content).name == "René"


def test_properties_before_version_are_replayed():
    content = "BEGIN:VCARD\r\nFN:Early Bird\r\nVERSION:3.0\r\nEND:VCARD\r\n"
    assert _parse_one(content).name == "Early Bird"


def test_unsupported_version_fails_only_that_vcard():
    content = _vcard("FN:Future", version="4.0") + _vcard("FN:Present")
    results = list(VcardReader().read(content))
    assert [result.status for result in results] == [ParseStatus.FAILED, ParseStatus.OK]
    assert isinstance(results[0].error, ParseError)
    assert results[0].line_number == 2
    assert results[1].contact.name == "Present"


@pytest.mark.parametrize(
    "line",
    [
        "FN;ENCODING=BASE64:Sm8=",
        "FN;CHARSET=ISO-8859-1:Jo",
        "NO COLON HERE",
    ],
)
def test_parse_errors(line):
    results = list(VcardReader().read(_vcard("TEL:555", line)))
    assert results[0].status is ParseStatus.FAILED
    assert isinstance(results[0].error, ParseError)


def test_unrecognised_properties_and_their_continuations_are_ignored():
    content = _vcard(
        "PHOTO;ENCODING=BASE64;TYPE=JPEG:AAAA",
        " BBBB",
        " CCCC",
        "X-CUSTOM;CHARSET=ISO-8859-1:whatever",
        "FN:With Photo",
    )
    assert _parse_one(content).name == "With Photo"


def test_unidentifiable_vcard_fails():
    results = list(VcardReader().read(_vcard("NOTE:hello")))
    assert results[0].status is ParseStatus.FAILED
    assert isinstance(results[0].error, ContactNotIdentifiableError)


def test_unterminated_vcard_fails():
    results = list(VcardReader().read("BEGIN:VCARD\r\nVERSION:3.0\r\nFN:Jo\r\n"))
    assert results[0].status is ParseStatus.FAILED
    assert "END:VCARD" in str(results[0].error)


def test_vmsg_is_skipped():
    content = "\r\n".join(
        [
            "BEGIN:VMSG",
            "VERSION:1.1",
            "BEGIN:VCARD",
            "VERSION:2.1",
            "TEL:555",
            "END:VCARD",
            "END:VMSG",
            "",
        ]
    )
    results = list(VcardReader().read(content))
    assert [result.status for result in results] == [ParseStatus.SKIPPED]
    assert isinstance(results[0].error, SkipImportError)
    assert count_vcards(content) == 0


def test_count_vcards():
    assert count_vcards(_vcard("FN:A") + _vcard("FN:B")) == 2
    assert count_vcards("") == 0


def test_groups_parsed_only_when_enabled():
    content = _vcard("FN:Jo", "X-GROUPS:Friends", "X-GROUPS:Family\\, close")
    assert _parse_one(content).groups == ()
    contact = _parse_one(content, VcardConfig(groups_enabled=True))
    assert contact.groups == ("Friends", "Family, close")


def test_parse_vcards_drops_failures():
    content = _vcard("NOTE:no identifier") + _vcard("FN:Kept")
    assert [contact.name for contact in parse_vcards(content)] == ["Kept"]
