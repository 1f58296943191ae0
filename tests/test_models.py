import pytest

from contacts_vcf.cache import CacheIdentifier, CacheIdentifierType
from contacts_vcf.errors import ContactNotIdentifiableError
from contacts_vcf.models import (
    ContactBuilder,
    DetailType,
    sanitise_email_address,
    sanitise_phone_number,
)


def test_sanitise_phone_number_keeps_leading_dialable_run():
    assert sanitise_phone_number("+1 (555) 123-4567 ext 9") == "+1 (555) 123-4567"
    assert sanitise_phone_number("  555-1234  ") == "555-1234"
    assert sanitise_phone_number("*31#") == "*31#"
    assert sanitise_phone_number("call me") is None
    assert sanitise_phone_number("") is None
    assert sanitise_phone_number(None) is None


def test_sanitise_email_address_lowercases_domain_only():
    assert sanitise_email_address(" John.Doe@Example.COM ") == "John.Doe@example.com"
    assert sanitise_email_address("not-an-email") is None
    assert sanitise_email_address("user@localhost") is None
    assert sanitise_email_address("two words@example.com") is None
    assert sanitise_email_address("a@-bad.com") is None


def test_builder_ignores_values_that_do_not_sanitise():
    builder = ContactBuilder()
    assert builder.add_number("no digits here") is False
    assert builder.add_email("nope") is False
    assert builder.add_organisation("   ") is False
    assert builder.add_address("") is False
    assert (builder.organisations, builder.numbers, builder.emails, builder.addresses) == ({}, {}, {}, {})


def test_voice_number_replaces_non_voice_primary():
    builder = ContactBuilder()
    builder.add_number("111", DetailType.FAX_HOME)
    assert builder.primary_number == "111"
    builder.add_number("222", DetailType.HOME)
    assert builder.primary_number == "222"
    builder.add_number("333", DetailType.MOBILE)
    assert builder.primary_number == "222"
    builder.add_number("444", DetailType.PAGER, is_preferred=True)
    assert builder.primary_number == "444"


def test_first_preferred_number_wins():
    builder = ContactBuilder()
    builder.add_number("111", DetailType.HOME)
    builder.add_number("222", DetailType.WORK, is_preferred=True)
    builder.add_number("333", DetailType.HOME, is_preferred=True)
    assert builder.primary_number == "222"


def test_preferred_email_wins():
    builder = ContactBuilder()
    builder.add_email("home@example.com")
    builder.add_email("work@example.com", DetailType.WORK, is_preferred=True)
    assert builder.primary_email == "work@example.com"


def test_finalize_marks_exactly_one_primary_per_category():
    builder = ContactBuilder(name="Jane Roe")
    builder.add_organisation("Acme", is_preferred=True)
    builder.add_organisation("Globex", is_preferred=True)
    builder.add_number("555-0100")
    builder.add_number("555-0101")
    builder.add_email("jane@example.com")
    record = builder.finalize()

    assert [org for org, detail in record.organisations.items() if detail.is_primary] == ["Acme"]
    assert [n for n, detail in record.numbers.items() if detail.is_primary] == ["555-0100"]
    assert record.primary_email == "jane@example.com"


def test_finalize_without_identifier_raises():
    builder = ContactBuilder()
    builder.add_note("a note is not enough")
    builder.set_birthday("1980-01-15")
    with pytest.raises(ContactNotIdentifiableError):
        builder.finalize()


def test_identifier_prefers_name_then_organisation_then_number_then_email():
    builder = ContactBuilder()
    builder.add_email("Foo@Example.com")
    assert builder.finalize().cache_identifier == CacheIdentifier(
        CacheIdentifierType.PRIMARY_EMAIL, "foo@example.com"
    )

    builder.add_number("+1 (555) 123-4567")
    assert builder.finalize().cache_identifier == CacheIdentifier(
        CacheIdentifierType.PRIMARY_NUMBER, "+15551234567"
    )

    builder.add_organisation("Acme")
    assert builder.finalize().cache_identifier == CacheIdentifier(
        CacheIdentifierType.ORGANISATION, "Acme"
    )

    builder.set_name("  Jane Roe ")
    record = builder.finalize()
    assert record.cache_identifier == CacheIdentifier(CacheIdentifierType.NAME, "Jane Roe")
    assert record.primary_identifier == "Jane Roe"


def test_notes_and_groups_are_trimmed_and_deduplicated():
    builder = ContactBuilder(name="X")
    builder.add_note(" hello ")
    builder.add_note("hello")
    builder.add_group("Friends")
    builder.add_group("Friends ")
    record = builder.finalize()
    assert record.notes == ("hello",)
    assert record.groups == ("Friends",)


def test_organisation_title():
    builder = ContactBuilder(name="X")
    builder.add_organisation("Acme", "Engineer")
    builder.add_organisation("Acme", "Ignored for an existing organisation")
    assert builder.set_organisation_title("Unknown", "CEO") is False
    record = builder.finalize()
    assert record.organisations["Acme"].title == "Engineer"
