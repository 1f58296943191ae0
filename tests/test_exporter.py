import io

from contacts_vcf.exporter import Exporter
from contacts_vcf.interaction import CancellationToken, NonInteractivePrompter, RunStatus
from contacts_vcf.models import DetailType
from contacts_vcf.parser import parse_vcards
from contacts_vcf.store import MemoryContactStore
from contacts_vcf.writer import VcardWriter


def _store():
    store = MemoryContactStore()
    jane = store.create_contact("Jane Roe")
    store.add_number(jane, "555-0100", DetailType.MOBILE, True)
    store.add_email(jane, "jane@example.com", DetailType.WORK, True)
    acme = store.create_contact(None)
    store.add_organisation(acme, "Acme", "Supplier", True)
    nobody = store.create_contact(None)
    store.add_note(nobody, "nothing else")
    return store


def test_export_writes_identifiable_contacts():
    stream = io.BytesIO()
    summary = Exporter(_store(), VcardWriter(stream)).run()
    assert summary.status is RunStatus.COMPLETED
    assert (summary.written, summary.skipped) == (2, 1)

    contacts = parse_vcards(stream.getvalue())
    assert [contact.primary_identifier for contact in contacts] == ["Jane Roe", "Acme"]
    assert contacts[0].numbers["555-0100"].type is DetailType.MOBILE
    assert contacts[1].organisations["Acme"].title == "Supplier"


def test_export_of_empty_store_is_an_error():
    prompter = NonInteractivePrompter()
    stream = io.BytesIO()
    summary = Exporter(MemoryContactStore(), VcardWriter(stream), prompter=prompter).run()
    assert summary.status is RunStatus.ABORTED
    assert summary.written == 0
    assert prompter.errors == ["There are no contacts to export"]
    assert stream.getvalue() == b""


def test_cancelled_export_stops():
    cancel = CancellationToken()
    cancel.cancel()
    stream = io.BytesIO()
    summary = Exporter(_store(), VcardWriter(stream), cancel=cancel).run()
    assert summary.status is RunStatus.ABORTED
    assert stream.getvalue() == b""
