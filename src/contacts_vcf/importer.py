from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .cache import ContactId, ContactsCache
from .config_loader import ToolConfig
from .errors import ContactCreationError, ContactNotIdentifiableError
from .interaction import (
    CancellationToken,
    ImportPrompter,
    LoggingProgressReporter,
    MergeAction,
    NonInteractivePrompter,
    ProgressReporter,
    RunStatus,
)
from .models import ContactRecord
from .parser import ParseStatus, VcardReader, VcardResult, count_vcards
from .store import ContactStore

logger = logging.getLogger(__name__)


class ImportAction(Enum):
    CREATED = "created"
    MERGED = "merged"
    OVERWRITTEN = "overwritten"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportEvent:
    source: str
    line: int
    label: str
    action: ImportAction
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "line": self.line,
            "label": self.label,
            "action": self.action.value,
            "detail": self.detail,
        }


@dataclass
class ImportSummary:
    status: RunStatus = RunStatus.COMPLETED
    created: int = 0
    merged: int = 0
    overwritten: int = 0
    skipped: int = 0
    events: List[ImportEvent] = field(default_factory=list)

    def record(self, event: ImportEvent) -> None:
        self.events.append(event)
        if event.action is ImportAction.CREATED:
            self.created += 1
        elif event.action is ImportAction.MERGED:
            self.merged += 1
        elif event.action is ImportAction.OVERWRITTEN:
            self.overwritten += 1
        else:
            self.skipped += 1


def collect_vcf_paths(location: str) -> List[str]:
    """``location`` itself if it is a file, else every ``*.vcf`` file in that directory, sorted."""
    if os.path.isfile(location):
        return [location]
    if os.path.isdir(location):
        return sorted(
            os.path.join(location, name)
            for name in os.listdir(location)
            if name.lower().endswith(".vcf") and os.path.isfile(os.path.join(location, name))
        )
    raise FileNotFoundError(f"No such file or directory: {location}")


class Importer:
    """
    Imports parsed vCards into a contact store, merging with contacts that
    already exist.

    Existing contacts are found through a :class:`ContactsCache` built from
    the store (:meth:`populate_cache`) and kept up to date as contacts are
    written, so duplicates across several files are also merged. What
    happens to a contact that already exists depends on the merge setting:
    KEEP skips it, OVERWRITE replaces it, MERGE adds only the details it does
    not have yet, and PROMPT asks the prompter each time (until an answer
    marked "always" replaces the setting).
    """

    def __init__(
        self,
        store: ContactStore,
        config: Optional[ToolConfig] = None,
        prompter: Optional[ImportPrompter] = None,
        progress: Optional[ProgressReporter] = None,
        cancel: Optional[CancellationToken] = None,
    ):
        self.store = store
        self.config = config or ToolConfig()
        self.prompter = prompter or NonInteractivePrompter()
        self.progress = progress or LoggingProgressReporter()
        self.cancel = cancel or CancellationToken()
        self.cache = ContactsCache()
        self.merge_setting = MergeAction.from_setting(self.config.merge.setting)
        self.reader = VcardReader(self.config.vcard)
        self._progress_current = 0
        self._progress_maximum = 0

    def populate_cache(self) -> int:
        self.progress.report_message("Reading existing contacts")
        return self.cache.populate_from_store(self.store)

    # runs

    def import_paths(self, paths: Iterable[str]) -> ImportSummary:
        summary = ImportSummary()
        files: List[Tuple[str, bytes]] = []
        for path in paths:
            try:
                with open(path, "rb") as handle:
                    files.append((path, handle.read()))
            except OSError as exc:
                self.prompter.show_error(f"Unable to read {path}: {exc}")
                summary.status = RunStatus.ABORTED
                return summary

        self._start_progress(sum(count_vcards(content) for _, content in files))
        for path, content in files:
            self.progress.report_message(f"Importing {os.path.basename(path)}")
            if not self._import_results(self.reader.read(content, path), summary):
                summary.status = RunStatus.ABORTED
                break
        self._log_summary(summary)
        return summary

    def import_content(self, content: bytes, source_name: str = "") -> ImportSummary:
        summary = ImportSummary()
        self._start_progress(count_vcards(content))
        if not self._import_results(self.reader.read(content, source_name), summary):
            summary.status = RunStatus.ABORTED
        self._log_summary(summary)
        return summary

    def _start_progress(self, maximum: int) -> None:
        self._progress_current = 0
        self._progress_maximum = maximum
        self.progress.report_progress(0, maximum)

    def _advance_progress(self) -> bool:
        if self.cancel.is_cancelled():
            return False
        self._progress_current += 1
        self.progress.report_progress(self._progress_current, self._progress_maximum)
        return True

    def _import_results(self, results: Iterable[VcardResult], summary: ImportSummary) -> bool:
        """Import each result in turn; returns False when the run should stop."""
        for result in results:
            if self.cancel.is_cancelled():
                logger.info("Import cancelled")
                return False

            if result.status is ParseStatus.OK and result.contact is not None:
                try:
                    action = self.import_contact(result.contact)
                except ContactCreationError as exc:
                    message = f"Unable to add contact: {exc}"
                    self.prompter.show_error(message)
                    summary.record(
                        ImportEvent(
                            result.source,
                            result.start_line,
                            result.contact.primary_identifier or "",
                            ImportAction.FAILED,
                            str(exc),
                        )
                    )
                    if not self.prompter.continue_or_abort(message):
                        return False
                else:
                    if action is None:
                        return False
                    summary.record(
                        ImportEvent(
                            result.source,
                            result.start_line,
                            result.contact.primary_identifier or "",
                            action,
                        )
                    )
            elif result.status is ParseStatus.SKIPPED:
                summary.record(
                    ImportEvent(
                        result.source,
                        result.start_line,
                        "",
                        ImportAction.SKIPPED,
                        str(result.error or ""),
                    )
                )
                if not result.counted:
                    continue
            else:
                summary.record(
                    ImportEvent(
                        result.source,
                        result.start_line,
                        "",
                        ImportAction.FAILED,
                        str(result.error or ""),
                    )
                )
                if not self.prompter.continue_or_abort(result.describe()):
                    return False

            if not self._advance_progress():
                return False
        return True

    def _log_summary(self, summary: ImportSummary) -> None:
        logger.info(
            "Import %s: %d created, %d merged, %d overwritten, %d skipped",
            summary.status.value,
            summary.created,
            summary.merged,
            summary.overwritten,
            summary.skipped,
        )

    # single contacts

    def _resolve_merge_action(self, label: str, exists: bool) -> Optional[MergeAction]:
        """The action for an existing contact, prompting if needed; None if cancelled meanwhile."""
        action = self.merge_setting
        if not exists:
            return action
        while action is MergeAction.PROMPT:
            decision = self.prompter.merge_decision(label)
            if self.cancel.is_cancelled():
                return None
            if decision.always:
                self.merge_setting = decision.action
            action = decision.action
        return action

    def import_contact(self, record: ContactRecord) -> Optional[ImportAction]:
        """
        Import one finalized contact. Returns what was done with it, or None
        if the run was cancelled. Store failures raise ContactCreationError.
        """
        if self.cancel.is_cancelled():
            return None
        identifier = record.cache_identifier
        if identifier is None:
            raise ContactNotIdentifiableError()

        contact_id = self.cache.lookup(identifier)
        action = self._resolve_merge_action(identifier.detail, contact_id is not None)
        if action is None:
            return None

        if contact_id is not None and action is MergeAction.KEEP:
            logger.info("Skipping existing contact %s", identifier.detail)
            return ImportAction.SKIPPED

        overwritten = False
        if contact_id is not None and action is MergeAction.OVERWRITE:
            self.store.delete_contact(contact_id)
            self.cache.remove_lookup(identifier)
            self.cache.remove_associated_data(contact_id)
            contact_id = None
            overwritten = True

        if contact_id is None:
            contact_id = self.store.create_contact(record.name)
            self.cache.add_lookup(identifier, contact_id)
            result = ImportAction.OVERWRITTEN if overwritten else ImportAction.CREATED
        else:
            result = ImportAction.MERGED

        self._import_details(contact_id, record)
        logger.info("Contact %s %s", identifier.detail, result.value)
        return result

    def _import_details(self, contact_id: ContactId, record: ContactRecord) -> None:
        # a value already present in any form counts as present, whatever its type
        cache = self.cache
        for number, number_detail in record.numbers.items():
            if cache.has_associated_number(contact_id, number):
                continue
            self.store.add_number(contact_id, number, number_detail.type, number_detail.is_primary)
            cache.add_associated_number(contact_id, number)

        for email, email_detail in record.emails.items():
            if cache.has_associated_email(contact_id, email):
                continue
            self.store.add_email(contact_id, email, email_detail.type, email_detail.is_primary)
            cache.add_associated_email(contact_id, email)

        for address, address_detail in record.addresses.items():
            if cache.has_associated_address(contact_id, address):
                continue
            self.store.add_address(contact_id, address, address_detail.type)
            cache.add_associated_address(contact_id, address)

        for organisation, org_detail in record.organisations.items():
            if cache.has_associated_organisation(contact_id, organisation):
                continue
            self.store.add_organisation(
                contact_id, organisation, org_detail.title, org_detail.is_primary
            )
            cache.add_associated_organisation(contact_id, organisation)

        for note in record.notes:
            if cache.has_associated_note(contact_id, note):
                continue
            self.store.add_note(contact_id, note)
            cache.add_associated_note(contact_id, note)

        if record.birthday is not None and not cache.has_associated_birthday(
            contact_id, record.birthday
        ):
            self.store.add_birthday(contact_id, record.birthday)
            cache.add_associated_birthday(contact_id, record.birthday)


__all__ = [
    "ImportAction",
    "ImportEvent",
    "ImportSummary",
    "Importer",
    "MergeAction",
    "collect_vcf_paths",
]
