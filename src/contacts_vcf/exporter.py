from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ContactNotIdentifiableError
from .interaction import (
    CancellationToken,
    ImportPrompter,
    LoggingProgressReporter,
    NonInteractivePrompter,
    ProgressReporter,
    RunStatus,
)
from .store import ContactStore
from .writer import VcardWriter

logger = logging.getLogger(__name__)


@dataclass
class ExportSummary:
    status: RunStatus = RunStatus.COMPLETED
    written: int = 0
    skipped: int = 0


class Exporter:
    """Writes every contact in a store through a :class:`VcardWriter`."""

    def __init__(
        self,
        store: ContactStore,
        writer: VcardWriter,
        progress: Optional[ProgressReporter] = None,
        cancel: Optional[CancellationToken] = None,
        prompter: Optional[ImportPrompter] = None,
    ):
        self.store = store
        self.writer = writer
        self.progress = progress or LoggingProgressReporter()
        self.cancel = cancel or CancellationToken()
        self.prompter = prompter or NonInteractivePrompter()

    def run(self) -> ExportSummary:
        summary = ExportSummary()
        total = self.store.count_contacts()
        if total == 0:
            self.prompter.show_error("There are no contacts to export")
            summary.status = RunStatus.ABORTED
            return summary

        self.progress.report_message(f"Exporting {total} contact(s)")
        for index, contact_id in enumerate(self.store.iter_contacts()):
            if self.cancel.is_cancelled():
                logger.info("Export cancelled after %d contact(s)", summary.written)
                summary.status = RunStatus.ABORTED
                return summary
            self.progress.report_progress(index, total)

            try:
                record = self.store.read_contact(contact_id).finalize()
            except ContactNotIdentifiableError:
                logger.info("Skipping contact %s with nothing to identify it by", contact_id)
                summary.skipped += 1
                continue

            try:
                written = self.writer.write_contact(record)
            except OSError as exc:
                self.prompter.show_error(f"Unable to write contact: {exc}")
                summary.status = RunStatus.ABORTED
                return summary
            if written:
                summary.written += 1
            else:
                summary.skipped += 1

        self.progress.report_progress(total, total)
        logger.info("Exported %d contact(s), skipped %d", summary.written, summary.skipped)
        return summary


__all__ = ["ExportSummary", "Exporter"]
