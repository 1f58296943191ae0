from __future__ import annotations

import argparse
import csv
import logging
from typing import Optional

import pandas as pd

from .common import load_config
from .config_loader import ToolConfig
from .importer import ImportSummary, Importer, collect_vcf_paths
from .interaction import (
    ImportPrompter,
    MergeAction,
    MergeDecision,
    NonInteractivePrompter,
    RunStatus,
)
from .logging_utils import configure_logging
from .store import CsvContactStore

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["source", "line", "label", "action", "detail"]

_MERGE_ANSWERS = {
    "k": MergeAction.KEEP,
    "o": MergeAction.OVERWRITE,
    "m": MergeAction.MERGE,
}


class ConsolePrompter:
    """Asks on the terminal; a capitalised merge answer (K/O/M) applies to all later contacts."""

    def show_error(self, message: str) -> None:
        print(f"Error: {message}")

    def continue_or_abort(self, message: str) -> bool:
        answer = input(f"{message}\nContinue importing? [Y/n] ").strip().lower()
        return answer in ("", "y", "yes")

    def merge_decision(self, label: str) -> MergeDecision:
        while True:
            answer = input(
                f"{label} already exists: keep, overwrite or merge? "
                "[k/o/m, capital letter for all] "
            ).strip()
            action = _MERGE_ANSWERS.get(answer.lower())
            if action is not None:
                return MergeDecision(action, always=answer.isupper())


def _build_prompter(config: ToolConfig) -> ImportPrompter:
    action = MergeAction.from_setting(config.merge.setting)
    if action is MergeAction.PROMPT:
        return ConsolePrompter()
    return NonInteractivePrompter(merge_action=action)


def write_report(summary: ImportSummary, path: str) -> None:
    df = pd.DataFrame([event.to_dict() for event in summary.events], columns=REPORT_COLUMNS)
    df.to_csv(path, index=False, encoding="utf-8", quoting=csv.QUOTE_ALL)


def build(
    args: argparse.Namespace,
    config: Optional[ToolConfig] = None,
    prompter: Optional[ImportPrompter] = None,
) -> ImportSummary:
    config = config or load_config(args)
    if not config.inputs.vcf:
        raise ValueError("No vCard input given; use --vcf or inputs.vcf in the config")
    if not config.inputs.store_csv:
        raise ValueError("No contact store given; use --store-csv or inputs.store_csv in the config")

    paths = collect_vcf_paths(config.inputs.vcf)
    if not paths:
        logger.warning("No .vcf files found in %s", config.inputs.vcf)

    store = CsvContactStore(config.inputs.store_csv)
    importer = Importer(store, config, prompter=prompter or _build_prompter(config))
    importer.populate_cache()
    summary = importer.import_paths(paths)

    # contacts written before an abort stay imported
    store.save()

    out_dir = config.outputs.dir
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / "import_report.csv"
    write_report(summary, str(report_path))
    logger.info("Saved: %s", report_path)
    return summary


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Import vCard files into a CSV contact store.")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--vcf", type=str, default=None, help="vCard file or directory of .vcf files")
    parser.add_argument("--store-csv", type=str, default=None)
    parser.add_argument(
        "--merge-setting",
        type=str,
        default=None,
        choices=[action.value for action in MergeAction],
        help="What to do with contacts that already exist",
    )
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args(argv)

    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    summary = build(args, config=config)
    print(
        f"Import {summary.status.value}: {summary.created} created, {summary.merged} merged, "
        f"{summary.overwritten} overwritten, {summary.skipped} skipped"
    )
    return 0 if summary.status is RunStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
