from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

from .common import load_config
from .config_loader import ToolConfig
from .exporter import ExportSummary, Exporter
from .interaction import RunStatus
from .logging_utils import configure_logging
from .store import CsvContactStore
from .writer import VcardWriter

logger = logging.getLogger(__name__)


def build(args: argparse.Namespace, config: Optional[ToolConfig] = None) -> ExportSummary:
    config = config or load_config(args)
    if not config.inputs.store_csv:
        raise ValueError("No contact store given; use --store-csv or inputs.store_csv in the config")

    store = CsvContactStore(config.inputs.store_csv)
    out_dir = config.outputs.dir
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / config.outputs.vcf_name

    with VcardWriter(open(out_path, "wb"), config.vcard) as writer:
        summary = Exporter(store, writer).run()

    if summary.status is RunStatus.ABORTED and summary.written == 0:
        # leave nothing behind for an export that never started
        os.remove(out_path)
    else:
        logger.info("Saved: %s", out_path)
    return summary


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Export a CSV contact store as a vCard file.")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--store-csv", type=str, default=None)
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--vcf-name", type=str, default=None)
    parser.add_argument(
        "--groups",
        dest="groups_enabled",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Write X-GROUPS properties",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args(argv)

    config = load_config(args)
    configure_logging(config, level_override=args.log_level)
    summary = build(args, config=config)
    print(f"Export {summary.status.value}: {summary.written} written, {summary.skipped} skipped")
    return 0 if summary.status is RunStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
