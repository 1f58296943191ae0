from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore[import-untyped]

MERGE_SETTINGS = ("keep", "overwrite", "merge", "prompt")


@dataclass
class InputsConfig:
    vcf: Optional[str] = None
    store_csv: Optional[str] = None


@dataclass
class OutputsConfig:
    dir: Path = field(default_factory=Path.cwd)
    vcf_name: str = "contacts.vcf"


@dataclass
class VcardConfig:
    groups_enabled: bool = False


@dataclass
class MergeConfig:
    setting: str = "prompt"


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class ToolConfig:
    inputs: InputsConfig = field(default_factory=InputsConfig)
    outputs: OutputsConfig = field(default_factory=OutputsConfig)
    vcard: VcardConfig = field(default_factory=VcardConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _load_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _resolve_merge_setting(value: Optional[str]) -> str:
    setting = (value or "prompt").strip().lower()
    if setting not in MERGE_SETTINGS:
        raise ValueError(
            f"unknown merge setting {value!r}; expected one of {', '.join(MERGE_SETTINGS)}"
        )
    return setting


def load_tool_config(args: argparse.Namespace) -> ToolConfig:
    config_data = _load_yaml(getattr(args, "config", None))
    inputs_cfg = config_data.get("inputs", {}) or {}
    outputs_cfg = config_data.get("outputs", {}) or {}
    vcard_cfg = config_data.get("vcard", {}) or {}
    merge_cfg = config_data.get("merge", {}) or {}
    logging_cfg = config_data.get("logging", {}) or {}

    inputs = InputsConfig(
        vcf=getattr(args, "vcf", None) or inputs_cfg.get("vcf"),
        store_csv=getattr(args, "store_csv", None) or inputs_cfg.get("store_csv"),
    )

    outputs = OutputsConfig(
        dir=Path(getattr(args, "out_dir", None) or outputs_cfg.get("dir") or os.getcwd()),
        vcf_name=getattr(args, "vcf_name", None) or outputs_cfg.get("vcf_name", "contacts.vcf"),
    )

    vcard = VcardConfig(
        groups_enabled=(
            bool(vcard_cfg.get("groups_enabled", False))
            if getattr(args, "groups_enabled", None) is None
            else bool(getattr(args, "groups_enabled"))
        ),
    )

    merge = MergeConfig(
        setting=_resolve_merge_setting(
            getattr(args, "merge_setting", None) or merge_cfg.get("setting")
        ),
    )

    arg_level = getattr(args, "log_level", None)
    effective_level = (arg_level or logging_cfg.get("level") or "WARNING").upper()

    return ToolConfig(
        inputs=inputs,
        outputs=outputs,
        vcard=vcard,
        merge=merge,
        logging=LoggingConfig(level=effective_level),
    )
