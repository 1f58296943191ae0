from __future__ import annotations

import uuid
from typing import Any

import pandas as pd

from .cache import CacheIdentifier, CacheIdentifierType, ContactsCache
from .codec import (
    escape_value,
    fold_line,
    is_valid_date_and_or_time,
    unescape_value,
    unfold_lines,
)
from .config_loader import ToolConfig, VcardConfig, load_tool_config
from .errors import (
    ContactCreationError,
    ContactNotIdentifiableError,
    ContactsVcfError,
    ParseError,
    SkipImportError,
)
from .models import ContactBuilder, ContactRecord, DetailType
from .parser import VcardReader, count_vcards, parse_vcards
from .writer import VcardWriter, format_vcard

__all__ = [
    "CacheIdentifier",
    "CacheIdentifierType",
    "ContactBuilder",
    "ContactCreationError",
    "ContactNotIdentifiableError",
    "ContactRecord",
    "ContactsCache",
    "ContactsVcfError",
    "DetailType",
    "ParseError",
    "SkipImportError",
    "ToolConfig",
    "VcardConfig",
    "VcardReader",
    "VcardWriter",
    "count_vcards",
    "deterministic_uuid",
    "escape_value",
    "fold_line",
    "format_vcard",
    "is_valid_date_and_or_time",
    "load_config",
    "parse_vcards",
    "safe_get",
    "unescape_value",
    "unfold_lines",
]


def deterministic_uuid(namespace_str: str) -> str:
    namespace = uuid.UUID("12345678-1234-5678-1234-567812345678")
    return str(uuid.uuid5(namespace, namespace_str))


def _coerce_to_string(value: Any) -> str:
    if pd.isna(value):
        return ""
    return str(value or "").strip()


def safe_get(row: Any, key: str) -> str:
    try:
        return _coerce_to_string(row.get(key, ""))
    except (AttributeError, KeyError, TypeError):
        return ""


def load_config(args: Any) -> ToolConfig:
    return load_tool_config(args)
