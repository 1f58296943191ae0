from __future__ import annotations

import logging
import os
from typing import Optional

from .config_loader import ToolConfig

LOG_LEVEL_ENV = "CONTACTS_VCF_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LEVEL = "WARNING"


def log_level_for(config: ToolConfig, level_override: Optional[str] = None) -> int:
    """
    Numeric level for a run. The environment variable wins over the CLI flag,
    which wins over the config file. Unknown names fall back to WARNING.
    """
    name = os.getenv(LOG_LEVEL_ENV) or level_override or config.logging.level or DEFAULT_LEVEL
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name)
    if isinstance(level, int):
        return level
    return getattr(logging, DEFAULT_LEVEL)


def configure_logging(config: ToolConfig, level_override: Optional[str] = None) -> int:
    level = log_level_for(config, level_override)
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    return level
