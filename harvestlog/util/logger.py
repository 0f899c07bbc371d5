"""
Shared logger for the harvestlog package.

- get_logger(): the `harvestlog` logger (or a child when a name is given).
- Handler/format are attached once; level comes from HARVESTLOG_LOG_LEVEL
  (default INFO).
"""

import logging
import os
from typing import Optional

LOGGER_NAME = "harvestlog"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure(root: logging.Logger) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    level = os.getenv("HARVESTLOG_LOG_LEVEL", "INFO").upper()
    root.setLevel(getattr(logging, level, logging.INFO))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        _configure(root)
    return root.getChild(name) if name else root
