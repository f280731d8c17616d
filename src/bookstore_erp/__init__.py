"""Bookstore ERP: sales, credit collection, shipping and stock for a book distributor.

The package keeps its records in a single openpyxl workbook. Every module logs
through the ``bookstore_erp`` logger configured here, which writes to a rotating
file under ``.logs/`` and mirrors records to stderr. Set
``BOOKSTORE_ERP_LOG_LEVEL`` (e.g. ``DEBUG``) to change the verbosity.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / ".logs"
LOG_FILE = LOG_DIR / "bookstore_erp.log"
LOG_LEVEL_ENV = "BOOKSTORE_ERP_LOG_LEVEL"


def _resolve_level() -> int:
    name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _build_bookstore_logger() -> logging.Logger:
    """Attach the rotating ledger log and the stderr handler once per process."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = _resolve_level()
    logger.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        ledger_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        ledger_handler.setLevel(level)
        ledger_handler.setFormatter(formatter)
        logger.addHandler(ledger_handler)
    except OSError as exc:
        # Read-only installs still get console logging.
        print(f"Warning: bookstore log file unavailable at '{LOG_FILE}': {exc}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _build_bookstore_logger()
log.debug("Bookstore ERP %s logging ready (level %s)", __version__, logging.getLevelName(log.level))
