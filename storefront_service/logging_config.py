"""
logging_config.py — Logging Setup for the Storefront Service

All modules log through the standard `logging` package with one shared format.
Two storefront-specific additions sit on top of that:

    • A dedicated `storefront_service.reconciliation` logger. Records written to
      it also land in RECONCILIATION_LOG_FILE, so support can work through
      captured-but-uncommitted payments without searching the main log.
    • `CheckoutLogAdapter`, which prefixes every line of one checkout session
      with `[Checkout: <id>]`.
"""

import logging
import os
import sys

from .config import LOG_FILE, LOG_LEVEL, RECONCILIATION_LOG_FILE

LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'
RECONCILIATION_LOGGER = "storefront_service.reconciliation"


def setup_logging(log_file=LOG_FILE, reconciliation_file=RECONCILIATION_LOG_FILE, level=LOG_LEVEL):
    """
    Configures the root logger and the reconciliation log.

    Args:
        log_file (str): Main log file, written alongside stdout.
        reconciliation_file (Optional[str]): Extra file for reconciliation records;
            None disables it.
        level (str): Root log level name, e.g. "INFO" or "DEBUG".
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    if reconciliation_file:
        reconciliation = logging.getLogger(RECONCILIATION_LOGGER)
        if not any(getattr(h, "baseFilename", None) == os.path.abspath(reconciliation_file)
                   for h in reconciliation.handlers):
            handler = logging.FileHandler(reconciliation_file)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            reconciliation.addHandler(handler)


def get_logger(name):
    return logging.getLogger(name)


def reconciliation_logger():
    """Logger for payments that were captured but have no order."""
    return logging.getLogger(RECONCILIATION_LOGGER)


class CheckoutLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the (shortened) checkout session id."""

    def __init__(self, logger, session_id):
        super().__init__(logger, {"session_id": session_id})
        self.prefix = f"[Checkout: {session_id[:8]}]"

    def process(self, msg, kwargs):
        return f"{self.prefix} {msg}", kwargs
