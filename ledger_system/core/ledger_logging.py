"""
Section loggers for the ledger.

Each section logs to its own named logger under "ledger_system" and stamps
messages with an id like "REPL-002-20250101120000" so console output and
log files can be cross-referenced.
Handlers are installed only by configure_logging(), never at import.
"""
from enum import Enum
import logging
from datetime import datetime
import traceback
from typing import Optional, Dict, Any

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class LedgerSection(Enum):
    MINING = "MINE"
    CHAIN = "CHAIN"
    REPLICATION = "REPL"
    QUERY = "QUERY"
    SHELL = "SHELL"


class SectionLogger:
    def __init__(self, section: LedgerSection):
        self.section = section
        self.logger = logging.getLogger(f"ledger_system.{section.value.lower()}")

    def _make_id(self, code: str) -> str:
        return f"{self.section.value}-{code}-{datetime.now().strftime('%Y%m%d%H%M%S')}"

    def log_error(self, error_code: str, message: str, context: Optional[Dict[str, Any]] = None):
        """Log an error with section-specific context"""
        error_id = self._make_id(error_code)

        self.logger.error(f"{error_id}: {message}")
        if context:
            self.logger.error(f"Context: {context}")
        tb = traceback.format_exc()
        if not tb.startswith("NoneType: None"):
            self.logger.error(f"Traceback: {tb}")

        return error_id

    def log_warning(self, warning_code: str, message: str, context: Optional[Dict[str, Any]] = None):
        """Log a warning with section-specific context"""
        warning_id = self._make_id(warning_code)

        self.logger.warning(f"{warning_id}: {message}")
        if context:
            self.logger.warning(f"Context: {context}")

        return warning_id

    def log_info(self, info_code: str, message: str, context: Optional[Dict[str, Any]] = None):
        """Log an info message with section-specific context"""
        info_id = self._make_id(info_code)

        self.logger.info(f"{info_id}: {message}")
        if context:
            self.logger.info(f"Context: {context}")

        return info_id


# Section-specific loggers
mining_logger = SectionLogger(LedgerSection.MINING)
chain_logger = SectionLogger(LedgerSection.CHAIN)
replication_logger = SectionLogger(LedgerSection.REPLICATION)
query_logger = SectionLogger(LedgerSection.QUERY)
shell_logger = SectionLogger(LedgerSection.SHELL)


# Error code constants
class LedgerCodes:
    # Mining
    MINE_EXHAUSTED = "001"
    MINE_CANCELLED = "002"

    # Chain integrity
    CHAIN_INVALID = "001"
    CHAIN_TAIL_MOVED = "002"

    # Replication
    REPL_APPROVED = "001"
    REPL_REJECTED = "002"
    REPL_COMMITTED = "003"
    REPL_ABORTED = "004"

    # Queries
    QUERY_EMPTY = "001"

    # Shell
    SHELL_STARTED = "001"


def configure_logging(config=None) -> logging.Logger:
    """
    Install a single handler on the "ledger_system" logger.

    Writes to config.LOG_FILE when set, otherwise to stderr. Safe to call
    more than once; existing handlers are replaced.
    """
    level_name = getattr(config, 'LOG_LEVEL', 'INFO') if config else 'INFO'
    log_file = getattr(config, 'LOG_FILE', '') if config else ''

    root = logging.getLogger("ledger_system")
    root.setLevel(getattr(logging, str(level_name).upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    return root
