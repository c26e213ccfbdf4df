#!/usr/bin/env python3
"""
ErrorHandler - Centralized exception handling for the ledger shell

The engine raises; the shell decides what the operator sees. Each failure is
filed under a category, repeats inside a time window are folded into a
counter, and what is left is routed to the alert queue by severity and
written to the "ledger_system.errors" log.
"""

import logging
import traceback
import uuid
from collections import defaultdict, deque
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from ledger_system.core.hashchain import MiningCancelledError, MiningExhaustedError

RECENT_ERROR_LIMIT = 100
MESSAGE_LIMIT = 100


class ErrorSeverity(Enum):
    """What the shell does after an error"""
    CRITICAL_STOP = "critical_stop"       # Re-raise to the caller
    HIGH_DEGRADE = "high_degrade"         # Operation failed, ledger still usable
    MEDIUM_ALERT = "medium_alert"         # Operator should know, show in alerts
    LOW_DEBUG = "low_debug"               # Recorded, shown only in debug mode


class ErrorCategory(Enum):
    """Where in the ledger the error came from"""
    MINING = "mining"                     # Seed mining, attempt cap, cancellation
    CHAIN_VALIDATION = "chain_validation" # Broken links found by verification
    REPLICATION = "replication"           # Appending an approved record everywhere
    QUERY = "query"                       # Owner lookups
    CONFIGURATION = "configuration"       # LEDGER_* settings
    UI_RENDERING = "ui"                   # Drawing chains and panels
    UI_INPUT = "ui_input"                 # Operator typed something unusable


SEVERITY_STYLES = {
    ErrorSeverity.CRITICAL_STOP: "red bold",
    ErrorSeverity.HIGH_DEGRADE: "red",
    ErrorSeverity.MEDIUM_ALERT: "yellow",
    ErrorSeverity.LOW_DEBUG: "dim yellow",
}


def _mining_details(error: Exception) -> Dict[str, Any]:
    """Attempt counts from a mining failure, or from the one behind an abort."""
    cause = error if isinstance(error, (MiningExhaustedError, MiningCancelledError)) else error.__cause__
    if isinstance(cause, MiningExhaustedError):
        return {'attempts': cause.attempts, 'difficulty': cause.difficulty.hex().upper()}
    if isinstance(cause, MiningCancelledError):
        return {'attempts': cause.attempts, 'cancelled': True}
    return {}


class ErrorHandler:
    """Routes shell-side failures to the operator and the log"""

    def __init__(self, console=None, debug_mode=False):
        self.console = console
        self.debug_mode = debug_mode

        self.error_counts = defaultdict(int)        # "category_Type" -> occurrences
        self.suppressed_errors = defaultdict(int)   # "category_Type" -> folded repeats
        self.last_error_time: Dict[str, datetime] = {}
        self.recent_errors = deque(maxlen=RECENT_ERROR_LIMIT)

        self.alert_queue: List[str] = []
        self.critical_alerts: List[str] = []

        self.logger = logging.getLogger('ledger_system.errors')

    def handle_error(self,
                     error: Exception,
                     category: ErrorCategory,
                     severity: ErrorSeverity,
                     context: str = "",
                     operation: str = "",
                     suppress_duplicate_minutes: int = 5) -> bool:
        """
        File one error.

        Args:
            error: The exception, raised or just constructed
            category: Ledger area it came from
            severity: Decides routing and whether it propagates
            context: What it was about (provider name, record ref)
            operation: Shell action that was running
            suppress_duplicate_minutes: Fold repeats of the same category and
                type inside this window into a counter (0 disables)

        Returns:
            True when the caller should swallow the error, False to re-raise
        """
        error_key = f"{category.value}_{type(error).__name__}"
        now = datetime.now()
        self.error_counts[error_key] += 1

        last = self.last_error_time.get(error_key)
        window = timedelta(minutes=suppress_duplicate_minutes)
        if last is not None and now - last < window:
            self.suppressed_errors[error_key] += 1
            return severity != ErrorSeverity.CRITICAL_STOP
        self.last_error_time[error_key] = now

        message = self._describe(error, error_key, context, operation)
        self._route(message, severity)

        record = {
            'error_id': str(uuid.uuid4()),
            'timestamp': now,
            'category': category.value,
            'severity': severity.value,
            'error_type': type(error).__name__,
            'message': str(error),
            'context': context,
            'operation': operation,
        }
        record.update(_mining_details(error))
        self.recent_errors.append(record)

        if self.debug_mode and self.console and severity == ErrorSeverity.CRITICAL_STOP:
            self.console.print(f"[red dim]Traceback:\n{traceback.format_exc()}[/red dim]")

        self.logger.error(f"{category.value}: {message}", exc_info=self.debug_mode)

        return severity != ErrorSeverity.CRITICAL_STOP

    def _describe(self, error: Exception, error_key: str, context: str, operation: str) -> str:
        text = str(error)
        if len(text) > MESSAGE_LIMIT:
            text = text[:MESSAGE_LIMIT] + "..."
        if context:
            text = f"{context}: {text}"
        if operation:
            text = f"During {operation} - {text}"

        count = self.error_counts[error_key]
        if count > 1:
            text += f" (#{count})"

        folded = self.suppressed_errors.pop(error_key, 0)
        if folded:
            text += f" [+{folded} suppressed]"
        return text

    def _route(self, message: str, severity: ErrorSeverity):
        style = SEVERITY_STYLES[severity]
        alert = f"[{style}]{message}[/{style}]"

        if severity == ErrorSeverity.CRITICAL_STOP:
            self.critical_alerts.append(alert)
            if self.console:
                self.console.print(alert)
        elif severity != ErrorSeverity.LOW_DEBUG or self.debug_mode:
            self.alert_queue.append(alert)

    def get_alerts_for_ui(self, max_alerts: int = 8) -> List[str]:
        """Drain queued alerts, critical first, keeping the newest max_alerts"""
        alerts = (self.critical_alerts + self.alert_queue)[-max_alerts:]
        self.critical_alerts = []
        self.alert_queue = []
        return alerts

    def create_context_manager(self, category: ErrorCategory, severity: ErrorSeverity,
                               operation: str = "", context: str = ""):
        """Wrap one shell action so its errors are filed instead of raised"""
        return ErrorContext(self, category, severity, operation, context)


class ErrorContext:
    """Context manager for handling errors in specific operations"""

    def __init__(self, error_handler: ErrorHandler, category: ErrorCategory,
                 severity: ErrorSeverity, operation: str = "", context: str = ""):
        self.error_handler = error_handler
        self.category = category
        self.severity = severity
        self.operation = operation
        self.context = context

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> Optional[bool]:
        if exc_type is None or not issubclass(exc_type, Exception):
            return False
        return self.error_handler.handle_error(
            error=exc_val,
            category=self.category,
            severity=self.severity,
            context=self.context,
            operation=self.operation
        )
