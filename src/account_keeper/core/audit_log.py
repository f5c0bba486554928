# Account Keeper - Audit Logging
#
# Append-only audit trail for every operation that changes saved accounts
# or moves them in or out of an encrypted bundle.
# Events carry timestamps, event IDs and OS user context.  Passwords and
# account payloads are never logged.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "account_keeper.audit"


class EventType(str, Enum):
    """Types of events recorded in the audit log."""
    # Backup lifecycle
    BACKUP_CREATED = "backup.created"
    BACKUP_DELETED = "backup.deleted"
    BACKUPS_CLEARED = "backup.cleared"
    ACCOUNT_SWITCHED = "account.switched"

    # Bundle transfer
    BUNDLE_EXPORTED = "bundle.exported"
    BUNDLE_IMPORTED = "bundle.imported"
    BUNDLE_IMPORT_FAILED = "bundle.import.failed"


class EventSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"


class AuditLogger:
    """
    Append-only, structured JSON audit logger.

    One file per day (``audit_YYYY-MM-DD.log``) under ``log_dir``.  Each line
    is a JSON object rendered by structlog.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._stdlib_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._stdlib_logger.setLevel(logging.INFO)
        self._stdlib_logger.propagate = False
        self._setup_file_handler()

        self.logger = structlog.wrap_logger(
            self._stdlib_logger,
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
        )

    def _setup_file_handler(self):
        """Attach a daily file handler, replacing any from a previous instance."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        for handler in list(self._stdlib_logger.handlers):
            self._stdlib_logger.removeHandler(handler)
            handler.close()

        file_handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))  # structlog handles formatting
        self._stdlib_logger.addHandler(file_handler)

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append one event.

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        self.logger.info(
            "audit_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            recorded_at=datetime.now(timezone.utc).isoformat(),
            details=details or {},
            user_context=self._get_default_user_context(),
        )
        return event_id

    def close(self):
        for handler in list(self._stdlib_logger.handlers):
            self._stdlib_logger.removeHandler(handler)
            handler.close()

    @staticmethod
    def _get_default_user_context() -> Dict[str, Any]:
        """OS user, hostname and platform."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(log_dir: Path) -> AuditLogger:
    """Replace the global audit logger with one writing to ``log_dir``."""
    global _audit_logger
    if _audit_logger is not None:
        _audit_logger.close()
    _audit_logger = AuditLogger(log_dir=log_dir)
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> Optional[str]:
    """
    Best-effort audit logging: a failure to write is logged, never raised.

    Usage:
        log_security_event(
            EventType.BACKUP_DELETED,
            EventSeverity.INFO,
            "Backup deleted",
            details={"name": "alice@example.com"},
        )
    """
    try:
        return get_audit_logger().log_event(event_type, severity, message, **kwargs)
    except Exception:
        logger.warning("Audit log failed: %s", message, exc_info=True)
        return None
