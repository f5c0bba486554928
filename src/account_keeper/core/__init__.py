# Account Keeper - Core Module
#
# Shared functionality used by the bundle and backup modules:
# - Configuration
# - Audit logging

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
    log_security_event,
)
from .config import Settings

__all__ = [
    # Configuration
    "Settings",
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
    "log_security_event",
]
