# Core - Audit Logging
#
# Append-only audit trail for vault activity: records added, updated,
# deleted and accessed, backend saves and failures, configuration swaps.
# Events are rendered as JSON lines by structlog into a daily log file.
# Secrets and passphrases must never appear in event details.

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


class EventType(str, Enum):
    """Types of vault events that can be logged."""

    VAULT_OPENED = "vault.opened"
    VAULT_CONFIG_CHANGED = "vault.config.changed"
    VAULT_PASSPHRASE_SET = "vault.passphrase.set"
    VAULT_PASSPHRASE_REJECTED = "vault.passphrase.rejected"

    RECORD_ADDED = "vault.record.added"
    RECORD_UPDATED = "vault.record.updated"
    RECORD_DELETED = "vault.record.deleted"
    RECORD_ACCESSED = "vault.record.accessed"
    RECORD_DECRYPT_FAILED = "vault.record.decrypt_failed"

    BACKEND_LOADED = "backend.loaded"
    BACKEND_LOAD_FAILED = "backend.load.failed"
    BACKEND_SAVED = "backend.saved"
    BACKEND_SAVE_FAILED = "backend.save.failed"
    BACKEND_CONFLICT = "backend.conflict"


class EventSeverity(str, Enum):
    """
    Severity levels for vault events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual, e.g. a rejected passphrase
    - ALERT: A backend diverged from the cache (failed save, conflict)
    - CRITICAL: The vault could not be opened at all
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for vault events.

    Features:
    - Structured JSON logging via structlog
    - Automatic timestamp and event ID
    - OS user / host context capture
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ~/.replivault/audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path.home() / ".replivault" / "audit_logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()

        self.logger = structlog.get_logger("replivault.audit")

    def _setup_file_handler(self):
        """Attach a handler for today's audit file to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger = logging.getLogger("replivault.audit")
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False  # keep audit JSON off the console
        self._file_handler = file_handler

    def close(self) -> None:
        """Detach and close the file handler."""
        logging.getLogger("replivault.audit").removeHandler(self._file_handler)
        self._file_handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log a vault event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets!)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "user_context": self._get_default_user_context(),
        }

        self.logger.info("vault_event", **event_data)

        return event_id

    def log_backend_event(
        self,
        event_type: EventType,
        target: str,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Log an event about one storage backend."""
        event_details = dict(details or {})
        event_details["backend"] = target
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"{target}: {message}",
            details=event_details,
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
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
