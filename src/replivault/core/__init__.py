# Core Module - Shared Utilities
#
# - Error taxonomy
# - Audit logging
# - Configuration
# - Reader/writer lock

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
)
from .config import (
    LocalStorageConfig,
    RemoteStorageConfig,
    Settings,
    VaultConfig,
)
from .errors import (
    BackendFailures,
    ConfigError,
    ConflictFailure,
    CryptoFailure,
    IOFailure,
    NetworkFailure,
    NotFoundFailure,
    SerializationFailure,
    VaultError,
)
from .rwlock import ReadWriteLock

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    # Configuration
    "VaultConfig",
    "LocalStorageConfig",
    "RemoteStorageConfig",
    "Settings",
    # Errors
    "VaultError",
    "IOFailure",
    "SerializationFailure",
    "CryptoFailure",
    "NetworkFailure",
    "ConflictFailure",
    "NotFoundFailure",
    "ConfigError",
    "BackendFailures",
    # Concurrency
    "ReadWriteLock",
]
