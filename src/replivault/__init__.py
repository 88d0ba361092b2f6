# Replivault - Main Package
#
# Local-first credential vault. Records are kept in one snapshot per
# storage backend (a local JSON file and, optionally, a JSON file in a
# hosted repository); every write goes to all of them.

__version__ = "0.1.0"
__author__ = "Replivault Team"
__description__ = "Local-first credential vault with write-through replication"

from .core import (
    BackendFailures,
    VaultConfig,
    VaultError,
    get_audit_logger,
)
from .vault import (
    BackendTarget,
    RecordRequest,
    RecordUpdate,
    VaultManager,
)

__all__ = [
    "__version__",
    "VaultManager",
    "VaultConfig",
    "BackendTarget",
    "RecordRequest",
    "RecordUpdate",
    "VaultError",
    "BackendFailures",
    "get_audit_logger",
]
