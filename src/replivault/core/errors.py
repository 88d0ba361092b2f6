# Core - Error Taxonomy
#
# Every failure the vault surfaces derives from VaultError so callers can
# catch one family. Backend-level failures are wrapped with the operation
# and backend label; several backend failures in one operation are
# reported together through BackendFailures.

from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from ..vault.models import BackendTarget


class VaultError(Exception):
    """Base exception for all vault failures."""


class IOFailure(VaultError):
    """Raised when a local file cannot be read or written."""


class SerializationFailure(VaultError):
    """Raised when a snapshot or config document is malformed."""


class CryptoFailure(VaultError):
    """Raised when authenticated decryption fails.

    Wrong passphrase and corrupted ciphertext are deliberately
    indistinguishable.
    """


class NetworkFailure(VaultError):
    """Raised when the remote API is unreachable, times out, or errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        timeout: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.timeout = timeout


class ConflictFailure(VaultError):
    """Raised when the remote rejects a write because its revision moved."""


class NotFoundFailure(VaultError):
    """Raised when an operation references an unknown record or backend."""


class ConfigError(VaultError):
    """Raised when the vault configuration is invalid."""


class BackendFailures(VaultError):
    """Aggregated per-backend failures from a single operation.

    Backends that are not listed in ``failures`` completed successfully;
    their writes and the in-memory cache mutation are kept.
    """

    def __init__(self, operation: str, failures: Dict["BackendTarget", VaultError]):
        self.operation = operation
        self.failures = dict(failures)
        verb = "load from" if operation in ("initialize", "reload", "update_config") else "save to"
        parts = [
            f"failed to {verb} {target.label}: {error}"
            for target, error in self.failures.items()
        ]
        super().__init__(f"{operation}: " + "; ".join(parts))

    @property
    def targets(self):
        return list(self.failures)
