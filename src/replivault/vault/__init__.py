# Vault Module - Encrypted Credential Records
#
# - Argon2id + AES-256-GCM cipher
# - Record / Snapshot model
# - Per-backend snapshot cache
# - VaultManager (write-through to every enabled backend)

from .cache import SnapshotCache
from .encryption import EncryptionService, KdfParams
from .generator import PasswordOptions, generate_password
from .models import (
    BackendTarget,
    EncryptedBlob,
    Record,
    RecordRequest,
    RecordUpdate,
    Snapshot,
    SnapshotMetadata,
)
from .vault_manager import BackendStatus, VaultManager

__all__ = [
    "VaultManager",
    "BackendStatus",
    "SnapshotCache",
    "EncryptionService",
    "KdfParams",
    "PasswordOptions",
    "generate_password",
    "BackendTarget",
    "EncryptedBlob",
    "Record",
    "RecordRequest",
    "RecordUpdate",
    "Snapshot",
    "SnapshotMetadata",
]
