# Vault - Encryption Service
#
# Passphrase -> encryption key (Argon2id, fresh salt per encryption)
# Secret encryption (AES-256-GCM, fresh nonce per encryption)
# Salt and nonce are stored verbatim beside the ciphertext and reused
# unmodified at decryption time.

import os
from dataclasses import dataclass
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.errors import CryptoFailure
from .models import EncryptedBlob

# Single message for every decryption failure: do not reveal whether the
# passphrase was wrong or the data was damaged.
DECRYPT_FAILED_MESSAGE = "decryption failed: wrong passphrase or corrupted data"


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters (OWASP baseline: t=3, m=64 MiB, p=4)."""

    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4


class EncryptionService:
    """
    Handles encryption/decryption of the secret field of a record.

    Flow:
    1. Caller supplies a passphrase with every operation (never stored)
    2. Argon2id derives a 256-bit key from passphrase + random salt
    3. AES-256-GCM encrypts/decrypts the secret
    4. Every encryption gets its own salt and nonce
    """

    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 16  # 128-bit salt
    MIN_SALT_LENGTH = 8  # Argon2 minimum
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    TAG_LENGTH = 16

    def __init__(self, kdf_params: Optional[KdfParams] = None):
        self.kdf_params = kdf_params or KdfParams()
        self._hasher = PasswordHasher(
            time_cost=self.kdf_params.time_cost,
            memory_cost=self.kdf_params.memory_cost,
            parallelism=self.kdf_params.parallelism,
            hash_len=self.KEY_LENGTH,
            salt_len=self.SALT_LENGTH,
        )

    def derive_key(self, passphrase: str, salt: bytes) -> bytes:
        """
        Derive an encryption key from a passphrase using Argon2id.

        Args:
            passphrase: User's passphrase
            salt: Salt stored with the encrypted blob

        Returns:
            256-bit encryption key
        """
        return hash_secret_raw(
            secret=passphrase.encode("utf-8"),
            salt=salt,
            time_cost=self.kdf_params.time_cost,
            memory_cost=self.kdf_params.memory_cost,
            parallelism=self.kdf_params.parallelism,
            hash_len=self.KEY_LENGTH,
            type=Type.ID,
        )

    @staticmethod
    def generate_salt() -> bytes:
        """Generate cryptographically random salt."""
        return os.urandom(EncryptionService.SALT_LENGTH)

    def encrypt(self, plaintext: str, passphrase: str) -> EncryptedBlob:
        """
        Encrypt plaintext under a key derived from ``passphrase``.

        Returns:
            EncryptedBlob with ciphertext (tag appended), nonce and salt.
            All three are needed for decryption.

        Raises:
            ValueError: If the passphrase is empty
        """
        if not passphrase:
            raise ValueError("passphrase must not be empty")

        salt = self.generate_salt()
        key = self.derive_key(passphrase, salt)
        nonce = os.urandom(self.NONCE_LENGTH)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)

        return EncryptedBlob(ciphertext=ciphertext, nonce=nonce, salt=salt)

    def decrypt(self, blob: EncryptedBlob, passphrase: str) -> str:
        """
        Decrypt an EncryptedBlob with the passphrase used to create it.

        Raises:
            CryptoFailure: If authentication fails for any reason
        """
        if (
            len(blob.nonce) != self.NONCE_LENGTH
            or len(blob.ciphertext) < self.TAG_LENGTH
            or len(blob.salt) < self.MIN_SALT_LENGTH
        ):
            raise CryptoFailure(DECRYPT_FAILED_MESSAGE)

        try:
            key = self.derive_key(passphrase, blob.salt)
        except HashingError:
            raise CryptoFailure(DECRYPT_FAILED_MESSAGE) from None
        try:
            plaintext = AESGCM(key).decrypt(blob.nonce, blob.ciphertext, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError):
            raise CryptoFailure(DECRYPT_FAILED_MESSAGE) from None

    def hash_passphrase(self, passphrase: str) -> str:
        """One-way Argon2id hash (encoded, self-salted) for the master passphrase check."""
        if not passphrase:
            raise ValueError("passphrase must not be empty")
        return self._hasher.hash(passphrase)

    def verify_passphrase(self, passphrase: str, encoded: str) -> bool:
        """
        Check a passphrase against a stored hash.

        This is a convenience gate before attempting decryption; the
        authentication tag checked by decrypt() is the real gate.
        """
        try:
            return self._hasher.verify(encoded, passphrase)
        except (VerificationError, InvalidHashError):
            return False

