# Vault - Vault Manager
#
# Orchestrates the snapshot cache and the set of enabled backends.
#
# Write path (add / update / delete):
#   1. mutate every loaded backend's cached snapshot (once, unconditionally)
#   2. save each touched snapshot through its backend, independently
#   3. collect failures into one BackendFailures naming each backend
# Nothing is rolled back: a backend whose save failed stays behind the
# cache until a later successful save, push() or reload(). Consistency
# is eventual and per backend; backends are never merged.
#
# Concurrency: one reader/writer lock guards config + backend set +
# cache. Mutations hold the exclusive lock across the whole
# mutate-then-persist sequence, including remote round-trips (bounded
# by the client timeout).

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..core.config import VaultConfig
from ..core.errors import BackendFailures, ConflictFailure, CryptoFailure, NotFoundFailure, VaultError
from ..core.rwlock import ReadWriteLock
from ..storage import StorageBackend, build_backends
from .cache import SnapshotCache
from .encryption import EncryptionService, KdfParams
from .generator import PasswordOptions, generate_password
from .models import BackendTarget, EncryptedBlob, Record, RecordRequest, RecordUpdate, Snapshot

logger = logging.getLogger(__name__)

BackendFactory = Callable[[VaultConfig], Mapping[BackendTarget, StorageBackend]]


@dataclass
class BackendStatus:
    """Health summary for one enabled backend."""

    target: BackendTarget
    enabled: bool = True
    loaded: bool = False
    reachable: bool = False
    record_count: int = 0
    last_sync: Optional[datetime] = None
    error: Optional[str] = None
    stats: Dict[str, object] = field(default_factory=dict)


class VaultManager:
    """
    Manages the replicated credential vault.

    Construct once at startup and pass the instance to every caller.

    Security:
    - Only the password field of a record is encrypted (Argon2id + AES-256-GCM)
    - The passphrase is supplied per operation and never stored
    - Optional master passphrase hash gates the UI before any decryption
    - Audit logging for all record access and backend writes
    """

    def __init__(
        self,
        config: VaultConfig,
        encryption: Optional[EncryptionService] = None,
        backend_factory: BackendFactory = build_backends,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            config: Validated vault configuration
            encryption: Cipher; built from config KDF settings if None
            backend_factory: Builds the backend set from a config
            audit_logger: Audit sink; process default if None
        """
        config.validate()
        self._config = config
        self._backend_factory = backend_factory
        self._backends: Mapping[BackendTarget, StorageBackend] = backend_factory(config)
        self._cache = SnapshotCache()
        self._lock = ReadWriteLock()
        self._owns_encryption = encryption is None
        self.encryption = encryption or EncryptionService(_kdf_params(config))
        self.logger = audit_logger or get_audit_logger()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> VaultConfig:
        with self._lock.read_locked():
            return self._config

    @property
    def enabled_targets(self) -> List[BackendTarget]:
        with self._lock.read_locked():
            return [t for t in BackendTarget if t in self._backends]

    @property
    def loaded_targets(self) -> List[BackendTarget]:
        with self._lock.read_locked():
            return self._cache.targets()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Load every enabled backend into its own cache entry.

        Backends are not merged. A backend that fails to load stays
        unloaded until reload() succeeds for it; every write meanwhile
        reports it in BackendFailures.

        Raises:
            BackendFailures: One or more backends failed to load; the
                others are installed and usable.
        """
        with self._lock.write_locked():
            self._cache.clear()
            failures = self._load_all(self._backends, self._cache)
            loaded = self._cache.targets()

        self.logger.log_event(
            event_type=EventType.VAULT_OPENED,
            severity=EventSeverity.INFO if loaded else EventSeverity.CRITICAL,
            message="Vault opened",
            details={
                "loaded": [t.value for t in loaded],
                "failed": [t.value for t in failures],
            },
        )
        if failures:
            raise BackendFailures("initialize", failures)

    def update_config(self, new_config: VaultConfig) -> None:
        """
        Replace the configuration and rebuild the backend set.
        A cipher built from config is rebuilt with the new KDF settings.

        The new backends are built and loaded into a fresh cache, then
        swapped in as one unit; readers never see a half-built set.

        Raises:
            ConfigError: new_config is invalid (nothing changes)
            BackendFailures: Some new backends failed to load (the swap
                still happens; those backends stay unloaded)
        """
        new_config.validate()
        with self._lock.write_locked():
            backends = self._backend_factory(new_config)
            cache = SnapshotCache()
            failures = self._load_all(backends, cache)

            self._config = new_config
            self._backends = backends
            self._cache = cache
            if self._owns_encryption:
                self.encryption = EncryptionService(_kdf_params(new_config))

        self.logger.log_event(
            event_type=EventType.VAULT_CONFIG_CHANGED,
            severity=EventSeverity.INFO,
            message="Vault configuration replaced",
            details={"enabled": [t.value for t in backends], "failed": [t.value for t in failures]},
        )
        if failures:
            raise BackendFailures("update_config", failures)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, request: RecordRequest, passphrase: str) -> Record:
        """
        Encrypt the password and add a new record to every loaded backend.

        An enabled backend that is not loaded gets no write and is
        reported as failed.

        Returns:
            The new record (fresh UUID)

        Raises:
            BackendFailures: Some backends could not be saved. The record
                is still in the cache and in every backend that succeeded.
        """
        secret = self.encryption.encrypt(request.password, passphrase)
        record = Record.create(request, secret)

        with self._lock.write_locked():
            targets = self._writable_targets()
            for target in targets:
                self._cache.insert(target, record)
            failures = self._persist(targets)
            failures.update(self._unloaded_failures("add"))

        self.logger.log_event(
            event_type=EventType.RECORD_ADDED,
            severity=EventSeverity.INFO,
            message=f"Record added: {record.title}",
            details={"record_id": record.id, "backends": [t.value for t in targets]},
        )
        if failures:
            raise BackendFailures("add", failures)
        return record.copy()

    def update(
        self,
        record_id: str,
        changes: RecordUpdate,
        passphrase: Optional[str] = None,
    ) -> Record:
        """
        Update a record in every loaded backend that holds it.

        A new password is encrypted once; every backend stores the same blob.

        Raises:
            ValueError: A new password was given without a passphrase
            NotFoundFailure: No loaded backend holds record_id
            BackendFailures: Some backends could not be saved
        """
        secret: Optional[EncryptedBlob] = None
        if changes.password is not None:
            if not passphrase:
                raise ValueError("a passphrase is required to change the password")
            secret = self.encryption.encrypt(changes.password, passphrase)

        with self._lock.write_locked():
            targets = [t for t in self._writable_targets() if self._cache.contains(t, record_id)]
            if not targets:
                raise NotFoundFailure(f"record {record_id} not found")
            updated: Optional[Record] = None
            for target in targets:
                updated = self._cache.get(target).records[record_id].copy()
                updated.apply(changes, secret)
                self._cache.replace(target, updated)
            result = updated.copy()
            failures = self._persist(targets)
            failures.update(self._unloaded_failures("update"))

        self.logger.log_event(
            event_type=EventType.RECORD_UPDATED,
            severity=EventSeverity.INFO,
            message=f"Record updated: {result.title}",
            details={
                "record_id": record_id,
                "password_changed": secret is not None,
                "backends": [t.value for t in targets],
            },
        )
        if failures:
            raise BackendFailures("update", failures)
        return result

    def delete(self, record_id: str) -> None:
        """
        Remove a record from every loaded backend that holds it.

        Raises:
            NotFoundFailure: No loaded backend holds record_id
            BackendFailures: Some backends could not be saved
        """
        with self._lock.write_locked():
            targets = [t for t in self._writable_targets() if self._cache.contains(t, record_id)]
            if not targets:
                raise NotFoundFailure(f"record {record_id} not found")
            for target in targets:
                self._cache.remove(target, record_id)
            failures = self._persist(targets)
            failures.update(self._unloaded_failures("delete"))

        self.logger.log_event(
            event_type=EventType.RECORD_DELETED,
            severity=EventSeverity.INFO,
            message="Record deleted",
            details={"record_id": record_id, "backends": [t.value for t in targets]},
        )
        if failures:
            raise BackendFailures("delete", failures)

    def push(self, target: BackendTarget) -> None:
        """
        Save the cached snapshot of ``target`` to its backend again.

        This is the caller-driven retry after a failed save or a
        ConflictFailure. The remote backend re-reads the current revision
        first, so a push overwrites whatever another writer committed.
        """
        with self._lock.write_locked():
            self._require_enabled(target)
            self._cache.get(target)
            failures = self._persist([target])
        if failures:
            raise BackendFailures("push", failures)

    def reload(self, target: BackendTarget) -> Snapshot:
        """
        Re-read ``target`` from its backend, replacing its cache entry.

        Unsaved cache changes for that backend are discarded. Also brings
        a backend that failed to load back online.
        """
        with self._lock.write_locked():
            backend = self._require_enabled(target)
            try:
                snapshot = backend.load()
            except VaultError as exc:
                self._log_load_failure(target, exc)
                raise BackendFailures("reload", {target: exc}) from exc
            self._cache.install(target, snapshot)
            result = snapshot.copy()

        self.logger.log_backend_event(
            EventType.BACKEND_LOADED, target.label, "Snapshot reloaded",
            details={"record_count": len(result)},
        )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(self, query: str, target: Optional[BackendTarget] = None) -> List[Record]:
        """
        Find records whose title or description contains ``query``
        (case-insensitive). Never decrypts anything.

        Args:
            query: Substring to look for
            target: One backend, or None for the union of all loaded
                backends (by id; the later backend wins on duplicates)

        Returns:
            Matching records sorted by title, then id (copies)
        """
        with self._lock.read_locked():
            targets = self._read_targets(target)
            matches: Dict[str, Record] = {}
            for t in targets:
                for record in self._cache.get(t):
                    if record.matches(query):
                        matches[record.id] = record.copy()

        return sorted(matches.values(), key=lambda r: (r.title.lower(), r.id))

    def get(self, record_id: str, target: Optional[BackendTarget] = None) -> Record:
        """
        Raises:
            NotFoundFailure: The record (or target) is unknown
        """
        with self._lock.read_locked():
            if target is not None:
                self._read_targets(target)
            record = self._cache.find(record_id, target)
            if record is None:
                raise NotFoundFailure(f"record {record_id} not found")
            return record.copy()

    def list_records(self, target: BackendTarget) -> Snapshot:
        """Return a copy of ``target``'s cached snapshot."""
        with self._lock.read_locked():
            self._read_targets(target)
            return self._cache.get(target).copy()

    def decrypt(self, passphrase: str, blob: EncryptedBlob) -> str:
        """
        Decrypt a secret. Pure: no cache interaction.

        Raises:
            CryptoFailure: Wrong passphrase or corrupted data
        """
        with self._lock.read_locked():
            return self.encryption.decrypt(blob, passphrase)

    def decrypt_record(
        self,
        record_id: str,
        passphrase: str,
        target: Optional[BackendTarget] = None,
    ) -> str:
        """Look up a record and decrypt its password."""
        record = self.get(record_id, target)
        try:
            plaintext = self.decrypt(passphrase, record.secret)
        except CryptoFailure:
            self.logger.log_event(
                event_type=EventType.RECORD_DECRYPT_FAILED,
                severity=EventSeverity.INVESTIGATE,
                message=f"Decryption failed: {record.title}",
                details={"record_id": record_id},
            )
            raise

        self.logger.log_event(
            event_type=EventType.RECORD_ACCESSED,
            severity=EventSeverity.INFO,
            message=f"Record accessed: {record.title}",
            details={"record_id": record_id},
        )
        return plaintext

    def generate_password(self, options: Optional[PasswordOptions] = None) -> str:
        """Generate a random password (default length from settings)."""
        if options is None:
            options = PasswordOptions(length=self.config.settings.default_password_length)
        return generate_password(options)

    def status(self) -> Dict[BackendTarget, BackendStatus]:
        """Probe every enabled backend and summarize its cache entry."""
        statuses: Dict[BackendTarget, BackendStatus] = {}
        with self._lock.read_locked():
            for target, backend in self._backends.items():
                status = BackendStatus(
                    target=target,
                    loaded=self._cache.is_loaded(target),
                    stats=backend.get_stats(),
                )
                if status.loaded:
                    snapshot = self._cache.get(target)
                    status.record_count = snapshot.metadata.record_count
                    status.last_sync = snapshot.metadata.last_sync_time
                try:
                    backend.probe()
                    status.reachable = True
                except VaultError as exc:
                    status.error = str(exc)
                statuses[target] = status
        return statuses

    # ------------------------------------------------------------------
    # Master passphrase
    # ------------------------------------------------------------------

    def verify_master_passphrase(self, passphrase: str) -> bool:
        """
        Check the master passphrase against the configured hash.

        Returns True when no hash is configured. This is a UX gate; the
        AEAD tag checked on decrypt is the real one.
        """
        encoded = self.config.settings.master_passphrase_hash
        if encoded is None:
            return True
        ok = self.encryption.verify_passphrase(passphrase, encoded)
        if not ok:
            self.logger.log_event(
                event_type=EventType.VAULT_PASSPHRASE_REJECTED,
                severity=EventSeverity.INVESTIGATE,
                message="Master passphrase rejected",
            )
        return ok

    def set_master_passphrase(self, passphrase: str) -> str:
        """
        Hash ``passphrase`` and store it in a new in-memory config.

        Persisting the config file is the caller's job (VaultConfig.save).

        Returns:
            The encoded Argon2id hash
        """
        encoded = self.encryption.hash_passphrase(passphrase)
        with self._lock.write_locked():
            self._config = self._config.with_settings(master_passphrase_hash=encoded)

        self.logger.log_event(
            event_type=EventType.VAULT_PASSPHRASE_SET,
            severity=EventSeverity.INFO,
            message="Master passphrase set",
        )
        return encoded

    # ------------------------------------------------------------------
    # Internals (callers hold the lock)
    # ------------------------------------------------------------------

    def _load_all(
        self,
        backends: Mapping[BackendTarget, StorageBackend],
        cache: SnapshotCache,
    ) -> Dict[BackendTarget, VaultError]:
        failures: Dict[BackendTarget, VaultError] = {}
        for target in BackendTarget:
            backend = backends.get(target)
            if backend is None:
                continue
            try:
                snapshot = backend.load()
            except VaultError as exc:
                self._log_load_failure(target, exc)
                failures[target] = exc
                continue
            cache.install(target, snapshot)
            logger.info("Loaded %d records from %s", len(snapshot), target.label)
        return failures

    def _persist(self, targets: List[BackendTarget]) -> Dict[BackendTarget, VaultError]:
        """Save each target's cached snapshot; never stops at the first failure."""
        failures: Dict[BackendTarget, VaultError] = {}
        for target in targets:
            backend = self._backends[target]
            snapshot = self._cache.get(target)
            try:
                backend.save(snapshot)
            except VaultError as exc:
                failures[target] = exc
                conflict = isinstance(exc, ConflictFailure)
                logger.warning("Failed to save to %s: %s", target.label, exc)
                self.logger.log_backend_event(
                    EventType.BACKEND_CONFLICT if conflict else EventType.BACKEND_SAVE_FAILED,
                    target.label,
                    f"Save failed: {exc}",
                    severity=EventSeverity.ALERT,
                    details={"error_type": type(exc).__name__},
                )
                continue
            self.logger.log_backend_event(
                EventType.BACKEND_SAVED,
                target.label,
                "Snapshot saved",
                details={"record_count": snapshot.metadata.record_count},
            )
        return failures

    def _writable_targets(self) -> List[BackendTarget]:
        targets = self._cache.targets()
        if not targets:
            raise NotFoundFailure("no storage backend is loaded")
        return targets

    def _unloaded_failures(self, operation: str) -> Dict[BackendTarget, VaultError]:
        """Enabled backends that missed the write because they never loaded."""
        failures: Dict[BackendTarget, VaultError] = {}
        for target in BackendTarget:
            if target in self._backends and not self._cache.is_loaded(target):
                logger.warning("%s: %s is not loaded; write not applied", operation, target.label)
                failures[target] = NotFoundFailure(f"backend {target.label} is not loaded")
        return failures

    def _read_targets(self, target: Optional[BackendTarget]) -> List[BackendTarget]:
        if target is None:
            return self._cache.targets()
        self._require_enabled(target)
        if not self._cache.is_loaded(target):
            raise NotFoundFailure(f"backend {target.label} is not loaded")
        return [target]

    def _require_enabled(self, target: BackendTarget) -> StorageBackend:
        backend = self._backends.get(target)
        if backend is None:
            raise NotFoundFailure(f"backend {target.label} is not enabled")
        return backend

    def _log_load_failure(self, target: BackendTarget, exc: VaultError) -> None:
        logger.warning("Failed to load from %s: %s", target.label, exc)
        self.logger.log_backend_event(
            EventType.BACKEND_LOAD_FAILED,
            target.label,
            f"Load failed: {exc}",
            severity=EventSeverity.ALERT,
            details={"error_type": type(exc).__name__},
        )


def _kdf_params(config: VaultConfig) -> KdfParams:
    settings = config.settings
    return KdfParams(
        time_cost=settings.kdf_time_cost,
        memory_cost=settings.kdf_memory_cost,
        parallelism=settings.kdf_parallelism,
    )
