"""
Shared pytest fixtures for the Replivault test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger -> temp directory (prevents fake events in ~/.replivault)
  - Config/token -> env vars cleared (a developer's .env must not leak in)

Helpers:
  - ``fast_kdf``      cheap Argon2id parameters so crypto tests stay fast
  - ``FakeBackend``   in-memory StorageBackend with failure injection
"""

from types import MappingProxyType

import pytest

from replivault.core.config import LocalStorageConfig, RemoteStorageConfig, VaultConfig
from replivault.storage.backend import StorageBackend
from replivault.vault.encryption import EncryptionService, KdfParams
from replivault.vault.models import BackendTarget, Snapshot
from replivault.vault.vault_manager import VaultManager

FAST_KDF = KdfParams(time_cost=1, memory_cost=8192, parallelism=1)


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import replivault.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    monkeypatch.delenv("REPLIVAULT_CONFIG", raising=False)
    monkeypatch.delenv("REPLIVAULT_REMOTE_TOKEN", raising=False)
    monkeypatch.setattr("replivault.core.config.load_dotenv", lambda *a, **kw: False)


class FakeBackend(StorageBackend):
    """In-memory backend. Stores the snapshot as JSON text so nothing aliases the cache.

    Set ``load_error`` / ``save_error`` / ``probe_error`` to an exception
    instance to make the next calls raise it.
    """

    def __init__(self, target, snapshot=None):
        super().__init__(target)
        self.stored = snapshot.to_json() if snapshot is not None else None
        self.load_error = None
        self.save_error = None
        self.probe_error = None
        self.save_calls = 0

    def load(self):
        if self.load_error is not None:
            self.record_error()
            raise self.load_error
        self.record_load()
        return Snapshot.from_json(self.stored) if self.stored else Snapshot.empty()

    def save(self, snapshot):
        self.save_calls += 1
        if self.save_error is not None:
            self.record_error()
            raise self.save_error
        self.stored = snapshot.to_json()
        self.record_save()

    def probe(self):
        if self.probe_error is not None:
            raise self.probe_error

    def persisted(self):
        return Snapshot.from_json(self.stored) if self.stored else Snapshot.empty()


@pytest.fixture
def fast_kdf():
    return FAST_KDF


@pytest.fixture
def encryption():
    return EncryptionService(FAST_KDF)


@pytest.fixture
def vault_config(tmp_path):
    return VaultConfig(
        local=LocalStorageConfig(enabled=True, data_path=tmp_path / "vault.json"),
        remote=RemoteStorageConfig(enabled=True, owner="octo", repo="secrets", token="t0ken"),
    )


@pytest.fixture
def fakes():
    return {
        BackendTarget.LOCAL: FakeBackend(BackendTarget.LOCAL),
        BackendTarget.REMOTE: FakeBackend(BackendTarget.REMOTE),
    }


@pytest.fixture
def manager(vault_config, encryption, fakes):
    """Initialized VaultManager over two fake backends."""
    m = VaultManager(
        vault_config,
        encryption=encryption,
        backend_factory=lambda config: MappingProxyType(dict(fakes)),
    )
    m.initialize()
    return m



@pytest.fixture
def fake_backend():
    """The FakeBackend class, for tests that build their own backend sets."""
    return FakeBackend
