"""
Tests for LocalBackend: JSON file persistence with atomic replace.
"""

import json
import os
import stat
from unittest.mock import patch

import pytest

from replivault.core.errors import IOFailure, SerializationFailure
from replivault.storage.local_backend import LocalBackend
from replivault.vault.models import BackendTarget, EncryptedBlob, Record, RecordRequest, Snapshot

BLOB = EncryptedBlob(ciphertext=b"c" * 20, nonce=b"n" * 12, salt=b"s" * 16)


def _snapshot(*titles):
    snapshot = Snapshot.empty()
    for title in titles:
        snapshot.put(Record.create(RecordRequest(title=title, username="u", password="p"), BLOB))
    return snapshot


@pytest.fixture
def backend(tmp_path):
    return LocalBackend(tmp_path / "data" / "vault.json")


class TestLocalLoad:
    def test_missing_file_is_empty(self, backend):
        snapshot = backend.load()
        assert len(snapshot) == 0
        assert not backend.path.exists()

    def test_load_saved(self, backend):
        original = _snapshot("A", "B")
        backend.save(original)
        assert backend.load() == original

    def test_malformed_json(self, backend):
        backend.path.parent.mkdir(parents=True)
        backend.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SerializationFailure, match="vault.json"):
            backend.load()
        assert backend.get_stats()["errors"] == 1

    def test_wrong_shape(self, backend):
        backend.path.parent.mkdir(parents=True)
        backend.path.write_text(json.dumps({"passwords": []}), encoding="utf-8")
        with pytest.raises(SerializationFailure):
            backend.load()

    def test_unreadable(self, backend):
        backend.save(_snapshot("A"))
        with patch("pathlib.Path.read_text", side_effect=PermissionError("denied")):
            with pytest.raises(IOFailure, match="cannot read"):
                backend.load()

    def test_invalid_utf8(self, backend):
        backend.path.parent.mkdir(parents=True)
        backend.path.write_bytes(b'{"metadata": \xff\xfe}')
        with pytest.raises(SerializationFailure, match="not valid UTF-8"):
            backend.load()
        assert backend.get_stats()["errors"] == 1


class TestLocalSave:
    def test_creates_parent_dirs(self, backend):
        backend.save(_snapshot("A"))
        assert backend.path.exists()

    def test_pretty_printed_utf8(self, backend):
        backend.save(_snapshot("Café"))
        text = backend.path.read_text(encoding="utf-8")
        assert "Café" in text
        assert "\n  " in text

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_owner_only_permissions(self, backend):
        backend.save(_snapshot("A"))
        assert stat.S_IMODE(backend.path.stat().st_mode) == 0o600

    def test_no_tmp_left_behind(self, backend):
        backend.save(_snapshot("A"))
        assert not backend.tmp_path.exists()

    def test_failed_replace_keeps_old_file_and_removes_tmp(self, backend):
        backend.save(_snapshot("A"))
        before = backend.path.read_text(encoding="utf-8")
        with patch("replivault.storage.local_backend.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(IOFailure, match="cannot write"):
                backend.save(_snapshot("A", "B"))
        assert backend.path.read_text(encoding="utf-8") == before
        assert not backend.tmp_path.exists()

    def test_overwrites(self, backend):
        backend.save(_snapshot("A"))
        backend.save(_snapshot("B", "C"))
        assert len(backend.load()) == 2


class TestLocalProbeAndStats:
    def test_probe_creates_directory(self, backend):
        backend.probe()
        assert backend.path.parent.is_dir()
        assert not backend.path.exists()

    def test_probe_unwritable(self, backend):
        with patch("replivault.storage.local_backend.os.access", return_value=False):
            with pytest.raises(IOFailure, match="not writable"):
                backend.probe()

    def test_stats(self, backend):
        backend.save(_snapshot("A"))
        backend.load()
        stats = backend.get_stats()
        assert stats["backend"] == "Local"
        assert stats["saves"] == 1
        assert stats["loads"] == 1
        assert stats["last_save"] is not None

    def test_target(self, backend):
        assert backend.target is BackendTarget.LOCAL
        assert repr(backend) == "LocalBackend(target=local)"
