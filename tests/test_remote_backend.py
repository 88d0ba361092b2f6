"""
Tests for RemoteBackend: snapshot stored as a file via the contents API.

The ContentsClient is mocked; request shapes are covered in
test_contents_client.py.
"""

from unittest.mock import MagicMock

import pytest

from replivault.core.errors import ConflictFailure, NetworkFailure, SerializationFailure
from replivault.storage.contents_client import ContentsClient, RemoteFile
from replivault.storage.remote_backend import RemoteBackend
from replivault.vault.models import BackendTarget, EncryptedBlob, Record, RecordRequest, Snapshot

BLOB = EncryptedBlob(ciphertext=b"c" * 20, nonce=b"n" * 12, salt=b"s" * 16)


def _snapshot(*titles):
    snapshot = Snapshot.empty()
    for title in titles:
        snapshot.put(Record.create(RecordRequest(title=title, username="u", password="p"), BLOB))
    return snapshot


@pytest.fixture
def client():
    c = MagicMock(spec=ContentsClient)
    c.owner, c.repo, c.branch = "octo", "secrets", "main"
    return c


@pytest.fixture
def backend(client):
    return RemoteBackend(client, "vault.json")


class TestRemoteLoad:
    def test_absent_file_is_empty(self, backend, client):
        client.get_file.return_value = None
        assert len(backend.load()) == 0
        client.get_file.assert_called_once_with("vault.json")

    def test_load(self, backend, client):
        original = _snapshot("A")
        client.get_file.return_value = RemoteFile("vault.json", "sha1", original.to_json())
        assert backend.load() == original
        assert backend.get_stats()["loads"] == 1

    def test_malformed(self, backend, client):
        client.get_file.return_value = RemoteFile("vault.json", "sha1", "{oops")
        with pytest.raises(SerializationFailure, match="octo/secrets@main:vault.json"):
            backend.load()
        assert backend.get_stats()["errors"] == 1

    def test_network_failure_propagates(self, backend, client):
        client.get_file.side_effect = NetworkFailure("down", status_code=503)
        with pytest.raises(NetworkFailure):
            backend.load()
        assert backend.get_stats()["errors"] == 1


class TestRemoteSave:
    def test_update_uses_current_sha(self, backend, client):
        client.get_sha.return_value = "sha1"
        client.put_file.return_value = "sha2"
        snapshot = _snapshot("A", "B")

        backend.save(snapshot)

        path, content, message = client.put_file.call_args.args
        assert path == "vault.json"
        assert Snapshot.from_json(content) == snapshot
        assert message == "Update vault snapshot - 2 records"
        assert client.put_file.call_args.kwargs["sha"] == "sha1"
        assert backend.get_stats()["saves"] == 1

    def test_save_does_not_read_content(self, backend, client):
        client.get_sha.return_value = "sha1"
        client.put_file.return_value = "sha2"
        backend.save(_snapshot("A"))
        client.get_sha.assert_called_once_with("vault.json")
        client.get_file.assert_not_called()

    def test_create_without_sha(self, backend, client):
        client.get_sha.return_value = None
        client.put_file.return_value = "sha1"
        backend.save(_snapshot("A"))
        assert client.put_file.call_args.kwargs["sha"] is None

    def test_conflict_surfaces_unchanged(self, backend, client):
        client.get_sha.return_value = "sha1"
        client.put_file.side_effect = ConflictFailure("moved")
        with pytest.raises(ConflictFailure):
            backend.save(_snapshot("A"))
        assert client.put_file.call_count == 1
        assert backend.get_stats()["errors"] == 1

    def test_sha_lookup_failure(self, backend, client):
        client.get_sha.side_effect = NetworkFailure("timeout", timeout=True)
        with pytest.raises(NetworkFailure):
            backend.save(_snapshot("A"))
        client.put_file.assert_not_called()


class TestRemoteProbe:
    def test_probe(self, backend, client):
        backend.probe()
        client.get_repository.assert_called_once()

    def test_probe_failure(self, backend, client):
        client.get_repository.side_effect = NetworkFailure("unauthorized", status_code=401)
        with pytest.raises(NetworkFailure):
            backend.probe()

    def test_target(self, backend):
        assert backend.target is BackendTarget.REMOTE
        assert backend.label == "Remote"
