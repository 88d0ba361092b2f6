# Storage - Remote Contents Backend
#
# Snapshot stored as one JSON file inside a hosted, version-controlled
# repository. Saving is GET (current sha) then PUT (new content tagged
# with that sha). The pair is not atomic: another writer committing in
# between makes the PUT fail with ConflictFailure, which is surfaced to
# the caller unchanged. Re-fetching and re-saving is the caller's call.

import logging

from ..core.errors import SerializationFailure, VaultError
from ..vault.models import BackendTarget, Snapshot
from .backend import StorageBackend
from .contents_client import ContentsClient

logger = logging.getLogger(__name__)


class RemoteBackend(StorageBackend):
    """Persists the snapshot as a file in a remote repository."""

    def __init__(self, client: ContentsClient, file_path: str):
        super().__init__(BackendTarget.REMOTE)
        self.client = client
        self.file_path = file_path

    @property
    def location(self) -> str:
        return f"{self.client.owner}/{self.client.repo}@{self.client.branch}:{self.file_path}"

    def load(self) -> Snapshot:
        try:
            remote = self.client.get_file(self.file_path)
        except VaultError:
            self.record_error()
            raise

        if remote is None:
            logger.info("No snapshot at %s; starting empty", self.location)
            self.record_load()
            return Snapshot.empty()

        try:
            snapshot = Snapshot.from_json(remote.content)
        except SerializationFailure as exc:
            self.record_error()
            raise SerializationFailure(f"{self.location}: {exc}") from exc

        self.record_load()
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        content = snapshot.to_json()
        message = f"Update vault snapshot - {snapshot.metadata.record_count} records"
        try:
            sha = self.client.get_sha(self.file_path)
            new_sha = self.client.put_file(self.file_path, content, message, sha=sha)
        except VaultError:
            self.record_error()
            raise

        self.record_save()
        logger.info(
            "Saved %d records to %s (sha %s)",
            len(snapshot), self.location, new_sha[:7] if new_sha else "?",
        )

    def probe(self) -> None:
        self.client.get_repository()
