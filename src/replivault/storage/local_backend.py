# Storage - Local File Backend
#
# Snapshot stored as pretty-printed JSON in a single file. Writes go to
# "<file>.tmp" first and are moved into place with os.replace so a crash
# never leaves a truncated vault. No locking against other processes.

import logging
import os
from pathlib import Path
from typing import Union

from ..core.errors import IOFailure, SerializationFailure
from ..vault.models import BackendTarget, Snapshot
from .backend import StorageBackend

logger = logging.getLogger(__name__)


class LocalBackend(StorageBackend):
    """Persists the snapshot to a JSON file on disk."""

    def __init__(self, path: Union[str, Path]):
        super().__init__(BackendTarget.LOCAL)
        self.path = Path(path).expanduser()

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def load(self) -> Snapshot:
        if not self.path.exists():
            logger.info("No vault file at %s; starting empty", self.path)
            self.record_load()
            return Snapshot.empty()

        try:
            content = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            self.record_error()
            raise SerializationFailure(f"{self.path}: not valid UTF-8: {exc}") from exc
        except OSError as exc:
            self.record_error()
            raise IOFailure(f"cannot read {self.path}: {exc}") from exc

        try:
            snapshot = Snapshot.from_json(content)
        except SerializationFailure as exc:
            self.record_error()
            raise SerializationFailure(f"{self.path}: {exc}") from exc

        self.record_load()
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        content = snapshot.to_json()
        tmp_path = self.tmp_path
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file first, then rename for atomicity
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            self.record_error()
            if tmp_path.exists():
                tmp_path.unlink()
            raise IOFailure(f"cannot write {self.path}: {exc}") from exc

        self.record_save()
        logger.info("Saved %d records to %s", len(snapshot), self.path)

    def probe(self) -> None:
        parent = self.path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"cannot create {parent}: {exc}") from exc
        if not os.access(parent, os.W_OK):
            raise IOFailure(f"{parent} is not writable")
        if self.path.exists() and not os.access(self.path, os.R_OK):
            raise IOFailure(f"{self.path} is not readable")
