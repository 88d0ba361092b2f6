# Vault - Snapshot Cache
#
# In-memory mirror of each backend's snapshot. All reads are served from
# here; writes mutate it before any backend I/O. Entries for different
# backends are never merged and never share Record objects.
#
# Not thread-safe on its own: VaultManager guards it with its
# reader/writer lock.

from typing import Dict, List, Optional

from ..core.errors import NotFoundFailure
from .models import BackendTarget, Record, Snapshot


class SnapshotCache:
    """Per-backend snapshot mirror."""

    def __init__(self):
        self._entries: Dict[BackendTarget, Snapshot] = {}

    def install(self, target: BackendTarget, snapshot: Snapshot) -> None:
        """Install (or replace) the cached snapshot for ``target``."""
        self._entries[target] = snapshot

    def clear(self) -> None:
        self._entries.clear()

    def targets(self) -> List[BackendTarget]:
        """Loaded targets, in BackendTarget declaration order."""
        return [t for t in BackendTarget if t in self._entries]

    def is_loaded(self, target: BackendTarget) -> bool:
        return target in self._entries

    def get(self, target: BackendTarget) -> Snapshot:
        try:
            return self._entries[target]
        except KeyError:
            raise NotFoundFailure(f"backend {target.label} is not loaded") from None

    def contains(self, target: BackendTarget, record_id: str) -> bool:
        snapshot = self._entries.get(target)
        return snapshot is not None and record_id in snapshot

    def insert(self, target: BackendTarget, record: Record) -> None:
        """Insert a private copy of ``record`` into ``target``'s snapshot."""
        self.get(target).put(record.copy())

    def replace(self, target: BackendTarget, record: Record) -> None:
        """Replace an existing record; the id must already be present."""
        snapshot = self.get(target)
        if record.id not in snapshot:
            raise NotFoundFailure(f"record {record.id} not found in {target.label}")
        snapshot.put(record.copy())

    def remove(self, target: BackendTarget, record_id: str) -> bool:
        """Remove ``record_id`` from ``target``. Returns False if it was absent."""
        snapshot = self.get(target)
        if record_id not in snapshot:
            return False
        snapshot.remove(record_id)
        return True

    def find(self, record_id: str, target: Optional[BackendTarget] = None) -> Optional[Record]:
        """Look up a record; with no target the last loaded backend holding it wins."""
        targets = [target] if target is not None else self.targets()
        found = None
        for t in targets:
            record = self.get(t).records.get(record_id)
            if record is not None:
                found = record
        return found
